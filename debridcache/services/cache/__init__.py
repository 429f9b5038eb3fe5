"""
Cache Store Package
"""
from debridcache.services.cache.store import CacheStore, cache_store

__all__ = ["CacheStore", "cache_store"]
