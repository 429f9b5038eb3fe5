"""
Downloaders Package
"""
from debridcache.services.downloaders.realdebrid import RealDebridService, real_debrid_service

__all__ = [
    "RealDebridService",
    "real_debrid_service",
]
