"""
Scrapers Package
"""
from debridcache.services.scrapers.base import Producer, SearchContext
from debridcache.services.scrapers.torrentio import TorrentioScraper, torrentio_scraper


def default_producers():
    """Producers enabled by configuration"""
    producers = []
    if torrentio_scraper.is_configured:
        producers.append(torrentio_scraper)
    return producers


__all__ = [
    "Producer",
    "SearchContext",
    "TorrentioScraper",
    "torrentio_scraper",
    "default_producers",
]
