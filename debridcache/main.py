"""
debridcache runtime
Logging setup and process startup/shutdown hooks
"""
import asyncio
import sys
from typing import Optional

from loguru import logger

from debridcache.config import settings
from debridcache.core.aggregation import CacheSearchEngine
from debridcache.core.background import background_tasks
from debridcache.core.resolver import StreamResolver
from debridcache.core.scheduler import scheduler, setup_scheduler
from debridcache.core.session import search_session
from debridcache.services.cache.store import cache_store
from debridcache.services.downloaders.realdebrid import real_debrid_service
from debridcache.services.scrapers import default_producers
from debridcache.services.scrapers.torrentio import torrentio_scraper


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(level: Optional[str] = None):
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=(level or settings.log_level).upper())


async def startup():
    """Logging, cache store tables and the purge scheduler"""
    setup_logging()
    logger.info("🚀 Starting debridcache...")

    if not settings.has_real_debrid:
        logger.warning("Real-Debrid API key not configured")

    if cache_store.is_enabled:
        if await cache_store.init():
            logger.info("✅ Cache store initialized")
        else:
            logger.warning("Cache store unavailable, continuing without it")
    else:
        logger.info("Cache store disabled")

    setup_scheduler()
    scheduler.start()
    logger.info("✅ Scheduler started")


async def shutdown():
    logger.info("🛑 Shutting down debridcache...")
    if scheduler.running:
        scheduler.shutdown(wait=False)
        # AsyncIOScheduler stops on the next loop iteration
        await asyncio.sleep(0)
        logger.info("✅ Scheduler stopped")

    await background_tasks.drain()
    await cache_store.close()
    await real_debrid_service.close()
    await torrentio_scraper.close()


def build_engine() -> CacheSearchEngine:
    """Search engine wired to the shared provider client, store, producers and session"""
    return CacheSearchEngine(
        real_debrid_service,
        producers=default_producers(),
        store=cache_store,
        background=background_tasks,
        session=search_session,
    )


def build_resolver() -> StreamResolver:
    return StreamResolver(real_debrid_service, store=cache_store, background=background_tasks)
