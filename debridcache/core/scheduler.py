"""
Background Scheduler
Periodic maintenance of the cache store
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from debridcache.config import settings
from debridcache.services.cache.store import cache_store


scheduler = AsyncIOScheduler()


async def purge_expired_records():
    """JOB: Physically delete cache records past their expiry"""
    try:
        await cache_store.purge_expired()
    except Exception as e:
        logger.error(f"Purge error: {e}")


def setup_scheduler():
    """Configure scheduled jobs"""
    if cache_store.is_enabled:
        scheduler.add_job(
            purge_expired_records,
            IntervalTrigger(minutes=settings.cache_purge_interval_minutes),
            id="purge_cache",
            name="Purge Expired Cache Records",
            replace_existing=True,
            max_instances=1,
        )
