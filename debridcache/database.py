"""
debridcache Database Configuration
"""
from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from loguru import logger


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def create_engine(database_url: str) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create an async engine and its session factory"""
    options = {"echo": False, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)

    engine = create_async_engine(database_url, **options)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def init_db(engine: AsyncEngine):
    """Initialize database tables"""
    async with engine.begin() as conn:
        # Import models to register them
        from debridcache.models import cache  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Cache store tables created")
