"""
Cache Store
Durable, TTL-bounded record of hashes already verified as cached.

Every operation is best-effort: when the store is disabled or the
backing database fails, reads return empty results and writes return
False. Nothing raises to the caller.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from loguru import logger
from sqlalchemy import case, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from debridcache.config import settings
from debridcache.core.quota import QuotaCounts
from debridcache.database import create_engine, init_db
from debridcache.exceptions import CacheStoreError
from debridcache.models.cache import CacheRecord


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _normalize(value: Any) -> str:
    return str(value or "").strip().lower()


class CacheStore:
    """Upserts and lookups of CacheRecord rows keyed by (service, hash)"""

    def __init__(
        self,
        database_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        ttl_days: Optional[int] = None
    ):
        self.database_url = settings.cache_database_url if database_url is None else database_url
        self.enabled = settings.cache_enabled if enabled is None else enabled
        self.ttl_days = settings.cache_ttl_days if ttl_days is None else ttl_days

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._init_lock: Optional[asyncio.Lock] = None

    @property
    def is_enabled(self) -> bool:
        return bool(self.enabled and self.database_url)

    async def _sessions(self) -> async_sessionmaker:
        """Create the engine and tables on first use"""
        if self._session_factory is not None:
            return self._session_factory
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if self._session_factory is None:
                engine, factory = create_engine(self.database_url)
                try:
                    await init_db(engine)
                except SQLAlchemyError as e:
                    await engine.dispose()
                    raise CacheStoreError(f"Cannot initialize cache store: {e}") from e
                self._engine = engine
                self._session_factory = factory
                logger.info(f"Cache store: Connected (ttl={self.ttl_days}d)")
        return self._session_factory

    async def init(self) -> bool:
        """Eagerly connect and create tables"""
        if not self.is_enabled:
            return False
        try:
            await self._sessions()
        except CacheStoreError as e:
            logger.error(f"Cache store: {e}")
            return False
        return True

    def _expiry(self, now: datetime) -> datetime:
        return now + timedelta(days=self.ttl_days)

    def _row(self, record: Mapping[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
        """Normalize a record into column values, None if malformed"""
        service = _normalize(record.get("service"))
        info_hash = _normalize(record.get("hash"))
        if not service or not info_hash:
            return None

        size = record.get("size_bytes")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            size = None

        return {
            "service": service,
            "hash": info_hash,
            "file_name": record.get("file_name") or None,
            "size_bytes": size,
            "release_key": record.get("release_key") or None,
            "category": record.get("category") or None,
            "resolution": record.get("resolution") or None,
            "payload": record.get("payload") or None,
            "created_at": now,
            "updated_at": now,
            "expires_at": self._expiry(now),
        }

    def _upsert_statement(self, dialect: str, rows: List[Dict[str, Any]], now: datetime):
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise CacheStoreError(f"Unsupported cache store dialect: {dialect}")

        table = CacheRecord.__table__
        stmt = insert(table).values(rows)
        excluded = stmt.excluded
        return stmt.on_conflict_do_update(
            index_elements=[table.c.service, table.c.hash],
            set_={
                "file_name": excluded.file_name,
                "size_bytes": excluded.size_bytes,
                "release_key": excluded.release_key,
                "category": excluded.category,
                "resolution": excluded.resolution,
                "payload": excluded.payload,
                "updated_at": excluded.updated_at,
                "expires_at": excluded.expires_at,
                # An expired row is logically absent, so it starts over
                "created_at": case(
                    (table.c.expires_at <= now, excluded.created_at),
                    else_=table.c.created_at,
                ),
            },
        )

    async def _write(self, rows: List[Dict[str, Any]], now: datetime):
        factory = await self._sessions()
        async with factory() as session:
            stmt = self._upsert_statement(self._engine.dialect.name, rows, now)
            await session.execute(stmt)
            await session.commit()

    async def upsert_one(self, record: Mapping[str, Any]) -> bool:
        """Insert or update a single record"""
        if not self.is_enabled:
            logger.debug(f"Cache store: Disabled, skipping upsert for {record.get('hash')}")
            return False

        now = utcnow()
        row = self._row(record, now)
        if row is None:
            logger.warning(
                f"Cache store: Invalid service ({record.get('service')}) "
                f"or hash ({record.get('hash')}) for upsert"
            )
            return False

        try:
            await self._write([row], now)
            logger.debug(f"Cache store: Upserted {row['service']}/{row['hash']}")
            return True
        except (SQLAlchemyError, CacheStoreError) as e:
            logger.error(f"Cache store: Error upserting record: {e}")
            return False

    async def upsert_many(self, records: Iterable[Mapping[str, Any]]) -> bool:
        """
        Insert or update a batch. Malformed records are skipped;
        duplicates within the batch keep the last occurrence.
        """
        if not self.is_enabled:
            return False
        records = list(records or [])
        if not records:
            return False

        now = utcnow()
        rows: Dict[tuple, Dict[str, Any]] = {}
        skipped = 0
        for record in records:
            row = self._row(record, now)
            if row is None:
                skipped += 1
                continue
            rows[(row["service"], row["hash"])] = row

        if skipped:
            logger.warning(f"Cache store: Skipped {skipped} malformed records")
        if not rows:
            return True

        try:
            await self._write(list(rows.values()), now)
            logger.debug(f"Cache store: Bulk upserted {len(rows)} records")
            return True
        except (SQLAlchemyError, CacheStoreError) as e:
            logger.error(f"Cache store: Error bulk upserting records: {e}")
            return False

    async def known_hashes(self, service: str, hashes: Optional[Iterable[str]]) -> Set[str]:
        """
        Subset of the given hashes already recorded (non-expired) for the service.
        Matching ignores case; hashes come back spelled as the caller passed them.
        """
        if not self.is_enabled or not hashes:
            return set()
        spellings: Dict[str, Set[str]] = {}
        for h in hashes:
            if h:
                spellings.setdefault(_normalize(h), set()).add(h)
        spellings.pop("", None)
        wanted = set(spellings)
        if not wanted:
            return set()

        try:
            factory = await self._sessions()
            async with factory() as session:
                result = await session.execute(
                    select(CacheRecord.hash).where(
                        CacheRecord.service == _normalize(service),
                        CacheRecord.hash.in_(wanted),
                        CacheRecord.expires_at > utcnow(),
                    )
                )
                found = {row[0] for row in result.all()}
        except (SQLAlchemyError, CacheStoreError) as e:
            logger.error(f"Cache store: Error checking hashes: {e}")
            return set()

        logger.debug(f"Cache store: {len(found)}/{len(wanted)} hashes known for {service}")
        return {h for key in found & wanted for h in spellings[key]}

    async def get_record(self, service: str, info_hash: str) -> Optional[CacheRecord]:
        """Point lookup, None when absent, expired or disabled"""
        if not self.is_enabled or not info_hash:
            return None
        try:
            factory = await self._sessions()
            async with factory() as session:
                result = await session.execute(
                    select(CacheRecord).where(
                        CacheRecord.service == _normalize(service),
                        CacheRecord.hash == _normalize(info_hash),
                        CacheRecord.expires_at > utcnow(),
                    )
                )
                return result.scalar_one_or_none()
        except (SQLAlchemyError, CacheStoreError) as e:
            logger.error(f"Cache store: Error reading {info_hash}: {e}")
            return None

    async def release_counts(self, service: str, release_key: Optional[str]) -> QuotaCounts:
        """Counts by category and category x resolution for a release"""
        counts = QuotaCounts()
        if not self.is_enabled or not service or not release_key:
            return counts
        try:
            factory = await self._sessions()
            async with factory() as session:
                result = await session.execute(
                    select(CacheRecord.category, CacheRecord.resolution, func.count())
                    .where(
                        CacheRecord.service == _normalize(service),
                        CacheRecord.release_key == str(release_key),
                        CacheRecord.expires_at > utcnow(),
                    )
                    .group_by(CacheRecord.category, CacheRecord.resolution)
                )
                for category, resolution, count in result.all():
                    counts.add(category, resolution, count)
        except (SQLAlchemyError, CacheStoreError) as e:
            logger.error(f"Cache store: Error counting release {service}/{release_key}: {e}")
            return QuotaCounts()
        return counts

    async def purge_expired(self) -> int:
        """Physically delete expired rows"""
        if not self.is_enabled:
            return 0
        try:
            factory = await self._sessions()
            async with factory() as session:
                result = await session.execute(
                    delete(CacheRecord).where(CacheRecord.expires_at <= utcnow())
                )
                await session.commit()
                purged = result.rowcount or 0
        except (SQLAlchemyError, CacheStoreError) as e:
            logger.error(f"Cache store: Error purging expired records: {e}")
            return 0
        if purged:
            logger.info(f"Cache store: Purged {purged} expired records")
        return purged

    async def close(self):
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None


# Singleton instance
cache_store = CacheStore()
