"""
Cache Record Model
Verified torrent/file associations, one row per (service, hash)
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from debridcache.config import settings
from debridcache.database import Base


class CacheRecord(Base):
    """
    A torrent hash known to be cached on a debrid service.
    Rows past expires_at are treated as absent and purged periodically.
    """
    __tablename__ = settings.cache_table_name
    __table_args__ = (
        UniqueConstraint("service", "hash", name=f"uq_{settings.cache_table_name}_service_hash"),
        Index(f"ix_{settings.cache_table_name}_release", "service", "release_key"),
        Index(
            f"ix_{settings.cache_table_name}_release_quality",
            "service", "release_key", "category", "resolution",
        ),
        Index(f"ix_{settings.cache_table_name}_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    service: Mapped[str] = mapped_column(String(50), nullable=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # File info
    file_name: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    # Release-level metadata used for quota counting
    release_key: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # e.g., "Remux", "BluRay"
    resolution: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # e.g., "2160p"

    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Timestamps (naive UTC)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self):
        return f"<CacheRecord(service={self.service}, hash={self.hash[:8]}..., release={self.release_key})>"


def make_release_key(
    media_type: str,
    content_id: str,
    season: Optional[int] = None,
    episode: Optional[int] = None
) -> str:
    """
    Grouping key for a release.
    "movie:tt0111161" or "series:tt0903747:S01E02"
    """
    if media_type == "series" and season is not None and episode is not None:
        return f"{media_type}:{content_id}:S{int(season):02d}E{int(episode):02d}"
    return f"{media_type}:{content_id}"
