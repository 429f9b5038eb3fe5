"""
debridcache Configuration Management
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Real-Debrid
    real_debrid_token: str = Field(default="", alias="REAL_DEBRID_TOKEN")
    real_debrid_url: str = Field(
        default="https://api.real-debrid.com/rest/1.0",
        alias="REAL_DEBRID_URL"
    )
    request_timeout: float = Field(default=30.0, alias="RD_REQUEST_TIMEOUT")

    # Call gate (shared pacing of every provider call)
    rd_max_concurrent: int = Field(default=1, alias="RD_MAX_CONCURRENT")
    rd_min_interval: float = Field(default=0.25, alias="RD_MIN_INTERVAL")

    # Cache store
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    cache_database_url: str = Field(default="", alias="CACHE_DATABASE_URL")
    cache_table_name: str = Field(default="debrid_cache", alias="CACHE_TABLE_NAME")
    cache_ttl_days: int = Field(default=30, alias="CACHE_TTL_DAYS")
    cache_purge_interval_minutes: int = Field(default=60, alias="CACHE_PURGE_INTERVAL_MINUTES")

    # Per-category result limits (applied per resolution)
    max_results_per_quality: int = Field(default=2, alias="MAX_RESULTS_PER_QUALITY")
    max_results_remux: Optional[int] = Field(default=None, alias="MAX_RESULTS_REMUX")
    max_results_bluray: Optional[int] = Field(default=None, alias="MAX_RESULTS_BLURAY")
    max_results_webdl: Optional[int] = Field(default=None, alias="MAX_RESULTS_WEBDL")
    max_results_webrip: int = Field(default=1, alias="MAX_RESULTS_WEBRIP")
    max_results_audio: int = Field(default=1, alias="MAX_RESULTS_AUDIO")
    max_results_other: int = Field(default=10, alias="MAX_RESULTS_OTHER")
    penalize_aac_opus: bool = Field(default=True, alias="PRIORITY_PENALTY_AAC_OPUS_ENABLED")

    # Verification
    min_video_size_mb: int = Field(default=50, alias="MIN_VIDEO_SIZE_MB")
    max_packs_to_inspect: int = Field(default=3, alias="MAX_PACKS_TO_INSPECT")
    non_cached_inspect_limit: int = Field(default=5, alias="NON_CACHED_INSPECT_LIMIT")
    cleanup_retry_delay: float = Field(default=3.0, alias="CLEANUP_RETRY_DELAY")
    link_retry_delay: float = Field(default=0.2, alias="LINK_RETRY_DELAY")

    # Personal files
    personal_torrent_pages: int = Field(default=2, alias="PERSONAL_TORRENT_PAGES")
    personal_torrents_to_inspect: int = Field(default=3, alias="PERSONAL_TORRENTS_TO_INSPECT")
    personal_match_ratio: float = Field(default=0.6, alias="PERSONAL_MATCH_RATIO")

    # Producers
    torrentio_enabled: bool = Field(default=True, alias="TORRENTIO_ENABLED")
    torrentio_url: str = Field(default="https://torrentio.strem.fun", alias="TORRENTIO_URL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def has_real_debrid(self) -> bool:
        return bool(self.real_debrid_token)

    @property
    def has_cache_store(self) -> bool:
        return bool(self.cache_enabled and self.cache_database_url)

    @property
    def min_video_size_bytes(self) -> int:
        return self.min_video_size_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
