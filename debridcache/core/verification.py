"""
Cache Verification
Decides whether a single torrent is instantly available on Real-Debrid.

States:
ADDED -> FILES_SELECTED -> POLLED -> CONFIRMED_CACHED
                                 |-> CONFIRMED_JUNK
                                 |-> NOT_CACHED
(any step) -> FAILED
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from debridcache.config import settings
from debridcache.core.background import BackgroundTasks, background_tasks
from debridcache.exceptions import RateLimitedError
from debridcache.models.candidate import SERVICE
from debridcache.services.cache.store import CacheStore
from debridcache.services.downloaders.realdebrid import RealDebridService
from debridcache.utils.parsing import is_junk, is_valid_video


TERMINAL_SUCCESS = ("downloaded", "finished")


class VerificationState(str, Enum):
    ADDED = "added"
    FILES_SELECTED = "files_selected"
    POLLED = "polled"
    CONFIRMED_CACHED = "confirmed_cached"
    CONFIRMED_JUNK = "confirmed_junk"
    NOT_CACHED = "not_cached"
    FAILED = "failed"


@dataclass
class VerificationResult:
    info_hash: str
    state: VerificationState
    torrent_id: Optional[str] = None
    status: Optional[str] = None
    file: Optional[Dict] = None
    files: List[Dict] = field(default_factory=list)

    @property
    def is_cached(self) -> bool:
        return self.state == VerificationState.CONFIRMED_CACHED


class TorrentCleanup:
    """
    Provider torrents added during a search, deleted after it completes.
    A rate-limited delete is retried once after a fixed delay.
    """

    def __init__(self, retry_delay: Optional[float] = None):
        self.retry_delay = settings.cleanup_retry_delay if retry_delay is None else retry_delay
        self._ids: Set[str] = set()

    def register(self, torrent_id: Optional[str]):
        if torrent_id:
            self._ids.add(str(torrent_id))

    def discard(self, torrent_id: Optional[str]):
        self._ids.discard(str(torrent_id))

    @property
    def torrent_ids(self) -> Set[str]:
        return set(self._ids)

    def __len__(self):
        return len(self._ids)

    async def _delete(self, debrid: RealDebridService, torrent_id: str) -> bool:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.retry_delay),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Real-Debrid cleanup: Retrying delete of {torrent_id} after rate limit")
                return await debrid.delete_torrent(torrent_id)
        return False

    async def run(self, debrid: RealDebridService) -> int:
        """Delete every registered torrent, returns how many succeeded"""
        if not self._ids:
            return 0
        ids = sorted(self._ids)
        self._ids.clear()
        logger.info(f"Real-Debrid cleanup: Deleting {len(ids)} temporary torrents")

        deleted = 0
        for torrent_id in ids:
            try:
                if await self._delete(debrid, torrent_id):
                    deleted += 1
            except RateLimitedError:
                logger.error(f"Real-Debrid cleanup: Failed to delete {torrent_id} on retry")
            except Exception as e:
                logger.error(f"Real-Debrid cleanup: Error deleting {torrent_id}: {e}")

        logger.info(f"Real-Debrid cleanup: Finished ({deleted}/{len(ids)} deleted)")
        return deleted


class CacheVerifier:
    """
    Runs the add/select/poll/classify pipeline for one hash at a time.
    One instance per search; outcomes are memoised by hash.
    """

    def __init__(
        self,
        debrid: RealDebridService,
        cleanup: TorrentCleanup,
        store: Optional[CacheStore] = None,
        background: Optional[BackgroundTasks] = None,
        min_video_size: Optional[int] = None
    ):
        self.debrid = debrid
        self.cleanup = cleanup
        self.store = store
        self.background = background or background_tasks
        self.min_video_size = settings.min_video_size_bytes if min_video_size is None else min_video_size
        self._results: Dict[str, VerificationResult] = {}

    async def is_cached(self, info_hash: str) -> bool:
        return (await self.verify(info_hash)).is_cached

    async def verify(self, info_hash: str) -> VerificationResult:
        info_hash = (info_hash or "").lower()
        if info_hash in self._results:
            return self._results[info_hash]

        result = VerificationResult(info_hash=info_hash, state=VerificationState.ADDED)
        try:
            result = await self._add(result)
            while result.state in (VerificationState.FILES_SELECTED, VerificationState.POLLED):
                if result.state == VerificationState.FILES_SELECTED:
                    result = await self._poll(result)
                else:
                    result = self._classify(result)
        except Exception as e:
            logger.warning(f"Cache check: Exception during live check for {info_hash}: {e}")
            result.state = VerificationState.FAILED

        if result.is_cached:
            self._remember(result)

        self._results[info_hash] = result
        return result

    async def _add(self, result: VerificationResult) -> VerificationResult:
        """ADDED: submit the magnet, then select all files"""
        torrent_id = await self.debrid.add_magnet(result.info_hash)
        if not torrent_id:
            logger.debug(f"Cache check: addMagnet failed for {result.info_hash}")
            result.state = VerificationState.FAILED
            return result

        result.torrent_id = torrent_id
        self.cleanup.register(torrent_id)

        if not await self.debrid.select_files(torrent_id, "all"):
            logger.debug(f"Cache check: selectFiles failed for {result.info_hash}")
            result.state = VerificationState.FAILED
            return result

        result.state = VerificationState.FILES_SELECTED
        return result

    async def _poll(self, result: VerificationResult) -> VerificationResult:
        """FILES_SELECTED: read the status once"""
        info = await self.debrid.get_torrent_info(result.torrent_id) or {}
        result.status = info.get("status") or "unknown"
        result.files = info.get("files") or []

        if result.status not in TERMINAL_SUCCESS:
            logger.debug(f"Cache check: {result.info_hash} not cached (status={result.status})")
            result.state = VerificationState.NOT_CACHED
            return result

        result.state = VerificationState.POLLED
        return result

    def _classify(self, result: VerificationResult) -> VerificationResult:
        """POLLED: junk rejects outright, then require a plausible video"""
        junk = [f for f in result.files if is_junk(f.get("path", ""))]
        if junk:
            logger.debug(f"Cache check: {result.info_hash} contains junk file(s) e.g. {junk[0].get('path')}")
            result.state = VerificationState.CONFIRMED_JUNK
            return result

        videos = [
            f for f in result.files
            if is_valid_video(f.get("path", ""), f.get("bytes"), self.min_video_size)
        ]
        if not videos:
            logger.debug(f"Cache check: {result.info_hash} has no valid video files")
            result.state = VerificationState.NOT_CACHED
            return result

        result.file = max(videos, key=lambda f: f.get("bytes") or 0)
        result.state = VerificationState.CONFIRMED_CACHED
        return result

    def _remember(self, result: VerificationResult):
        if self.store is None or not self.store.is_enabled:
            return
        record = {
            "service": SERVICE,
            "hash": result.info_hash,
            "file_name": (result.file or {}).get("path"),
            "size_bytes": (result.file or {}).get("bytes"),
            "payload": {"status": result.status},
        }
        self.background.spawn(self.store.upsert_one(record), name=f"remember-{result.info_hash[:8]}")
