"""
Pack Inspection
Extracts one target episode file from multi-episode season packs
"""
from typing import Dict, Iterable, List, Optional, Set

from loguru import logger

from debridcache.config import settings
from debridcache.core.quality import QualityClassifier, quality_classifier
from debridcache.core.verification import TorrentCleanup
from debridcache.models.candidate import EpisodeHint, PackCandidate
from debridcache.services.downloaders.realdebrid import RealDebridService
from debridcache.utils.parsing import episode_marker, is_junk


class PackInspector:
    """
    Inspects season packs for one search.
    Packs that raise are remembered as failed and not retried in the same run.
    The cap counts packs that yielded the target episode.
    """

    def __init__(
        self,
        debrid: RealDebridService,
        cleanup: TorrentCleanup,
        max_packs: Optional[int] = None,
        classifier: Optional[QualityClassifier] = None
    ):
        self.debrid = debrid
        self.cleanup = cleanup
        self.max_packs = settings.max_packs_to_inspect if max_packs is None else max_packs
        self.classifier = classifier or quality_classifier
        self.failed: Set[str] = set()
        self.inspected = 0
        self._owned: Optional[Dict[str, str]] = None

    @property
    def exhausted(self) -> bool:
        return self.inspected >= self.max_packs

    async def _owned_torrents(self) -> Dict[str, str]:
        """hash -> torrent id for the first page of the caller's torrents"""
        if self._owned is None:
            torrents = await self.debrid.get_torrents(page=1, limit=100)
            self._owned = {
                t["hash"].lower(): str(t["id"])
                for t in torrents
                if t.get("hash") and t.get("id")
            }
        return self._owned

    async def _torrent_id(self, info_hash: str) -> Optional[str]:
        owned = await self._owned_torrents()
        if info_hash in owned:
            return owned[info_hash]

        torrent_id = await self.debrid.add_magnet(info_hash)
        if not torrent_id:
            return None
        self.cleanup.register(torrent_id)
        await self.debrid.select_files(torrent_id, "all")
        return torrent_id

    @staticmethod
    def select_episode_file(files: List[Dict], season: int, episode: int) -> Optional[Dict]:
        """Largest non-junk file whose name carries the target season/episode"""
        matching = []
        for file in files:
            path = file.get("path", "")
            if is_junk(path):
                continue
            if episode_marker(path) == (season, episode):
                matching.append(file)
        if not matching:
            return None
        return max(matching, key=lambda f: f.get("bytes") or 0)

    async def inspect_one(self, info_hash: str, season: int, episode: int) -> Optional[PackCandidate]:
        torrent_id = await self._torrent_id(info_hash)
        if not torrent_id:
            return None

        info = await self.debrid.get_torrent_info(torrent_id)
        if not info or not info.get("files"):
            return None

        best = self.select_episode_file(info["files"], season, episode)
        if best is None:
            logger.debug(f"Pack inspect: No S{season:02d}E{episode:02d} in {info_hash[:8]}")
            return None

        hint = EpisodeHint(
            file_path=best.get("path", ""),
            file_bytes=best.get("bytes") or 0,
            torrent_id=torrent_id,
            file_id=best.get("id"),
        )
        return PackCandidate(
            info_hash=info_hash,
            hint=hint,
            pack_name=info.get("filename"),
            category=self.classifier.category(hint.file_path),
            resolution=self.classifier.resolution(hint.file_path),
        )

    async def inspect(self, hashes: Iterable[str], season: int, episode: int) -> Dict[str, PackCandidate]:
        """Inspect packs until the per-search cap of matching packs is reached"""
        results: Dict[str, PackCandidate] = {}
        for info_hash in hashes:
            info_hash = (info_hash or "").lower()
            if not info_hash or info_hash in self.failed or info_hash in results:
                continue
            if self.exhausted:
                logger.debug(f"Pack inspect: Cap of {self.max_packs} packs reached")
                break

            try:
                candidate = await self.inspect_one(info_hash, season, episode)
            except Exception as e:
                logger.error(f"Pack inspect: Error inspecting pack {info_hash}: {e}")
                self.failed.add(info_hash)
                continue

            if candidate is not None:
                self.inspected += 1
                logger.info(f"Pack inspect: Found {candidate.hint.file_path} in {info_hash[:8]}")
                results[info_hash] = candidate

        return results
