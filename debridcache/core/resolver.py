"""
Stream Resolution
Turns a magnet, an internal file token or a hoster URL into a direct link
"""
import asyncio
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

from loguru import logger

from debridcache.config import settings
from debridcache.core.background import BackgroundTasks, background_tasks
from debridcache.models.candidate import SERVICE, EpisodeHint, file_token
from debridcache.services.cache.store import CacheStore
from debridcache.services.downloaders.realdebrid import RealDebridService
from debridcache.utils.parsing import extract_hash, is_valid_video


HINT_SEPARATOR = "||HINT||"
REUSABLE_STATUSES = ("downloaded", "finished", "uploading")


def split_hint(reference: str) -> Tuple[str, Optional[EpisodeHint]]:
    """Separate a pack episode hint from its magnet"""
    if HINT_SEPARATOR not in reference:
        return reference, None
    magnet, encoded = reference.split(HINT_SEPARATOR, 1)
    return magnet, EpisodeHint.decode(encoded)


def parse_file_token(token: str) -> Optional[Tuple[str, str]]:
    """realdebrid:<torrentId>:<fileId> -> (torrent_id, file_id)"""
    parts = token.split(":")
    if len(parts) != 3 or parts[0] != SERVICE or not parts[1] or not parts[2]:
        return None
    return parts[1], parts[2]


class StreamResolver:
    """Resolution chain. Every failure resolves to None."""

    def __init__(
        self,
        debrid: RealDebridService,
        store: Optional[CacheStore] = None,
        background: Optional[BackgroundTasks] = None,
        link_retry_delay: Optional[float] = None
    ):
        self.debrid = debrid
        self.store = store
        self.background = background or background_tasks
        self.link_retry_delay = settings.link_retry_delay if link_retry_delay is None else link_retry_delay

    async def resolve(self, reference: str) -> Optional[str]:
        """Direct download URL for a stream reference, or None"""
        try:
            reference = unquote(reference or "").strip()
            if not reference:
                return None

            if "magnet:" in reference:
                resolved = await self.resolve_magnet(reference)
                if not resolved:
                    return None
                if resolved.startswith("http"):
                    return resolved
                if resolved.startswith(f"{SERVICE}:"):
                    return await self.unrestrict(resolved)
                # resolve_magnet yields file tokens; a magnet here gets one fresh-add retry
                if "magnet:" in resolved:
                    return await self._resolve_alternative(resolved)
                return resolved

            return await self.unrestrict(reference)
        except Exception as e:
            logger.error(f"Real-Debrid: Error resolving stream: {e}")
            return None

    async def _reusable_torrent(self, info_hash: str) -> Optional[str]:
        try:
            torrents = await self.debrid.get_torrents(page=1, limit=100)
        except Exception as e:
            logger.debug(f"Real-Debrid: Could not list torrents: {e}")
            return None
        for torrent in torrents:
            if (torrent.get("hash") or "").lower() == info_hash and torrent.get("status") in REUSABLE_STATUSES:
                return str(torrent["id"])
        return None

    async def _files_with_links(self, torrent_id: str, retry: bool = True) -> Optional[List[Dict]]:
        """Selected files paired with their links, indexed like the files array"""
        info = await self.debrid.get_torrent_info(torrent_id)
        if not info or not info.get("files"):
            return None
        links = info.get("links")
        if not isinstance(links, list) and retry:
            await asyncio.sleep(self.link_retry_delay)
            info = await self.debrid.get_torrent_info(torrent_id)
            links = (info or {}).get("links")
        if not isinstance(links, list):
            return None

        files = []
        for index, file in enumerate(info["files"]):
            link = links[index] if index < len(links) else None
            if file.get("selected") is False or not link or link == "undefined":
                continue
            files.append({**file, "link": link})
        return files

    @staticmethod
    def pick_file(files: List[Dict], hint: Optional[EpisodeHint] = None) -> Dict:
        """Hinted file, else first plausible video, else the largest"""
        if hint is not None and hint.file_id is not None:
            for file in files:
                if str(file.get("id")) == str(hint.file_id):
                    return file
        for file in files:
            if is_valid_video(file.get("path", ""), file.get("bytes")):
                return file
        return max(files, key=lambda f: f.get("bytes") or 0)

    async def _magnet_to_token(self, magnet: str, reuse: bool) -> Optional[str]:
        magnet, hint = split_hint(magnet)
        info_hash = extract_hash(magnet)
        if not info_hash:
            return None

        torrent_id = await self._reusable_torrent(info_hash) if reuse else None
        if not torrent_id:
            torrent_id = await self.debrid.add_magnet(magnet)
            if not torrent_id:
                return None

        await self.debrid.select_files(torrent_id, "all")
        files = await self._files_with_links(torrent_id, retry=reuse)
        if not files:
            return None

        selected = self.pick_file(files, hint)
        self._remember(info_hash, selected, torrent_id)
        return file_token(torrent_id, selected.get("id"))

    async def resolve_magnet(self, magnet: str) -> Optional[str]:
        """Magnet (optionally hinted) -> realdebrid:<torrentId>:<fileId>"""
        try:
            return await self._magnet_to_token(magnet, reuse=True)
        except Exception as e:
            logger.error(f"Real-Debrid: Error resolving magnet: {e}")
            return None

    async def _resolve_alternative(self, magnet: str) -> Optional[str]:
        """Second attempt at a magnet, always through a fresh add"""
        try:
            token = await self._magnet_to_token(magnet, reuse=False)
        except Exception as e:
            logger.error(f"Real-Debrid: Alternative magnet path failed: {e}")
            return None
        if not token:
            return None
        return await self.unrestrict(token)

    async def unrestrict(self, reference: str) -> Optional[str]:
        """File token or hoster URL -> direct download URL"""
        try:
            if not reference or "undefined" in reference:
                return None

            if reference.startswith(f"{SERVICE}:"):
                parsed = parse_file_token(reference)
                if parsed is None:
                    return None
                torrent_id, file_id = parsed
                info = await self.debrid.get_torrent_info(torrent_id)
                if not info or not isinstance(info.get("links"), list):
                    return None
                files = info.get("files") or []
                index = next((i for i, f in enumerate(files) if str(f.get("id")) == file_id), None)
                if index is None or index >= len(info["links"]):
                    return None
                link = info["links"][index]
                if not link or link == "undefined":
                    return None
                reference = link

            elif "magnet:" in reference:
                token = await self.resolve_magnet(reference)
                if not token:
                    return None
                if token.startswith("http"):
                    return token
                return await self.unrestrict(token)

            response = await self.debrid.unrestrict_link(reference)
            return (response or {}).get("download") or None
        except Exception as e:
            logger.error(f"Real-Debrid: Error unrestricting link: {e}")
            return None

    def _remember(self, info_hash: str, file: Dict, torrent_id: str):
        if self.store is None or not self.store.is_enabled:
            return
        record = {
            "service": SERVICE,
            "hash": info_hash,
            "file_name": file.get("path"),
            "size_bytes": file.get("bytes"),
            "payload": {"torrentId": torrent_id, "source": "resolved"},
        }
        self.background.spawn(self.store.upsert_one(record), name=f"resolved-{info_hash[:8]}")
