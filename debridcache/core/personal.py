"""
Personal Files
Files the caller already owns on Real-Debrid (torrents and downloads)
"""
import asyncio
import re
from dataclasses import replace
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Set

from loguru import logger

from debridcache.config import settings
from debridcache.core.quality import QualityClassifier, quality_classifier
from debridcache.models.candidate import PersonalCandidate, StreamResult, file_token
from debridcache.services.downloaders.realdebrid import RealDebridService
from debridcache.utils.parsing import basename, episode_marker, extract_hash, is_valid_video, parse_title


SKIP_WORDS = {'the', 'a', 'an', 'and', 'of', 'in', 'on', 'at', 'to', 'for', 'is', 'it'}


def _normalize_title(title: str) -> str:
    return re.sub(r'[^a-z0-9]+', ' ', (title or "").lower().replace("'", "")).strip()


def _keywords(search_key: str) -> List[str]:
    return [w for w in _normalize_title(search_key).split() if len(w) > 2 and w not in SKIP_WORDS]


class PersonalFileFinder:
    """Collects the caller's own video files matching a release"""

    def __init__(self, debrid: RealDebridService, classifier: Optional[QualityClassifier] = None):
        self.debrid = debrid
        self.classifier = classifier or quality_classifier

    async def get_all_torrents(self) -> List[Dict]:
        torrents: List[Dict] = []
        try:
            for page in range(1, settings.personal_torrent_pages + 1):
                batch = await self.debrid.get_torrents(page=page, limit=100)
                if not batch:
                    break
                torrents.extend(batch)
                if len(batch) < 50:
                    break
        except Exception as e:
            logger.error(f"Real-Debrid: Error fetching torrents: {e}")
        return torrents

    async def get_all_downloads(self) -> List[Dict]:
        try:
            downloads = await self.debrid.get_downloads(page=1, limit=100)
        except Exception as e:
            logger.error(f"Real-Debrid: Error fetching downloads: {e}")
            return []
        # Files hosted by Real-Debrid itself are torrent outputs, already covered
        return [d for d in downloads if d.get("host") != "real-debrid.com"]

    async def personal_hashes(self) -> Set[str]:
        """Hashes of every torrent the caller owns"""
        torrents = await self.get_all_torrents()
        hashes = {t["hash"].lower() for t in torrents if t.get("hash")}
        logger.debug(f"Real-Debrid: Personal hash cache has {len(hashes)} torrents")
        return hashes

    async def validate_results(self, results: List[StreamResult]) -> List[StreamResult]:
        """Demote personal results whose torrent hash is no longer owned to cached ones"""
        if not any(r.is_personal for r in results):
            return results
        try:
            owned = await self.personal_hashes()
        except Exception as e:
            logger.error(f"Real-Debrid: Error validating personal streams: {e}")
            return results

        validated = []
        demoted = 0
        for result in results:
            info_hash = (result.hash or extract_hash(result.url) or "").lower()
            if result.is_personal and info_hash and info_hash not in owned:
                result = replace(result, is_personal=False, tracker="Cached")
                demoted += 1
            validated.append(result)

        if demoted:
            logger.info(f"Real-Debrid: {demoted} streams updated from Personal to Cached")
        return validated

    @staticmethod
    def filter_by_keywords(items: List[Dict], search_key: str) -> List[Dict]:
        keywords = _keywords(search_key)
        if not keywords:
            return []
        return [
            item for item in items
            if any(k in _normalize_title(item.get("filename", "")) for k in keywords)
        ]

    def matches_title(self, name: str, title: str) -> bool:
        """All title keywords present, or a close fuzzy match of the parsed title"""
        normalized = _normalize_title(basename(name))
        keywords = _keywords(title)
        if keywords and all(re.search(rf'\b{re.escape(k)}\b', normalized) for k in keywords):
            return True
        parsed = _normalize_title(parse_title(name).get("title", ""))
        target = _normalize_title(title)
        if not parsed or not target:
            return False
        return SequenceMatcher(None, target, parsed).ratio() >= settings.personal_match_ratio

    async def _torrent_files(self, torrent: Dict) -> List[PersonalCandidate]:
        info = await self.debrid.get_torrent_info(torrent["id"])
        if not info or not info.get("files") or not info.get("links"):
            return []

        files = []
        for file in info["files"]:
            path = file.get("path", "")
            if not file.get("selected") or not is_valid_video(path, file.get("bytes")):
                continue
            files.append(PersonalCandidate(
                name=path,
                size=file.get("bytes") or 0,
                url=file_token(torrent["id"], file.get("id")),
                hash=(torrent.get("hash") or "").lower() or None,
                category=self.classifier.category(path),
                resolution=self.classifier.resolution(path),
                torrent_id=str(torrent["id"]),
                file_id=file.get("id"),
            ))
        return files

    def _download_file(self, download: Dict) -> PersonalCandidate:
        name = download.get("filename") or ""
        return PersonalCandidate(
            name=name,
            size=download.get("filesize") or 0,
            url=download.get("download") or "",
            category=self.classifier.category(name),
            resolution=self.classifier.resolution(name),
        )

    async def find(
        self,
        title: str,
        season: Optional[int] = None,
        episode: Optional[int] = None
    ) -> List[PersonalCandidate]:
        """Owned files for a title, narrowed to one episode for series"""
        try:
            torrents, downloads = await asyncio.gather(
                self.get_all_torrents(),
                self.get_all_downloads(),
            )
            relevant_torrents = self.filter_by_keywords(torrents, title)
            relevant_downloads = self.filter_by_keywords(downloads, title)

            candidates: List[PersonalCandidate] = []
            for torrent in relevant_torrents[:settings.personal_torrents_to_inspect]:
                try:
                    candidates.extend(await self._torrent_files(torrent))
                except Exception as e:
                    logger.error(f"Real-Debrid: Error processing torrent {torrent.get('id')}: {e}")
            candidates.extend(self._download_file(d) for d in relevant_downloads)

            unique = list({c.url: c for c in candidates if c.url}.values())
            matched = [c for c in unique if self.matches_title(c.name, title)]
        except Exception as e:
            logger.error(f"Real-Debrid: Personal files error: {e}")
            return []

        if season is not None and episode is not None:
            before = len(matched)
            matched = [c for c in matched if episode_marker(c.name) == (season, episode)]
            if len(matched) < before:
                logger.debug(f"Filtered personal files for S{season}E{episode}: {before} -> {len(matched)}")

        logger.info(f"Real-Debrid: {len(matched)} personal files for '{title}'")
        return matched
