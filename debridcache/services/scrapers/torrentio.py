"""
Torrentio Scraper Service
Fetches torrent streams from Torrentio (Stremio addon)
"""
import re
from typing import Dict, List, Optional

import httpx
from loguru import logger

from debridcache.config import settings
from debridcache.core.session import CancellationToken
from debridcache.models.candidate import ExternalCandidate
from debridcache.services.scrapers.base import SearchContext


class TorrentioScraper:
    """Producer backed by the Torrentio Stremio addon"""

    name = "torrentio"

    # Quality filters - drop low resolutions and cams
    DEFAULT_FILTER = "sort=qualitysize|qualityfilter=480p,scr,cam"

    SIZE_PATTERN = re.compile(r'(\d+\.?\d*)\s*(GB|MB|TB)', re.IGNORECASE)
    SEEDERS_PATTERN = re.compile(r'👤\s*(\d+)')
    INDEXER_PATTERN = re.compile(r'⚙️\s*([^\n]+)')

    def __init__(self, custom_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.url = (custom_url or settings.torrentio_url).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=30.0)

    @property
    def is_configured(self) -> bool:
        return settings.torrentio_enabled

    def stream_url(self, context: SearchContext) -> str:
        if context.media_type == "series" and context.season is not None and context.episode is not None:
            path = f"series/{context.content_id}:{context.season}:{context.episode}"
        else:
            path = f"movie/{context.content_id}"
        return f"{self.url}/{self.DEFAULT_FILTER}/stream/{path}.json"

    async def search(
        self,
        query: str,
        token: CancellationToken,
        context: SearchContext
    ) -> List[ExternalCandidate]:
        if not context.content_id or token.cancelled:
            return []

        url = self.stream_url(context)
        try:
            response = await self.client.get(url)

            if response.status_code == 404:
                logger.debug(f"No streams found at {url}")
                return []

            response.raise_for_status()
            streams = response.json().get("streams", [])
        except httpx.HTTPStatusError as e:
            logger.error(f"Torrentio HTTP error: {e.response.status_code}")
            return []
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Torrentio scrape failed: {e}")
            return []

        results = [r for r in (self._parse_stream(s, context) for s in streams) if r]
        logger.info(f"Torrentio found {len(results)} streams for '{query}'")
        return results

    def _parse_stream(self, stream: Dict, context: SearchContext) -> Optional[ExternalCandidate]:
        """Parse a single stream object"""
        info_hash = stream.get("infoHash")
        if not info_hash:
            return None

        # Raw title is the first line, metadata lines follow
        full_title = stream.get("title", "")
        title = full_title.split("\n")[0].strip()

        seeders = 0
        seeders_match = self.SEEDERS_PATTERN.search(full_title)
        if seeders_match:
            seeders = int(seeders_match.group(1))

        indexer_match = self.INDEXER_PATTERN.search(full_title)
        tracker = indexer_match.group(1).strip() if indexer_match else self.name

        return ExternalCandidate(
            title=title,
            info_hash=info_hash,
            size=self._parse_size(full_title) or 0,
            seeders=seeders,
            tracker=tracker,
            languages=list(context.languages),
        )

    def _parse_size(self, text: str) -> Optional[int]:
        """Parse size string to bytes"""
        match = self.SIZE_PATTERN.search(text)
        if not match:
            return None

        value = float(match.group(1))
        unit = match.group(2).upper()

        multipliers = {
            "TB": 1024 ** 4,
            "GB": 1024 ** 3,
            "MB": 1024 ** 2,
        }

        return int(value * multipliers.get(unit, 1))

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()


# Singleton instance
torrentio_scraper = TorrentioScraper()
