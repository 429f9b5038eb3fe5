"""
Real-Debrid Downloader Service
Torrent management and link unrestriction on Real-Debrid
"""
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from debridcache.config import settings
from debridcache.exceptions import RateLimitedError
from debridcache.models.candidate import magnet_for
from debridcache.services.api.gate import CallGate, call_gate


class RealDebridService:
    """Service for interacting with Real-Debrid API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        gate: Optional[CallGate] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None
    ):
        self.api_key = settings.real_debrid_token if api_key is None else api_key
        self.gate = gate or call_gate
        self.base_url = (base_url or settings.real_debrid_url).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=settings.request_timeout)

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None
    ) -> Optional[Any]:
        """
        Make request to Real-Debrid API through the call gate.
        Returns None on failure; raises RateLimitedError on HTTP 429.
        """
        if not self.is_configured:
            logger.warning("Real-Debrid API key not configured")
            return None

        url = f"{self.base_url}{endpoint}"

        async def call():
            return await self.client.request(
                method,
                url,
                headers=self.headers,
                data=data,
                params=params
            )

        try:
            response = await self.gate.schedule(call)
        except httpx.HTTPError as e:
            logger.error(f"Real-Debrid request failed: {endpoint} - {e}")
            return None

        if response.status_code == 429:
            retry_after = float(response.headers.get("Retry-After", 0) or 0)
            logger.warning(f"Real-Debrid: Rate limited on {endpoint}")
            raise RateLimitedError(endpoint, retry_after)

        if response.status_code == 401:
            logger.error("Real-Debrid: Invalid API key")
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Real-Debrid API error: {e.response.status_code} - {e.response.text}")
            return None

        if response.text:
            try:
                return response.json()
            except ValueError:
                logger.error(f"Real-Debrid: Invalid JSON from {endpoint}")
                return None
        return {}

    async def add_magnet(self, info_hash_or_magnet: str) -> Optional[str]:
        """
        Add magnet link to Real-Debrid.
        Returns the torrent ID if successful.
        """
        magnet = info_hash_or_magnet
        if not magnet.startswith("magnet:"):
            magnet = magnet_for(info_hash_or_magnet)

        result = await self._request("POST", "/torrents/addMagnet", data={"magnet": magnet})

        if result and result.get("id"):
            logger.debug(f"Real-Debrid: Added magnet -> ID: {result['id']}")
            return str(result["id"])

        return None

    async def select_files(self, torrent_id: str, file_ids: str = "all") -> bool:
        """
        Select files to download.
        file_ids: comma-separated list or "all"
        """
        result = await self._request(
            "POST",
            f"/torrents/selectFiles/{torrent_id}",
            data={"files": file_ids}
        )
        return result is not None

    async def get_torrent_info(self, torrent_id: str) -> Optional[Dict]:
        """Get torrent info including files and links"""
        return await self._request("GET", f"/torrents/info/{torrent_id}")

    async def get_torrents(self, page: int = 1, limit: int = 100) -> List[Dict]:
        """Get one page of the user's torrents"""
        result = await self._request("GET", "/torrents", params={"page": page, "limit": limit})
        return result if isinstance(result, list) else []

    async def get_downloads(self, page: int = 1, limit: int = 100) -> List[Dict]:
        """Get one page of the user's unrestricted downloads"""
        result = await self._request("GET", "/downloads", params={"page": page, "limit": limit})
        return result if isinstance(result, list) else []

    async def delete_torrent(self, torrent_id: str) -> bool:
        """Delete a torrent"""
        result = await self._request("DELETE", f"/torrents/delete/{torrent_id}")
        return result is not None

    async def unrestrict_link(self, link: str) -> Optional[Dict]:
        """
        Unrestrict a hoster link to get the direct download URL.
        """
        return await self._request("POST", "/unrestrict/link", data={"link": link})

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()


# Singleton instance
real_debrid_service = RealDebridService()
