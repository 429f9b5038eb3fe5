import unittest

import httpx

from debridcache.exceptions import RateLimitedError
from debridcache.services.api.gate import CallGate
from debridcache.services.downloaders.realdebrid import RealDebridService

HASH = "ab" * 20


def make_service(handler, api_key="token"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RealDebridService(
        api_key=api_key,
        gate=CallGate(min_interval=0),
        client=client,
        base_url="https://rd.test/rest/1.0",
    )


class TestRealDebridService(unittest.IsolatedAsyncioTestCase):
    async def test_add_magnet(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = request.content.decode()
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(201, json={"id": "T1", "uri": "..."})

        service = make_service(handler)
        self.assertEqual(await service.add_magnet(HASH), "T1")
        self.assertEqual(seen["path"], "/rest/1.0/torrents/addMagnet")
        self.assertIn("urn%3Abtih%3A" + HASH, seen["body"])
        self.assertEqual(seen["auth"], "Bearer token")
        await service.close()

    async def test_empty_body_is_success(self):
        service = make_service(lambda request: httpx.Response(204))
        self.assertTrue(await service.select_files("T1"))
        self.assertTrue(await service.delete_torrent("T1"))
        await service.close()

    async def test_rate_limit_raises(self):
        service = make_service(lambda request: httpx.Response(429, headers={"Retry-After": "2"}))
        with self.assertRaises(RateLimitedError) as ctx:
            await service.delete_torrent("T1")
        self.assertEqual(ctx.exception.retry_after, 2.0)
        await service.close()

    async def test_http_errors_are_none(self):
        service = make_service(lambda request: httpx.Response(503, text="unavailable"))
        self.assertIsNone(await service.get_torrent_info("T1"))
        self.assertEqual(await service.get_torrents(), [])
        self.assertIsNone(await service.add_magnet(HASH))
        await service.close()

    async def test_transport_errors_are_none(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = make_service(handler)
        self.assertIsNone(await service.unrestrict_link("https://hoster/file"))
        self.assertFalse(await service.select_files("T1"))
        await service.close()

    async def test_paged_listing(self):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, json=[{"id": "T1", "hash": HASH}])

        service = make_service(handler)
        torrents = await service.get_torrents(page=2, limit=50)
        self.assertEqual(torrents[0]["id"], "T1")
        self.assertEqual(seen, {"page": "2", "limit": "50"})
        await service.close()

    async def test_unconfigured(self):
        service = make_service(lambda request: httpx.Response(200, json={}), api_key="")
        self.assertFalse(service.is_configured)
        self.assertIsNone(await service.get_torrent_info("T1"))
        await service.close()


if __name__ == '__main__':
    unittest.main()
