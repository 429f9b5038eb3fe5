import unittest
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import quote

from debridcache.core.background import BackgroundTasks
from debridcache.core.resolver import StreamResolver, parse_file_token
from debridcache.models.candidate import EpisodeHint, PackCandidate

HASH = "0123456789abcdef0123456789abcdef01234567"
MAGNET = f"magnet:?xt=urn:btih:{HASH}"
GIB = 1024 ** 3

INFO = {
    "status": "downloaded",
    "files": [
        {"id": 1, "path": "/Movie/Movie.nfo", "bytes": 1000, "selected": 1},
        {"id": 2, "path": "/Movie/Movie.2020.1080p.mkv", "bytes": 2 * GIB, "selected": 1},
        {"id": 3, "path": "/Movie/Movie.2020.Extras.mkv", "bytes": 3 * GIB, "selected": 1},
    ],
    "links": ["https://rd/l1", "https://rd/l2", "https://rd/l3"],
}


def make_debrid(info=INFO, owned=None):
    debrid = MagicMock()
    debrid.get_torrents = AsyncMock(return_value=owned or [])
    debrid.add_magnet = AsyncMock(return_value="T1")
    debrid.select_files = AsyncMock(return_value=True)
    debrid.get_torrent_info = AsyncMock(return_value=info)
    debrid.unrestrict_link = AsyncMock(side_effect=lambda link: {"download": f"https://download/{link[-2:]}"})
    return debrid


class TestResolveMagnet(unittest.IsolatedAsyncioTestCase):
    def resolver(self, debrid, store=None):
        self.background = BackgroundTasks()
        return StreamResolver(debrid, store=store, background=self.background, link_retry_delay=0)

    async def test_magnet_to_direct_link(self):
        debrid = make_debrid()
        url = await self.resolver(debrid).resolve(quote(MAGNET, safe=""))

        self.assertEqual(url, "https://download/l2")
        debrid.add_magnet.assert_awaited_once()
        debrid.unrestrict_link.assert_awaited_once_with("https://rd/l2")

    async def test_token_for_first_plausible_video(self):
        debrid = make_debrid()
        self.assertEqual(await self.resolver(debrid).resolve_magnet(MAGNET), "realdebrid:T1:2")

    async def test_largest_file_without_video(self):
        info = {
            "files": [
                {"id": 1, "path": "/a.nfo", "bytes": 10, "selected": 1},
                {"id": 2, "path": "/b.txt", "bytes": 20, "selected": 1},
            ],
            "links": ["https://rd/l1", "https://rd/l2"],
        }
        debrid = make_debrid(info)
        self.assertEqual(await self.resolver(debrid).resolve_magnet(MAGNET), "realdebrid:T1:2")

    async def test_reuses_owned_finished_torrent(self):
        debrid = make_debrid(owned=[{"id": "OWN", "hash": HASH.upper(), "status": "downloaded"}])
        self.assertEqual(await self.resolver(debrid).resolve_magnet(MAGNET), "realdebrid:OWN:2")
        debrid.add_magnet.assert_not_awaited()

    async def test_owned_torrent_in_progress_is_not_reused(self):
        debrid = make_debrid(owned=[{"id": "OWN", "hash": HASH, "status": "queued"}])
        self.assertEqual(await self.resolver(debrid).resolve_magnet(MAGNET), "realdebrid:T1:2")

    async def test_link_read_retried_once(self):
        debrid = make_debrid()
        debrid.get_torrent_info.side_effect = [{"files": INFO["files"]}, INFO]
        self.assertEqual(await self.resolver(debrid).resolve_magnet(MAGNET), "realdebrid:T1:2")
        self.assertEqual(debrid.get_torrent_info.await_count, 2)

    async def test_links_never_populated(self):
        debrid = make_debrid({"files": INFO["files"]})
        self.assertIsNone(await self.resolver(debrid).resolve(MAGNET))
        self.assertEqual(debrid.get_torrent_info.await_count, 2)

    async def test_pack_hint_selects_episode(self):
        hint = EpisodeHint(file_path="/Movie/Movie.nfo", file_bytes=1000, torrent_id="T1", file_id=3)
        url = PackCandidate(info_hash=HASH, hint=hint).to_stream_result().url
        debrid = make_debrid()
        self.assertEqual(await self.resolver(debrid).resolve_magnet(url), "realdebrid:T1:3")

    async def test_resolved_file_is_recorded(self):
        store = MagicMock()
        store.is_enabled = True
        store.upsert_one = AsyncMock(return_value=True)
        resolver = self.resolver(make_debrid(), store=store)

        await resolver.resolve_magnet(MAGNET)
        await self.background.drain()

        record = store.upsert_one.await_args.args[0]
        self.assertEqual(record["hash"], HASH)
        self.assertEqual(record["payload"]["torrentId"], "T1")

    async def test_add_failure_is_unresolved(self):
        debrid = make_debrid()
        debrid.add_magnet.return_value = None
        self.assertIsNone(await self.resolver(debrid).resolve(MAGNET))

    async def test_provider_error_is_unresolved(self):
        debrid = make_debrid()
        debrid.select_files.side_effect = RuntimeError("boom")
        self.assertIsNone(await self.resolver(debrid).resolve(MAGNET))

    async def test_magnet_without_hash(self):
        self.assertIsNone(await self.resolver(make_debrid()).resolve("magnet:?dn=nothing"))

    async def test_magnet_result_takes_alternative_path(self):
        debrid = make_debrid(owned=[{"id": "OWN", "hash": HASH, "status": "downloaded"}])
        resolver = self.resolver(debrid)
        with patch.object(resolver, "resolve_magnet", AsyncMock(return_value=MAGNET)):
            url = await resolver.resolve(MAGNET)

        self.assertEqual(url, "https://download/l2")
        debrid.add_magnet.assert_awaited_once()
        debrid.get_torrents.assert_not_awaited()

    async def test_alternative_path_failure_is_unresolved(self):
        debrid = make_debrid()
        debrid.add_magnet.return_value = None
        self.assertIsNone(await self.resolver(debrid)._resolve_alternative(MAGNET))


class TestUnrestrict(unittest.IsolatedAsyncioTestCase):
    async def test_host_url(self):
        debrid = make_debrid()
        resolver = StreamResolver(debrid, background=BackgroundTasks())
        self.assertEqual(await resolver.resolve("https://hoster/file/xy"), "https://download/xy")

    async def test_file_token(self):
        debrid = make_debrid()
        resolver = StreamResolver(debrid, background=BackgroundTasks())
        self.assertEqual(await resolver.resolve("realdebrid:T1:3"), "https://download/l3")
        debrid.unrestrict_link.assert_awaited_once_with("https://rd/l3")

    async def test_unknown_file_id(self):
        resolver = StreamResolver(make_debrid(), background=BackgroundTasks())
        self.assertIsNone(await resolver.resolve("realdebrid:T1:99"))

    async def test_undefined_reference(self):
        debrid = make_debrid()
        resolver = StreamResolver(debrid, background=BackgroundTasks())
        self.assertIsNone(await resolver.resolve("realdebrid:undefined:2"))
        debrid.get_torrent_info.assert_not_awaited()

    async def test_unrestrict_failure(self):
        debrid = make_debrid()
        debrid.unrestrict_link.side_effect = None
        debrid.unrestrict_link.return_value = None
        resolver = StreamResolver(debrid, background=BackgroundTasks())
        self.assertIsNone(await resolver.resolve("https://hoster/file"))

    def test_parse_file_token(self):
        self.assertEqual(parse_file_token("realdebrid:T1:2"), ("T1", "2"))
        self.assertIsNone(parse_file_token("realdebrid:T1"))
        self.assertIsNone(parse_file_token("torbox:T1:2"))


if __name__ == '__main__':
    unittest.main()
