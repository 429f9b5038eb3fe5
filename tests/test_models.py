import unittest

from debridcache.models.cache import make_release_key
from debridcache.models.candidate import (
    EpisodeHint,
    ExternalCandidate,
    PackCandidate,
    PersonalCandidate,
    to_payload,
)

HASH = "ab" * 20


class TestReleaseKey(unittest.TestCase):
    def test_movie(self):
        self.assertEqual(make_release_key("movie", "tt0111161"), "movie:tt0111161")

    def test_episode(self):
        self.assertEqual(make_release_key("series", "tt0903747", 1, 2), "series:tt0903747:S01E02")

    def test_series_without_episode(self):
        self.assertEqual(make_release_key("series", "tt0903747"), "series:tt0903747")


class TestCandidates(unittest.TestCase):
    def test_external_hash_lowercased(self):
        candidate = ExternalCandidate(title="Movie", info_hash=HASH.upper())
        self.assertEqual(candidate.info_hash, HASH)
        self.assertEqual(candidate.to_stream_result().url, f"magnet:?xt=urn:btih:{HASH}")

    def test_personal_with_hash_streams_by_magnet(self):
        owned = PersonalCandidate(name="Movie.mkv", size=10, url="realdebrid:T1:2", hash=HASH)
        stream = owned.to_stream_result()
        self.assertTrue(stream.is_personal)
        self.assertEqual(stream.url, f"magnet:?xt=urn:btih:{HASH}")

    def test_personal_download_keeps_url(self):
        download = PersonalCandidate(name="Movie.mkv", size=10, url="https://host/file")
        self.assertEqual(download.to_stream_result().url, "https://host/file")

    def test_pack_hint(self):
        hint = EpisodeHint(file_path="Show/Show.S01E02.mkv", file_bytes=123, torrent_id="T9", file_id=4)
        pack = PackCandidate(info_hash=HASH, hint=hint, pack_name="Show.S01.1080p")
        stream = pack.to_stream_result()

        magnet, encoded = stream.url.split("||HINT||")
        self.assertEqual(magnet, f"magnet:?xt=urn:btih:{HASH}")
        self.assertEqual(EpisodeHint.decode(encoded), hint)
        self.assertEqual(stream.searchable_name, "Show.S01.1080p")
        self.assertEqual(stream.size, 123)

    def test_bad_hint(self):
        self.assertIsNone(EpisodeHint.decode("not base64 json"))

    def test_payload(self):
        candidate = ExternalCandidate(
            title="Movie.2020.1080p.BluRay", info_hash=HASH, size=5, category="BluRay", resolution="1080p"
        )
        record = to_payload(candidate, "cached")
        self.assertEqual(record["hash"], HASH)
        self.assertEqual(record["file_name"], "Movie.2020.1080p.BluRay")
        self.assertEqual(record["payload"], {"source": "cached"})


if __name__ == '__main__':
    unittest.main()
