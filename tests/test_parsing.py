import unittest

from debridcache.utils.parsing import (
    episode_marker,
    extract_hash,
    is_junk,
    is_season_pack,
    is_series_like_title,
    is_valid_torrent_title,
    is_valid_video,
    matches_year,
)

MB = 1024 * 1024


class TestEpisodeMarker(unittest.TestCase):
    def test_standard_marker(self):
        self.assertEqual(episode_marker("Show.Name.S01E02.1080p.WEB-DL.mkv"), (1, 2))

    def test_marker_in_path(self):
        self.assertEqual(episode_marker("Show.S01.1080p/Show.S01E10.1080p.mkv"), (1, 10))

    def test_cross_marker(self):
        self.assertEqual(episode_marker("Show Name 1x03 720p"), (1, 3))

    def test_season_only(self):
        self.assertEqual(episode_marker("Show.Name.S02.COMPLETE.1080p"), (2, None))

    def test_season_pack(self):
        self.assertTrue(is_season_pack("Show.Name.S01.1080p.BluRay", 1))
        self.assertFalse(is_season_pack("Show.Name.S01.1080p.BluRay", 2))
        self.assertFalse(is_season_pack("Show.Name.S01E02.1080p", 1))


class TestFilePredicates(unittest.TestCase):
    def test_valid_video(self):
        self.assertTrue(is_valid_video("Movie/Movie.2020.mkv", 60 * MB, 50 * MB))
        self.assertFalse(is_valid_video("Movie/Movie.2020.mkv", 10 * MB, 50 * MB))
        self.assertFalse(is_valid_video("Movie/Movie.2020.nfo", 60 * MB, 50 * MB))
        self.assertFalse(is_valid_video("Movie/Sample/movie-sample.mkv", 60 * MB, 50 * MB))

    def test_junk(self):
        for path in ("a.iso", "b.EXE", "c.zip", "d.rar", "e.7z", "f.scr"):
            self.assertTrue(is_junk(path), path)
        self.assertFalse(is_junk("movie.mkv"))

    def test_torrent_titles(self):
        self.assertTrue(is_valid_torrent_title("Movie.2020.1080p.BluRay"))
        self.assertFalse(is_valid_torrent_title("   "))
        self.assertFalse(is_valid_torrent_title("Movie.2020.Trailer.1080p"))

    def test_series_like(self):
        self.assertTrue(is_series_like_title("Show.S01E01.720p"))
        self.assertTrue(is_series_like_title("Show Season 2 Complete"))
        self.assertFalse(is_series_like_title("Movie.2020.1080p"))

    def test_year(self):
        self.assertTrue(matches_year("Movie.2019.1080p", 2020))
        self.assertFalse(matches_year("Movie.2015.1080p", 2020))
        self.assertTrue(matches_year("Movie.1080p", 2020))

    def test_extract_hash(self):
        magnet = "magnet:?xt=urn:btih:ABCDEF0123456789ABCDEF0123456789ABCDEF01&dn=Movie"
        self.assertEqual(extract_hash(magnet), "abcdef0123456789abcdef0123456789abcdef01")
        self.assertIsNone(extract_hash("https://example.com/file"))


if __name__ == '__main__':
    unittest.main()
