import unittest

from debridcache.config import Settings
from debridcache.core.quality import BLURAY, OTHER, REMUX, WEB_DL, WEBRIP
from debridcache.core.quota import (
    QuotaCounts,
    QuotaTracker,
    default_limits,
    is_high_res_satisfied,
    remaining,
)
from debridcache.models.candidate import PersonalCandidate


class TestHighResGate(unittest.TestCase):
    def test_satisfied_at_both_tiers(self):
        counts = {REMUX: {"2160p": 2, "1080p": 2}}
        self.assertTrue(is_high_res_satisfied(counts, {REMUX: 2}))

    def test_one_tier_short(self):
        counts = {REMUX: {"2160p": 2, "1080p": 1}}
        self.assertFalse(is_high_res_satisfied(counts, {REMUX: 2}))

    def test_every_high_quality_category_required(self):
        counts = {
            REMUX: {"2160p": 1, "1080p": 1},
            BLURAY: {"2160p": 1, "1080p": 1},
        }
        limits = {REMUX: 1, BLURAY: 1, WEB_DL: 1}
        self.assertFalse(is_high_res_satisfied(counts, limits))
        counts[WEB_DL] = {"2160p": 1, "1080p": 1}
        self.assertTrue(is_high_res_satisfied(counts, limits))

    def test_low_quality_categories_ignored(self):
        counts = {REMUX: {"2160p": 1, "1080p": 1}}
        self.assertTrue(is_high_res_satisfied(counts, {REMUX: 1, WEBRIP: 5, OTHER: 10}))

    def test_zero_limit_not_required(self):
        self.assertTrue(is_high_res_satisfied({}, {REMUX: 0, BLURAY: 0, WEB_DL: 0}))


class TestQuotaCounts(unittest.TestCase):
    def test_add_defaults_missing_labels(self):
        counts = QuotaCounts()
        counts.add(None, None)
        counts.add(REMUX, "2160p", 3)
        self.assertEqual(counts.count(OTHER, "unknown"), 1)
        self.assertEqual(counts.by_category[REMUX], 3)
        self.assertEqual(counts.total, 4)

    def test_merged_leaves_operands_untouched(self):
        personal = QuotaCounts()
        personal.add(REMUX, "2160p")
        store = QuotaCounts()
        store.add(REMUX, "2160p", 2)
        store.add(BLURAY, "1080p")

        combined = personal.merged(store)
        self.assertEqual(combined.count(REMUX, "2160p"), 3)
        self.assertEqual(combined.count(BLURAY, "1080p"), 1)
        self.assertEqual(combined.total, 4)
        self.assertEqual(personal.total, 1)

    def test_from_candidates(self):
        files = [
            PersonalCandidate(name="a.mkv", size=1, url="u1", category=REMUX, resolution="2160p"),
            PersonalCandidate(name="b.mkv", size=1, url="u2", category=REMUX, resolution="1080p"),
        ]
        counts = QuotaCounts.from_candidates(files)
        self.assertEqual(counts.by_category_resolution, {REMUX: {"2160p": 1, "1080p": 1}})


class TestRemaining(unittest.TestCase):
    def test_never_negative(self):
        counts = QuotaCounts()
        counts.add(WEBRIP, "720p", 4)
        self.assertEqual(remaining({WEBRIP: 1}, counts, WEBRIP, "720p"), 0)

    def test_unlimited_category(self):
        self.assertIsNone(remaining({}, QuotaCounts(), REMUX, "2160p"))

    def test_tracker_consumes(self):
        tracker = QuotaTracker({BLURAY: 2}, QuotaCounts())
        tracker.consume(BLURAY, "1080p")
        self.assertTrue(tracker.has_room(BLURAY, "1080p"))
        tracker.consume(BLURAY, "1080p")
        self.assertFalse(tracker.has_room(BLURAY, "1080p"))
        self.assertTrue(tracker.has_room(BLURAY, "2160p"))

    def test_default_limits(self):
        config = Settings(MAX_RESULTS_PER_QUALITY=3, MAX_RESULTS_REMUX=1)
        limits = default_limits(config)
        self.assertEqual(limits[REMUX], 1)
        self.assertEqual(limits[BLURAY], 3)
        self.assertEqual(limits[WEBRIP], 1)
        self.assertEqual(limits[OTHER], 10)


if __name__ == '__main__':
    unittest.main()
