"""
Quota Model
Per-category/resolution result limits against personal and cached counts
"""
import copy
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

from debridcache.config import Settings, settings as default_settings
from debridcache.core.quality import (
    AUDIO_FOCUSED,
    BLURAY,
    HIGH_QUALITY_CATEGORIES,
    HIGH_RESOLUTIONS,
    OTHER,
    REMUX,
    UNKNOWN_RESOLUTION,
    WEB_DL,
    WEBRIP,
)


@dataclass
class QuotaCounts:
    """Result counts for one release, by category and by category x resolution"""
    by_category: Dict[str, int] = field(default_factory=dict)
    by_category_resolution: Dict[str, Dict[str, int]] = field(default_factory=dict)
    total: int = 0

    def add(self, category: Optional[str], resolution: Optional[str], count: int = 1):
        category = category or OTHER
        resolution = resolution or UNKNOWN_RESOLUTION
        self.by_category[category] = self.by_category.get(category, 0) + count
        per_res = self.by_category_resolution.setdefault(category, {})
        per_res[resolution] = per_res.get(resolution, 0) + count
        self.total += count

    def count(self, category: str, resolution: str) -> int:
        return self.by_category_resolution.get(category, {}).get(resolution, 0)

    def merged(self, other: "QuotaCounts") -> "QuotaCounts":
        """New counts combining both sides"""
        combined = copy.deepcopy(self)
        for category, per_res in other.by_category_resolution.items():
            for resolution, count in per_res.items():
                combined.by_category_resolution.setdefault(category, {})
                combined.by_category_resolution[category][resolution] = (
                    combined.by_category_resolution[category].get(resolution, 0) + count
                )
        for category, count in other.by_category.items():
            combined.by_category[category] = combined.by_category.get(category, 0) + count
        combined.total += other.total
        return combined

    @classmethod
    def from_candidates(cls, candidates: Iterable) -> "QuotaCounts":
        counts = cls()
        for candidate in candidates:
            counts.add(candidate.category, candidate.resolution)
        return counts


def default_limits(config: Optional[Settings] = None) -> Dict[str, int]:
    """Per-category limits from settings"""
    config = config or default_settings
    per_quality = config.max_results_per_quality
    return {
        REMUX: config.max_results_remux or per_quality,
        BLURAY: config.max_results_bluray or per_quality,
        WEB_DL: config.max_results_webdl or per_quality,
        WEBRIP: config.max_results_webrip,
        AUDIO_FOCUSED: config.max_results_audio,
        OTHER: config.max_results_other,
    }


def is_high_res_satisfied(
    by_category_resolution: Mapping[str, Mapping[str, int]],
    limits: Mapping[str, int]
) -> bool:
    """
    True when every high-quality category meets its limit at each of
    2160p and 1080p individually. Categories without a positive limit
    are not required.
    """
    for category in HIGH_QUALITY_CATEGORIES:
        limit = limits.get(category)
        if not isinstance(limit, int) or limit <= 0:
            continue
        per_res = by_category_resolution.get(category, {})
        for resolution in HIGH_RESOLUTIONS:
            if per_res.get(resolution, 0) < limit:
                return False
    return True


def remaining(
    limits: Mapping[str, int],
    counts: QuotaCounts,
    category: str,
    resolution: str
) -> Optional[int]:
    """Slots left for a bucket, never negative. None means unlimited."""
    limit = limits.get(category or OTHER)
    if limit is None:
        return None
    return max(0, limit - counts.count(category or OTHER, resolution or UNKNOWN_RESOLUTION))


class QuotaTracker:
    """Mutable quota ceiling for one search"""

    def __init__(self, limits: Mapping[str, int], counts: QuotaCounts):
        self.limits = dict(limits)
        self.counts = copy.deepcopy(counts)

    def has_room(self, category: str, resolution: str) -> bool:
        left = remaining(self.limits, self.counts, category, resolution)
        return left is None or left > 0

    def consume(self, category: str, resolution: str):
        self.counts.add(category, resolution)
