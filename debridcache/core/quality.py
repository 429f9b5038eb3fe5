"""
Quality Classification
Buckets titles into quality categories and resolutions, and orders results
"""
import re
from typing import Iterable, List, Optional, Tuple

from debridcache.config import settings
from debridcache.models.candidate import StreamResult


REMUX = "Remux"
BLURAY = "BluRay"
WEB_DL = "WEB/WEB-DL"
WEBRIP = "BRRip/WEBRip"
AUDIO_FOCUSED = "Audio-Focused"
OTHER = "Other"

CATEGORIES = (REMUX, BLURAY, WEB_DL, WEBRIP, AUDIO_FOCUSED, OTHER)
HIGH_QUALITY_CATEGORIES = (REMUX, BLURAY, WEB_DL)
HIGH_RESOLUTIONS = ("2160p", "1080p")

UNKNOWN_RESOLUTION = "unknown"


class QualityClassifier:
    """Derives category and resolution from release or file names"""

    # Checked in order, first match wins
    CATEGORY_PATTERNS: List[Tuple[str, re.Pattern]] = [
        (REMUX, re.compile(r'\bremux\b', re.IGNORECASE)),
        (WEBRIP, re.compile(r'\b(web-?rip|brrip|dlrip|bluray\s*rip)\b', re.IGNORECASE)),
        (BLURAY, re.compile(r'\b(blu-?ray|bdrip)\b', re.IGNORECASE)),
        (WEB_DL, re.compile(r'\b(web-?\.?dl|web\b)', re.IGNORECASE)),
    ]
    AUDIO_PATTERN = re.compile(r'(\s|\.)(aac|opus)\b', re.IGNORECASE)

    RESOLUTION_PATTERNS: List[Tuple[str, re.Pattern]] = [
        ("2160p", re.compile(r'(2160p|\b4k\b|\buhd\b)', re.IGNORECASE)),
        ("1080p", re.compile(r'1080[pi]', re.IGNORECASE)),
        ("720p", re.compile(r'720p', re.IGNORECASE)),
        ("480p", re.compile(r'(480p|576p|\bsd\b)', re.IGNORECASE)),
    ]

    # Higher ranks sort first
    RESOLUTION_RANK = {
        "2160p": 4,
        "1080p": 3,
        "720p": 2,
        "480p": 1,
        UNKNOWN_RESOLUTION: 0,
    }

    def __init__(self, penalize_aac_opus: Optional[bool] = None):
        if penalize_aac_opus is None:
            penalize_aac_opus = settings.penalize_aac_opus
        self.penalize_aac_opus = penalize_aac_opus

    def category(self, name: str) -> str:
        name = name or ""
        if self.penalize_aac_opus and self.AUDIO_PATTERN.search(name):
            return AUDIO_FOCUSED
        for category, pattern in self.CATEGORY_PATTERNS:
            if pattern.search(name):
                return category
        return OTHER

    def resolution(self, name: str) -> str:
        for resolution, pattern in self.RESOLUTION_PATTERNS:
            if pattern.search(name or ""):
                return resolution
        return UNKNOWN_RESOLUTION

    def rank(self, resolution: Optional[str]) -> int:
        return self.RESOLUTION_RANK.get(resolution or UNKNOWN_RESOLUTION, 0)

    def _result_resolution(self, result: StreamResult) -> str:
        if result.resolution and result.resolution != UNKNOWN_RESOLUTION:
            return result.resolution
        return self.resolution(result.name)

    def sort_results(self, results: Iterable[StreamResult]) -> List[StreamResult]:
        """Resolution rank descending, then size descending"""
        return sorted(
            results,
            key=lambda r: (self.rank(self._result_resolution(r)), r.size or 0),
            reverse=True,
        )


# Singleton instance
quality_classifier = QualityClassifier()
