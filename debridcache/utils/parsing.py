"""
Title Parsing Utilities
Thin helpers over PTN (Parse Torrent Name) plus file-type predicates
"""
import re
from pathlib import PurePosixPath
from typing import Any, Dict, Optional, Tuple

import PTN

from debridcache.config import settings


VIDEO_EXTENSIONS = {
    ".mkv", ".mp4", ".avi", ".m4v", ".mov", ".wmv", ".ts", ".m2ts", ".webm", ".mpg", ".mpeg",
}
JUNK_EXTENSIONS = (".iso", ".exe", ".zip", ".rar", ".7z", ".scr")

EPISODE_PATTERN = re.compile(r'\bs(\d{1,2})[\s._-]*e(\d{1,3})(?!\d)', re.IGNORECASE)
CROSS_PATTERN = re.compile(r'\b(\d{1,2})x(\d{2,3})\b', re.IGNORECASE)
SEASON_PATTERN = re.compile(r'\b(?:s(\d{1,2})(?![\d]|e\d)|season[\s._-]*(\d{1,2}))\b', re.IGNORECASE)
SERIES_LIKE_PATTERN = re.compile(
    r'(\bs\d{1,2}[\s._-]*e\d{1,3}\b|\bs\d{1,2}\b|\bseason[\s._-]*\d{1,2}\b|\b\d{1,2}x\d{2,3}\b|\bcomplete[\s._-]+series\b)',
    re.IGNORECASE
)
TRASH_PATTERN = re.compile(r'\b(sample|trailer|teaser|featurette|extras)\b', re.IGNORECASE)
HASH_PATTERN = re.compile(r'urn:btih:([a-fA-F0-9]{40})')
YEAR_PATTERN = re.compile(r'\b(19\d{2}|20\d{2})\b')


def basename(path: str) -> str:
    return PurePosixPath(path or "").name


def parse_title(name: str) -> Dict[str, Any]:
    """Parse a release/file name with PTN"""
    if not name:
        return {}
    try:
        return PTN.parse(basename(name)) or {}
    except Exception:
        return {}


def _first_int(value) -> Optional[int]:
    if isinstance(value, list):
        return int(value[0]) if len(value) == 1 else None
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def episode_marker(name: str) -> Tuple[Optional[int], Optional[int]]:
    """
    Extract (season, episode) from a name.
    Returns (season, None) for season-only names, (None, None) when absent.
    """
    base = basename(name)
    match = EPISODE_PATTERN.search(base) or CROSS_PATTERN.search(base)
    if match:
        return int(match.group(1)), int(match.group(2))

    parsed = parse_title(base)
    season = _first_int(parsed.get("season"))
    episode = _first_int(parsed.get("episode"))
    if season is None:
        season_match = SEASON_PATTERN.search(base)
        if season_match:
            season = int(season_match.group(1) or season_match.group(2))
    return season, episode


def is_season_pack(name: str, season: int) -> bool:
    """Title carries the target season but no single episode"""
    parsed_season, parsed_episode = episode_marker(name)
    return parsed_season == season and parsed_episode is None


def is_junk(path: str) -> bool:
    return (path or "").lower().endswith(JUNK_EXTENSIONS)


def is_valid_video(path: str, size: Optional[int], min_size: Optional[int] = None) -> bool:
    """Known video extension and larger than the minimum size"""
    if not path:
        return False
    if min_size is None:
        min_size = settings.min_video_size_bytes
    suffix = PurePosixPath(path.lower()).suffix
    if suffix not in VIDEO_EXTENSIONS:
        return False
    if TRASH_PATTERN.search(basename(path)):
        return False
    return (size or 0) > min_size


def is_valid_torrent_title(title: str) -> bool:
    """Reject empty titles and obvious non-feature releases"""
    if not title or not title.strip():
        return False
    if TRASH_PATTERN.search(title):
        return False
    return not is_junk(title)


def is_series_like_title(title: str) -> bool:
    return bool(SERIES_LIKE_PATTERN.search(title or ""))


def matches_year(title: str, year: Optional[int], tolerance: int = 1) -> bool:
    """Year sanity for movies: titles without a year pass"""
    if not year:
        return True
    years = [int(y) for y in YEAR_PATTERN.findall(title or "")]
    if not years:
        return True
    return any(abs(y - int(year)) <= tolerance for y in years)


def extract_hash(magnet: str) -> Optional[str]:
    """Extract the lowercase info hash from a magnet URI"""
    match = HASH_PATTERN.search(magnet or "")
    return match.group(1).lower() if match else None
