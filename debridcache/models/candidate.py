"""
Candidate Models
In-flight search candidates and the canonical stream result
"""
import base64
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union


SERVICE = "realdebrid"


def magnet_for(info_hash: str) -> str:
    return f"magnet:?xt=urn:btih:{info_hash}"


def file_token(torrent_id: str, file_id: Union[int, str]) -> str:
    """Internal reference to one file of a provider torrent"""
    return f"{SERVICE}:{torrent_id}:{file_id}"


@dataclass
class EpisodeHint:
    """Single episode file found inside a season pack"""
    file_path: str
    file_bytes: int
    torrent_id: Optional[str] = None
    file_id: Optional[int] = None

    def encode(self, info_hash: str) -> str:
        data = {"hash": info_hash.lower(), **asdict(self)}
        return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, encoded: str) -> Optional["EpisodeHint"]:
        try:
            data = json.loads(base64.b64decode(encoded).decode("utf-8"))
            return cls(
                file_path=data.get("file_path", ""),
                file_bytes=int(data.get("file_bytes") or 0),
                torrent_id=data.get("torrent_id"),
                file_id=data.get("file_id"),
            )
        except (ValueError, TypeError):
            return None


@dataclass
class StreamResult:
    """Canonical output record of a search"""
    name: str
    size: int
    url: str
    hash: str
    tracker: str
    is_personal: bool
    is_cached: bool
    seeders: int = 0
    resolution: str = "unknown"
    category: str = "Other"
    source: str = SERVICE
    languages: List[str] = field(default_factory=list)
    searchable_name: Optional[str] = None
    episode_hint: Optional[EpisodeHint] = None
    torrent_id: Optional[str] = None
    file_id: Optional[int] = None


@dataclass
class PersonalCandidate:
    """A file the caller already owns on the provider"""
    name: str
    size: int
    url: str
    hash: Optional[str] = None
    category: str = "Other"
    resolution: str = "unknown"
    torrent_id: Optional[str] = None
    file_id: Optional[int] = None

    def to_stream_result(self) -> StreamResult:
        # Owned torrents are addressed by magnet so playback re-resolves them
        url = magnet_for(self.hash) if self.hash else self.url
        return StreamResult(
            name=self.name,
            size=self.size or 0,
            url=url,
            hash=(self.hash or "").lower(),
            tracker="Personal",
            is_personal=True,
            is_cached=True,
            resolution=self.resolution,
            category=self.category,
            torrent_id=self.torrent_id,
            file_id=self.file_id,
        )


@dataclass
class ExternalCandidate:
    """A torrent returned by a producer"""
    title: str
    info_hash: str
    size: int = 0
    seeders: int = 0
    tracker: str = "Cached"
    languages: List[str] = field(default_factory=list)
    category: str = "Other"
    resolution: str = "unknown"
    is_cached: bool = False

    def __post_init__(self):
        self.info_hash = (self.info_hash or "").lower()

    def to_stream_result(self) -> StreamResult:
        return StreamResult(
            name=self.title,
            size=self.size or 0,
            url=magnet_for(self.info_hash),
            hash=self.info_hash,
            tracker=self.tracker,
            is_personal=False,
            is_cached=self.is_cached,
            seeders=self.seeders or 0,
            resolution=self.resolution,
            category=self.category,
            languages=list(self.languages),
        )


@dataclass
class PackCandidate:
    """One episode file extracted from a season pack"""
    info_hash: str
    hint: EpisodeHint
    pack_name: Optional[str] = None
    category: str = "Other"
    resolution: str = "unknown"

    def to_stream_result(self) -> StreamResult:
        url = f"{magnet_for(self.info_hash)}||HINT||{self.hint.encode(self.info_hash)}"
        return StreamResult(
            name=self.hint.file_path,
            size=self.hint.file_bytes or 0,
            url=url,
            hash=self.info_hash.lower(),
            tracker="Pack Inspection",
            is_personal=False,
            is_cached=True,
            resolution=self.resolution,
            category=self.category,
            searchable_name=self.pack_name or self.hint.file_path,
            episode_hint=self.hint,
            torrent_id=self.hint.torrent_id,
            file_id=self.hint.file_id,
        )


Candidate = Union[PersonalCandidate, ExternalCandidate, PackCandidate]


def candidate_hash(candidate: Candidate) -> Optional[str]:
    if isinstance(candidate, PersonalCandidate):
        return candidate.hash.lower() if candidate.hash else None
    return candidate.info_hash.lower()


def candidate_name(candidate: Candidate) -> str:
    if isinstance(candidate, PackCandidate):
        return candidate.hint.file_path
    if isinstance(candidate, ExternalCandidate):
        return candidate.title
    return candidate.name


def candidate_size(candidate: Candidate) -> int:
    if isinstance(candidate, PackCandidate):
        return candidate.hint.file_bytes or 0
    return candidate.size or 0


def to_payload(candidate: Candidate, source: str) -> Dict[str, Any]:
    """Cache store record for a candidate (release metadata added by the caller)"""
    return {
        "service": SERVICE,
        "hash": candidate_hash(candidate),
        "file_name": candidate_name(candidate),
        "size_bytes": candidate_size(candidate) or None,
        "category": candidate.category,
        "resolution": candidate.resolution,
        "payload": {"source": source},
    }
