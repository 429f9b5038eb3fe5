"""
debridcache Models Package
"""
from debridcache.models.cache import CacheRecord, make_release_key
from debridcache.models.candidate import (
    SERVICE,
    Candidate,
    EpisodeHint,
    ExternalCandidate,
    PackCandidate,
    PersonalCandidate,
    StreamResult,
)

__all__ = [
    "SERVICE",
    "CacheRecord",
    "make_release_key",
    "Candidate",
    "EpisodeHint",
    "ExternalCandidate",
    "PackCandidate",
    "PersonalCandidate",
    "StreamResult",
]
