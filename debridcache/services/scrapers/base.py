"""
Producer Interface
Any source of raw torrent candidates
"""
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable

from debridcache.core.session import CancellationToken
from debridcache.models.candidate import ExternalCandidate


@dataclass
class SearchContext:
    """What a producer needs to know about the release"""
    media_type: str  # "movie" or "series"
    content_id: str  # IMDB ID
    title: str
    year: Optional[int] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    languages: List[str] = field(default_factory=list)


@runtime_checkable
class Producer(Protocol):
    name: str

    async def search(
        self,
        query: str,
        token: CancellationToken,
        context: SearchContext
    ) -> List[ExternalCandidate]:
        ...
