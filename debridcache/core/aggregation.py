"""
Aggregation & Selection
Merges personal files with externally verified torrents under per-release quotas
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from loguru import logger

from debridcache.config import settings
from debridcache.core.background import BackgroundTasks, background_tasks
from debridcache.core.packs import PackInspector
from debridcache.core.personal import PersonalFileFinder
from debridcache.core.quality import QualityClassifier, quality_classifier
from debridcache.core.quota import QuotaCounts, QuotaTracker, default_limits, is_high_res_satisfied
from debridcache.core.session import CancellationToken, SearchSession, search_session
from debridcache.core.verification import CacheVerifier, TorrentCleanup
from debridcache.models.cache import make_release_key
from debridcache.models.candidate import (
    SERVICE,
    Candidate,
    ExternalCandidate,
    PersonalCandidate,
    StreamResult,
    to_payload,
)
from debridcache.services.cache.store import CacheStore, cache_store
from debridcache.services.downloaders.realdebrid import RealDebridService
from debridcache.services.scrapers.base import Producer, SearchContext
from debridcache.utils.parsing import (
    episode_marker,
    is_season_pack,
    is_series_like_title,
    is_valid_torrent_title,
    matches_year,
)


@dataclass
class SearchRequest:
    """One release to resolve"""
    media_type: str  # "movie" or "series"
    content_id: str  # IMDB ID
    title: str
    year: Optional[int] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    languages: List[str] = field(default_factory=list)

    @property
    def is_episode(self) -> bool:
        return self.media_type == "series" and self.season is not None and self.episode is not None

    @property
    def release_key(self) -> str:
        return make_release_key(self.media_type, self.content_id, self.season, self.episode)

    @property
    def query(self) -> str:
        if self.is_episode:
            return f"{self.title} s{self.season:02d}e{self.episode:02d}"
        return f"{self.title} {self.year or ''}".strip()

    def context(self, languages: Optional[List[str]] = None) -> SearchContext:
        return SearchContext(
            media_type=self.media_type,
            content_id=self.content_id,
            title=self.title,
            year=self.year,
            season=self.season,
            episode=self.episode,
            languages=list(self.languages if languages is None else languages),
        )


class SearchRun:
    """Per-search working state: verifier, pack inspector and cleanup list"""

    def __init__(self, engine: "CacheSearchEngine", token: CancellationToken):
        self.token = token
        self.cleanup = TorrentCleanup()
        self.verifier = CacheVerifier(
            engine.debrid, self.cleanup, store=engine.store, background=engine.background
        )
        self.packs = PackInspector(engine.debrid, self.cleanup, classifier=engine.classifier)


class CacheSearchEngine:
    """
    Comprehensive search for one release:
    1. Personal files + their quota counts
    2. Cache store counts for the release
    3. Early exit when personal files alone satisfy the high-res quotas
    4. Producers -> dedupe -> content filters
    5. Cache verification and pack inspection under the remaining quota
    6. One-shot live check of the top non-cached torrents
    """

    def __init__(
        self,
        debrid: RealDebridService,
        producers: Optional[Sequence[Producer]] = None,
        store: Optional[CacheStore] = None,
        limits: Optional[Mapping[str, int]] = None,
        background: Optional[BackgroundTasks] = None,
        session: Optional[SearchSession] = None,
        classifier: Optional[QualityClassifier] = None
    ):
        self.debrid = debrid
        self.producers = list(producers or [])
        self.store = store or cache_store
        self.limits = dict(limits) if limits is not None else default_limits()
        self.background = background or background_tasks
        self.session = session or search_session
        self.classifier = classifier or quality_classifier
        self.personal = PersonalFileFinder(debrid, self.classifier)

    async def search(self, request: SearchRequest) -> List[StreamResult]:
        """Sorted stream results; never raises"""
        logger.info(f"Real-Debrid: Comprehensive search for '{request.query}'")
        token = self.session.begin()
        run = SearchRun(self, token)
        try:
            return await self._search(request, run)
        except Exception as e:
            logger.error(f"Real-Debrid: Comprehensive search failed: {e}")
            return []
        finally:
            self.session.finish(token)
            if len(run.cleanup):
                self.background.spawn(run.cleanup.run(self.debrid), name="torrent-cleanup")

    async def verify_candidates(self, candidates: Iterable[ExternalCandidate]) -> List[StreamResult]:
        """
        Cache check of a caller-supplied torrent list, without personal files or quotas.
        Known and live-verified torrents come back cached. The top-seeded leftovers
        that pass a live check come back non-cached. Never raises.
        """
        run = SearchRun(self, CancellationToken())
        try:
            external = self._classify(self.merge_external(candidates, []))
            unlimited = QuotaTracker({}, QuotaCounts())
            cached = await self._resolve_cached(external, None, run, unlimited)
            resolved = {c.info_hash for c in cached}
            unresolved = [c for c in external if c.info_hash not in resolved]
            checked = await self._inspect_non_cached(unresolved, run, unlimited)
            return self._format([*cached, *checked])
        except Exception as e:
            logger.error(f"Real-Debrid: Cache check failed: {e}")
            return []
        finally:
            if len(run.cleanup):
                self.background.spawn(run.cleanup.run(self.debrid), name="torrent-cleanup")

    async def validate_personal_results(self, results: List[StreamResult]) -> List[StreamResult]:
        """Personal results whose torrent the caller no longer owns are demoted to cached"""
        return await self.personal.validate_results(results)

    async def _search(self, request: SearchRequest, run: SearchRun) -> List[StreamResult]:
        release_key = request.release_key

        personal = await self.personal.find(request.title, request.season, request.episode)
        personal_counts = QuotaCounts.from_candidates(personal)
        store_counts = await self.store.release_counts(SERVICE, release_key)
        combined = personal_counts.merged(store_counts)

        self._defer_upserts(personal, release_key, "personal")

        if is_high_res_satisfied(personal_counts.by_category_resolution, self.limits):
            logger.info(f"Real-Debrid: Personal quotas satisfy high-res limits for {release_key}, skipping scrapers")
            results = self._format(personal)
            logger.info(f"Real-Debrid: Early exit with {len(results)} personal streams")
            return results

        external = await self._produce(request, run.token)
        external = self.merge_external(external, personal)
        external = self._classify(self.apply_content_filters(external, request))

        quota = QuotaTracker(self.limits, combined)
        cached = await self._resolve_cached(external, request, run, quota)

        resolved = {c.info_hash for c in cached}
        unresolved = [c for c in external if c.info_hash not in resolved]
        checked = await self._inspect_non_cached(unresolved, run, quota)

        self._defer_upserts(cached, release_key, "cached")
        self._defer_upserts(checked, release_key, "checked")

        results = self._format([*personal, *cached, *checked])
        logger.info(f"Real-Debrid: Comprehensive total: {len(results)} streams")
        return results

    async def _produce(self, request: SearchRequest, token: CancellationToken) -> List[ExternalCandidate]:
        """Query every producer concurrently, once per selected language"""
        language_sets = [[lang] for lang in request.languages] or [[]]
        tasks = []
        for languages in language_sets:
            context = request.context(languages)
            for producer in self.producers:
                tasks.append(token.track(
                    producer.search(request.query, token, context),
                    name=f"producer-{getattr(producer, 'name', 'unknown')}",
                ))
        if not tasks:
            return []

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        candidates: List[ExternalCandidate] = []
        for outcome in outcomes:
            if isinstance(outcome, asyncio.CancelledError):
                logger.debug("Producer call cancelled by a newer search")
            elif isinstance(outcome, BaseException):
                logger.warning(f"Producer failed: {outcome}")
            elif outcome:
                candidates.extend(outcome)
        return candidates

    @staticmethod
    def merge_external(
        external: Iterable[ExternalCandidate],
        personal: Iterable[PersonalCandidate]
    ) -> List[ExternalCandidate]:
        """Dedupe by hash (first wins), drop owned hashes and junk titles"""
        owned = {p.hash.lower() for p in personal if p.hash}
        unique: Dict[str, ExternalCandidate] = {}
        for candidate in external:
            if not candidate.info_hash or candidate.info_hash in unique:
                continue
            unique[candidate.info_hash] = candidate
        return [
            c for c in unique.values()
            if c.info_hash not in owned and is_valid_torrent_title(c.title)
        ]

    def _classify(self, external: List[ExternalCandidate]) -> List[ExternalCandidate]:
        for candidate in external:
            candidate.category = self.classifier.category(candidate.title)
            candidate.resolution = self.classifier.resolution(candidate.title)
        return external

    @staticmethod
    def apply_content_filters(
        external: List[ExternalCandidate],
        request: SearchRequest
    ) -> List[ExternalCandidate]:
        if request.is_episode:
            def episode_ok(candidate: ExternalCandidate) -> bool:
                season, episode = episode_marker(candidate.title)
                if season is not None and episode is not None:
                    return season == request.season and episode == request.episode
                if season is not None:
                    return season == request.season
                return True
            return [c for c in external if episode_ok(c)]

        if request.media_type == "movie":
            movies = [c for c in external if not is_series_like_title(c.title)]
            movies = [c for c in movies if episode_marker(c.title) == (None, None)]
            if request.year:
                movies = [c for c in movies if matches_year(c.title, request.year)]
            return movies

        return external

    async def _resolve_cached(
        self,
        external: List[ExternalCandidate],
        request: Optional[SearchRequest],
        run: SearchRun,
        quota: QuotaTracker
    ) -> List[Candidate]:
        """Known or live-verified cached candidates, capped by the quota ceiling"""
        if not external:
            return []

        known = await self.store.known_hashes(SERVICE, [c.info_hash for c in external])
        episode = request is not None and request.is_episode

        packs: List[ExternalCandidate] = []
        singles: List[ExternalCandidate] = []
        for candidate in external:
            if episode and is_season_pack(candidate.title, request.season):
                packs.append(candidate)
            else:
                singles.append(candidate)

        singles.sort(key=lambda c: (self.classifier.rank(c.resolution), c.size or 0), reverse=True)

        cached: List[Candidate] = []
        for candidate in singles:
            if not quota.has_room(candidate.category, candidate.resolution):
                continue
            if candidate.info_hash in known:
                logger.debug(f"Cache check: {candidate.info_hash[:8]} known from cache store")
            elif not await run.verifier.is_cached(candidate.info_hash):
                continue
            candidate.is_cached = True
            quota.consume(candidate.category, candidate.resolution)
            cached.append(candidate)

        if packs:
            packs.sort(key=lambda c: c.seeders or 0, reverse=True)
            found = await run.packs.inspect(
                [p.info_hash for p in packs], request.season, request.episode
            )
            for pack in found.values():
                if not quota.has_room(pack.category, pack.resolution):
                    continue
                quota.consume(pack.category, pack.resolution)
                cached.append(pack)

        logger.info(f"Real-Debrid: {len(cached)} cached results from {len(external)} external torrents")
        return cached

    async def _inspect_non_cached(
        self,
        unresolved: List[ExternalCandidate],
        run: SearchRun,
        quota: QuotaTracker
    ) -> List[ExternalCandidate]:
        """Live check of the best-seeded leftovers, included as non-cached"""
        unresolved = [c for c in unresolved if quota.has_room(c.category, c.resolution)]
        if not unresolved:
            return []
        top = sorted(unresolved, key=lambda c: c.seeders or 0, reverse=True)
        top = top[:settings.non_cached_inspect_limit]
        logger.info(f"Real-Debrid: Inspecting {len(top)} top non-cached torrents")

        valid = []
        for candidate in top:
            if await run.verifier.is_cached(candidate.info_hash):
                logger.debug(f"Real-Debrid: Valid: {candidate.title}")
                candidate.is_cached = False
                quota.consume(candidate.category, candidate.resolution)
                valid.append(candidate)
            else:
                logger.debug(f"Real-Debrid: Rejected: {candidate.title}")
        return valid

    def _defer_upserts(self, candidates: Iterable[Candidate], release_key: str, source: str):
        """Hand release-aware records to the background pool"""
        if not self.store.is_enabled:
            return
        records = []
        seen = set()
        for candidate in candidates:
            record = to_payload(candidate, source)
            if not record["hash"] or record["hash"] in seen:
                continue
            seen.add(record["hash"])
            record["release_key"] = release_key
            records.append(record)
        if records:
            self.background.spawn(self.store.upsert_many(records), name=f"upsert-{source}")

    def _format(self, candidates: Iterable[Candidate]) -> List[StreamResult]:
        return self.classifier.sort_results(c.to_stream_result() for c in candidates)
