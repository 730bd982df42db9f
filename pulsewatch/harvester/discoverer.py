"""
Source Discoverer: find new candidate sources for a profile.

Flow: keywords -> discovery capability -> drop known URLs -> relevance
scoring (bounded concurrency) -> keep score >= threshold -> persist.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

from ..archivist.models import DataSource, utc_now_naive
from ..archivist.repositories import Stores
from ..common.capabilities import (
    RelevanceScorer,
    RelevanceVerdict,
    ScrapeConfig,
    SourceCandidate,
    SourceDiscovery,
)
from ..common.errors import NotFoundError, StoreError, ValidationError
from ..common.url_utils import infer_source_type, url_key
from ..config.settings import settings

logger = logging.getLogger(__name__)

SCORING_FAILED_NOTE = "Error evaluating source. Assigned medium relevance by default."


@dataclass
class DiscoveryResult:
    profile_id: int
    candidates_found: int = 0
    added_sources: List[DataSource] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Discovered and added {len(self.added_sources)} new sources"


class SourceDiscoverer:
    def __init__(
        self,
        stores: Stores,
        discovery: SourceDiscovery,
        scorer: RelevanceScorer,
        clock: Callable[[], datetime] = utc_now_naive,
        relevance_threshold: Optional[float] = None,
        max_candidates: Optional[int] = None,
        scoring_concurrency: Optional[int] = None,
    ):
        self.stores = stores
        self.discovery = discovery
        self.scorer = scorer
        self.clock = clock
        self.relevance_threshold = (
            settings.discovery_relevance_threshold if relevance_threshold is None else relevance_threshold
        )
        self.max_candidates = max_candidates or settings.discovery_max_candidates
        self._scoring_slots = asyncio.Semaphore(scoring_concurrency or settings.max_concurrent_scoring)

    async def discover(self, profile_id: Optional[int]) -> DiscoveryResult:
        if profile_id is None:
            raise ValidationError("profile_id is required")

        profile = await self.stores.profiles.get(profile_id)
        if profile is None:
            raise NotFoundError("Profile", profile_id)

        result = DiscoveryResult(profile_id=profile_id)
        known = await self.stores.sources.known_urls(profile_id)
        candidates = await self.discovery.discover(list(profile.keywords or []), self.max_candidates)
        result.candidates_found = len(candidates)

        fresh = []
        for candidate in candidates:
            key = url_key(candidate.url)
            if key in known:
                continue
            known.add(key)
            fresh.append(candidate)

        if not fresh:
            logger.info(f"Profile #{profile_id}: no new candidates ({len(candidates)} already known)")
            return result

        scored = await asyncio.gather(
            *(self._score(candidate, profile.keywords or []) for candidate in fresh)
        )

        now = self.clock()
        for candidate, verdict in scored:
            if verdict.score < self.relevance_threshold:
                logger.debug(f"Discarding {candidate.url} (relevance {verdict.score:.2f})")
                continue
            try:
                source = await self.stores.sources.add(self._build_source(profile_id, candidate, verdict, now))
            except StoreError as e:
                logger.error(f"Failed to persist discovered source {candidate.url}: {e}")
                continue
            result.added_sources.append(source)
            logger.info(f"Added source #{source.id} for profile #{profile_id}: {source.url} ({verdict.score:.2f})")

        return result

    async def _score(self, candidate: SourceCandidate, keywords: List[str]) -> Tuple[SourceCandidate, RelevanceVerdict]:
        async with self._scoring_slots:
            try:
                verdict = await asyncio.wait_for(
                    self.scorer.score(candidate, list(keywords)), timeout=settings.llm_timeout
                )
            except Exception as e:
                logger.warning(f"Relevance scoring failed for {candidate.url}: {type(e).__name__}: {e}")
                verdict = RelevanceVerdict(score=settings.discovery_default_score, rationale=SCORING_FAILED_NOTE)
        return candidate, verdict

    def _build_source(
        self,
        profile_id: int,
        candidate: SourceCandidate,
        verdict: RelevanceVerdict,
        now: datetime,
    ) -> DataSource:
        frequency = settings.discovered_source_frequency_hours
        config = ScrapeConfig(
            capture_screenshot=settings.discovered_capture_screenshot,
            save_html=settings.discovered_save_html,
        )
        return DataSource(
            profile_id=profile_id,
            name=candidate.title or urlparse(candidate.url).netloc,
            url=candidate.url,
            source_type=candidate.source_type or infer_source_type(candidate.url),
            scrape_config=config.to_dict(),
            frequency_hours=frequency,
            enabled=True,
            discovered_at=now,
            relevance_score=verdict.score,
            relevance_notes=verdict.rationale,
            next_scrape_at=now + timedelta(hours=frequency),
            created_at=now,
        )
