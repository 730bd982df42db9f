"""
AI Analyzer: classify one RawContent, persist the Insight, apply alert policy.

Idempotent per RawContent: content already marked ai_processed is a no-op,
and the insights table admits one row per raw_content_id, so a concurrent
or retried analysis never produces a second Insight or a second alert.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from ..archivist.models import Insight, MonitoringProfile, RawContent, utc_now_naive
from ..archivist.repositories import Stores
from ..common.capabilities import AnalysisRequest, ContentAnalyzer, Embedder
from ..common.errors import ExternalServiceError, NotFoundError, ValidationError
from ..common.tasks import TaskDispatcher, generate_alert_task
from ..config.settings import settings
from .policy import AlertDecision, evaluate_alert
from .schemas import ContentAnalysis

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... (content truncated)"
SNIPPET_CONTEXT_CHARS = 150


def truncate_content(text: str, keywords: Optional[List[str]] = None, max_chars: int = None) -> str:
    """
    Bound content sent to the model while keeping keyword mentions.

    Strategy:
    - Keep the first 70% of max_chars (lead paragraphs carry most signal)
    - Scan the rest for monitored keywords and append those passages with context
    - Append an explicit truncation marker
    """
    max_chars = max_chars or settings.analysis_max_chars
    if not text or len(text) <= max_chars:
        return text

    budget = max_chars - len(TRUNCATION_MARKER) - 1
    result = text[: int(max_chars * 0.7)]
    remaining = text[len(result):]

    added = set()
    for keyword in keywords or []:
        keyword = keyword.strip()
        if not keyword:
            continue
        for match in re.finditer(re.escape(keyword), remaining, re.IGNORECASE):
            start = max(0, match.start() - SNIPPET_CONTEXT_CHARS)
            end = min(len(remaining), match.end() + SNIPPET_CONTEXT_CHARS)
            if any(start < e and s < end for s, e in added):
                continue
            snippet = remaining[start:end].strip()
            if len(result) + len(snippet) + 5 > budget:
                break
            added.add((start, end))
            result += f"\n...\n{snippet}"

    return f"{result}\n{TRUNCATION_MARKER}"


def analysis_from_insight(insight: Insight) -> ContentAnalysis:
    """Rebuild the classification stored on an Insight row."""
    return ContentAnalysis(
        summary=insight.summary or "",
        sentiment=insight.sentiment,
        sentiment_score=insight.sentiment_score,
        entities=insight.entities or [],
        topics=insight.topics or [],
        is_crisis=insight.is_crisis,
        is_opportunity=insight.is_opportunity,
        crisis_explanation=insight.crisis_explanation,
        opportunity_explanation=insight.opportunity_explanation,
        impact_assessment=insight.impact_assessment or {},
        key_insights=insight.key_insights or [],
    )


@dataclass
class AnalysisOutcome:
    raw_content_id: int
    insight_id: Optional[int] = None
    summary: Optional[str] = None
    alert_id: Optional[int] = None
    alert_generated: bool = False
    already_processed: bool = False

    @property
    def message(self) -> str:
        if self.already_processed:
            return "Content already processed"
        if self.alert_generated:
            return "Content analyzed and alert generated"
        return "Content analyzed successfully"


class AIAnalyzer:
    def __init__(
        self,
        stores: Stores,
        analyzer: ContentAnalyzer,
        embedder: Optional[Embedder],
        alert_generator,
        dispatcher: Optional[TaskDispatcher] = None,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self.stores = stores
        self.analyzer = analyzer
        self.embedder = embedder
        self.alert_generator = alert_generator
        self.dispatcher = dispatcher
        self.clock = clock

    async def analyze(self, raw_content_id: Optional[int], generate_embedding: bool = True) -> AnalysisOutcome:
        if raw_content_id is None:
            raise ValidationError("raw_content_id is required")

        content = await self.stores.contents.get(raw_content_id)
        if content is None:
            raise NotFoundError("RawContent", raw_content_id)

        if content.ai_processed:
            existing = await self.stores.insights.get_by_content(content.id)
            return AnalysisOutcome(
                raw_content_id=content.id,
                insight_id=existing.id if existing else None,
                summary=existing.summary if existing else None,
                already_processed=True,
            )

        profile = await self.stores.profiles.get(content.profile_id)
        if profile is None:
            raise NotFoundError("Profile", content.profile_id)
        # A previous run stored the insight but stopped before mark_processed or the alert
        existing = await self.stores.insights.get_by_content(content.id)
        if existing is not None:
            logger.info(f"Content #{content.id} already has insight #{existing.id}; finishing without re-analysis")
            await self.stores.contents.mark_processed(content.id)
            outcome = AnalysisOutcome(raw_content_id=content.id, insight_id=existing.id, summary=existing.summary)
            await self._apply_alert_policy(outcome, existing, profile, analysis_from_insight(existing))
            return outcome

        source = await self.stores.sources.get(content.source_id)

        keywords = list(profile.keywords or [])
        analysis = await self.analyzer.analyze(
            AnalysisRequest(
                text=truncate_content(content.text, keywords),
                source_url=content.content_url or (source.url if source else ""),
                source_type=source.source_type if source else "other",
                keywords=keywords,
            )
        )

        embedding = None
        if generate_embedding and self.embedder is not None:
            embedding = await self._embed(content)

        insight, created = await self.stores.insights.add_if_absent(
            self._build_insight(content, analysis, embedding)
        )
        await self.stores.contents.mark_processed(content.id)

        outcome = AnalysisOutcome(raw_content_id=content.id, insight_id=insight.id, summary=insight.summary)
        if created:
            logger.info(
                f"Content #{content.id} -> insight #{insight.id} "
                f"(sentiment={analysis.sentiment.value} {analysis.sentiment_score:+.2f}, "
                f"crisis={analysis.is_crisis}, opportunity={analysis.is_opportunity})"
            )
        else:
            # The stored row wins; the alert (unique per insight) is decided from it
            logger.info(f"Content #{content.id} was analyzed concurrently; keeping insight #{insight.id}")
            outcome.already_processed = True
            analysis = analysis_from_insight(insight)

        await self._apply_alert_policy(outcome, insight, profile, analysis)
        return outcome

    async def _apply_alert_policy(
        self, outcome: AnalysisOutcome, insight: Insight, profile: MonitoringProfile, analysis: ContentAnalysis
    ):
        decision = evaluate_alert(analysis, profile.alert_sensitivity)
        if decision is not None:
            outcome.alert_id = await self._raise_alert(insight, profile, decision)
            outcome.alert_generated = outcome.alert_id is not None

    async def _embed(self, content: RawContent) -> Optional[List[float]]:
        try:
            return await asyncio.wait_for(
                self.embedder.embed(content.text[: settings.analysis_max_chars]),
                timeout=settings.embedding_timeout,
            )
        except (ExternalServiceError, asyncio.TimeoutError) as e:
            logger.warning(f"Embedding failed for content #{content.id}, storing insight without it: {e}")
            return None

    def _build_insight(
        self, content: RawContent, analysis: ContentAnalysis, embedding: Optional[List[float]]
    ) -> Insight:
        return Insight(
            raw_content_id=content.id,
            source_id=content.source_id,
            profile_id=content.profile_id,
            summary=analysis.summary,
            sentiment=analysis.sentiment.value,
            sentiment_score=analysis.sentiment_score,
            entities=[entity.model_dump(mode="json") for entity in analysis.entities],
            topics=list(analysis.topics),
            is_crisis=analysis.is_crisis,
            is_opportunity=analysis.is_opportunity,
            crisis_explanation=analysis.crisis_explanation,
            opportunity_explanation=analysis.opportunity_explanation,
            impact_assessment=analysis.impact_assessment.model_dump(),
            key_insights=list(analysis.key_insights),
            embedding=embedding,
            processed_at=self.clock(),
        )

    async def _raise_alert(
        self, insight: Insight, profile: MonitoringProfile, decision: AlertDecision
    ) -> Optional[int]:
        try:
            result = await self.alert_generator.generate_alert(
                insight.id, profile.id, decision.severity.value, decision.title
            )
            return result.alert_id
        except Exception as e:
            logger.error(f"Alert generation failed for insight #{insight.id}: {type(e).__name__}: {e}")

        if self.dispatcher is not None:
            try:
                await self.dispatcher.submit(
                    generate_alert_task(insight.id, profile.id, decision.severity.value, decision.title)
                )
                logger.info(f"Queued alert generation retry for insight #{insight.id}")
            except Exception as e:
                logger.error(f"Could not queue alert retry for insight #{insight.id}: {e}")
        return None

    async def similar_insights(self, insight_id: Optional[int], threshold: Optional[float] = None,
                               limit: Optional[int] = None) -> List[tuple]:
        """Insights of the same profile whose embeddings are closest to this one."""
        if insight_id is None:
            raise ValidationError("insight_id is required")
        insight = await self.stores.insights.get(insight_id)
        if insight is None:
            raise NotFoundError("Insight", insight_id)
        if insight.embedding is None:
            return []
        return await self.stores.insights.similar(
            list(insight.embedding),
            insight.profile_id,
            threshold=settings.similar_insight_threshold if threshold is None else threshold,
            limit=limit or settings.similar_insight_limit,
            exclude_id=insight.id,
        )
