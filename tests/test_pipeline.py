"""
Tests for pipeline assembly and the scheduled backfill job.
"""

import pytest

from pulsewatch.analyst.schemas import ImpactAssessment
from pulsewatch.archivist.models import RawContent
from pulsewatch.pipeline import build_pipeline
from pulsewatch.scheduler.jobs import analysis_backfill_job, backfill_unprocessed
from pulsewatch.scheduler.task_queue import TaskQueue

from tests.test_helpers import (
    NOW,
    FakeContentAnalyzer,
    FakeDiscovery,
    FakeEmbedder,
    FakeFetcher,
    FakeObjectStore,
    FakeScorer,
    make_analysis,
    make_profile,
    make_source,
)


def make_pipeline(stores, clock, publisher, mailer, analysis=None):
    return build_pipeline(
        stores,
        discovery=FakeDiscovery([]),
        scorer=FakeScorer(),
        fetcher=FakeFetcher("Acme Corp recalls widgets after overheating reports."),
        object_store=FakeObjectStore(),
        content_analyzer=FakeContentAnalyzer(analysis or make_analysis()),
        embedder=FakeEmbedder(),
        publisher=publisher,
        mailer=mailer,
        queue=TaskQueue(workers=2, maxsize=20, max_attempts=2, retry_base_delay=0),
        clock=clock,
    )


class TestPipeline:

    @pytest.mark.asyncio
    async def test_scrape_flows_through_queue_to_alert(self, stores, clock, publisher, mailer):
        crisis = make_analysis(
            is_crisis=True, sentiment="negative", sentiment_score=-0.9,
            impact_assessment=ImpactAssessment(business=5, market=4, reputation=5),
        )
        pipeline = make_pipeline(stores, clock, publisher, mailer, analysis=crisis)
        profile = await stores.profiles.add(make_profile())
        source = await stores.sources.add(make_source(profile.id))

        await pipeline.start()
        try:
            result = await pipeline.scraper.scrape(source.id)
            await pipeline.queue.join()
        finally:
            await pipeline.close()

        content = await stores.contents.get(result.content_id)
        assert content.ai_processed is True
        insight = await stores.insights.get_by_content(content.id)
        assert insight is not None
        alerts = await stores.alerts.list_for_profile(profile.id)
        assert [a.severity for a in alerts] == ["critical"]
        assert len(publisher.events) == 1

    @pytest.mark.asyncio
    async def test_close_stops_queue_and_runs_closers(self, stores, clock, publisher, mailer):
        pipeline = make_pipeline(stores, clock, publisher, mailer)
        closed = []

        async def closer():
            closed.append(True)

        async def broken_closer():
            raise RuntimeError("already closed")

        pipeline.closers.extend([broken_closer, closer])
        await pipeline.start()
        assert pipeline.queue.running is True

        await pipeline.close()

        assert pipeline.queue.running is False
        assert closed == [True]


class TestBackfill:

    @pytest.mark.asyncio
    async def test_requeues_unprocessed_content(self, stores, clock, publisher, mailer):
        pipeline = make_pipeline(stores, clock, publisher, mailer)
        profile = await stores.profiles.add(make_profile())
        source = await stores.sources.add(make_source(profile.id))
        for content_hash in ("a" * 32, "b" * 32):
            await stores.contents.insert_if_absent(RawContent(
                source_id=source.id, profile_id=profile.id, content_url=source.url,
                text="Acme Corp widgets", content_hash=content_hash, extracted_at=NOW,
            ))

        queued = await backfill_unprocessed(pipeline, limit=10)

        assert queued == 2
        assert pipeline.queue.pending() == 2

        # Already pending: not queued twice
        await backfill_unprocessed(pipeline, limit=10)
        assert pipeline.queue.pending() == 2

        await pipeline.start()
        try:
            await pipeline.queue.join()
        finally:
            await pipeline.close()

        assert await stores.contents.list_unprocessed(10) == []
        assert len(stores.insights.rows) == 2

    @pytest.mark.asyncio
    async def test_job_never_raises(self, stores, clock, publisher, mailer):
        pipeline = make_pipeline(stores, clock, publisher, mailer)

        async def broken(limit):
            raise RuntimeError("database unavailable")

        stores.contents.list_unprocessed = broken

        await analysis_backfill_job(pipeline)
