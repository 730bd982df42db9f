"""
Tests for the SQL repositories against SQLite (aiosqlite).

Covers the unique-constraint dedup paths (ON CONFLICT DO NOTHING), due
selection and rescheduling. Vector similarity needs PostgreSQL + pgvector
and is not exercised here.
"""

from datetime import timedelta

import pytest

from pulsewatch.archivist.database import build_engine, build_session_factory, init_db
from pulsewatch.archivist.models import Alert, Insight, RawContent
from pulsewatch.archivist.sql_store import create_sql_stores

from tests.test_helpers import NOW, make_profile, make_source, skip_no_aiosqlite

pytestmark = skip_no_aiosqlite


async def open_stores(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'pulsewatch.db'}")
    await init_db(engine)
    return engine, create_sql_stores(build_session_factory(engine))


def raw_content(source_id, profile_id, content_hash="a" * 32, **overrides):
    data = dict(
        source_id=source_id,
        profile_id=profile_id,
        content_url="https://news.example.com/acme",
        text="Acme Corp widgets",
        content_hash=content_hash,
        extracted_at=NOW,
    )
    data.update(overrides)
    return RawContent(**data)


class TestSqlContentStore:

    @pytest.mark.asyncio
    async def test_insert_if_absent_dedups_on_hash(self, tmp_path):
        engine, stores = await open_stores(tmp_path)
        try:
            profile = await stores.profiles.add(make_profile())
            source = await stores.sources.add(make_source(profile.id))

            first, created_first = await stores.contents.insert_if_absent(raw_content(source.id, profile.id))
            second, created_second = await stores.contents.insert_if_absent(
                raw_content(source.id, profile.id, text="different text, same hash")
            )

            assert created_first is True
            assert created_second is False
            assert second.id == first.id
            assert second.text == "Acme Corp widgets"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_same_hash_other_source_is_new(self, tmp_path):
        engine, stores = await open_stores(tmp_path)
        try:
            profile = await stores.profiles.add(make_profile())
            source_a = await stores.sources.add(make_source(profile.id))
            source_b = await stores.sources.add(make_source(profile.id, url="https://b.example.com"))

            _, created_a = await stores.contents.insert_if_absent(raw_content(source_a.id, profile.id))
            _, created_b = await stores.contents.insert_if_absent(raw_content(source_b.id, profile.id))

            assert created_a and created_b
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_unprocessed_and_latest(self, tmp_path):
        engine, stores = await open_stores(tmp_path)
        try:
            profile = await stores.profiles.add(make_profile())
            source = await stores.sources.add(make_source(profile.id))
            old, _ = await stores.contents.insert_if_absent(raw_content(source.id, profile.id, "a" * 32))
            new, _ = await stores.contents.insert_if_absent(
                raw_content(source.id, profile.id, "b" * 32, extracted_at=NOW + timedelta(hours=1))
            )

            assert (await stores.contents.latest_for_source(source.id)).id == new.id
            assert (await stores.contents.find_by_hash(source.id, "a" * 32)).id == old.id

            await stores.contents.mark_processed(old.id)
            pending = await stores.contents.list_unprocessed(10)
            assert [c.id for c in pending] == [new.id]
        finally:
            await engine.dispose()


class TestSqlInsightAndAlertStores:

    @pytest.mark.asyncio
    async def test_one_insight_per_content_and_one_alert_per_insight(self, tmp_path):
        engine, stores = await open_stores(tmp_path)
        try:
            profile = await stores.profiles.add(make_profile())
            source = await stores.sources.add(make_source(profile.id))
            content, _ = await stores.contents.insert_if_absent(raw_content(source.id, profile.id))

            def insight(summary):
                return Insight(
                    raw_content_id=content.id, source_id=source.id, profile_id=profile.id,
                    summary=summary, sentiment="negative", sentiment_score=-0.8,
                    entities=[{"name": "Acme", "type": "organization", "importance": 4}],
                    topics=["recall"], impact_assessment={"business": 4, "market": 2, "reputation": 5},
                )

            first, created = await stores.insights.add_if_absent(insight("first"))
            again, created_again = await stores.insights.add_if_absent(insight("second"))
            assert created is True and created_again is False
            assert again.id == first.id
            assert again.summary == "first"
            assert again.entities[0]["name"] == "Acme"

            def alert():
                return Alert(profile_id=profile.id, insight_id=first.id, severity="high", title="t",
                             created_at=NOW, updated_at=NOW)

            a1, c1 = await stores.alerts.add_if_absent(alert())
            a2, c2 = await stores.alerts.add_if_absent(alert())
            assert c1 is True and c2 is False
            assert a1.id == a2.id

            counts = await stores.alerts.counts_by_severity(profile.id)
            assert counts["high"] == 1
            assert counts["critical"] == 0

            updated = await stores.alerts.update_status(a1.id, "resolved", "fixed", NOW + timedelta(hours=1))
            assert updated.status == "resolved"
            assert (await stores.alerts.list_for_profile(profile.id, status="resolved"))[0].user_notes == "fixed"
            assert await stores.alerts.update_status(999, "resolved", None, NOW) is None
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_insights_listed_newest_first(self, tmp_path):
        engine, stores = await open_stores(tmp_path)
        try:
            profile = await stores.profiles.add(make_profile())
            other = await stores.profiles.add(make_profile(user_id="user-2"))
            source = await stores.sources.add(make_source(profile.id))

            async def insight(profile_id, n, minutes_ago):
                content, _ = await stores.contents.insert_if_absent(
                    raw_content(source.id, profile_id, content_hash=f"{n:032d}")
                )
                row, _ = await stores.insights.add_if_absent(Insight(
                    raw_content_id=content.id, source_id=source.id, profile_id=profile_id,
                    summary=f"insight {n}", sentiment="neutral", sentiment_score=0.0,
                    processed_at=NOW - timedelta(minutes=minutes_ago),
                ))
                return row

            older = await insight(profile.id, 1, 20)
            newer = await insight(profile.id, 2, 10)
            await insight(other.id, 3, 0)

            listed = await stores.insights.list_for_profile(profile.id)
            assert [i.id for i in listed] == [newer.id, older.id]
            assert [i.id for i in await stores.insights.list_for_profile(profile.id, limit=1)] == [newer.id]
        finally:
            await engine.dispose()



class TestSqlScheduling:

    @pytest.mark.asyncio
    async def test_due_selection_and_reschedule(self, tmp_path):
        engine, stores = await open_stores(tmp_path)
        try:
            due = await stores.profiles.add(make_profile())
            await stores.profiles.add(make_profile(user_id="later", next_run_at=NOW + timedelta(hours=3)))

            assert [p.id for p in await stores.profiles.list_due(NOW)] == [due.id]

            await stores.profiles.reschedule(due.id, NOW, NOW + timedelta(hours=6))
            assert await stores.profiles.list_due(NOW) == []
            refreshed = await stores.profiles.get(due.id)
            assert refreshed.next_run_at == NOW + timedelta(hours=6)
            assert refreshed.keywords == ["Acme Corp", "widgets"]
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_sources_due_known_and_recorded(self, tmp_path):
        engine, stores = await open_stores(tmp_path)
        try:
            profile = await stores.profiles.add(make_profile())
            source = await stores.sources.add(make_source(profile.id, url="https://News.Example.com/Acme"))
            await stores.sources.add(make_source(profile.id, url="https://off.example.com", enabled=False))

            assert [s.id for s in await stores.sources.list_due(profile.id, NOW)] == [source.id]
            assert "https://news.example.com/acme" in await stores.sources.known_urls(profile.id)

            await stores.sources.record_scrape(source.id, NOW, NOW + timedelta(hours=12))
            assert await stores.sources.list_due(profile.id, NOW) == []
            assert (await stores.sources.get(source.id)).last_scraped_at == NOW
        finally:
            await engine.dispose()
