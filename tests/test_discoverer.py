"""
Tests for source discovery: known-URL filtering, relevance threshold,
scoring failure defaults and source scheduling.
"""

from datetime import timedelta

import pytest

from pulsewatch.common.capabilities import SourceCandidate
from pulsewatch.common.errors import ExternalServiceError, NotFoundError, StoreError, ValidationError
from pulsewatch.harvester.discoverer import SCORING_FAILED_NOTE, SourceDiscoverer

from tests.test_helpers import NOW, FakeDiscovery, FakeScorer, make_profile, make_source


def candidates(*urls):
    return [SourceCandidate(url=url, title=f"Title {i}", description="") for i, url in enumerate(urls)]


URLS = [
    "https://news.example.com/a",
    "https://blog.example.com/b",
    "https://www.reddit.com/r/c",
    "https://example.org/d",
    "https://twitter.com/e",
]


def build(stores, clock, discovery, scorer, **kwargs):
    kwargs.setdefault("relevance_threshold", 0.6)
    kwargs.setdefault("max_candidates", 10)
    kwargs.setdefault("scoring_concurrency", 3)
    return SourceDiscoverer(stores, discovery, scorer, clock=clock, **kwargs)


class TestDiscover:

    @pytest.mark.asyncio
    async def test_keeps_candidates_at_or_above_threshold(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        scores = dict(zip(URLS, [0.9, 0.3, 0.7, 0.5, 0.8]))
        discoverer = build(stores, clock, FakeDiscovery(candidates(*URLS)), FakeScorer(scores))

        result = await discoverer.discover(profile.id)

        assert len(result.added_sources) == 3
        assert result.message == "Discovered and added 3 new sources"
        assert {s.url for s in result.added_sources} == {URLS[0], URLS[2], URLS[4]}
        assert len(stores.sources.rows) == 3

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        discoverer = build(stores, clock, FakeDiscovery(candidates(URLS[0])), FakeScorer({URLS[0]: 0.6}))

        result = await discoverer.discover(profile.id)

        assert len(result.added_sources) == 1

    @pytest.mark.asyncio
    async def test_new_source_fields(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        discoverer = build(stores, clock, FakeDiscovery(candidates(URLS[2])), FakeScorer({URLS[2]: 0.75}))

        source = (await discoverer.discover(profile.id)).added_sources[0]

        assert source.profile_id == profile.id
        assert source.enabled is True
        assert source.source_type == "forum"
        assert source.relevance_score == 0.75
        assert source.relevance_notes == "looks relevant"
        assert source.discovered_at == NOW
        assert source.next_scrape_at == NOW + timedelta(hours=source.frequency_hours)

    @pytest.mark.asyncio
    async def test_known_urls_skipped_case_insensitively(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        await stores.sources.add(make_source(profile.id, url="HTTPS://NEWS.EXAMPLE.COM/A"))
        scorer = FakeScorer()
        discoverer = build(stores, clock, FakeDiscovery(candidates(URLS[0], URLS[1])), scorer)

        result = await discoverer.discover(profile.id)

        assert scorer.calls == [URLS[1]]
        assert [s.url for s in result.added_sources] == [URLS[1]]

    @pytest.mark.asyncio
    async def test_duplicates_within_batch_added_once(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        discoverer = build(stores, clock, FakeDiscovery(candidates(URLS[0], URLS[0].upper())), FakeScorer())

        result = await discoverer.discover(profile.id)

        assert len(result.added_sources) == 1

    @pytest.mark.asyncio
    async def test_other_profiles_sources_do_not_count_as_known(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        other = await stores.profiles.add(make_profile(user_id="user-2"))
        await stores.sources.add(make_source(other.id, url=URLS[0]))
        discoverer = build(stores, clock, FakeDiscovery(candidates(URLS[0])), FakeScorer())

        result = await discoverer.discover(profile.id)

        assert len(result.added_sources) == 1

    @pytest.mark.asyncio
    async def test_scoring_failure_defaults_to_medium(self, stores, clock):
        """A failed score is 0.5, below the default 0.6 threshold, so it's dropped."""
        profile = await stores.profiles.add(make_profile())
        discoverer = build(stores, clock, FakeDiscovery(candidates(URLS[0])), FakeScorer(failing=[URLS[0]]))

        result = await discoverer.discover(profile.id)

        assert result.added_sources == []

    @pytest.mark.asyncio
    async def test_scoring_failure_kept_with_low_threshold(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        discoverer = build(
            stores, clock, FakeDiscovery(candidates(URLS[0], URLS[1])),
            FakeScorer({URLS[1]: 0.9}, failing=[URLS[0]]),
            relevance_threshold=0.4,
        )

        result = await discoverer.discover(profile.id)

        failed = next(s for s in result.added_sources if s.url == URLS[0])
        assert failed.relevance_score == 0.5
        assert failed.relevance_notes == SCORING_FAILED_NOTE
        assert len(result.added_sources) == 2

    @pytest.mark.asyncio
    async def test_uses_profile_keywords_and_candidate_limit(self, stores, clock):
        profile = await stores.profiles.add(make_profile(keywords=["acme"]))
        discovery = FakeDiscovery(candidates(*URLS))
        discoverer = build(stores, clock, discovery, FakeScorer(), max_candidates=2)

        result = await discoverer.discover(profile.id)

        assert discovery.calls == [(["acme"], 2)]
        assert result.candidates_found == 2

    @pytest.mark.asyncio
    async def test_no_candidates(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        discoverer = build(stores, clock, FakeDiscovery([]), FakeScorer())

        result = await discoverer.discover(profile.id)

        assert result.added_sources == []
        assert result.message == "Discovered and added 0 new sources"

    @pytest.mark.asyncio
    async def test_persist_failure_skips_candidate(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        original_add = stores.sources.add

        async def flaky_add(source):
            if source.url == URLS[0]:
                raise StoreError("insert failed")
            return await original_add(source)

        stores.sources.add = flaky_add
        discoverer = build(stores, clock, FakeDiscovery(candidates(URLS[0], URLS[1])), FakeScorer())

        result = await discoverer.discover(profile.id)

        assert [s.url for s in result.added_sources] == [URLS[1]]


class TestDiscoverErrors:

    @pytest.mark.asyncio
    async def test_missing_profile_id(self, stores, clock):
        discoverer = build(stores, clock, FakeDiscovery(), FakeScorer())
        with pytest.raises(ValidationError):
            await discoverer.discover(None)

    @pytest.mark.asyncio
    async def test_unknown_profile(self, stores, clock):
        discovery = FakeDiscovery()
        discoverer = build(stores, clock, discovery, FakeScorer())
        with pytest.raises(NotFoundError):
            await discoverer.discover(42)
        assert discovery.calls == []

    @pytest.mark.asyncio
    async def test_search_failure_propagates(self, stores, clock):
        profile = await stores.profiles.add(make_profile())
        discovery = FakeDiscovery(error=ExternalServiceError("brave", "HTTP 500", transient=True))
        discoverer = build(stores, clock, discovery, FakeScorer())
        with pytest.raises(ExternalServiceError):
            await discoverer.discover(profile.id)
        assert stores.sources.rows == {}
