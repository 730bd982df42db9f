"""
Tests for Brave-backed source discovery: query building, host collapsing
and the retry policy, against an httpx MockTransport.
"""

import httpx
import pytest

from pulsewatch.common.errors import ExternalServiceError
from pulsewatch.harvester.source_search import BraveSourceSearch, build_search_query, retry_after_seconds


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr("pulsewatch.harvester.source_search.backoff_delay", lambda attempt, base: 0.0)


def brave_payload(*urls):
    return {"web": {"results": [{"url": u, "title": f"Title {i}", "description": "d"} for i, u in enumerate(urls)]}}


def make_search(*responses, max_retries=3):
    """Each response is an httpx.Response, or an exception to raise."""
    queue = list(responses)
    requests = []

    def handler(request):
        requests.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    search = BraveSourceSearch(api_key="k", client=client, max_retries=max_retries)
    return search, requests


class TestBuildSearchQuery:

    def test_quotes_phrases(self):
        assert build_search_query(["Acme Corp", "widgets", "  "]) == '"Acme Corp" OR widgets'

    def test_empty(self):
        assert build_search_query([]) == ""


class TestRetryAfter:

    def test_numeric(self):
        assert retry_after_seconds(httpx.Response(429, headers={"Retry-After": "3"})) == 3.0

    def test_http_date_falls_back(self):
        response = httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"})
        assert retry_after_seconds(response) == 60.0


class TestBraveSourceSearch:

    @pytest.mark.asyncio
    async def test_collapses_hosts_and_limits(self):
        search, requests = make_search(httpx.Response(200, json=brave_payload(
            "https://news.example.com/a",
            "https://news.example.com/b",
            "not a url",
            "https://blog.example.com/x",
            "https://forum.example.org/t",
        )))

        candidates = await search.discover(["Acme Corp"], limit=2)

        assert [c.url for c in candidates] == ["https://news.example.com/a", "https://blog.example.com/x"]
        assert candidates[1].source_type == "blog"
        assert requests[0].url.params["q"] == '"Acme Corp"'
        assert requests[0].url.params["count"] == "4"
        await search.close()

    @pytest.mark.asyncio
    async def test_no_keywords_no_request(self):
        search, requests = make_search(httpx.Response(200, json=brave_payload()))
        assert await search.discover([" "], limit=5) == []
        assert requests == []

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        search, requests = make_search(
            httpx.Response(503),
            httpx.Response(200, json=brave_payload("https://news.example.com/a")),
        )

        candidates = await search.discover(["acme"], limit=5)

        assert len(requests) == 2
        assert len(candidates) == 1

    @pytest.mark.asyncio
    async def test_network_error_exhausts_retries(self):
        search, requests = make_search(httpx.ConnectError("refused"), max_retries=2)

        with pytest.raises(ExternalServiceError) as exc:
            await search.discover(["acme"], limit=5)

        assert exc.value.transient is True
        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        search, requests = make_search(httpx.Response(401))

        with pytest.raises(ExternalServiceError) as exc:
            await search.discover(["acme"], limit=5)

        assert exc.value.transient is False
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_missing_key(self):
        search = BraveSourceSearch(api_key="")
        with pytest.raises(ExternalServiceError):
            await search.discover(["acme"], limit=5)
