"""
Source discovery via Brave web search.

Turns a profile's keywords into candidate sources. Search results for the
same host are collapsed so one site doesn't crowd out the rest.

Retries: 5xx, timeouts and connection errors back off exponentially,
429 honours a numeric Retry-After. Other 4xx fail at once.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from ..common.capabilities import SourceCandidate
from ..common.errors import ExternalServiceError
from ..common.http_client import create_http_client
from ..common.retry import backoff_delay, is_transient_status
from ..common.url_utils import infer_source_type, is_valid_url
from ..config.settings import settings

logger = logging.getLogger(__name__)

BRAVE_WEB_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
DEFAULT_RETRY_AFTER = 60.0
MAX_RESULTS_PER_QUERY = 20


def build_search_query(keywords: List[str]) -> str:
    """Quote multi-word keywords and OR them together."""
    terms = []
    for keyword in keywords:
        keyword = keyword.strip()
        if not keyword:
            continue
        terms.append(f'"{keyword}"' if " " in keyword else keyword)
    return " OR ".join(terms)


def retry_after_seconds(response: httpx.Response) -> float:
    # HTTP-date values are not worth parsing here
    value = response.headers.get("Retry-After", "").strip()
    return float(value) if value.isdigit() else DEFAULT_RETRY_AFTER


class BraveSourceSearch:
    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        self.api_key = settings.brave_search_key if api_key is None else api_key
        self.max_retries = max_retries or settings.brave_search_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.brave_search_backoff_base
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = create_http_client(
                timeout=settings.brave_search_timeout,
                headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
            )
        return self._client

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def search(self, query: str, count: int) -> List[Dict[str, Any]]:
        """Raw Brave web results (`url`, `title`, usually `description`)."""
        if not self.api_key:
            raise ExternalServiceError("brave", "BRAVE_SEARCH_KEY not configured")

        failure = "no attempts made"
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._http().get(BRAVE_WEB_SEARCH_URL, params={"q": query, "count": count})
            except httpx.TransportError as e:
                failure = type(e).__name__
                wait = backoff_delay(attempt - 1, self.backoff_base)
            else:
                status = response.status_code
                if not is_transient_status(status):
                    if status >= 400:
                        raise ExternalServiceError("brave", f"HTTP {status}")
                    try:
                        payload = response.json()
                    except ValueError as e:
                        raise ExternalServiceError("brave", f"malformed JSON: {e}")
                    return (payload.get("web") or {}).get("results") or []
                failure = f"HTTP {status}"
                wait = retry_after_seconds(response) if status == 429 else backoff_delay(attempt - 1, self.backoff_base)

            if attempt < self.max_retries:
                logger.warning(f"BRAVE_RETRY: {failure}, waiting {wait:.1f}s (attempt {attempt}/{self.max_retries})")
                await asyncio.sleep(wait)

        raise ExternalServiceError("brave", f"gave up after {self.max_retries} attempts: {failure}", transient=True)

    async def discover(self, keywords: List[str], limit: int) -> List[SourceCandidate]:
        query = build_search_query(keywords)
        if not query:
            return []
        results = await self.search(query, count=min(limit * 2, MAX_RESULTS_PER_QUERY))

        candidates = []
        seen_hosts = set()
        for result in results:
            url = (result.get("url") or "").strip()
            if not is_valid_url(url):
                continue
            host = urlparse(url.lower()).netloc
            if host in seen_hosts:
                continue
            seen_hosts.add(host)
            candidates.append(
                SourceCandidate(
                    url=url,
                    title=result.get("title") or host,
                    description=result.get("description") or "",
                    source_type=infer_source_type(url),
                )
            )
            if len(candidates) >= limit:
                break

        logger.info(f"Brave discovery for '{query[:60]}' returned {len(candidates)} candidates")
        return candidates
