"""
httpx client construction shared by the page fetcher and Brave search.
"""

from typing import Dict, Optional

import httpx

from ..config.settings import settings

BOT_AGENT = "PulseWatch/0.1 (+https://pulsewatch.io/bot)"

# Some news sites serve an empty shell to non-browser agents
BROWSER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

POOL_LIMITS = httpx.Limits(max_connections=20, max_keepalive_connections=10)


def create_http_client(
    *,
    browser: bool = False,
    timeout: Optional[float] = None,
    headers: Optional[Dict[str, str]] = None,
) -> httpx.AsyncClient:
    merged = {"User-Agent": BROWSER_AGENT if browser else BOT_AGENT}
    merged.update(headers or {})
    return httpx.AsyncClient(
        timeout=timeout or settings.request_timeout,
        headers=merged,
        limits=POOL_LIMITS,
        follow_redirects=True,
    )
