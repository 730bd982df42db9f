"""
Page fetchers: turn a source URL into text (plus optional HTML/screenshot).

- HttpPageFetcher: httpx + BeautifulSoup, retries 5xx/timeouts with backoff
- PlaywrightPageFetcher: headless Chromium for JS-heavy pages and screenshots
"""

import asyncio
import logging
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup, Comment

from ..common.capabilities import FetchResult, ScrapeConfig
from ..common.errors import ExternalServiceError
from ..common.http_client import BROWSER_AGENT, create_http_client
from ..common.retry import backoff_delay, is_transient_status
from ..config.settings import settings

logger = logging.getLogger(__name__)

NOISE_TAGS = ["script", "style", "nav", "header", "footer", "noscript"]


def extract_text(html: str, selectors: Optional[List[str]] = None) -> str:
    """Extract clean text from HTML.

    With selectors, only text inside matching elements is kept (in document
    order); if none match, the whole page is used.
    """
    soup = BeautifulSoup(html, "lxml")

    for element in soup(NOISE_TAGS):
        element.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    roots = []
    for selector in selectors or []:
        roots.extend(soup.select(selector))
    if not roots:
        roots = [soup]

    lines = []
    for root in roots:
        text = root.get_text(separator="\n", strip=True)
        lines.extend(line.strip() for line in text.splitlines() if line.strip())
    return "\n".join(lines)


class HttpPageFetcher:
    """Fetch pages over plain HTTP. Never produces screenshots."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, max_retries: Optional[int] = None):
        self.client = client or create_http_client(browser=True)
        self.max_retries = max_retries or settings.max_retries

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def fetch(self, url: str, config: ScrapeConfig) -> FetchResult:
        response = await self._fetch_with_retry(url)
        html = response.text
        if config.capture_screenshot:
            logger.debug(f"Screenshot requested for {url} but HTTP fetcher cannot render pages")
        return FetchResult(
            url=str(response.url),
            text=extract_text(html, config.selectors),
            html=html,
            status_code=response.status_code,
        )

    async def _fetch_with_retry(self, url: str) -> httpx.Response:
        """
        Fetch URL with retry logic for transient errors.

        5xx, 429 and timeouts retry with exponential backoff; other 4xx fail
        fast since the resource likely doesn't exist.

        Raises:
            ExternalServiceError: on 4xx or after all retries exhausted
        """
        last_error = None
        for attempt in range(self.max_retries):
            try:
                response = await self.client.get(url)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code < 400:
                    return response
                if not is_transient_status(response.status_code):
                    raise ExternalServiceError("fetch", f"HTTP {response.status_code} for {url}")
                last_error = f"HTTP {response.status_code}"

            if attempt < self.max_retries - 1:
                delay = backoff_delay(attempt)
                logger.warning(
                    f"{last_error} fetching {url}, "
                    f"retrying in {delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)

        raise ExternalServiceError(
            "fetch", f"{url} failed after {self.max_retries} attempts: {last_error}", transient=True
        )


class PlaywrightPageFetcher:
    """
    Render pages with headless Chromium.

    The browser starts lazily on first fetch and is shared; concurrent
    fetches are bounded by max_pages.
    """

    DEFAULT_WAIT_MS = 1500

    def __init__(self, max_pages: int = 3, timeout_ms: Optional[int] = None):
        self._max_pages = max_pages
        self._timeout_ms = timeout_ms or settings.request_timeout * 1000
        self._playwright = None
        self._browser = None
        self._context = None
        self._start_lock = asyncio.Lock()
        self._pages = asyncio.Semaphore(max_pages)

    async def _ensure_started(self):
        async with self._start_lock:
            if self._context is not None:
                return
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=["--disable-dev-shm-usage", "--no-sandbox"],
            )
            self._context = await self._browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=BROWSER_AGENT,
                java_script_enabled=True,
            )
            logger.info("Playwright browser started")

    async def close(self):
        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()
        self._context = self._browser = self._playwright = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def fetch(self, url: str, config: ScrapeConfig) -> FetchResult:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        await self._ensure_started()
        async with self._pages:
            page = await self._context.new_page()
            try:
                response = await page.goto(url, wait_until="load", timeout=self._timeout_ms)
                await page.wait_for_timeout(self.DEFAULT_WAIT_MS)
                status = response.status if response else None
                if status is not None and status >= 400:
                    raise ExternalServiceError(
                        "fetch", f"HTTP {status} for {url}", transient=is_transient_status(status)
                    )
                html = await page.content()
                screenshot = None
                if config.capture_screenshot:
                    screenshot = await page.screenshot(full_page=True, type="png")
                return FetchResult(
                    url=page.url,
                    text=extract_text(html, config.selectors),
                    html=html,
                    screenshot=screenshot,
                    status_code=status,
                )
            except PlaywrightTimeoutError as e:
                raise ExternalServiceError("fetch", f"render timeout for {url}: {e}", transient=True)
            except PlaywrightError as e:
                raise ExternalServiceError("fetch", f"render failed for {url}: {e}", transient=True)
            finally:
                await page.close()


def create_page_fetcher(backend: Optional[str] = None):
    """Fetcher for the configured backend ("http" or "playwright")."""
    backend = backend or settings.fetch_backend
    if backend == "playwright":
        return PlaywrightPageFetcher()
    return HttpPageFetcher()
