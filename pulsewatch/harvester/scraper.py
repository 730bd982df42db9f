"""
Content Scraper: fetch one source, dedup by content hash, store, hand off.

Every scrape that gets as far as loading the source advances the source's
schedule (last_scraped_at = now, next_scrape_at = now + frequency_hours),
whether the content was new, a duplicate, or the fetch failed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..archivist.models import DataSource, MonitoringProfile, RawContent, utc_now_naive
from ..archivist.repositories import Stores
from ..common.capabilities import FetchResult, ObjectStore, PageFetcher, ScrapeConfig
from ..common.errors import ExternalServiceError, NotFoundError, StoreError, ValidationError
from ..common.tasks import TaskDispatcher, analyze_task
from ..common.text_utils import content_fingerprint, text_similarity
from ..config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY_HOURS = 24


@dataclass
class ScrapeResult:
    source_id: int
    content_id: int
    content_hash: str
    is_duplicate: bool
    snapshot_url: Optional[str] = None
    screenshot_url: Optional[str] = None
    analysis_queued: bool = False

    @property
    def message(self) -> str:
        if self.is_duplicate:
            return "Content already exists, skipped storage"
        return "Content scraped and stored successfully"


class ContentScraper:
    def __init__(
        self,
        stores: Stores,
        fetcher: PageFetcher,
        object_store: Optional[ObjectStore],
        dispatcher: TaskDispatcher,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self.stores = stores
        self.fetcher = fetcher
        self.object_store = object_store
        self.dispatcher = dispatcher
        self.clock = clock

    async def scrape(self, source_id: Optional[int]) -> ScrapeResult:
        if source_id is None:
            raise ValidationError("source_id is required")

        source = await self.stores.sources.get(source_id)
        if source is None:
            raise NotFoundError("Source", source_id)
        profile = await self.stores.profiles.get(source.profile_id)
        if profile is None:
            raise NotFoundError("Profile", source.profile_id)

        now = self.clock()
        try:
            return await self._scrape(source, profile, now)
        finally:
            await self._reschedule(source, now)

    async def _scrape(self, source: DataSource, profile: MonitoringProfile, now: datetime) -> ScrapeResult:
        config = ScrapeConfig.from_dict(source.scrape_config)
        fetched = await self.fetcher.fetch(source.url, config)
        content_hash = content_fingerprint(fetched.text)

        existing = await self.stores.contents.find_by_hash(source.id, content_hash)
        if existing is not None:
            logger.info(f"Source #{source.id}: content unchanged (hash={content_hash}), skipping storage")
            return ScrapeResult(source.id, existing.id, content_hash, is_duplicate=True)

        previous = await self.stores.contents.latest_for_source(source.id)
        stamp = now.strftime("%Y%m%dT%H%M%S%f")
        base_path = f"{profile.user_id}/{source.id}/{source.id}_{stamp}"

        snapshot_ref = None
        if config.save_html and fetched.html:
            snapshot_ref = await self._store_object(
                settings.html_snapshot_bucket, f"{base_path}.html",
                fetched.html.encode("utf-8"), "text/html",
            )
        screenshot_ref = None
        if config.capture_screenshot and fetched.screenshot:
            screenshot_ref = await self._store_object(
                settings.screenshot_bucket, f"{base_path}.png", fetched.screenshot, "image/png",
            )

        content, created = await self.stores.contents.insert_if_absent(
            self._build_content(source, fetched, content_hash, now, snapshot_ref, screenshot_ref, previous)
        )
        if not created:
            # Lost a race with a concurrent scrape of identical text
            logger.info(f"Source #{source.id}: concurrent duplicate (hash={content_hash})")
            return ScrapeResult(source.id, content.id, content_hash, is_duplicate=True)

        logger.info(f"Source #{source.id}: stored content #{content.id} ({len(fetched.text)} chars)")
        queued = await self._trigger_analysis(content.id)
        return ScrapeResult(
            source_id=source.id,
            content_id=content.id,
            content_hash=content_hash,
            is_duplicate=False,
            snapshot_url=snapshot_ref,
            screenshot_url=screenshot_ref,
            analysis_queued=queued,
        )

    def _build_content(
        self,
        source: DataSource,
        fetched: FetchResult,
        content_hash: str,
        now: datetime,
        snapshot_ref: Optional[str],
        screenshot_ref: Optional[str],
        previous: Optional[RawContent],
    ) -> RawContent:
        similarity = text_similarity(previous.text, fetched.text) if previous else None
        return RawContent(
            source_id=source.id,
            profile_id=source.profile_id,
            content_url=fetched.url or source.url,
            text=fetched.text,
            content_hash=content_hash,
            extracted_at=now,
            snapshot_ref=snapshot_ref,
            screenshot_ref=screenshot_ref,
            similarity_to_previous=similarity,
            ai_processed=False,
        )

    async def _store_object(self, bucket: str, path: str, data: bytes, content_type: str) -> Optional[str]:
        if self.object_store is None:
            return None
        try:
            return await self.object_store.put(bucket, path, data, content_type)
        except ExternalServiceError as e:
            logger.warning(f"Failed to store {bucket}/{path}: {e}")
            return None

    async def _trigger_analysis(self, content_id: int) -> bool:
        try:
            await self.dispatcher.submit(analyze_task(content_id))
            return True
        except Exception as e:
            # Content stays ai_processed=False; the backfill job picks it up
            logger.error(f"ANALYSIS_TRIGGER_FAILED: content #{content_id}: {type(e).__name__}: {e}")
            return False

    async def _reschedule(self, source: DataSource, now: datetime):
        frequency = source.frequency_hours or DEFAULT_FREQUENCY_HOURS
        try:
            await self.stores.sources.record_scrape(source.id, now, now + timedelta(hours=frequency))
        except StoreError as e:
            logger.error(f"RESCHEDULE_FAILED: source #{source.id}: {e}")
