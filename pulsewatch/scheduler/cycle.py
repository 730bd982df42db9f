"""
Monitoring cycle driver.

One cycle: due profiles -> (discovery) -> due sources -> scrape. Profiles and
sources run in bounded pools; a failure is contained to the profile or
source it happened in. Every processed profile is rescheduled to
now + frequency_hours, including after errors, so a broken profile cannot
be retried in a tight loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..archivist.models import DataSource, MonitoringProfile, utc_now_naive
from ..archivist.repositories import Stores
from ..config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY_HOURS = 24


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    profiles_processed: int = 0
    profiles_failed: int = 0
    discovery_failures: int = 0
    sources_scraped: int = 0
    sources_failed: int = 0
    skipped: bool = False
    success: bool = True
    error: Optional[str] = None

    @property
    def message(self) -> str:
        if self.skipped:
            return "Monitoring cycle already running, skipped"
        if not self.success:
            return f"Monitoring cycle failed: {self.error}"
        return f"Processed {self.profiles_processed} profiles"


class MonitoringScheduler:
    def __init__(
        self,
        stores: Stores,
        discoverer,
        scraper,
        clock: Callable[[], datetime] = utc_now_naive,
        max_parallel_profiles: Optional[int] = None,
        max_parallel_sources: Optional[int] = None,
        source_timeout: Optional[float] = None,
    ):
        self.stores = stores
        self.discoverer = discoverer
        self.scraper = scraper
        self.clock = clock
        self.max_parallel_profiles = max_parallel_profiles or settings.max_parallel_profiles
        self.max_parallel_sources = max_parallel_sources or settings.max_parallel_sources
        self.source_timeout = source_timeout or settings.source_scrape_timeout
        self._cycle_lock = asyncio.Lock()

    async def run_cycle(self) -> CycleReport:
        """Run one cycle. Never raises; failures are reported in the CycleReport."""
        if self._cycle_lock.locked():
            logger.warning("CYCLE_SKIPPED: previous monitoring cycle still running")
            return CycleReport(started_at=self.clock(), finished_at=self.clock(), skipped=True)

        async with self._cycle_lock:
            now = self.clock()
            report = CycleReport(started_at=now)
            try:
                profiles = await self.stores.profiles.list_due(now)
            except Exception as e:
                logger.error(f"CYCLE_FAILED: could not load due profiles: {e}", exc_info=True)
                report.success = False
                report.error = str(e)
                report.finished_at = self.clock()
                return report

            logger.info(f"Monitoring cycle started: {len(profiles)} due profiles")
            slots = asyncio.Semaphore(self.max_parallel_profiles)

            async def run_profile(profile: MonitoringProfile):
                async with slots:
                    await self._process_profile(profile, now, report)

            await asyncio.gather(*(run_profile(p) for p in profiles))

            report.profiles_processed = len(profiles)
            report.finished_at = self.clock()
            logger.info(
                f"Monitoring cycle finished: {report.profiles_processed} profiles "
                f"({report.profiles_failed} failed), {report.sources_scraped} sources scraped "
                f"({report.sources_failed} failed)"
            )
            return report

    async def _process_profile(self, profile: MonitoringProfile, now: datetime, report: CycleReport):
        try:
            if profile.source_discovery_enabled:
                try:
                    discovery = await self.discoverer.discover(profile.id)
                    logger.info(f"Profile #{profile.id}: {discovery.message}")
                except Exception as e:
                    report.discovery_failures += 1
                    logger.error(f"Discovery failed for profile #{profile.id}: {type(e).__name__}: {e}")

            sources = await self.stores.sources.list_due(profile.id, now)
            slots = asyncio.Semaphore(self.max_parallel_sources)
            outcomes = await asyncio.gather(*(self._scrape_source(source, slots) for source in sources))
            report.sources_scraped += sum(1 for ok in outcomes if ok)
            report.sources_failed += sum(1 for ok in outcomes if not ok)
        except Exception as e:
            report.profiles_failed += 1
            logger.error(f"Profile #{profile.id} failed: {type(e).__name__}: {e}", exc_info=True)
        finally:
            frequency = profile.frequency_hours or DEFAULT_FREQUENCY_HOURS
            try:
                await self.stores.profiles.reschedule(profile.id, now, now + timedelta(hours=frequency))
            except Exception as e:
                logger.error(f"RESCHEDULE_FAILED: profile #{profile.id}: {e}")

    async def _scrape_source(self, source: DataSource, slots: asyncio.Semaphore) -> bool:
        async with slots:
            try:
                result = await asyncio.wait_for(self.scraper.scrape(source.id), timeout=self.source_timeout)
                logger.debug(f"Source #{source.id}: {result.message}")
                return True
            except asyncio.TimeoutError:
                logger.error(f"SCRAPE_TIMEOUT: source #{source.id} ({source.url}) timed out after {self.source_timeout}s")
                return False
            except Exception as e:
                logger.error(f"Scrape failed for source #{source.id} ({source.url}): {type(e).__name__}: {e}")
                return False
