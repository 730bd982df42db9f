"""
Pipeline assembly: stores + capabilities + stages + task queue.

Every collaborator can be injected; anything not given is built from
settings (SQL or in-memory stores, Brave discovery, Claude analysis,
OpenAI embeddings, SMTP mail, local or Supabase object storage).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from .alerting.channels import SmtpMailer, create_event_publisher
from .alerting.generator import AlertGenerator
from .analyst.analyzer import AIAnalyzer
from .archivist.models import utc_now_naive
from .archivist.repositories import Stores
from .common.capabilities import (
    ContentAnalyzer,
    Embedder,
    EventPublisher,
    Mailer,
    ObjectStore,
    PageFetcher,
    RelevanceScorer,
    SourceDiscovery,
)
from .common.tasks import ANALYZE, GENERATE_ALERT
from .config.settings import settings
from .harvester.discoverer import SourceDiscoverer
from .harvester.scraper import ContentScraper
from .scheduler.cycle import MonitoringScheduler
from .scheduler.task_queue import TaskQueue

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    stores: Stores
    queue: TaskQueue
    discoverer: SourceDiscoverer
    scraper: ContentScraper
    analyzer: AIAnalyzer
    alerts: AlertGenerator
    scheduler: MonitoringScheduler
    closers: List[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def start(self):
        await self.queue.start()

    async def close(self):
        await self.queue.stop()
        for close in self.closers:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing pipeline resource: {e}")


def default_stores() -> Stores:
    if settings.storage_backend == "memory":
        from .archivist.memory_store import create_memory_stores
        return create_memory_stores()
    from .archivist.sql_store import create_sql_stores
    return create_sql_stores()


def build_pipeline(
    stores: Optional[Stores] = None,
    *,
    discovery: Optional[SourceDiscovery] = None,
    scorer: Optional[RelevanceScorer] = None,
    fetcher: Optional[PageFetcher] = None,
    object_store: Optional[ObjectStore] = None,
    content_analyzer: Optional[ContentAnalyzer] = None,
    embedder: Optional[Embedder] = None,
    publisher: Optional[EventPublisher] = None,
    mailer: Optional[Mailer] = None,
    queue: Optional[TaskQueue] = None,
    clock: Callable[[], datetime] = utc_now_naive,
) -> Pipeline:
    stores = stores or default_stores()
    queue = queue or TaskQueue()
    closers = []

    if discovery is None:
        from .harvester.source_search import BraveSourceSearch
        discovery = BraveSourceSearch()
        closers.append(discovery.close)
    if scorer is None or content_analyzer is None:
        from .analyst.llm import AnthropicContentAnalyzer, AnthropicRelevanceScorer, create_instructor_client
        client = create_instructor_client()
        scorer = scorer or AnthropicRelevanceScorer(client)
        content_analyzer = content_analyzer or AnthropicContentAnalyzer(client)
    if embedder is None:
        from .analyst.llm import OpenAIEmbedder
        embedder = OpenAIEmbedder()
    if fetcher is None:
        from .harvester.fetchers import create_page_fetcher
        fetcher = create_page_fetcher()
        closers.append(fetcher.close)
    if object_store is None:
        from .harvester.object_store import create_object_store
        object_store = create_object_store()

    alerts = AlertGenerator(
        stores,
        publisher=publisher or create_event_publisher(),
        mailer=mailer or SmtpMailer(),
        clock=clock,
    )
    analyzer = AIAnalyzer(stores, content_analyzer, embedder, alerts, dispatcher=queue, clock=clock)
    scraper = ContentScraper(stores, fetcher, object_store, dispatcher=queue, clock=clock)
    discoverer = SourceDiscoverer(stores, discovery, scorer, clock=clock)
    scheduler = MonitoringScheduler(stores, discoverer, scraper, clock=clock)

    queue.register(ANALYZE, analyzer.analyze)
    queue.register(GENERATE_ALERT, alerts.generate_alert)

    return Pipeline(
        stores=stores,
        queue=queue,
        discoverer=discoverer,
        scraper=scraper,
        analyzer=analyzer,
        alerts=alerts,
        scheduler=scheduler,
        closers=closers,
    )
