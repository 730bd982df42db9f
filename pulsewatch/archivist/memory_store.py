"""
In-memory implementations of the repository protocols.

Used by the test suite and by `storage_backend=memory` local runs. Every
check-then-insert runs without an await in between, so it is atomic with
respect to other coroutines on the event loop.
"""

from datetime import datetime
from itertools import count
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..common.text_utils import cosine_similarity
from ..common.url_utils import url_key
from .models import (
    Alert,
    DataSource,
    Insight,
    MonitoringProfile,
    Notification,
    RawContent,
    Severity,
)
from .repositories import Stores


class _MemoryStore:
    def __init__(self):
        self.rows: Dict[int, object] = {}
        self._ids = count(1)

    def _insert(self, row):
        row.id = next(self._ids)
        self.rows[row.id] = row
        return row


class MemoryProfileStore(_MemoryStore):
    async def get(self, profile_id: int) -> Optional[MonitoringProfile]:
        return self.rows.get(profile_id)

    async def add(self, profile: MonitoringProfile) -> MonitoringProfile:
        return self._insert(profile)

    async def list_due(self, now: datetime) -> List[MonitoringProfile]:
        due = [p for p in self.rows.values() if p.next_run_at <= now]
        return sorted(due, key=lambda p: p.next_run_at)

    async def reschedule(self, profile_id: int, last_run_at: datetime, next_run_at: datetime) -> None:
        profile = self.rows.get(profile_id)
        if profile is not None:
            profile.last_run_at = last_run_at
            profile.next_run_at = next_run_at


class MemorySourceStore(_MemoryStore):
    async def get(self, source_id: int) -> Optional[DataSource]:
        return self.rows.get(source_id)

    async def add(self, source: DataSource) -> DataSource:
        return self._insert(source)

    async def list_due(self, profile_id: int, now: datetime) -> List[DataSource]:
        due = [
            s for s in self.rows.values()
            if s.profile_id == profile_id and s.enabled and s.next_scrape_at <= now
        ]
        return sorted(due, key=lambda s: s.next_scrape_at)

    async def known_urls(self, profile_id: int) -> Set[str]:
        return {url_key(s.url) for s in self.rows.values() if s.profile_id == profile_id}

    async def record_scrape(self, source_id: int, last_scraped_at: datetime, next_scrape_at: datetime) -> None:
        source = self.rows.get(source_id)
        if source is not None:
            source.last_scraped_at = last_scraped_at
            source.next_scrape_at = next_scrape_at


class MemoryContentStore(_MemoryStore):
    async def get(self, content_id: int) -> Optional[RawContent]:
        return self.rows.get(content_id)

    async def insert_if_absent(self, content: RawContent) -> Tuple[RawContent, bool]:
        existing = self._find(content.source_id, content.content_hash)
        if existing is not None:
            return existing, False
        return self._insert(content), True

    def _find(self, source_id: int, content_hash: str) -> Optional[RawContent]:
        for row in self.rows.values():
            if row.source_id == source_id and row.content_hash == content_hash:
                return row
        return None

    async def find_by_hash(self, source_id: int, content_hash: str) -> Optional[RawContent]:
        return self._find(source_id, content_hash)

    async def latest_for_source(self, source_id: int) -> Optional[RawContent]:
        rows = [r for r in self.rows.values() if r.source_id == source_id]
        if not rows:
            return None
        return max(rows, key=lambda r: (r.extracted_at, r.id))

    async def mark_processed(self, content_id: int) -> None:
        row = self.rows.get(content_id)
        if row is not None:
            row.ai_processed = True

    async def list_unprocessed(self, limit: int) -> List[RawContent]:
        pending = sorted(
            (r for r in self.rows.values() if not r.ai_processed),
            key=lambda r: (r.extracted_at, r.id),
        )
        return pending[:limit]


class MemoryInsightStore(_MemoryStore):
    async def get(self, insight_id: int) -> Optional[Insight]:
        return self.rows.get(insight_id)

    async def add_if_absent(self, insight: Insight) -> Tuple[Insight, bool]:
        existing = await self.get_by_content(insight.raw_content_id)
        if existing is not None:
            return existing, False
        return self._insert(insight), True

    async def get_by_content(self, raw_content_id: int) -> Optional[Insight]:
        for row in self.rows.values():
            if row.raw_content_id == raw_content_id:
                return row
        return None

    async def list_for_profile(self, profile_id: int, limit: int = 50) -> List[Insight]:
        rows = [i for i in self.rows.values() if i.profile_id == profile_id]
        rows.sort(key=lambda i: (i.processed_at, i.id), reverse=True)
        return rows[:limit]


    async def similar(
        self,
        embedding: Sequence[float],
        profile_id: int,
        threshold: float,
        limit: int,
        exclude_id: Optional[int] = None,
    ) -> List[Tuple[Insight, float]]:
        scored = []
        for row in self.rows.values():
            if row.profile_id != profile_id or row.embedding is None or row.id == exclude_id:
                continue
            score = cosine_similarity(embedding, row.embedding)
            if score >= threshold:
                scored.append((row, score))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]


class MemoryAlertStore(_MemoryStore):
    async def get(self, alert_id: int) -> Optional[Alert]:
        return self.rows.get(alert_id)

    async def add_if_absent(self, alert: Alert) -> Tuple[Alert, bool]:
        for row in self.rows.values():
            if row.insight_id == alert.insight_id:
                return row, False
        return self._insert(alert), True

    async def list_for_profile(
        self, profile_id: int, status: Optional[str] = None, limit: int = 50
    ) -> List[Alert]:
        rows = [
            a for a in self.rows.values()
            if a.profile_id == profile_id and (status is None or a.status == status)
        ]
        rows.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return rows[:limit]

    async def update_status(
        self, alert_id: int, status: str, user_notes: Optional[str], now: datetime
    ) -> Optional[Alert]:
        alert = self.rows.get(alert_id)
        if alert is None:
            return None
        alert.status = status
        if user_notes is not None:
            alert.user_notes = user_notes
        alert.updated_at = now
        return alert

    async def counts_by_severity(self, profile_id: int) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for alert in self.rows.values():
            if alert.profile_id == profile_id:
                counts[alert.severity] = counts.get(alert.severity, 0) + 1
        return counts


class MemoryNotificationStore(_MemoryStore):
    async def add(self, notification: Notification) -> Notification:
        return self._insert(notification)

    async def list_for_user(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        rows = [
            n for n in self.rows.values()
            if n.user_id == user_id and (not unread_only or not n.read)
        ]
        rows.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return rows[:limit]


def create_memory_stores() -> Stores:
    return Stores(
        profiles=MemoryProfileStore(),
        sources=MemorySourceStore(),
        contents=MemoryContentStore(),
        insights=MemoryInsightStore(),
        alerts=MemoryAlertStore(),
        notifications=MemoryNotificationStore(),
    )
