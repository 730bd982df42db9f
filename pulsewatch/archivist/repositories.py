"""
Per-entity repository interfaces.

Stages depend on these protocols only; `sql_store` (PostgreSQL via
SQLModel) and `memory_store` (tests, local runs) implement them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from .models import (
    Alert,
    DataSource,
    Insight,
    MonitoringProfile,
    Notification,
    RawContent,
)


class ProfileStore(Protocol):
    async def get(self, profile_id: int) -> Optional[MonitoringProfile]: ...

    async def add(self, profile: MonitoringProfile) -> MonitoringProfile: ...

    async def list_due(self, now: datetime) -> List[MonitoringProfile]: ...

    async def reschedule(self, profile_id: int, last_run_at: datetime, next_run_at: datetime) -> None: ...


class SourceStore(Protocol):
    async def get(self, source_id: int) -> Optional[DataSource]: ...

    async def add(self, source: DataSource) -> DataSource: ...

    async def list_due(self, profile_id: int, now: datetime) -> List[DataSource]: ...

    async def known_urls(self, profile_id: int) -> Set[str]:
        """Lowercased URLs of every source of the profile (enabled or not)."""
        ...

    async def record_scrape(self, source_id: int, last_scraped_at: datetime, next_scrape_at: datetime) -> None: ...


class ContentStore(Protocol):
    async def get(self, content_id: int) -> Optional[RawContent]: ...

    async def insert_if_absent(self, content: RawContent) -> Tuple[RawContent, bool]:
        """Atomically insert unless (source_id, content_hash) exists.

        Returns (row, created). When created is False the row is the
        existing one and nothing was written.
        """
        ...

    async def find_by_hash(self, source_id: int, content_hash: str) -> Optional[RawContent]: ...

    async def latest_for_source(self, source_id: int) -> Optional[RawContent]: ...

    async def mark_processed(self, content_id: int) -> None: ...

    async def list_unprocessed(self, limit: int) -> List[RawContent]: ...


class InsightStore(Protocol):
    async def get(self, insight_id: int) -> Optional[Insight]: ...

    async def add_if_absent(self, insight: Insight) -> Tuple[Insight, bool]:
        """Insert unless an insight already exists for insight.raw_content_id."""
        ...

    async def get_by_content(self, raw_content_id: int) -> Optional[Insight]: ...

    async def list_for_profile(self, profile_id: int, limit: int = 50) -> List[Insight]:
        """Newest first by processed_at."""
        ...


    async def similar(
        self,
        embedding: Sequence[float],
        profile_id: int,
        threshold: float,
        limit: int,
        exclude_id: Optional[int] = None,
    ) -> List[Tuple[Insight, float]]: ...


class AlertStore(Protocol):
    async def get(self, alert_id: int) -> Optional[Alert]: ...

    async def add_if_absent(self, alert: Alert) -> Tuple[Alert, bool]:
        """Insert unless an alert already exists for alert.insight_id."""
        ...

    async def list_for_profile(
        self, profile_id: int, status: Optional[str] = None, limit: int = 50
    ) -> List[Alert]: ...

    async def update_status(
        self, alert_id: int, status: str, user_notes: Optional[str], now: datetime
    ) -> Optional[Alert]: ...

    async def counts_by_severity(self, profile_id: int) -> Dict[str, int]: ...


class NotificationStore(Protocol):
    async def add(self, notification: Notification) -> Notification: ...

    async def list_for_user(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]: ...


@dataclass
class Stores:
    """The set of repositories one pipeline instance works against."""
    profiles: ProfileStore
    sources: SourceStore
    contents: ContentStore
    insights: InsightStore
    alerts: AlertStore
    notifications: NotificationStore
