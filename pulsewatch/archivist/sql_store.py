"""
SQL implementations of the repository protocols (SQLModel + async SQLAlchemy).

Uniqueness races (same content hash scraped twice, same insight analyzed
twice, same alert generated twice) are settled by unique constraints with
INSERT ... ON CONFLICT DO NOTHING RETURNING, then a re-select of the
winning row.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..common.errors import StoreError
from .database import get_session
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

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT (both support ON CONFLICT DO NOTHING)."""
    if session.bind is not None and session.bind.dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


class _SqlStore:
    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with get_session(self._factory) as session:
                yield session
        except SQLAlchemyError as e:
            raise StoreError(f"{type(self).__name__}: {e}") from e

    async def _add(self, row):
        async with self._session() as session:
            session.add(row)
            await session.flush()
            await session.refresh(row)
        return row

    async def _insert_if_absent(self, model, row, conflict_columns: List[str], lookup):
        """ON CONFLICT DO NOTHING insert; returns (row, created)."""
        values = row.model_dump(exclude={"id"})
        async with self._session() as session:
            insert = _insert_for(session)
            stmt = (
                insert(model)
                .values(**values)
                .on_conflict_do_nothing(index_elements=conflict_columns)
                .returning(model)
            )
            result = await session.execute(stmt)
            created = result.scalar_one_or_none()
            if created is not None:
                return created, True

            existing = (await session.execute(lookup)).scalar_one_or_none()
            if existing is None:
                raise StoreError(
                    f"{model.__tablename__}: conflict on {conflict_columns} but no existing row found"
                )
            return existing, False


class SqlProfileStore(_SqlStore):
    async def get(self, profile_id: int) -> Optional[MonitoringProfile]:
        async with self._session() as session:
            return await session.get(MonitoringProfile, profile_id)

    async def add(self, profile: MonitoringProfile) -> MonitoringProfile:
        return await self._add(profile)

    async def list_due(self, now: datetime) -> List[MonitoringProfile]:
        stmt = (
            select(MonitoringProfile)
            .where(MonitoringProfile.next_run_at <= now)
            .order_by(MonitoringProfile.next_run_at)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def reschedule(self, profile_id: int, last_run_at: datetime, next_run_at: datetime) -> None:
        stmt = (
            update(MonitoringProfile)
            .where(MonitoringProfile.id == profile_id)
            .values(last_run_at=last_run_at, next_run_at=next_run_at)
        )
        async with self._session() as session:
            await session.execute(stmt)


class SqlSourceStore(_SqlStore):
    async def get(self, source_id: int) -> Optional[DataSource]:
        async with self._session() as session:
            return await session.get(DataSource, source_id)

    async def add(self, source: DataSource) -> DataSource:
        return await self._add(source)

    async def list_due(self, profile_id: int, now: datetime) -> List[DataSource]:
        stmt = (
            select(DataSource)
            .where(
                DataSource.profile_id == profile_id,
                DataSource.enabled == True,  # noqa: E712
                DataSource.next_scrape_at <= now,
            )
            .order_by(DataSource.next_scrape_at)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def known_urls(self, profile_id: int) -> Set[str]:
        stmt = select(func.lower(DataSource.url)).where(DataSource.profile_id == profile_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            return {url.strip() for url in result.scalars().all()}

    async def record_scrape(self, source_id: int, last_scraped_at: datetime, next_scrape_at: datetime) -> None:
        stmt = (
            update(DataSource)
            .where(DataSource.id == source_id)
            .values(last_scraped_at=last_scraped_at, next_scrape_at=next_scrape_at)
        )
        async with self._session() as session:
            await session.execute(stmt)


class SqlContentStore(_SqlStore):
    async def get(self, content_id: int) -> Optional[RawContent]:
        async with self._session() as session:
            return await session.get(RawContent, content_id)

    async def insert_if_absent(self, content: RawContent) -> Tuple[RawContent, bool]:
        lookup = select(RawContent).where(
            RawContent.source_id == content.source_id,
            RawContent.content_hash == content.content_hash,
        )
        row, created = await self._insert_if_absent(
            RawContent, content, ["source_id", "content_hash"], lookup
        )
        if not created:
            logger.debug(
                f"Duplicate content for source #{content.source_id} (hash={content.content_hash})"
            )
        return row, created

    async def find_by_hash(self, source_id: int, content_hash: str) -> Optional[RawContent]:
        stmt = select(RawContent).where(
            RawContent.source_id == source_id,
            RawContent.content_hash == content_hash,
        )
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def latest_for_source(self, source_id: int) -> Optional[RawContent]:
        stmt = (
            select(RawContent)
            .where(RawContent.source_id == source_id)
            .order_by(RawContent.extracted_at.desc(), RawContent.id.desc())
            .limit(1)
        )
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def mark_processed(self, content_id: int) -> None:
        stmt = update(RawContent).where(RawContent.id == content_id).values(ai_processed=True)
        async with self._session() as session:
            await session.execute(stmt)

    async def list_unprocessed(self, limit: int) -> List[RawContent]:
        stmt = (
            select(RawContent)
            .where(RawContent.ai_processed == False)  # noqa: E712
            .order_by(RawContent.extracted_at)
            .limit(limit)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


class SqlInsightStore(_SqlStore):
    async def get(self, insight_id: int) -> Optional[Insight]:
        async with self._session() as session:
            return await session.get(Insight, insight_id)

    async def add_if_absent(self, insight: Insight) -> Tuple[Insight, bool]:
        lookup = select(Insight).where(Insight.raw_content_id == insight.raw_content_id)
        return await self._insert_if_absent(Insight, insight, ["raw_content_id"], lookup)

    async def get_by_content(self, raw_content_id: int) -> Optional[Insight]:
        stmt = select(Insight).where(Insight.raw_content_id == raw_content_id)
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def list_for_profile(self, profile_id: int, limit: int = 50) -> List[Insight]:
        stmt = (
            select(Insight)
            .where(Insight.profile_id == profile_id)
            .order_by(Insight.processed_at.desc(), Insight.id.desc())
            .limit(limit)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


    async def similar(
        self,
        embedding: Sequence[float],
        profile_id: int,
        threshold: float,
        limit: int,
        exclude_id: Optional[int] = None,
    ) -> List[Tuple[Insight, float]]:
        """Nearest insights by pgvector cosine distance (PostgreSQL only)."""
        distance = Insight.embedding.cosine_distance(list(embedding))
        stmt = (
            select(Insight, distance.label("distance"))
            .where(
                Insight.profile_id == profile_id,
                Insight.embedding.is_not(None),
                distance <= 1 - threshold,
            )
            .order_by(distance)
            .limit(limit)
        )
        if exclude_id is not None:
            stmt = stmt.where(Insight.id != exclude_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [(insight, 1 - float(dist)) for insight, dist in result.all()]


class SqlAlertStore(_SqlStore):
    async def get(self, alert_id: int) -> Optional[Alert]:
        async with self._session() as session:
            return await session.get(Alert, alert_id)

    async def add_if_absent(self, alert: Alert) -> Tuple[Alert, bool]:
        lookup = select(Alert).where(Alert.insight_id == alert.insight_id)
        return await self._insert_if_absent(Alert, alert, ["insight_id"], lookup)

    async def list_for_profile(
        self, profile_id: int, status: Optional[str] = None, limit: int = 50
    ) -> List[Alert]:
        stmt = select(Alert).where(Alert.profile_id == profile_id)
        if status:
            stmt = stmt.where(Alert.status == status)
        stmt = stmt.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_status(
        self, alert_id: int, status: str, user_notes: Optional[str], now: datetime
    ) -> Optional[Alert]:
        async with self._session() as session:
            alert = await session.get(Alert, alert_id)
            if alert is None:
                return None
            alert.status = status
            if user_notes is not None:
                alert.user_notes = user_notes
            alert.updated_at = now
            session.add(alert)
            return alert

    async def counts_by_severity(self, profile_id: int) -> Dict[str, int]:
        stmt = (
            select(Alert.severity, func.count(Alert.id))
            .where(Alert.profile_id == profile_id)
            .group_by(Alert.severity)
        )
        counts = {severity.value: 0 for severity in Severity}
        async with self._session() as session:
            for severity, count in (await session.execute(stmt)).all():
                counts[severity] = count
        return counts


class SqlNotificationStore(_SqlStore):
    async def add(self, notification: Notification) -> Notification:
        return await self._add(notification)

    async def list_for_user(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read == False)  # noqa: E712
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


def create_sql_stores(session_factory: Optional[async_sessionmaker] = None) -> Stores:
    """Build the full set of SQL repositories over one session factory."""
    return Stores(
        profiles=SqlProfileStore(session_factory),
        sources=SqlSourceStore(session_factory),
        contents=SqlContentStore(session_factory),
        insights=SqlInsightStore(session_factory),
        alerts=SqlAlertStore(session_factory),
        notifications=SqlNotificationStore(session_factory),
    )
