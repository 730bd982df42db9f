"""
Database models using SQLModel (SQLAlchemy + Pydantic).

Schema:
- MonitoringProfile: What a user monitors (keywords, cadence, alert policy)
- DataSource: A URL scraped on behalf of one profile
- RawContent: One distinct scrape result per (source, content hash)
- Insight: AI classification of one RawContent, with embedding
- Alert: Raised from an Insight when the profile's policy says so
- Notification: In-app delivery record for an Alert
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import SQLModel, Field

from ..config.settings import SCHEMA_EMBEDDING_DIMENSIONS as EMBEDDING_DIMENSIONS

# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utc_now_naive() -> datetime:
    """Return current UTC time as timezone-naive datetime.

    PostgreSQL TIMESTAMP WITHOUT TIME ZONE columns require naive datetimes.
    Using timezone-aware datetimes causes asyncpg DataError.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Sensitivity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationChannel(str, Enum):
    IN_APP = "in_app"
    EMAIL = "email"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class AlertStatus(str, Enum):
    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class MonitoringProfile(SQLModel, table=True):
    """A set of keywords monitored on a schedule for one user."""
    __tablename__ = "monitoring_profiles"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    keywords: List[str] = Field(default_factory=list, sa_column=Column(JSONType))
    frequency_hours: int = Field(default=24, ge=1)

    # Scheduling (owned by the Scheduler)
    last_run_at: Optional[datetime] = None
    next_run_at: datetime = Field(default_factory=utc_now_naive, index=True)
    created_at: datetime = Field(default_factory=utc_now_naive)

    # Policy (owned by external configuration)
    source_discovery_enabled: bool = Field(default=True)
    alert_sensitivity: str = Field(default=Sensitivity.MEDIUM.value)
    notification_channels: List[str] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP.value],
        sa_column=Column(JSONType),
    )
    notification_email: Optional[str] = None


class DataSource(SQLModel, table=True):
    """A URL monitored for one profile.

    URL uniqueness is case-insensitive and checked at discovery time
    against the owning profile's sources only (no global constraint).
    """
    __tablename__ = "data_sources"

    id: Optional[int] = Field(default=None, primary_key=True)
    profile_id: int = Field(foreign_key="monitoring_profiles.id", index=True)
    name: str
    url: str = Field(max_length=2000)
    source_type: str = Field(default="other")  # news, social, forum, blog, rss, other
    # {"selectors": [...], "capture_screenshot": bool, "save_html": bool}
    scrape_config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSONType))
    frequency_hours: int = Field(default=24, ge=1)
    enabled: bool = Field(default=True, index=True)

    last_scraped_at: Optional[datetime] = None
    next_scrape_at: datetime = Field(default_factory=utc_now_naive, index=True)

    # Discovery metadata (None for manually added sources)
    discovered_at: Optional[datetime] = None
    relevance_score: Optional[float] = None
    relevance_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now_naive)


class RawContent(SQLModel, table=True):
    """One distinct scrape result.

    (source_id, content_hash) is unique: this constraint is the dedup gate
    that makes concurrent check-then-insert safe.
    """
    __tablename__ = "raw_contents"
    __table_args__ = (
        UniqueConstraint("source_id", "content_hash", name="uq_raw_contents_source_hash"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_id: int = Field(foreign_key="data_sources.id", index=True)
    profile_id: int = Field(foreign_key="monitoring_profiles.id", index=True)
    content_url: str = Field(max_length=2000)
    text: str
    content_hash: str = Field(max_length=32)  # MD5 hex digest
    extracted_at: datetime = Field(default_factory=utc_now_naive)

    snapshot_ref: Optional[str] = None  # Object-store reference to HTML snapshot
    screenshot_ref: Optional[str] = None  # Object-store reference to PNG screenshot
    # Token overlap with the source's previous content (None for first scrape)
    similarity_to_previous: Optional[float] = None

    # Monotonic: False -> True once an Insight exists
    ai_processed: bool = Field(default=False, index=True)


class Insight(SQLModel, table=True):
    """AI classification of one RawContent."""
    __tablename__ = "insights"

    id: Optional[int] = Field(default=None, primary_key=True)
    raw_content_id: int = Field(foreign_key="raw_contents.id", unique=True, index=True)
    source_id: int = Field(foreign_key="data_sources.id", index=True)
    profile_id: int = Field(foreign_key="monitoring_profiles.id", index=True)

    summary: str
    sentiment: str  # positive, neutral, negative
    sentiment_score: float = Field(ge=-1.0, le=1.0)
    entities: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSONType))
    topics: List[str] = Field(default_factory=list, sa_column=Column(JSONType))
    is_crisis: bool = Field(default=False, index=True)
    is_opportunity: bool = Field(default=False, index=True)
    crisis_explanation: Optional[str] = None
    opportunity_explanation: Optional[str] = None
    # {"business": 1-5, "market": 1-5, "reputation": 1-5}
    impact_assessment: Dict[str, int] = Field(default_factory=dict, sa_column=Column(JSONType))
    key_insights: List[str] = Field(default_factory=list, sa_column=Column(JSONType))

    embedding: Optional[List[float]] = Field(
        default=None, sa_column=Column(Vector(EMBEDDING_DIMENSIONS))
    )
    processed_at: datetime = Field(default_factory=utc_now_naive)


class Alert(SQLModel, table=True):
    """An alert raised from an Insight. At most one per insight."""
    __tablename__ = "alerts"

    id: Optional[int] = Field(default=None, primary_key=True)
    profile_id: int = Field(foreign_key="monitoring_profiles.id", index=True)
    insight_id: int = Field(foreign_key="insights.id", unique=True, index=True)
    severity: str = Field(index=True)
    title: str
    status: str = Field(default=AlertStatus.NEW.value, index=True)
    user_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)


class Notification(SQLModel, table=True):
    """In-app delivery record."""
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    type: str = Field(default="alert")
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSONType))
    read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utc_now_naive)
