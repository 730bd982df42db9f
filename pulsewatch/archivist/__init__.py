"""Database models and repositories."""

from .models import (
    MonitoringProfile,
    DataSource,
    RawContent,
    Insight,
    Alert,
    Notification,
    Sensitivity,
    Severity,
    AlertStatus,
    NotificationChannel,
    utc_now_naive,
)
from .database import get_session, init_db, close_db
from .repositories import Stores
from .memory_store import create_memory_stores
from .sql_store import create_sql_stores

__all__ = [
    "MonitoringProfile",
    "DataSource",
    "RawContent",
    "Insight",
    "Alert",
    "Notification",
    "Sensitivity",
    "Severity",
    "AlertStatus",
    "NotificationChannel",
    "utc_now_naive",
    "get_session",
    "init_db",
    "close_db",
    "Stores",
    "create_memory_stores",
    "create_sql_stores",
]
