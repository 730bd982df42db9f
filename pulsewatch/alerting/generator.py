"""
Alert Generator: persist an Alert and fan it out to the profile's channels.

Channel delivery is best-effort: failures are logged and never retried or
surfaced, so an alert is never lost because a mail server was down.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from ..archivist.models import (
    Alert,
    AlertStatus,
    Insight,
    MonitoringProfile,
    Notification,
    NotificationChannel,
    Severity,
    utc_now_naive,
)
from ..archivist.repositories import Stores
from ..common.capabilities import EventPublisher, Mailer
from ..common.errors import NotFoundError, ValidationError
from ..config.settings import settings
from .channels import compose_alert_email

logger = logging.getLogger(__name__)

REALTIME_EVENT = "new_alert"


@dataclass
class AlertResult:
    alert_id: int
    created: bool = True
    notification_sent: bool = False
    channels_notified: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.created:
            return "Alert already exists for this insight"
        return "Alert generated successfully"


class AlertGenerator:
    def __init__(
        self,
        stores: Stores,
        publisher: EventPublisher,
        mailer: Optional[Mailer],
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self.stores = stores
        self.publisher = publisher
        self.mailer = mailer
        self.clock = clock

    async def generate_alert(
        self,
        insight_id: Optional[int],
        profile_id: Optional[int],
        severity: Optional[str],
        title: Optional[str],
    ) -> AlertResult:
        missing = [
            name for name, value in (
                ("insight_id", insight_id),
                ("profile_id", profile_id),
                ("severity", severity),
                ("title", title),
            )
            if value is None or value == ""
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        try:
            severity = Severity(severity).value
        except ValueError:
            raise ValidationError(f"Unknown severity: {severity}")

        insight = await self.stores.insights.get(insight_id)
        if insight is None:
            raise NotFoundError("Insight", insight_id)
        profile = await self.stores.profiles.get(profile_id)
        if profile is None:
            raise NotFoundError("Profile", profile_id)

        now = self.clock()
        alert, created = await self.stores.alerts.add_if_absent(
            Alert(
                profile_id=profile.id,
                insight_id=insight.id,
                severity=severity,
                title=title,
                status=AlertStatus.NEW.value,
                user_notes=None,
                created_at=now,
                updated_at=now,
            )
        )
        if not created:
            logger.info(f"Alert #{alert.id} already exists for insight #{insight.id}; not re-notifying")
            return AlertResult(alert_id=alert.id, created=False)

        logger.info(f"Alert #{alert.id} [{severity}] for profile #{profile.id}: {title}")

        # Preserve configured order, drop repeats
        channels = list(dict.fromkeys(profile.notification_channels or []))
        notified = []
        for channel in channels:
            if channel == NotificationChannel.IN_APP.value:
                delivered = await self._notify_in_app(alert, profile, now)
            elif channel == NotificationChannel.EMAIL.value:
                delivered = await self._notify_email(alert, insight, profile)
            else:
                logger.warning(f"Unknown notification channel '{channel}' on profile #{profile.id}")
                delivered = False
            if delivered:
                notified.append(channel)

        if channels and not notified:
            logger.critical(
                f"ALL_CHANNELS_FAILED: alert #{alert.id} could not be delivered via {channels}"
            )

        return AlertResult(
            alert_id=alert.id,
            created=True,
            notification_sent=NotificationChannel.IN_APP.value in notified,
            channels_notified=notified,
        )

    async def _notify_in_app(self, alert: Alert, profile: MonitoringProfile, now: datetime) -> bool:
        payload = {
            "alert_id": alert.id,
            "severity": alert.severity,
            "title": alert.title,
            "profile_id": profile.id,
            "profile_name": profile.name,
            "timestamp": now.isoformat(),
        }
        try:
            await self.stores.notifications.add(
                Notification(user_id=profile.user_id, type="alert", payload=payload, read=False, created_at=now)
            )
        except Exception as e:
            logger.error(f"Failed to persist in-app notification for alert #{alert.id}: {e}")
            return False

        try:
            await self.publisher.publish(f"user:{profile.user_id}", REALTIME_EVENT, payload)
        except Exception as e:
            logger.error(f"Failed to publish realtime event for alert #{alert.id}: {e}")
        return True

    async def _notify_email(self, alert: Alert, insight: Insight, profile: MonitoringProfile) -> bool:
        if self.mailer is None:
            logger.warning(f"Email channel requested for alert #{alert.id} but no mailer configured")
            return False
        recipient = profile.notification_email or settings.alert_default_recipient
        if not recipient:
            logger.warning(f"No email recipient for profile #{profile.id}; skipping email for alert #{alert.id}")
            return False
        try:
            await self.mailer.send(compose_alert_email(alert, insight, profile, recipient))
            return True
        except Exception as e:
            logger.error(f"Failed to send alert email for alert #{alert.id}: {e}")
            return False

    async def update_status(self, alert_id: Optional[int], status: Optional[str],
                            user_notes: Optional[str] = None) -> Alert:
        """Move an alert to new/acknowledged/resolved, optionally attaching notes."""
        if alert_id is None or not status:
            raise ValidationError("alert_id and status are required")
        try:
            status = AlertStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown alert status: {status}")
        alert = await self.stores.alerts.update_status(alert_id, status, user_notes, self.clock())
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        return alert
