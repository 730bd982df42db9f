"""
Alert persistence and notification fan-out.
"""
from .generator import AlertGenerator, AlertResult
from .channels import (
    LoggingEventPublisher,
    SmtpMailer,
    WebhookEventPublisher,
    compose_alert_email,
    create_event_publisher,
)

__all__ = [
    "AlertGenerator",
    "AlertResult",
    "LoggingEventPublisher",
    "SmtpMailer",
    "WebhookEventPublisher",
    "compose_alert_email",
    "create_event_publisher",
]
