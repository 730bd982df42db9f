"""
Notification delivery backends.

Supports:
- Realtime events via webhook (in-app delivery), with a logging fallback
- Email via SMTP, with a test mode that only logs
"""

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

import httpx

from ..archivist.models import Alert, Insight, MonitoringProfile
from ..common.capabilities import MailMessage
from ..common.errors import ExternalServiceError
from ..common.retry import is_transient_status
from ..config.settings import settings

logger = logging.getLogger(__name__)


class WebhookEventPublisher:
    """POST realtime events as JSON to a relay webhook."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or settings.realtime_webhook_url
        self.timeout = timeout or settings.realtime_timeout

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        message = {"channel": channel, "event": event, "payload": payload}
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.url, json=message, timeout=self.timeout)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ExternalServiceError("realtime", f"HTTP {status}", transient=is_transient_status(status))
        except httpx.HTTPError as e:
            raise ExternalServiceError("realtime", f"{type(e).__name__}: {e}", transient=True)
        logger.debug(f"Realtime event {event} published on {channel}")


class LoggingEventPublisher:
    """Fallback when no realtime relay is configured."""

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Realtime event {event} on {channel}: {payload}")


class SmtpMailer:
    """Send mail over SMTP (STARTTLS) in a worker thread.

    In test mode messages are logged instead of sent.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        test_mode: Optional[bool] = None,
    ):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_password
        self.sender = sender or settings.smtp_from
        self.test_mode = settings.email_test_mode if test_mode is None else test_mode

    async def send(self, message: MailMessage) -> None:
        if self.test_mode:
            logger.info(f"[TEST MODE] Email to {message.to}: {message.subject}")
            return
        if not self.user or not self.password:
            raise ExternalServiceError("mail", "SMTP credentials not configured")
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise ExternalServiceError("mail", f"{type(e).__name__}: {e}", transient=True)
        logger.info(f"Email sent to {message.to}: {message.subject}")

    def _send_sync(self, message: MailMessage):
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.sender
        msg["To"] = message.to
        if message.text:
            msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(self.sender, [message.to], msg.as_string())


def alert_link(alert: Alert, frontend_url: Optional[str] = None) -> str:
    base = (frontend_url if frontend_url is not None else settings.frontend_url).rstrip("/")
    return f"{base}/app/alerts/{alert.id}"


def compose_alert_email(
    alert: Alert,
    insight: Insight,
    profile: MonitoringProfile,
    to: str,
    frontend_url: Optional[str] = None,
) -> MailMessage:
    """Subject "[SEVERITY] title"; body with summary, key insights and a link."""
    subject = f"[{alert.severity.upper()}] {alert.title}"
    link = alert_link(alert, frontend_url)
    insights_html = "".join(f"<li>{html.escape(item)}</li>" for item in insight.key_insights or [])
    body_html = f"""
<h2>{html.escape(alert.title)}</h2>
<p><strong>Severity:</strong> {html.escape(alert.severity.upper())}</p>
<p><strong>Profile:</strong> {html.escape(profile.name)}</p>
<h3>Summary</h3>
<p>{html.escape(insight.summary or "")}</p>
<h3>Key insights</h3>
<ul>{insights_html}</ul>
<p><a href="{html.escape(link)}">View alert</a></p>
""".strip()
    lines = [
        alert.title,
        f"Severity: {alert.severity.upper()}",
        f"Profile: {profile.name}",
        "",
        insight.summary or "",
        "",
        *[f"- {item}" for item in insight.key_insights or []],
        "",
        f"View alert: {link}",
    ]
    return MailMessage(to=to, subject=subject, html=body_html, text="\n".join(lines))


def create_event_publisher():
    if settings.realtime_webhook_url:
        return WebhookEventPublisher()
    return LoggingEventPublisher()
