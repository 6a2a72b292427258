# device_warnings/services/delivery.py
"""
Delivery channels for escalation notifications.

A channel implements ``async deliver(snapshot, level) -> bool``. Returning
False or raising marks the notification entry as failed; the dispatcher
never retries it.
"""
import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from typing import List, Optional

import httpx

from device_warnings.core import config
from device_warnings.core.exceptions import DeliveryError
from device_warnings.schemas.warning import WarningSnapshot

logger = logging.getLogger(__name__)

URGENCY_LABELS = {
    1: "WARNING",
    2: "REMINDER",
    3: "ESCALATION",
    4: "URGENT",
}
FINAL_URGENCY_LABEL = "CRITICAL ESCALATION"


def urgency_label(level: int) -> str:
    return URGENCY_LABELS.get(level, FINAL_URGENCY_LABEL)


def format_subject(snapshot: WarningSnapshot, level: int) -> str:
    device = snapshot.device_name or snapshot.device_id
    return f"[{urgency_label(level)}] {device}: {snapshot.warning_kind} ({snapshot.severity.value})"


def format_body(snapshot: WarningSnapshot, level: int) -> str:
    lines = [
        f"Device: {snapshot.device_name or '-'} ({snapshot.device_id})",
        f"Device type: {snapshot.device_type or '-'}",
        f"Warning: {snapshot.warning_kind}",
        f"Severity: {snapshot.severity.value}",
        f"Measured value: {snapshot.measured_value}",
        f"Threshold: {snapshot.threshold_value}",
        f"Message: {snapshot.message or ''}",
        f"Active since: {snapshot.created_at.isoformat()} UTC",
        f"Last observed: {snapshot.last_observed_at.isoformat()} UTC",
        f"Escalation level: {level}",
    ]
    return "\n".join(lines)


class LogDelivery:
    """Writes notifications to the log. Default channel when nothing else is configured."""

    async def deliver(self, snapshot: WarningSnapshot, level: int) -> bool:
        logger.warning("%s | %s", format_subject(snapshot, level), snapshot.message or "")
        return True


class EmailDelivery:
    """Sends notifications over SMTP in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        sender: Optional[str] = None,
        recipients: Optional[List[str]] = None,
        timeout: float = 30,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or username
        self.recipients = recipients or []
        self.timeout = timeout

    def build_message(self, snapshot: WarningSnapshot, level: int) -> MIMEText:
        msg = MIMEText(format_body(snapshot, level), "plain", "utf-8")
        msg["Subject"] = format_subject(snapshot, level)
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        return msg

    def _send(self, msg: MIMEText) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, self.recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery failed: {e}") from e

    async def deliver(self, snapshot: WarningSnapshot, level: int) -> bool:
        if not self.recipients:
            raise DeliveryError("No mail recipients configured")
        await asyncio.to_thread(self._send, self.build_message(snapshot, level))
        return True


class WebhookDelivery:
    """POSTs the warning snapshot as JSON; any non-2xx response is a failure."""

    def __init__(self, url: str, timeout: float = 30, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def build_payload(self, snapshot: WarningSnapshot, level: int) -> dict:
        return {
            "subject": format_subject(snapshot, level),
            "level": level,
            "urgency": urgency_label(level),
            "warning": snapshot.model_dump(mode="json"),
        }

    async def deliver(self, snapshot: WarningSnapshot, level: int) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(self.url, json=self.build_payload(snapshot, level))
            except httpx.HTTPError as e:
                raise DeliveryError(f"Webhook delivery failed: {e}") from e
        if response.is_success:
            return True
        logger.warning("Webhook %s answered %s for warning %s", self.url, response.status_code, snapshot.id)
        return False


def build_delivery_from_config():
    """Pick the delivery channel named by DELIVERY_CHANNEL."""
    channel = config.DELIVERY_CHANNEL
    if channel == "email":
        if not config.SMTP_HOST:
            raise ValueError("DELIVERY_CHANNEL=email requires SMTP_HOST")
        if not (config.MAIL_FROM or config.SMTP_USER):
            raise ValueError("DELIVERY_CHANNEL=email requires MAIL_FROM or SMTP_USER")
        if not config.MAIL_RECIPIENTS:
            raise ValueError("DELIVERY_CHANNEL=email requires MAIL_RECIPIENTS")
        return EmailDelivery(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            sender=config.MAIL_FROM,
            recipients=config.MAIL_RECIPIENTS,
            timeout=config.DELIVERY_TIMEOUT_SECONDS,
        )
    if channel == "webhook":
        if not config.WEBHOOK_URL:
            raise ValueError("DELIVERY_CHANNEL=webhook requires WEBHOOK_URL")
        return WebhookDelivery(config.WEBHOOK_URL, timeout=config.DELIVERY_TIMEOUT_SECONDS)
    if channel != "log":
        logger.warning("Unknown DELIVERY_CHANNEL %r, falling back to log delivery", channel)
    return LogDelivery()
