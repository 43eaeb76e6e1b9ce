"""Alerter service - delivers notifications to outbound webhooks with retries.

Delivery outcome and audit-write outcome are kept apart: ``DispatchResult``
reports whether the endpoint accepted the alert, while ``AuditOutcome`` only
records whether the Alert row could be written. A failed audit write is
logged and never changes the delivery result.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Protocol
from urllib.parse import urlsplit

import httpx

from ..models import Monitor
from ..repository import MonitorRepository
from ..utils import utcnow
from .notifications import (
    DownNotification,
    Notification,
    PeriodicNotification,
    RecoveryNotification,
    compose_message,
    format_duration,
    format_timestamp,
    notification_duration,
    notification_reason,
)
from .prober import TIMEOUT_ERROR

logger = logging.getLogger(__name__)

CHANNEL_WEBHOOK = "webhook"
CHANNEL_SLACK = "slack"
CHANNEL_NONE = "none"


class DeliveryError(Exception):
    """The endpoint did not acknowledge the alert with a 2xx response."""


class AlertTransport(Protocol):
    """Turns a notification into one HTTP delivery attempt."""

    channel: str

    async def send(
        self,
        client: httpx.AsyncClient,
        url: str,
        notification: Notification,
        message: str,
    ) -> None:  # pragma: no cover - interface
        ...


async def _post_json(client: httpx.AsyncClient, url: str, payload: dict) -> None:
    response = await client.post(url, json=payload, headers={"Content-Type": "application/json"})
    if not (200 <= response.status_code < 300):
        raise DeliveryError(f"HTTP {response.status_code}")


class WebhookTransport:
    """Generic JSON webhook."""

    channel = CHANNEL_WEBHOOK

    def build_payload(self, notification: Notification, message: str) -> dict:
        payload = {
            "text": message,
            "monitor": {
                "name": notification.monitor_name,
                "url": notification.monitor_url,
                "status": notification.status,
                "timestamp": notification.timestamp.isoformat() + "Z",
            },
        }
        reason = notification_reason(notification)
        if reason:
            payload["reason"] = reason
        duration = notification_duration(notification)
        if duration is not None:
            payload["duration"] = format_duration(duration)
        return payload

    async def send(self, client, url, notification, message):
        await _post_json(client, url, self.build_payload(notification, message))


class SlackTransport:
    """Slack incoming webhook using Block Kit."""

    channel = CHANNEL_SLACK

    def _title(self, notification: Notification) -> str:
        if isinstance(notification, PeriodicNotification):
            return f"Website Still Down ({format_duration(notification.duration_minutes)})"
        if isinstance(notification, DownNotification):
            return "Website Down Alert"
        return "Website Recovered"

    def _summary(self, notification: Notification) -> str:
        name = notification.monitor_name
        when = format_timestamp(notification.timestamp)
        if isinstance(notification, PeriodicNotification):
            return (
                f"Your website {name} is still down. "
                f"It has been down for {format_duration(notification.duration_minutes)}."
            )
        if isinstance(notification, DownNotification):
            return f"Your website {name} is down at {when}."
        return f"Your website {name} is back online at {when}."

    def build_payload(self, notification: Notification, message: str) -> dict:
        summary = self._summary(notification)
        fields = [
            {"type": "mrkdwn", "text": f"*Monitor:*\n{notification.monitor_name}"},
            {"type": "mrkdwn", "text": f"*URL:*\n<{notification.monitor_url}|{notification.monitor_url}>"},
            {"type": "mrkdwn", "text": f"*Status:*\n{'DOWN' if notification.status == 'down' else 'UP'}"},
            {"type": "mrkdwn", "text": f"*Time:*\n{format_timestamp(notification.timestamp)}"},
        ]
        duration = notification_duration(notification)
        if duration is not None:
            fields.append({"type": "mrkdwn", "text": f"*Duration:*\n{format_duration(duration)}"})

        blocks = [
            {"type": "header", "text": {"type": "plain_text", "text": self._title(notification), "emoji": True}},
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{summary}*"}},
            {"type": "section", "fields": fields},
        ]
        reason = notification_reason(notification)
        if reason:
            blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"*Reason:*\n```{reason}```"}})
        if notification.status == "down":
            parts = urlsplit(notification.monitor_url)
            origin = f"{parts.scheme}://{parts.netloc}" if parts.netloc else notification.monitor_url
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Check your monitor at {origin}"}],
            })
        return {"text": summary, "blocks": blocks}

    async def send(self, client, url, notification, message):
        await _post_json(client, url, self.build_payload(notification, message))


TRANSPORTS: Dict[str, AlertTransport] = {
    CHANNEL_WEBHOOK: WebhookTransport(),
    CHANNEL_SLACK: SlackTransport(),
}


@dataclass(frozen=True)
class AlertEndpoint:
    """Where and how to deliver an alert."""
    url: str
    channel: str = CHANNEL_WEBHOOK


def endpoints_for_monitor(monitor: Monitor) -> list:
    """Outbound endpoints configured on a monitor, in delivery order."""
    endpoints = []
    if monitor.webhook_url:
        endpoints.append(AlertEndpoint(url=monitor.webhook_url, channel=CHANNEL_WEBHOOK))
    if monitor.alert_channel_enabled and monitor.alert_channel_url:
        endpoints.append(AlertEndpoint(url=monitor.alert_channel_url, channel=CHANNEL_SLACK))
    return endpoints


@dataclass
class AuditOutcome:
    """Whether the Alert audit row was written."""
    recorded: bool
    error: Optional[str] = None


@dataclass
class DispatchResult:
    """Delivery outcome of one dispatch call."""
    delivered: bool
    attempts: int
    error: Optional[str] = None
    audit: AuditOutcome = field(default_factory=lambda: AuditOutcome(recorded=False))


class AlertDispatcher:
    """Delivers notifications with bounded retries and records one audit row per call."""

    def __init__(
        self,
        repository: MonitorRepository,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        timeout_seconds: float = 10.0,
        transports: Optional[Dict[str, AlertTransport]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.repository = repository
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds
        self.transports = transports or TRANSPORTS
        self._sleep = sleep
        self._http_transport = http_transport

    async def dispatch(self, endpoint: AlertEndpoint, notification: Notification) -> bool:
        """Deliver a notification; returns whether the endpoint accepted it. Never raises."""
        result = await self.send(endpoint, notification)
        return result.delivered

    async def send(self, endpoint: AlertEndpoint, notification: Notification) -> DispatchResult:
        message = compose_message(notification)
        transport = self.transports.get(endpoint.channel)
        if transport is None:
            error = f"Unknown alert channel: {endpoint.channel}"
            logger.error(error)
            result = DispatchResult(delivered=False, attempts=0, error=error)
        else:
            result = await self._deliver(transport, endpoint, notification, message)

        result.audit = await self.record(
            notification,
            channel=endpoint.channel,
            status="sent" if result.delivered else "failed",
            message=message,
            error=result.error,
        )
        return result

    async def _deliver(
        self,
        transport: AlertTransport,
        endpoint: AlertEndpoint,
        notification: Notification,
        message: str,
    ) -> DispatchResult:
        last_error = None
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._http_transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    # Caps the whole attempt, not just each httpx phase
                    await asyncio.wait_for(
                        transport.send(client, endpoint.url, notification, message),
                        timeout=self.timeout_seconds,
                    )
                    logger.info(
                        f"Alert sent: {notification.alert_type} for {notification.monitor_name} "
                        f"via {endpoint.channel} (attempt {attempt})"
                    )
                    return DispatchResult(delivered=True, attempts=attempt)
                except (asyncio.TimeoutError, httpx.TimeoutException):
                    last_error = TIMEOUT_ERROR
                    logger.warning(
                        f"Alert delivery attempt {attempt}/{self.max_attempts} to {endpoint.channel} "
                        f"timed out for {notification.monitor_name}"
                    )
                except Exception as e:
                    last_error = str(e) or type(e).__name__
                    logger.warning(
                        f"Alert delivery attempt {attempt}/{self.max_attempts} to {endpoint.channel} "
                        f"failed for {notification.monitor_name}: {last_error}"
                    )
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_seconds * attempt)

        logger.error(
            f"Failed to send {notification.alert_type} alert for {notification.monitor_name} "
            f"after {self.max_attempts} attempts: {last_error}"
        )
        return DispatchResult(delivered=False, attempts=self.max_attempts, error=last_error)

    async def record(
        self,
        notification: Notification,
        channel: str,
        status: str,
        message: Optional[str] = None,
        error: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> AuditOutcome:
        """Write the Alert audit row; failures are logged and reported, never raised."""
        try:
            await self.repository.record_alert(
                monitor_id=notification.monitor_id,
                incident_id=notification.incident_id,
                alert_type=notification.alert_type,
                channel=channel,
                status=status,
                message=message if message is not None else compose_message(notification),
                sent_at=sent_at or notification.timestamp,
                error=error,
            )
        except Exception as e:
            logger.error(f"Failed to log {notification.alert_type} alert for monitor {notification.monitor_id}: {e}")
            return AuditOutcome(recorded=False, error=str(e))
        return AuditOutcome(recorded=True)

    async def send_test(self, endpoint: AlertEndpoint, monitor: Monitor, alert_type: str) -> DispatchResult:
        """Send a sample notification of the given type through the normal delivery path."""
        now = utcnow()
        if alert_type == "recovery":
            notification = RecoveryNotification(
                monitor_id=monitor.id,
                monitor_name=monitor.name,
                monitor_url=monitor.url,
                timestamp=now,
                duration_minutes=45,
            )
        elif alert_type == "periodic":
            notification = PeriodicNotification(
                monitor_id=monitor.id,
                monitor_name=monitor.name,
                monitor_url=monitor.url,
                timestamp=now,
                duration_minutes=60,
                reason="This is a test notification - Periodic Alert",
            )
        else:
            notification = DownNotification(
                monitor_id=monitor.id,
                monitor_name=monitor.name,
                monitor_url=monitor.url,
                timestamp=now,
                reason="This is a test notification from your uptime monitor",
            )
        return await self.send(endpoint, notification)
