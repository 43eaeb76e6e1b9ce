"""Notification intents produced by incident transitions."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class DownNotification:
    """A monitor just went down and a new incident was opened."""
    monitor_id: int
    monitor_name: str
    monitor_url: str
    timestamp: datetime
    reason: str
    incident_id: Optional[int] = None

    alert_type = "down"
    status = "down"


@dataclass(frozen=True)
class RecoveryNotification:
    """An open incident was resolved by a successful check."""
    monitor_id: int
    monitor_name: str
    monitor_url: str
    timestamp: datetime
    duration_minutes: int
    incident_id: Optional[int] = None

    alert_type = "recovery"
    status = "up"


@dataclass(frozen=True)
class PeriodicNotification:
    """Reminder that an incident is still open past the re-alert threshold."""
    monitor_id: int
    monitor_name: str
    monitor_url: str
    timestamp: datetime
    duration_minutes: int
    reason: Optional[str] = None
    incident_id: Optional[int] = None

    alert_type = "periodic"
    status = "down"


Notification = Union[DownNotification, RecoveryNotification, PeriodicNotification]


def format_duration(minutes: int) -> str:
    """Format a downtime in minutes: ``45 min``, ``1h 30m`` or ``1d 1h``."""
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {mins}m"
    days, hrs = divmod(hours, 24)
    return f"{days}d {hrs}h"


def format_timestamp(timestamp: datetime) -> str:
    return timestamp.strftime("%Y-%m-%d %H:%M:%S UTC")


def compose_message(notification: Notification) -> str:
    """Build the human-readable alert text for a notification."""
    if isinstance(notification, DownNotification):
        return "\n".join([
            f'Monitor "{notification.monitor_name}" is DOWN',
            f"URL: {notification.monitor_url}",
            f"Time: {format_timestamp(notification.timestamp)}",
            f"Reason: {notification.reason or 'Service unreachable'}",
        ])
    if isinstance(notification, RecoveryNotification):
        return "\n".join([
            f'Monitor "{notification.monitor_name}" is UP',
            f"URL: {notification.monitor_url}",
            f"Time: {format_timestamp(notification.timestamp)}",
            f"Downtime: {format_duration(notification.duration_minutes)}",
        ])
    if isinstance(notification, PeriodicNotification):
        lines = [
            f'Monitor "{notification.monitor_name}" is still DOWN',
            f"URL: {notification.monitor_url}",
            f"Down for: {format_duration(notification.duration_minutes)}",
        ]
        if notification.reason:
            lines.append(f"Reason: {notification.reason}")
        return "\n".join(lines)
    raise TypeError(f"Unsupported notification: {type(notification).__name__}")


def notification_duration(notification: Notification) -> Optional[int]:
    if isinstance(notification, (RecoveryNotification, PeriodicNotification)):
        return notification.duration_minutes
    return None


def notification_reason(notification: Notification) -> Optional[str]:
    if isinstance(notification, (DownNotification, PeriodicNotification)):
        return notification.reason
    return None
