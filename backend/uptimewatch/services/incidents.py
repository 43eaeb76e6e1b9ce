"""Incident manager - turns check outcomes into open/closed incidents.

Per monitor the state is either HEALTHY (no open incident) or DOWN (one open
incident). The current state is read from the repository on every check,
never cached, and all incident writes finish before any alert is routed so a
delivery failure can never roll back a transition.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Optional, Set

from ..models import Check, Incident, Monitor
from ..repository import IncidentAlreadyOpenError, MonitorRepository
from .alerter import CHANNEL_NONE, AlertDispatcher, endpoints_for_monitor
from .notifications import (
    DownNotification,
    Notification,
    PeriodicNotification,
    RecoveryNotification,
    compose_message,
)

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DOWN = "down"

REALERT_MINUTES = 15


@dataclass
class IncidentTransition:
    """Result of feeding one check through the state machine."""
    previous: str
    current: str
    incident: Optional[Incident] = None
    notification: Optional[Notification] = None


def downtime_minutes(started_at: datetime, until: datetime) -> int:
    return int((until - started_at).total_seconds() // 60)


class IncidentManager:
    """Applies the incident state machine and routes the resulting alerts."""

    def __init__(
        self,
        repository: MonitorRepository,
        dispatcher: AlertDispatcher,
        realert_minutes: int = REALERT_MINUTES,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.realert_interval = timedelta(minutes=realert_minutes)
        self._alert_tasks: Set[asyncio.Task] = set()

    @property
    def pending_alerts(self) -> int:
        return len(self._alert_tasks)

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)
        return task

    async def wait_for_alerts(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight alert deliveries; returns False if some are still running."""
        while self._alert_tasks:
            _, not_done = await asyncio.wait(list(self._alert_tasks), timeout=timeout)
            if not_done:
                logger.warning(f"{len(not_done)} alert deliveries still pending")
                return False
        return True

    async def process(self, monitor: Monitor, check: Check) -> IncidentTransition:
        """Evaluate a persisted check and route any alert it produces."""
        transition = await self.evaluate(monitor, check)
        if transition.notification is not None:
            await self.route_alert(monitor, transition.notification)
        return transition

    async def evaluate(self, monitor: Monitor, check: Check) -> IncidentTransition:
        """Apply the state machine for one check; persists incident changes only."""
        now = check.created_at
        latest = await self.repository.latest_incident(monitor.id)
        open_incident = latest if latest is not None and latest.resolved_at is None else None
        previous = DOWN if open_incident else HEALTHY

        if not check.ok:
            reason = check.error or f"HTTP {check.status_code}"
            if open_incident is None:
                return await self._open(monitor, reason, now)
            return await self._still_down(monitor, open_incident, reason, now)

        if open_incident is not None:
            return await self._resolve(monitor, open_incident, now)

        return IncidentTransition(previous=previous, current=HEALTHY)

    async def _open(self, monitor: Monitor, reason: str, now: datetime) -> IncidentTransition:
        try:
            incident = await self.repository.create_incident(monitor.id, reason, now)
        except IncidentAlreadyOpenError:
            # Lost a race with another pipeline for this monitor; it already alerted
            logger.warning(f"Monitor {monitor.id} already has an open incident, skipping down alert")
            return IncidentTransition(previous=HEALTHY, current=DOWN)

        logger.info(f"Monitor {monitor.name} is DOWN: {reason} (incident {incident.id})")
        notification = DownNotification(
            monitor_id=monitor.id,
            monitor_name=monitor.name,
            monitor_url=monitor.url,
            timestamp=now,
            reason=reason,
            incident_id=incident.id,
        )
        return IncidentTransition(previous=HEALTHY, current=DOWN, incident=incident, notification=notification)

    async def _still_down(
        self,
        monitor: Monitor,
        incident: Incident,
        reason: str,
        now: datetime,
    ) -> IncidentTransition:
        last_alert = incident.last_alert_sent_at or incident.started_at
        if now - last_alert < self.realert_interval:
            return IncidentTransition(previous=DOWN, current=DOWN, incident=incident)

        await self.repository.update_incident_alert_time(incident.id, now)
        incident.last_alert_sent_at = now
        minutes = downtime_minutes(incident.started_at, now)
        logger.info(f"Monitor {monitor.name} still DOWN after {minutes} min (incident {incident.id})")
        notification = PeriodicNotification(
            monitor_id=monitor.id,
            monitor_name=monitor.name,
            monitor_url=monitor.url,
            timestamp=now,
            duration_minutes=minutes,
            reason=reason,
            incident_id=incident.id,
        )
        return IncidentTransition(previous=DOWN, current=DOWN, incident=incident, notification=notification)

    async def _resolve(self, monitor: Monitor, incident: Incident, now: datetime) -> IncidentTransition:
        await self.repository.resolve_incident(incident.id, now)
        incident.resolved_at = now
        minutes = downtime_minutes(incident.started_at, now)
        logger.info(f"Monitor {monitor.name} is UP after {minutes} min (incident {incident.id})")
        notification = RecoveryNotification(
            monitor_id=monitor.id,
            monitor_name=monitor.name,
            monitor_url=monitor.url,
            timestamp=now,
            duration_minutes=minutes,
            incident_id=incident.id,
        )
        return IncidentTransition(previous=DOWN, current=HEALTHY, incident=incident, notification=notification)

    async def route_alert(self, monitor: Monitor, notification: Notification) -> None:
        """Hand a notification to every configured endpoint.

        Deliveries run as independent tasks; their outcome is only visible in
        the Alert log. Without an endpoint the transition is still logged as a
        sent alert so the audit trail stays complete.
        """
        endpoints = endpoints_for_monitor(monitor)
        if not endpoints:
            await self.dispatcher.record(
                notification,
                channel=CHANNEL_NONE,
                status="sent",
                message=compose_message(notification),
            )
            return

        for endpoint in endpoints:
            self._spawn(self.dispatcher.dispatch(endpoint, notification))
