"""Repository - the narrow storage interface consumed by the monitoring engine.

Every method opens its own short-lived session and performs a single-row
read or write, so concurrent probes never share a transaction.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Alert, Check, Incident, Monitor
from .utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)


class IncidentAlreadyOpenError(Exception):
    """Raised when creating an incident for a monitor that already has an open one."""

    def __init__(self, monitor_id: int):
        super().__init__(f"Monitor {monitor_id} already has an open incident")
        self.monitor_id = monitor_id


class MonitorRepository:
    """SQLAlchemy-backed store for monitors, checks, incidents and alerts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_active_targets(self) -> List[Monitor]:
        """All monitors that are not paused."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Monitor).where(Monitor.is_paused.is_(False)).order_by(Monitor.id)
            )
            return list(result.scalars().all())

    async def get_target(self, monitor_id: int) -> Optional[Monitor]:
        async with self._session_factory() as session:
            result = await session.execute(select(Monitor).where(Monitor.id == monitor_id))
            return result.scalar_one_or_none()

    async def record_check(
        self,
        monitor_id: int,
        ok: bool,
        status_code: Optional[int],
        latency_ms: Optional[int],
        error: Optional[str],
        created_at: datetime,
    ) -> Check:
        check = Check(
            monitor_id=monitor_id,
            ok=ok,
            status_code=status_code,
            latency_ms=latency_ms,
            error=error,
            created_at=created_at,
        )
        return await self._insert(check)

    async def update_last_checked(self, monitor_id: int, checked_at: datetime) -> None:
        await self._execute(
            update(Monitor).where(Monitor.id == monitor_id).values(last_checked=checked_at)
        )

    async def latest_incident(self, monitor_id: int) -> Optional[Incident]:
        """Most recently started incident for a monitor, open or not."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Incident)
                .where(Incident.monitor_id == monitor_id)
                .order_by(Incident.started_at.desc(), Incident.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def create_incident(self, monitor_id: int, reason: str, started_at: datetime) -> Incident:
        """Open a new incident.

        Raises:
            IncidentAlreadyOpenError: another open incident exists for the monitor
        """
        incident = Incident(
            monitor_id=monitor_id,
            reason=reason,
            started_at=started_at,
            last_alert_sent_at=started_at,
        )
        try:
            return await self._insert(incident)
        except IntegrityError as e:
            raise IncidentAlreadyOpenError(monitor_id) from e

    async def resolve_incident(self, incident_id: int, resolved_at: datetime) -> None:
        await self._execute(
            update(Incident)
            .where(Incident.id == incident_id, Incident.resolved_at.is_(None))
            .values(resolved_at=resolved_at)
        )

    async def update_incident_alert_time(self, incident_id: int, sent_at: datetime) -> None:
        await self._execute(
            update(Incident).where(Incident.id == incident_id).values(last_alert_sent_at=sent_at)
        )

    async def record_alert(
        self,
        monitor_id: int,
        incident_id: Optional[int],
        alert_type: str,
        channel: str,
        status: str,
        message: str,
        sent_at: datetime,
        error: Optional[str] = None,
    ) -> Alert:
        alert = Alert(
            monitor_id=monitor_id,
            incident_id=incident_id,
            alert_type=alert_type,
            channel=channel,
            status=status,
            message=message,
            sent_at=sent_at,
            error=error,
        )
        return await self._insert(alert)

    async def _insert(self, row):
        async with self._session_factory() as session:
            session.add(row)

            async def do_commit():
                await session.commit()

            try:
                await retry_on_lock(do_commit)
            except Exception:
                await session.rollback()
                raise
            await session.refresh(row)
            return row

    async def _execute(self, statement) -> None:
        async with self._session_factory() as session:
            await session.execute(statement)

            async def do_commit():
                await session.commit()

            await retry_on_lock(do_commit)
