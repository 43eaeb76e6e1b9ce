"""Scheduler service - drives the monitoring loop.

Each tick selects the monitors whose interval has elapsed and runs one
pipeline per monitor (probe -> record check -> incident state -> alerts).
The interval is a minimum spacing rather than a precise timer: a monitor is
picked up by the first tick after it becomes due.

Pipelines run concurrently under a semaphore. A per-monitor lock keeps a
manual "run now" from racing a scheduled tick on the same incident row.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from weakref import WeakValueDictionary

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..models import Check, Monitor
from ..repository import MonitorRepository
from ..utils import utcnow
from .alerter import AlertDispatcher
from .incidents import IncidentManager
from .prober import ProbeService

logger = logging.getLogger(__name__)

SCHEDULER_TICK_SECONDS = 60

MAX_CONCURRENT_CHECKS = 10


@dataclass
class TickResult:
    """Tally of one scheduler tick."""
    due: int = 0
    ran: int = 0
    skipped: int = 0
    failed: int = 0
    error: Optional[str] = None


@dataclass
class MonitorRunResult:
    """Outcome of an ad hoc check for one monitor."""
    status: str  # checked, skipped, failed
    check: Optional[Check] = None
    message: Optional[str] = None


def is_due(monitor: Monitor, now: datetime) -> bool:
    """Whether a monitor should be probed at ``now``."""
    if monitor.is_paused:
        return False
    if monitor.last_checked is None:
        return True
    return (now - monitor.last_checked).total_seconds() >= monitor.interval_sec


class SchedulerService:
    """Owns the tick timer and the per-monitor check pipeline."""

    def __init__(
        self,
        repository: MonitorRepository,
        prober: ProbeService,
        incident_manager: IncidentManager,
        tick_seconds: int = SCHEDULER_TICK_SECONDS,
        max_concurrent_checks: int = MAX_CONCURRENT_CHECKS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.prober = prober
        self.incident_manager = incident_manager
        self.tick_seconds = tick_seconds
        self.max_concurrent_checks = max_concurrent_checks
        self._clock = clock
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        # Entries vanish once no pipeline holds or waits on the lock
        self._monitor_locks: "WeakValueDictionary[int, asyncio.Lock]" = WeakValueDictionary()

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the tick timer. No-op if already running."""
        if self._running:
            logger.info("Scheduler already started, skipping initialization")
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self.tick_seconds),
            id="run_due_checks",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=self.tick_seconds,
        )
        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (tick={self.tick_seconds}s, max_concurrent={self.max_concurrent_checks})"
        )

    def stop(self):
        """Stop the tick timer and release it."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None
        self._running = False

    async def wait_for_alerts(self, timeout: Optional[float] = None) -> bool:
        """Wait for alert deliveries spawned by checks to finish."""
        return await self.incident_manager.wait_for_alerts(timeout)

    async def _tick(self):
        result = await self.run_due_checks()
        if result.due:
            logger.info(
                f"Tick finished: ran={result.ran} skipped={result.skipped} failed={result.failed} due={result.due}"
            )

    async def run_due_checks(self) -> TickResult:
        """Run one tick: probe every due monitor. Never raises."""
        try:
            now = self._clock()
            monitors = await self.repository.list_active_targets()
        except Exception as e:
            logger.error(f"Error loading monitors for tick: {e}")
            return TickResult(error=str(e))

        due = [m.id for m in monitors if is_due(m, now)]
        if not due:
            return TickResult()

        logger.debug(f"Checking {len(due)} due monitors out of {len(monitors)} total")

        semaphore = asyncio.Semaphore(self.max_concurrent_checks)

        async def check_with_limit(monitor_id: int):
            async with semaphore:
                return await self._run_pipeline(monitor_id)

        results = await asyncio.gather(*[check_with_limit(mid) for mid in due], return_exceptions=True)

        tally = TickResult(due=len(due))
        for monitor_id, outcome in zip(due, results):
            if isinstance(outcome, BaseException):
                tally.failed += 1
                logger.error(f"Monitor {monitor_id} check failed: {outcome!r}")
            elif outcome is None:
                # Paused or deleted after the target list was read
                tally.skipped += 1
            else:
                tally.ran += 1

        if tally.failed:
            logger.error(f"{tally.failed} monitor check(s) failed")
        return tally

    async def run_check_for_monitor(self, monitor_id: int) -> MonitorRunResult:
        """Run one probe/incident/alert cycle now. Never raises."""
        try:
            check = await self._run_pipeline(monitor_id)
        except Exception as e:
            logger.error(f"Error checking monitor {monitor_id}: {e!r}")
            return MonitorRunResult(status="failed", message="Check could not be completed")
        if check is None:
            return MonitorRunResult(status="skipped", message="Monitor not found or paused")
        return MonitorRunResult(status="checked", check=check)

    async def _run_pipeline(self, monitor_id: int) -> Optional[Check]:
        """Probe one monitor and feed the outcome through the incident manager.

        Returns None when the monitor is missing or paused. Persistence errors
        propagate so the caller can count this monitor as failed.
        """
        lock = self._monitor_locks.get(monitor_id)
        if lock is None:
            lock = asyncio.Lock()
            self._monitor_locks[monitor_id] = lock

        async with lock:
            monitor = await self.repository.get_target(monitor_id)
            if monitor is None or monitor.is_paused:
                return None

            outcome = await self.prober.probe(monitor)
            checked_at = self._clock()
            check = await self.repository.record_check(
                monitor_id=monitor.id,
                ok=outcome.ok,
                status_code=outcome.status_code,
                latency_ms=outcome.latency_ms,
                error=outcome.error,
                created_at=checked_at,
            )
            await self.repository.update_last_checked(monitor.id, checked_at)

            await self.incident_manager.process(monitor, check)
            logger.debug(f"Monitor {monitor.name}: {'up' if check.ok else 'down'}")
            return check


def create_scheduler_service(session_factory, app_settings) -> SchedulerService:
    """Wire repository, prober, dispatcher and incident manager from settings."""
    repository = MonitorRepository(session_factory)
    dispatcher = AlertDispatcher(
        repository,
        max_attempts=app_settings.alert_max_attempts,
        backoff_seconds=app_settings.alert_backoff_seconds,
        timeout_seconds=app_settings.alert_timeout_seconds,
    )
    incident_manager = IncidentManager(
        repository,
        dispatcher,
        realert_minutes=app_settings.realert_minutes,
    )
    return SchedulerService(
        repository,
        ProbeService(),
        incident_manager,
        tick_seconds=app_settings.scheduler_tick_seconds,
        max_concurrent_checks=app_settings.max_concurrent_checks,
    )
