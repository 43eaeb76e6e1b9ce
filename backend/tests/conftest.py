from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from uptimewatch.database import Base
from uptimewatch.models import Monitor
from uptimewatch.repository import MonitorRepository
from uptimewatch.services.alerter import AlertDispatcher
from uptimewatch.services.incidents import IncidentManager
from uptimewatch.services.prober import CheckResult
from uptimewatch.services.scheduler import SchedulerService

WEBHOOK_URL = "https://hooks.example.test/uptime"


class FakeClock:
    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ScriptedProber:
    """Returns queued outcomes in order, repeating the last one."""

    def __init__(self, *outcomes: CheckResult):
        self.outcomes = list(outcomes)
        self.calls: list[int] = []

    async def probe(self, monitor):
        self.calls.append(monitor.id)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


UP = CheckResult(ok=True, status_code=200, latency_ms=12)
DOWN_500 = CheckResult(ok=False, status_code=500, latency_ms=30)
DOWN_TIMEOUT = CheckResult(ok=False, latency_ms=5000, error="Request timeout")


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'uptimewatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def repository(session_factory):
    return MonitorRepository(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def dispatcher(repository, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return AlertDispatcher(repository, sleep=fake_sleep)


@pytest.fixture
def build_scheduler(repository, dispatcher, clock):
    def _build(prober, **kwargs) -> SchedulerService:
        manager = IncidentManager(repository, dispatcher)
        return SchedulerService(repository, prober, manager, clock=clock, **kwargs)

    return _build


@pytest.fixture
def make_monitor(session_factory):
    async def _make(**overrides) -> Monitor:
        values = {
            "name": "Example API",
            "url": "https://api.example.test/health",
            "method": "GET",
            "timeout_ms": 5000,
            "interval_sec": 60,
        }
        values.update(overrides)
        monitor = Monitor(**values)
        async with session_factory() as session:
            session.add(monitor)
            await session.commit()
            await session.refresh(monitor)
        return monitor

    return _make


@pytest.fixture
def fetch_all(session_factory):
    async def _fetch(model, **filters):
        async with session_factory() as session:
            query = select(model).filter_by(**filters).order_by(model.id)
            result = await session.execute(query)
            return list(result.scalars().all())

    return _fetch
