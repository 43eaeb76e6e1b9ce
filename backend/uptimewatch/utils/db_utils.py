"""Commit retry for the monitoring pipeline's short write sessions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# SQLite writer contention plus PostgreSQL connection churn
TRANSIENT_ERROR_MARKERS = (
    "database is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient(error: DBAPIError) -> bool:
    """Whether a driver error is worth retrying the same commit for."""
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.1,
) -> T:
    """Run a commit, retrying transient driver errors with doubling delays.

    The repository opens one session per check, incident or alert write, so
    up to MAX_CONCURRENT_CHECKS pipelines commit at the same moment on every
    tick. On SQLite that surfaces as "database is locked" even in WAL mode.

    Non-transient errors (constraint violations included) are raised on the
    first attempt so callers such as ``create_incident`` can map them.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient(e) or attempt == max_retries:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"Commit hit a transient database error, retrying in {delay}s ({attempt}/{max_retries}): {e.orig}")
            await asyncio.sleep(delay)
