"""Shared helpers."""
from datetime import datetime, timezone

from .db_utils import retry_on_lock

__all__ = ["retry_on_lock", "utcnow"]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
