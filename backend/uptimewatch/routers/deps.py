"""Shared router dependencies."""
from fastapi import HTTPException, Request

from ..services.scheduler import SchedulerService


def get_scheduler(request: Request) -> SchedulerService:
    """The scheduler service created in the application lifespan."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Monitoring engine is not running")
    return scheduler


def page_count(total: int, per_page: int) -> int:
    return (total + per_page - 1) // per_page if total else 0
