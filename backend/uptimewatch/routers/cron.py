"""Cron trigger endpoint - runs one scheduler tick on demand."""
from fastapi import APIRouter, Depends

from ..schemas.check import TickResponse
from ..services.scheduler import SchedulerService
from .deps import get_scheduler

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.get("", response_model=TickResponse)
async def run_cron_tick(scheduler: SchedulerService = Depends(get_scheduler)):
    """Run checks for all due monitors, for external cron triggering."""
    result = await scheduler.run_due_checks()
    return TickResponse(
        due=result.due,
        ran=result.ran,
        skipped=result.skipped,
        failed=result.failed,
        error=result.error,
    )
