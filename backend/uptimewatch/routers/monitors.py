"""Monitor actions API - run now, alert log and test notifications.

Creating and editing monitors belongs to the CRUD layer; these endpoints
only act on existing monitors.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Alert, Monitor
from ..schemas.alert import AlertPage, AlertResponse, TestAlertRequest, TestAlertResponse
from ..schemas.check import CheckResponse, MonitorRunResponse
from ..services.alerter import CHANNEL_SLACK, AlertEndpoint
from ..services.scheduler import SchedulerService
from .deps import get_scheduler, page_count

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/monitors", tags=["monitors"])


async def _get_monitor(db: AsyncSession, monitor_id: int) -> Monitor:
    result = await db.execute(select(Monitor).where(Monitor.id == monitor_id))
    monitor = result.scalar_one_or_none()
    if not monitor:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


@router.post("/{monitor_id}/run", response_model=MonitorRunResponse)
async def run_monitor_check(
    monitor_id: int,
    db: AsyncSession = Depends(get_db),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Probe a monitor immediately and apply incident/alert handling."""
    monitor = await _get_monitor(db, monitor_id)
    if monitor.is_paused:
        raise HTTPException(status_code=409, detail="Monitor is paused")

    result = await scheduler.run_check_for_monitor(monitor_id)
    if result.status == "failed":
        raise HTTPException(status_code=500, detail="Failed to run check")
    if result.check is None:
        return MonitorRunResponse(ok=False)
    return MonitorRunResponse(ok=True, check=CheckResponse.model_validate(result.check))


@router.get("/{monitor_id}/alerts", response_model=AlertPage)
async def list_monitor_alerts(
    monitor_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Alert audit log for a monitor, newest first."""
    await _get_monitor(db, monitor_id)

    total = (await db.execute(
        select(func.count(Alert.id)).where(Alert.monitor_id == monitor_id)
    )).scalar() or 0
    result = await db.execute(
        select(Alert)
        .where(Alert.monitor_id == monitor_id)
        .order_by(Alert.sent_at.desc(), Alert.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    alerts = result.scalars().all()

    return AlertPage(
        items=[AlertResponse.model_validate(a) for a in alerts],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=page_count(total, per_page),
    )


@router.post("/{monitor_id}/test-alert", response_model=TestAlertResponse)
async def send_test_alert(
    monitor_id: int,
    request: TestAlertRequest,
    db: AsyncSession = Depends(get_db),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Send a sample down/recovery/periodic notification to verify an endpoint."""
    monitor = await _get_monitor(db, monitor_id)

    url = request.webhook_url
    if not url:
        url = monitor.alert_channel_url if request.channel == CHANNEL_SLACK else monitor.webhook_url
    if not url:
        raise HTTPException(status_code=400, detail="Webhook URL is required")

    dispatcher = scheduler.incident_manager.dispatcher
    result = await dispatcher.send_test(AlertEndpoint(url=url, channel=request.channel), monitor, request.alert_type)
    if not result.delivered:
        logger.warning(f"Test {request.alert_type} alert for monitor {monitor_id} failed: {result.error}")
        raise HTTPException(status_code=502, detail="Failed to send notification")

    return TestAlertResponse(
        success=True,
        attempts=result.attempts,
        message="Test notification sent successfully",
    )
