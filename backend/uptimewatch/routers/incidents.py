"""Incident history API."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Incident, Monitor
from ..schemas.incident import IncidentPage, IncidentResponse
from .deps import page_count

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


@router.get("", response_model=IncidentPage)
async def list_incidents(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List incidents across all monitors, most recent first."""
    total = (await db.execute(select(func.count(Incident.id)))).scalar() or 0
    result = await db.execute(
        select(Incident, Monitor.name)
        .outerjoin(Monitor, Monitor.id == Incident.monitor_id)
        .order_by(Incident.started_at.desc(), Incident.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )

    items = []
    for incident, monitor_name in result.all():
        items.append(IncidentResponse(
            id=incident.id,
            monitor_id=incident.monitor_id,
            monitor_name=monitor_name,
            reason=incident.reason,
            started_at=incident.started_at,
            resolved_at=incident.resolved_at,
            last_alert_sent_at=incident.last_alert_sent_at,
        ))

    return IncidentPage(
        items=items,
        total=total,
        page=page,
        per_page=per_page,
        total_pages=page_count(total, per_page),
    )
