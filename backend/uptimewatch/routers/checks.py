"""Check history API."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Check
from ..schemas.check import CheckPage, CheckResponse
from .deps import page_count

router = APIRouter(prefix="/api/checks", tags=["checks"])


@router.get("", response_model=CheckPage)
async def list_checks(
    monitor_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List recorded checks, newest first, optionally for one monitor."""
    query = select(Check)
    count_query = select(func.count(Check.id))
    if monitor_id is not None:
        query = query.where(Check.monitor_id == monitor_id)
        count_query = count_query.where(Check.monitor_id == monitor_id)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(Check.created_at.desc(), Check.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    checks = result.scalars().all()

    return CheckPage(
        items=[CheckResponse.model_validate(c) for c in checks],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=page_count(total, per_page),
    )
