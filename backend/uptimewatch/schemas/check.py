"""Check and run schemas for API."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class CheckResponse(BaseModel):
    """A recorded probe attempt."""
    id: int
    monitor_id: int
    ok: bool
    status_code: Optional[int] = None
    latency_ms: Optional[int] = None
    error: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CheckPage(BaseModel):
    """Paginated checks response."""
    items: List[CheckResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class MonitorRunResponse(BaseModel):
    """Result of a manual "run now"."""
    ok: bool
    check: Optional[CheckResponse] = None


class TickResponse(BaseModel):
    """Tally of one scheduler tick."""
    due: int
    ran: int
    skipped: int
    failed: int
    error: Optional[str] = None
