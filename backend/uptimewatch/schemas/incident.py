"""Incident schemas for API."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class IncidentResponse(BaseModel):
    """An outage record."""
    id: int
    monitor_id: int
    monitor_name: Optional[str] = None
    reason: str
    started_at: datetime
    resolved_at: Optional[datetime] = None
    last_alert_sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class IncidentPage(BaseModel):
    """Paginated incidents response."""
    items: List[IncidentResponse]
    total: int
    page: int
    per_page: int
    total_pages: int
