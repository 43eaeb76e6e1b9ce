"""Alert log schemas for API."""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel


class AlertResponse(BaseModel):
    """One entry of the alert audit log."""
    id: int
    monitor_id: int
    incident_id: Optional[int] = None
    alert_type: str  # down, recovery, periodic
    channel: str  # webhook, slack, none
    status: str  # sent, failed
    message: str
    sent_at: datetime
    error: Optional[str] = None

    class Config:
        from_attributes = True


class AlertPage(BaseModel):
    """Paginated alert log response."""
    items: List[AlertResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class TestAlertRequest(BaseModel):
    """Request to send a sample notification."""
    alert_type: Literal["down", "recovery", "periodic"] = "down"
    channel: Literal["webhook", "slack"] = "webhook"
    webhook_url: Optional[str] = None  # Defaults to the monitor's configured endpoint


class TestAlertResponse(BaseModel):
    """Outcome of a test notification."""
    success: bool
    attempts: int
    message: str
