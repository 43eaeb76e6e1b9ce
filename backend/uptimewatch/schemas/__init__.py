"""Pydantic schemas for API request/response models."""
from .check import CheckResponse, CheckPage, MonitorRunResponse, TickResponse
from .incident import IncidentResponse, IncidentPage
from .alert import AlertResponse, AlertPage, TestAlertRequest, TestAlertResponse

__all__ = [
    "CheckResponse",
    "CheckPage",
    "MonitorRunResponse",
    "TickResponse",
    "IncidentResponse",
    "IncidentPage",
    "AlertResponse",
    "AlertPage",
    "TestAlertRequest",
    "TestAlertResponse",
]
