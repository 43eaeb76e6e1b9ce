"""Services for probing, incident tracking, alerting and scheduling."""
from .prober import ProbeService
from .alerter import AlertDispatcher
from .incidents import IncidentManager
from .scheduler import SchedulerService, create_scheduler_service

__all__ = ["ProbeService", "AlertDispatcher", "IncidentManager", "SchedulerService", "create_scheduler_service"]
