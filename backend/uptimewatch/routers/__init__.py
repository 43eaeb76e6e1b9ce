"""API routers."""
from .monitors import router as monitors_router
from .checks import router as checks_router
from .incidents import router as incidents_router
from .cron import router as cron_router

__all__ = ["monitors_router", "checks_router", "incidents_router", "cron_router"]
