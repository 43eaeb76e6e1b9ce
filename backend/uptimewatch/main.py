"""Main FastAPI application hosting the monitoring engine."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import async_session, init_db, close_db
from .routers import monitors_router, checks_router, incidents_router, cron_router
from .services.scheduler import create_scheduler_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Seconds to let in-flight alert deliveries finish on shutdown
ALERT_DRAIN_SECONDS = 15


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting UptimeWatch")

    await init_db()
    logger.info("Database initialized")

    scheduler = create_scheduler_service(async_session, settings)
    app.state.scheduler = scheduler
    if settings.scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Background scheduler disabled, waiting for /api/cron triggers")

    yield

    scheduler.stop()
    await scheduler.wait_for_alerts(timeout=ALERT_DRAIN_SECONDS)
    app.state.scheduler = None

    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="UptimeWatch",
        description="HTTP uptime monitoring with incident tracking and webhook alerts",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict to your domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(monitors_router)
    app.include_router(checks_router)
    app.include_router(incidents_router)
    app.include_router(cron_router)

    @app.get("/health")
    async def health_check():
        scheduler = getattr(app.state, "scheduler", None)
        return {
            "status": "healthy",
            "scheduler_running": bool(scheduler and scheduler.running),
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
