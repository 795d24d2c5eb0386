"""FastAPI backend for the book price monitor."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routes import health, monitor, tracking
from core.di.container import build_container
from core.scheduler import PipelineScheduler
from utils.logger import configure_logging


# Get settings
settings = get_settings()
configure_logging(settings.log_level, settings.log_file)
logger = logging.getLogger(__name__)


def build_scheduler(service) -> PipelineScheduler:
    scheduler = PipelineScheduler()
    scheduler.add_job("monitor_items", settings.monitor_schedule, service.monitor_all_items)
    scheduler.add_job("sync_lists", settings.lists_schedule, service.sync_all_lists)
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: open the database pool and HTTP client, start the scheduler
    - Shutdown: stop the scheduler, close connections gracefully

    Args:
        app: FastAPI application instance
    """
    logger.info("Starting up (CORS origins: %s)", settings.cors_origins)

    container = build_container(settings)
    await container.startup(settings)
    app.state.container = container
    app.state.db = container.resolve("db")
    app.state.service = container.resolve("service")

    app.state.scheduler = None
    if settings.scheduler_enabled:
        app.state.scheduler = build_scheduler(app.state.service)
        app.state.scheduler.start()

    yield

    logger.info("Shutting down")
    if app.state.scheduler is not None:
        await app.state.scheduler.stop()
    await container.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Book Price Monitor API",
    version="1.0.0",
    description="""
    Tracks book prices on a catalog site and alerts users about discounts.

    Features:
    - Scheduled price monitoring and list synchronisation
    - On-demand triggers for single books and lists
    - Linking users to books and wishlists
    - Discount ranking
    """,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(
    monitor.router,
    prefix="/api/v1",
    tags=["monitoring"]
)
app.include_router(
    tracking.router,
    prefix="/api/v1",
    tags=["tracking"]
)
app.include_router(
    health.router,
    prefix="/api",
    tags=["health"]
)


@app.get("/")
def root():
    """Basic service information."""
    return {
        "status": "ok",
        "service": "book-price-monitor",
        "version": "1.0.0",
        "docs": "/api/docs"
    }


@app.get("/api/schedule")
def schedule():
    """Cron jobs with their last and next run times."""
    scheduler = getattr(app.state, "scheduler", None)
    return {"jobs": scheduler.status() if scheduler else []}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
