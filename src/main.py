"""chorecycle - fair chore rotation and gamification for shared homes."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core import db_client
from src.core.cache_client import cache_client
from src.core.config import settings
from src.core.errors import DomainError
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.module_registry import get_all_scheduled_jobs
from src.core.schema import init_db, register_default_modules
from src.core.scheduler import start_scheduler, stop_scheduler
from src.core.scheduler_tracker import job_tracker
from src.interface.api_router import domain_error_handler, router as api_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    if settings.enable_scheduler:
        start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    await db_client.close_connection()


app = FastAPI(
    title="chorecycle",
    description="Fair chore rotation and gamification for shared homes",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)
app.add_exception_handler(DomainError, domain_error_handler)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint covering the database and the cache."""
    database = {"status": "ok"}
    try:
        conn = await db_client.get_connection()
        await conn.execute("SELECT 1")
    except Exception as e:
        logger.warning("health_check_database_failed", extra={"error": str(e)})
        database = {"status": "unavailable", "error": str(e)}

    healthy = database["status"] == "ok"
    return JSONResponse(
        content={
            "status": "healthy" if healthy else "unhealthy",
            "database": database,
            "cache": cache_client.stats(),
        },
        status_code=200 if healthy else 503,
    )


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    register_default_modules()
    job_names = [job.id for job in get_all_scheduled_jobs()]

    job_statuses = {}
    for job_name in job_names:
        job_statuses[job_name] = await job_tracker.get_job_status(job_name)

    # Get dead letter queue
    dlq = job_tracker.get_dead_letter_queue()

    # Determine overall health
    has_failures = any(status["consecutive_failures"] > 0 for status in job_statuses.values())

    overall_status = "degraded" if has_failures else "healthy"
    if len(dlq) > 0:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": job_statuses,
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
