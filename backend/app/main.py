"""
Architectural Fee Estimator API
FastAPI backend: fee calculation pipeline, configuration store and
calculation history on async PostgreSQL.
"""
import sys
import time
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.db import init_db, is_configured
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from app.services.perf_monitor import tracker as perf_tracker

setup_logging(level=config.LOG_LEVEL, json_output=config.JSON_LOGS)
logger = logging.getLogger("archfee-api")

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()

if not config.DATABASE_URL:
    logger.warning("MISSING env var: DATABASE_URL, history and per-user configuration endpoints will fail (dev mode)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await init_db()
    except Exception as e:
        logger.warning(f"init_db skipped (DB not available): {e}")
    yield


app = FastAPI(
    title="Architectural Fee Estimator API",
    version=config.APP_VERSION,
    description="Design-fee estimation from functional scope, team rates and stage weights",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Requested-With", "X-User-ID", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from app.api.calculator_routes import router as calculator_router  # noqa: E402
from app.api.config_routes import router as config_router  # noqa: E402
from app.api.history_routes import router as history_router  # noqa: E402

app.include_router(calculator_router)
app.include_router(config_router)
app.include_router(history_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": config.APP_VERSION,
        "db_configured": is_configured(),
    }


@app.get("/metrics")
async def metrics():
    """
    Performance metrics endpoint.

    Returns recompute throughput, average duration, error counts and
    process-level memory usage, sourced from the in-process PerformanceTracker.
    """
    uptime_seconds = round(time.monotonic() - _PROCESS_START, 1)

    memory_mb: float = 0.0
    try:
        import resource  # Unix only
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is in kilobytes on Linux, bytes on macOS
        if sys.platform == "darwin":
            memory_mb = round(usage.ru_maxrss / (1024 * 1024), 2)
        else:
            memory_mb = round(usage.ru_maxrss / 1024, 2)
    except ImportError:
        memory_mb = 0.0

    snapshot = perf_tracker.get_metrics()

    return {
        "uptime_seconds": uptime_seconds,
        "calculations_processed": snapshot["calculations_processed"],
        "avg_duration_ms": snapshot["avg_duration_ms"],
        "error_count": snapshot["error_count"],
        "memory_usage_mb": memory_mb,
        "slowest_step": snapshot["slowest_step"],
        "slowest_step_ms": snapshot["slowest_step_ms"],
        "error_count_by_step": snapshot["error_count_by_step"],
        "step_avg_durations_ms": snapshot["step_avg_durations_ms"],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
