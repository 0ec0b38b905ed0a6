"""
Dowee Profitability API v1.0
FastAPI backend over async PostgreSQL: portfolio and project aggregates,
priority scores, alerts and profitability dashboards. Read-only.
"""
import os
import logging
import time
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.services.logging_config import setup_logging
from app.services.middleware import (
    RateLimitMiddleware,
    RequestTimingMiddleware,
    SecurityHeadersMiddleware,
)
from app.services.perf_monitor import tracker as perf_tracker

load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("dowee-api")

APP_VERSION = "1.0.0"

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()

for var in ["DATABASE_URL", "JWT_SECRET_KEY"]:
    if not os.getenv(var):
        logger.warning(f"MISSING env var: {var} - running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from app.db import engine
    logger.info("Dowee API starting")
    yield
    await engine.dispose()
    logger.info("Dowee API stopped")


app = FastAPI(
    title="Dowee Profitability API",
    version=APP_VERSION,
    description="Time, cost and margin aggregation with project scoring and alerts",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS: restricted to allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:5173"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    limit_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "120")),
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

from app.api.profitability_routes import router as profitability_router

app.include_router(profitability_router)


@app.get("/health")
async def health_check():
    from app.db import check_db
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_connected": await check_db(),
    }


@app.get("/metrics")
async def metrics():
    """
    Performance metrics endpoint.

    Aggregation throughput, average duration and error counts per service
    operation, sourced from the in-process PerformanceTracker singleton.
    """
    snapshot = perf_tracker.get_metrics()
    return {
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        "computations": snapshot["computations"],
        "avg_duration_ms": snapshot["avg_duration_ms"],
        "error_count": snapshot["error_count"],
        "slowest_operation": snapshot["slowest_operation"],
        "slowest_operation_ms": snapshot["slowest_operation_ms"],
        "error_count_by_operation": snapshot["error_count_by_operation"],
        "operation_avg_durations_ms": snapshot["operation_avg_durations_ms"],
    }
