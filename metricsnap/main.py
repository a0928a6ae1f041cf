"""METRICSNAP — FastAPI Application Entry Point.

Batched metrics refresh and snapshot service: refresh a sheet on demand or on
the daily schedule, then read its snapshots back.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from metricsnap.api.refresh_routes import router as refresh_router
from metricsnap.api.roster_routes import router as roster_router
from metricsnap.api.snapshot_routes import router as snapshot_router
from metricsnap.config import settings
from metricsnap.core.field_schema import SCHEMAS
from metricsnap.core.logging import get_logger
from metricsnap.database import _mask_url, db_url, init_db, test_connection
from metricsnap.scheduler.jobs import start_scheduler, stop_scheduler

logger = get_logger("main")

VERSION = "1.0.0"

# No long-lived scheduler on serverless platforms; refreshes are triggered over HTTP
IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the store, create tables, run the daily scheduler."""
    logger.info(
        f"🚀 METRICSNAP starting ({'serverless' if IS_SERVERLESS else 'local'}): "
        f"batch size {settings.batch_size}, concurrency {settings.max_concurrency}"
    )
    if test_connection():
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected, refreshes will fail")

    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("METRICSNAP shut down")


app = FastAPI(
    title="METRICSNAP",
    description=(
        "Pull per-account ad and store metrics in batches, classify upstream "
        "errors, and keep one idempotent snapshot per sheet per day."
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(refresh_router)
app.include_router(snapshot_router)
app.include_router(roster_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Liveness plus the refresh types this build knows about."""
    return {
        "status": "healthy",
        "service": "metricsnap",
        "version": VERSION,
        "refresh_types": sorted(SCHEMAS),
        "scheduler": settings.scheduler_enabled and not IS_SERVERLESS,
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Which store the service is pointed at and whether it answers."""
    return {
        "connected": test_connection(),
        "backend": "sqlite" if db_url.startswith("sqlite") else "postgresql",
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
    }
