"""Staylytics - FastAPI Application Entry Point.

Connector core for hotel marketing analytics: OAuth connections to Google
and Meta properties, and normalized reports from each of them.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import init_db, test_connection, db_url, _mask_url
from app.scheduler.jobs import start_scheduler, stop_scheduler
from app.api.oauth_routes import router as oauth_router
from app.api.report_routes import router as report_router
from app.core.errors import (
    ConnectionNotFound,
    ConnectorError,
    OAuthExchangeFailed,
    ReportFetchFailed,
    ResourceNotSelected,
    TokenRefreshFailed,
    UnknownReport,
    UnknownSource,
)
from app.core.logging import get_logger
from app.dependencies import get_registry

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 Staylytics starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    if not settings.dashboard_api_key:
        logger.warning("DASHBOARD_API_KEY not set: dashboard authentication disabled")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected: endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    await get_registry().close()
    logger.info("Staylytics shut down")


app = FastAPI(
    title="Staylytics",
    description="Connect hotel marketing sources (Google Analytics, Google Ads, Search Console, YouTube, Meta Ads, Facebook Pages, Instagram, Sheets, Drive, Business Profile) and serve normalized metrics.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(oauth_router)
app.include_router(report_router)


# ── Error mapping ──


def _status_for(exc: ConnectorError) -> tuple[int, str]:
    if isinstance(exc, (ConnectionNotFound, TokenRefreshFailed)):
        return 409, "needs_reconnection"
    if isinstance(exc, ResourceNotSelected):
        return 409, "pending_resource_selection"
    if isinstance(exc, OAuthExchangeFailed):
        return 400, "error"
    if isinstance(exc, ReportFetchFailed):
        return 502, "error"
    if isinstance(exc, (UnknownReport, UnknownSource)):
        return 404, "error"
    return 500, "error"


@app.exception_handler(ConnectorError)
async def connector_error_handler(request: Request, exc: ConnectorError):
    status_code, status = _status_for(exc)
    return JSONResponse(
        status_code=status_code,
        content={
            "status": status,
            "error_kind": exc.error_kind,
            "source": exc.source,
            "project_id": exc.project_id,
            "detail": exc.message,
            "retryable": exc.retryable,
        },
    )


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "staylytics",
        "version": "1.0.0",
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Debug endpoint: check database connectivity."""
    error = None
    connected = False
    try:
        connected = test_connection()
    except Exception as e:
        error = str(e)

    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": connected,
        "backend": backend,
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
        "error": error,
    }
