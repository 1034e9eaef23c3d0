# volunteer_board/main.py - Application setup
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from contextlib import asynccontextmanager
from prometheus_fastapi_instrumentator import Instrumentator
import time

# Core imports
from volunteer_board.core.config import settings
from volunteer_board.db.database import get_db, init_db, engine, AsyncSessionLocal

# Import tracing
from volunteer_board.core import tracing

# Import API routes
from volunteer_board.api.v1.endpoints import tasks, volunteers, completions, hours, realtime

# Board services
from volunteer_board.db.record_store import SqlRecordStore
from volunteer_board.integrations.notifier import WebhookNotifier
from volunteer_board.realtime.change_feed import ChangeFeed

# Import middleware
from volunteer_board.middleware.cors import setup_cors_middleware
from volunteer_board.middleware.monitoring import MonitoringMiddleware

# Import exception handlers
from volunteer_board.exceptions.handlers import (
    http_exception_handler,
    validation_exception_handler,
    value_error_handler,
    global_exception_handler,
    starlette_http_exception_handler
)

SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: database, change feed, record store and notifier
    """
    tracing.info("Volunteer board startup initiated")

    try:
        await init_db()
        tracing.info("Database initialized successfully")
    except Exception as e:
        tracing.error(f"Database initialization failed: {e}")
        raise

    feed = ChangeFeed()
    notifier = WebhookNotifier(settings.NOTIFY_WEBHOOK_URL, dm_webhook_url=settings.NOTIFY_DM_WEBHOOK_URL)
    await notifier.start()

    app.state.feed = feed
    app.state.store = SqlRecordStore(AsyncSessionLocal, feed)
    app.state.notifier = notifier

    tracing.info(f"Environment: {settings.ENVIRONMENT}")
    tracing.info(f"Log Level: {settings.LOG_LEVEL}")
    tracing.info(f"Announcements: {'webhook' if settings.NOTIFY_WEBHOOK_URL else 'log only'}")
    tracing.info(f"CORS Origins: {len(settings.cors_origins_list)} configured")
    tracing.info(f"Volunteer board v{SERVICE_VERSION} startup complete")

    yield

    tracing.info("Volunteer board shutdown initiated")
    await notifier.stop()
    await feed.close()
    await engine.dispose()
    tracing.info("Volunteer board shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Volunteer Board API",
    description="Makerspace task board: task lifecycle, completion crediting and live views",
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT == "development" else None
)

# =============================================================================
# TRACING SETUP
# =============================================================================

tracing.setup_tracing(app, engine)

# =============================================================================
# MIDDLEWARE SETUP (Order matters!)
# =============================================================================

tracing.info("Configuring middleware pipeline...")

# 1. Monitoring (Prometheus metrics)
app.add_middleware(MonitoringMiddleware)

# 2. CORS (handles preflight requests)
setup_cors_middleware(app)

tracing.info("Middleware pipeline configured")

# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
app.add_exception_handler(ValueError, value_error_handler)
app.add_exception_handler(Exception, global_exception_handler)

# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_group_untemplated=False,
    should_instrument_requests_inprogress=True,
    inprogress_labels=True
)
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

# =============================================================================
# API ROUTES
# =============================================================================

app.include_router(tasks.router, prefix="/api/v1/tasks", tags=["Tasks"])
app.include_router(volunteers.router, prefix="/api/v1/volunteers", tags=["Volunteers"])
app.include_router(completions.router, prefix="/api/v1/completions", tags=["Completions"])
app.include_router(hours.router, prefix="/api/v1/hours", tags=["Hours"])
app.include_router(realtime.router, prefix="/api/v1/realtime", tags=["Realtime"])

tracing.info("API routes configured")


# =============================================================================
# SYSTEM ENDPOINTS
# =============================================================================

@app.get("/health", tags=["System"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check with database connectivity test
    """
    try:
        await db.execute(text("SELECT 1"))

        feed = getattr(app.state, "feed", None)
        notifier = getattr(app.state, "notifier", None)
        health_data = {
            "status": "healthy",
            "service": "Volunteer Board API",
            "version": SERVICE_VERSION,
            "environment": settings.ENVIRONMENT,
            "timestamp": time.time(),
            "trace_id": tracing.get_current_trace_id(),
            "checks": {
                "database": "connected",
                "live_subscribers": {
                    collection: feed.subscriber_count(collection)
                    for collection in ("tasks", "volunteers", "completions")
                } if feed else {},
                "announcements": getattr(notifier, "stats", None)
            }
        }

        tracing.debug("Health check passed", endpoint="/health", status="success")
        return health_data

    except Exception as e:
        tracing.error(f"Health check failed: {e}",
                      endpoint="/health",
                      status="failed",
                      error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy - database connection failed"
        )


@app.get("/", tags=["System"])
async def api_information():
    """API information endpoint"""
    return {
        "message": f"{settings.BOARD_NAME} API",
        "version": SERVICE_VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "operational",
        "trace_id": tracing.get_current_trace_id(),
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "tasks": "/api/v1/tasks",
            "volunteers": "/api/v1/volunteers",
            "completions": "/api/v1/completions",
            "hours": "/api/v1/hours",
            "live_views": "/api/v1/realtime/views/{view}",
            "documentation": "/docs" if settings.ENVIRONMENT == "development" else "Contact administrator"
        },
        "timestamp": time.time()
    }
