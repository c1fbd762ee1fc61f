"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from seatkeeper.config import settings
from seatkeeper.api import api_router
from seatkeeper.database import init_database, close_database
from seatkeeper.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from seatkeeper.services.notification_service import seat_broadcaster
from seatkeeper.utils.health_check import get_health_status
from seatkeeper.utils.logging_config import setup_logging

# Set up logging
setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file="logs/seatkeeper.log" if settings.environment == "production" else None,
    enable_json_logging=settings.enable_json_logging or settings.environment == "production"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Seatkeeper")
    await init_database()

    if settings.enable_notifier:
        await seat_broadcaster.prime()
        seat_broadcaster.start()

    yield

    logger.info("Shutting down Seatkeeper")
    await seat_broadcaster.stop()
    await close_database()


app = FastAPI(
    title="Seatkeeper API",
    description="""
    ## Seatkeeper

    Seat inventory, short-lived holds and confirmed bookings for ticketed shows.

    ### Flow

    1. Initialize a show's seat map from a priced section layout
    2. Hold seats for a user; holds expire after the hold TTL (300 s by default)
    3. Confirm held seats into bookings in a single transaction

    ### Concurrency Safety

    * Holds are per-seat compare-and-swap updates, so two users can never hold the same seat
    * Confirms validate and book under row locks with version checks; a confirm never partially applies
    * Expired holds are reclaimed before every listing and by a periodic Celery beat sweep

    ### Realtime

    Connect to `/api/v1/realtime/shows/{showId}` for full seat snapshots after every committed change.

    ### Error Handling

    ```json
    {
      "error": {
        "error_code": "SEAT_NOT_AVAILABLE",
        "message": "Some seats are no longer available",
        "details": {},
        "suggestions": ["Choose different seats"]
      },
      "error_id": "...",
      "timestamp": "..."
    }
    ```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "seats",
            "description": "Seat maps, listings, holds and releases"
        },
        {
            "name": "bookings",
            "description": "Confirming holds into bookings"
        },
        {
            "name": "maintenance",
            "description": "Operational endpoints"
        },
        {
            "name": "realtime",
            "description": "WebSocket seat snapshots"
        },
        {
            "name": "health",
            "description": "System health and monitoring endpoints"
        }
    ],
    lifespan=lifespan,
)

# Middleware stack (last added runs first)

app.add_middleware(
    LoggingMiddleware,
    log_requests=settings.enable_request_logging,
    log_responses=settings.enable_request_logging
)

app.add_middleware(
    ErrorHandlerMiddleware,
    debug=settings.debug
)

if settings.debug:
    # Development: Allow all origins
    cors_origins = ["*"]
    cors_allow_credentials = False  # Cannot use credentials with wildcard origins
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers
)

# Include API routes
app.include_router(api_router)


@app.get("/", tags=["health"])
async def root():
    """Root endpoint for API information."""
    return {
        "message": "Seatkeeper API",
        "version": "1.0.0",
        "docs_url": "/docs",
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Basic health check for uptime monitoring."""
    return {"status": "healthy", "service": "seatkeeper"}


@app.get("/health/detailed", tags=["health"])
async def detailed_health_check():
    """
    Detailed health check with service dependencies.

    Returns 503 when the database or the realtime notifier is unhealthy.
    """
    health = await get_health_status()
    status_code = 200 if health["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content=health)
