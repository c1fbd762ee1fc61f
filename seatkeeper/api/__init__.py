"""API endpoints for the Seatkeeper service."""

from fastapi import APIRouter
from .seats import router as seats_router
from .bookings import router as bookings_router
from .maintenance import router as maintenance_router
from .realtime import router as realtime_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# Include all routers
api_router.include_router(seats_router)
api_router.include_router(bookings_router)
api_router.include_router(maintenance_router)
api_router.include_router(realtime_router)

__all__ = ["api_router"]
