"""
FastAPI dependencies that wire services to the request's database session.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..services.booking_service import BookingService
from ..services.expiry_reaper import ExpiryReaper
from ..services.reservation_service import ReservationService
from ..services.seat_inventory import SeatInventoryService
from .clock import Clock, utc_now


def get_clock() -> Clock:
    """
    Time source for hold expiry and booking timestamps.

    Overridden in tests to move time forward without sleeping.
    """
    return utc_now


def get_inventory_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> SeatInventoryService:
    return SeatInventoryService(db, clock)


def get_reservation_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> ReservationService:
    return ReservationService(db, clock)


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> BookingService:
    return BookingService(db, clock)


def get_expiry_reaper(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> ExpiryReaper:
    return ExpiryReaper(db, clock)
