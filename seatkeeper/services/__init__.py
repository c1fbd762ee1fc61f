"""Business logic services for the Seatkeeper seat booking core."""

from .seat_inventory import SeatInventoryService
from .reservation_service import ReservationService, HoldResult
from .booking_service import BookingService, ConfirmResult
from .expiry_reaper import ExpiryReaper
from .notification_service import SeatBroadcaster, seat_broadcaster

__all__ = [
    "SeatInventoryService",
    "ReservationService",
    "HoldResult",
    "BookingService",
    "ConfirmResult",
    "ExpiryReaper",
    "SeatBroadcaster",
    "seat_broadcaster",
]
