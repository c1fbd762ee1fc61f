"""
Database models for the Seatkeeper booking core.
"""

from .base import Base
from .seat import Seat, SeatStatus
from .booking import Booking, BookingStatus
from .seat_change_event import SeatChangeEvent, SeatChangeAction
from .show_seat_map import ShowSeatMap

__all__ = [
    "Base",
    "Seat",
    "SeatStatus",
    "Booking",
    "BookingStatus",
    "SeatChangeEvent",
    "SeatChangeAction",
    "ShowSeatMap",
]
