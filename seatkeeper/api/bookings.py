"""
Booking API endpoints.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from ..models import Booking
from ..schemas.booking import BookingConfirmRequest, BookingResponse, ConfirmBookingResponse
from ..services.booking_service import BookingService
from ..utils.dependencies import get_booking_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def _create_booking_response(booking: Booking) -> BookingResponse:
    """Create a BookingResponse from a booking model and its seat."""
    response = BookingResponse.model_validate(booking)
    if booking.seat is not None:
        response.section = booking.seat.section
        response.row = booking.seat.row
        response.number = booking.seat.number
    return response


@router.post("", response_model=ConfirmBookingResponse, status_code=status.HTTP_201_CREATED)
async def confirm_booking(
    request: BookingConfirmRequest,
    bookings: BookingService = Depends(get_booking_service)
):
    """
    Confirm held seats into bookings.

    All seats commit together or none do. 409 lists every seat that is not
    validly held by the caller; 404 lists seat IDs that do not exist.
    """
    result = await bookings.confirm(request.seat_ids, request.user_id)
    return ConfirmBookingResponse(
        bookings=[_create_booking_response(booking) for booking in result.bookings],
        total_amount=result.total_amount
    )


@router.get("", response_model=List[BookingResponse])
async def list_user_bookings(
    user_id: str = Query(..., alias="userId", min_length=1, max_length=255),
    show_id: Optional[UUID] = Query(None, alias="showId"),
    bookings: BookingService = Depends(get_booking_service)
):
    """List a user's bookings, newest first, optionally for one show."""
    user_bookings = await bookings.list_user_bookings(user_id, show_id)
    return [_create_booking_response(booking) for booking in user_bookings]
