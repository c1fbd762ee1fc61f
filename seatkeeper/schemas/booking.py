"""
Pydantic schemas for booking-related API requests and responses.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..models.booking import BookingStatus
from .seat import CamelModel, Money


class BookingConfirmRequest(CamelModel):
    """Schema for confirming held seats into bookings."""

    user_id: str = Field(..., min_length=1, max_length=255, description="Opaque authenticated user id")
    seat_ids: List[UUID] = Field(..., min_length=1, description="Seats previously held by the user")

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("userId must not be blank")
        return v


class BookingResponse(CamelModel):
    """Schema for booking responses."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    user_id: str
    show_id: UUID
    seat_id: UUID
    total_amount: Money
    status: BookingStatus
    booking_date: datetime
    created_at: datetime

    # Seat location, when loaded
    section: Optional[str] = None
    row: Optional[str] = None
    number: Optional[int] = None


class ConfirmBookingResponse(CamelModel):
    """Schema for a committed confirm."""

    bookings: List[BookingResponse]
    total_amount: Money
