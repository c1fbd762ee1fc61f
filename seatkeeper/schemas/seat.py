"""
Pydantic schemas for seat inventory and holds.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from ..models.seat import SeatStatus

# Amounts travel as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """Base schema exposing camelCase field names on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SeatResponse(CamelModel):
    """Schema for a single seat and its current state."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    show_id: UUID
    section: str
    row: str
    number: int
    price: Money
    status: SeatStatus
    holder: Optional[str] = None
    reserved_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    booked_at: Optional[datetime] = None


class SeatSummary(CamelModel):
    """Seat counts per status."""
    total: int
    available: int
    reserved: int
    booked: int


class SeatListResponse(CamelModel):
    """Schema for a show's seat listing, ordered by row then number."""
    show_id: UUID
    seats: List[SeatResponse]
    summary: SeatSummary


class SectionLayout(CamelModel):
    """One priced section of a venue layout."""
    name: str = Field(..., min_length=1, max_length=50, description="Section label")
    price: Decimal = Field(..., ge=0, description="Price of every seat in the section")
    rows: List[str] = Field(..., min_length=1, description="Row labels, e.g. ['A', 'B']")
    seats_per_row: int = Field(..., ge=1, le=500)
    seat_number_start: int = Field(1, ge=0)

    @field_validator("rows")
    @classmethod
    def validate_rows(cls, v: List[str]) -> List[str]:
        if any(not label.strip() or len(label) > 10 for label in v):
            raise ValueError("Row labels must be 1-10 non-blank characters")
        if len(set(v)) != len(v):
            raise ValueError("Row labels must be unique within a section")
        return v


class SeatLayoutRequest(CamelModel):
    """Schema for initializing a show's seat map."""
    sections: List[SectionLayout] = Field(..., min_length=1)


class SeatInitializeResponse(CamelModel):
    """Schema for seat map initialization."""
    show_id: UUID
    created: bool
    seats: List[SeatResponse]


class SeatHoldRequest(CamelModel):
    """Schema for seat hold and release requests."""
    seat_ids: List[UUID] = Field(..., min_length=1, description="Seat IDs to act on")
    user_id: str = Field(..., min_length=1, max_length=255, description="Opaque authenticated user id")

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("userId must not be blank")
        return v


class SeatHoldResponse(CamelModel):
    """Schema for a fully successful hold."""
    seats: List[SeatResponse]
    expires_at: datetime


class SeatReleaseResponse(CamelModel):
    """Schema for release results; releasing nothing is still a success."""
    released_seat_ids: List[UUID]


class SweepResponse(CamelModel):
    """Schema for an expired-hold sweep."""
    released_count: int
    show_ids: List[UUID]
