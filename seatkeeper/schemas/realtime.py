"""
Pydantic schemas for the realtime seat channel.
"""

from typing import List, Literal, Optional
from uuid import UUID

from .seat import CamelModel, SeatResponse, SeatSummary


class SeatSnapshotMessage(CamelModel):
    """Full seat map of one show, pushed to its subscribers."""

    type: Literal["seats-update"] = "seats-update"
    show_id: UUID
    sequence: int
    seats: List[SeatResponse]
    summary: SeatSummary


class ClientMessage(CamelModel):
    """Message sent by a subscriber; only ``check-expiry`` is acted on."""

    type: str
    show_id: Optional[UUID] = None
