"""
Seat inventory and hold API endpoints.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from ..schemas.seat import (
    SeatHoldRequest,
    SeatHoldResponse,
    SeatInitializeResponse,
    SeatLayoutRequest,
    SeatListResponse,
    SeatReleaseResponse,
    SeatResponse,
    SeatSummary,
)
from ..services.reservation_service import ReservationService
from ..services.seat_inventory import SeatInventoryService
from ..utils.dependencies import get_inventory_service, get_reservation_service
from ..utils.exceptions import SeatHoldConflictError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["seats"])


@router.post(
    "/shows/{show_id}/seats",
    response_model=SeatInitializeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"description": "Seat map already existed"}}
)
async def initialize_seats(
    show_id: UUID,
    layout: SeatLayoutRequest,
    response: Response,
    inventory: SeatInventoryService = Depends(get_inventory_service)
):
    """
    Create the seat map of a show from a priced section layout.

    Idempotent: a second call returns the existing map with 200.
    """
    seats, created = await inventory.initialize(show_id, layout.sections)
    if not created:
        response.status_code = status.HTTP_200_OK

    return SeatInitializeResponse(
        show_id=show_id,
        created=created,
        seats=[SeatResponse.model_validate(seat) for seat in seats]
    )


@router.get("/shows/{show_id}/seats", response_model=SeatListResponse)
async def list_seats(
    show_id: UUID,
    inventory: SeatInventoryService = Depends(get_inventory_service)
):
    """
    List every seat of a show ordered by row then number.

    Expired holds are reclaimed before the read, so the listing never shows
    a seat as reserved past its expiry.
    """
    seats = await inventory.list(show_id)
    return SeatListResponse(
        show_id=show_id,
        seats=[SeatResponse.model_validate(seat) for seat in seats],
        summary=SeatSummary(**inventory.summarize(seats))
    )


@router.post("/seats/hold", response_model=SeatHoldResponse)
async def hold_seats(
    request: SeatHoldRequest,
    reservations: ReservationService = Depends(get_reservation_service)
):
    """
    Hold seats for a user for the hold TTL.

    Holds are applied seat by seat. When only some seats could be held the
    response is 409 and lists both sides; the held subset stays held until
    it is confirmed, released, or expires.
    """
    result = await reservations.hold(request.seat_ids, request.user_id)
    held = [SeatResponse.model_validate(seat) for seat in result.held_seats]

    if not result.is_complete:
        raise SeatHoldConflictError(
            reserved_seats=[seat.model_dump(mode="json", by_alias=True) for seat in held],
            failed_seats=result.failed_seats,
            total_requested=result.total_requested
        )

    return SeatHoldResponse(seats=held, expires_at=result.expires_at)


@router.post("/seats/release", response_model=SeatReleaseResponse)
async def release_seats(
    request: SeatHoldRequest,
    reservations: ReservationService = Depends(get_reservation_service)
):
    """Release the caller's holds. Seats not held by the caller are ignored."""
    released = await reservations.release(request.seat_ids, request.user_id)
    return SeatReleaseResponse(released_seat_ids=released)
