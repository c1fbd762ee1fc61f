"""
Reservation service: places and releases short-lived seat holds.

Holds are per-seat compare-and-swap updates. A batch is NOT atomic: when some
seats of a request cannot be held, the seats that were held stay held and the
caller receives both lists so it can retry with a reduced set or release.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..models import Seat, SeatChangeAction, SeatStatus
from ..utils.clock import Clock, utc_now
from ..utils.exceptions import InternalError, ValidationError
from ..utils.logging_config import log_business_event
from .seat_events import group_by_show, record_seat_change
from .seat_inventory import SeatInventoryService

logger = logging.getLogger(__name__)

@dataclass
class HoldResult:
    """Outcome of a hold request; partial success is reported, not raised."""
    held_seats: List[Seat]
    failed_seats: List[Dict[str, Any]]
    expires_at: datetime
    total_requested: int

    @property
    def is_complete(self) -> bool:
        return not self.failed_seats

    @property
    def failed_seat_ids(self) -> List[UUID]:
        return [UUID(seat["id"]) for seat in self.failed_seats]

def validate_seat_request(seat_ids: Sequence[UUID], user_id: Optional[str]) -> List[UUID]:
    """Fail fast on malformed input and return the ids de-duplicated in order."""
    field_errors: Dict[str, List[str]] = {}
    if not seat_ids:
        field_errors["seat_ids"] = ["At least one seat ID is required"]
    if not user_id or not user_id.strip():
        field_errors["user_id"] = ["A user ID is required"]

    max_seats = get_settings().max_seats_per_request
    if seat_ids and len(set(seat_ids)) > max_seats:
        field_errors["seat_ids"] = [f"At most {max_seats} seats per request"]

    if field_errors:
        raise ValidationError("Invalid seat request", field_errors=field_errors)

    return list(dict.fromkeys(seat_ids))

class ReservationService:
    """Service for seat holds."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = utc_now,
        ttl_seconds: Optional[int] = None
    ):
        self.session = session
        self.clock = clock
        self.ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else get_settings().seat_hold_ttl_seconds
        )

    async def hold(self, seat_ids: Sequence[UUID], user_id: str) -> HoldResult:
        """
        Hold each requested seat for the user if it is free.

        A seat is free when it is available, or when it is reserved under a
        hold that has already expired but has not been swept yet.

        Args:
            seat_ids: Seats to hold
            user_id: Opaque authenticated user id

        Returns:
            HoldResult with the held seats and, per failed seat, the reason

        Raises:
            ValidationError: If the request is malformed
            InternalError: If the store fails
        """
        requested = validate_seat_request(seat_ids, user_id)
        now = self.clock()
        expires_at = now + self.ttl

        logger.info(f"User {user_id} holding {len(requested)} seats")

        try:
            won: Set[UUID] = set()
            # Id order, so overlapping requests take row locks in the same order
            for seat_id in sorted(requested):
                result = await self.session.execute(
                    update(Seat)
                    .where(
                        and_(
                            Seat.id == seat_id,
                            or_(
                                Seat.status == SeatStatus.AVAILABLE,
                                and_(
                                    Seat.status == SeatStatus.RESERVED,
                                    Seat.expires_at <= now
                                )
                            )
                        )
                    )
                    .values(
                        status=SeatStatus.RESERVED,
                        holder=user_id,
                        reserved_at=now,
                        expires_at=expires_at,
                        booked_at=None,
                        version=Seat.version + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    won.add(seat_id)

            seats = await SeatInventoryService(self.session, self.clock).get_seats(requested)

            held_seats = [seats[seat_id] for seat_id in requested if seat_id in won]
            for show_id, show_seat_ids in group_by_show(
                (seat.id, seat.show_id) for seat in held_seats
            ).items():
                record_seat_change(self.session, show_id, SeatChangeAction.HOLD, show_seat_ids)

            await self.session.commit()

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to hold seats for user {user_id}: {e}")
            raise InternalError("Failed to hold seats") from e

        failed_seats = [
            self._describe_failure(seat_id, seats.get(seat_id))
            for seat_id in requested
            if seat_id not in won
        ]

        if failed_seats:
            logger.warning(
                f"Partial hold for user {user_id}: {len(won)}/{len(requested)} seats held"
            )

        log_business_event(
            "seats_held",
            {"held": len(won), "requested": len(requested), "failed": len(failed_seats)},
            user_id=user_id,
        )

        return HoldResult(
            held_seats=held_seats,
            failed_seats=failed_seats,
            expires_at=expires_at,
            total_requested=len(requested),
        )

    async def release(self, seat_ids: Sequence[UUID], user_id: str) -> List[UUID]:
        """
        Return the caller's held seats to the pool.

        Seats that are not reserved by the caller are skipped silently:
        there is nothing of theirs to release.

        Args:
            seat_ids: Seats to release
            user_id: Opaque authenticated user id

        Returns:
            IDs of the seats that were actually released
        """
        requested = validate_seat_request(seat_ids, user_id)

        try:
            await self.session.execute(
                select(Seat.id)
                .where(Seat.id.in_(requested))
                .order_by(Seat.id)
                .with_for_update()
            )
            result = await self.session.execute(
                update(Seat)
                .where(
                    and_(
                        Seat.id.in_(requested),
                        Seat.status == SeatStatus.RESERVED,
                        Seat.holder == user_id
                    )
                )
                .values(
                    status=SeatStatus.AVAILABLE,
                    holder=None,
                    reserved_at=None,
                    expires_at=None,
                    version=Seat.version + 1,
                )
                .returning(Seat.id, Seat.show_id)
                .execution_options(synchronize_session=False)
            )
            released = group_by_show(result.all())

            for show_id, show_seat_ids in released.items():
                record_seat_change(self.session, show_id, SeatChangeAction.RELEASE, show_seat_ids)

            await self.session.commit()

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to release seats for user {user_id}: {e}")
            raise InternalError("Failed to release seats") from e

        released_ids = [seat_id for ids in released.values() for seat_id in ids]
        logger.info(f"User {user_id} released {len(released_ids)} of {len(requested)} seats")
        return released_ids

    @staticmethod
    def _describe_failure(seat_id: UUID, seat: Optional[Seat]) -> Dict[str, Any]:
        if seat is None:
            return {"id": str(seat_id), "reason": "not_found"}
        return {
            "id": str(seat_id),
            "reason": seat.status.value,
            "row": seat.row,
            "number": seat.number,
        }
