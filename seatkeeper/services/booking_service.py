"""
Booking service: turns a user's held seats into bookings.

A confirm is one database transaction. Seats are read under row locks where the
backend supports them, validated, moved to booked with a version-guarded
update, and receipted with one Booking row each. Any failure rolls the whole
batch back, so a confirm never partially applies.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Booking, BookingStatus, Seat, SeatChangeAction, SeatStatus
from ..utils.clock import Clock, utc_now
from ..utils.exceptions import (
    BookingConflictError,
    InternalError,
    SeatNotFoundError,
    ValidationError
)
from ..utils.logging_config import log_business_event
from .reservation_service import validate_seat_request
from .seat_events import record_seat_change

logger = logging.getLogger(__name__)


@dataclass
class ConfirmResult:
    """Bookings written by one confirm and their combined amount."""
    bookings: List[Booking]
    total_amount: Decimal


class BookingService:
    """Service for confirming holds and reading bookings."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self.session = session
        self.clock = clock

    async def confirm(self, seat_ids: Sequence[UUID], user_id: str) -> ConfirmResult:
        """
        Convert the user's held seats into bookings.

        Args:
            seat_ids: Seats previously held by the user, all of one show
            user_id: Opaque authenticated user id

        Returns:
            ConfirmResult with one booking per seat

        Raises:
            ValidationError: If the request is malformed or spans shows
            SeatNotFoundError: If any seat does not exist
            BookingConflictError: If any seat is not validly held by the user
            InternalError: If the store fails
        """
        requested = validate_seat_request(seat_ids, user_id)
        now = self.clock()

        logger.info(f"User {user_id} confirming {len(requested)} seats")

        try:
            seats = await self._lock_seats(requested)

            missing = [seat_id for seat_id in requested if seat_id not in seats]
            if missing:
                raise SeatNotFoundError([str(seat_id) for seat_id in missing])

            show_ids = {seat.show_id for seat in seats.values()}
            if len(show_ids) > 1:
                raise ValidationError(
                    "All seats in a booking must belong to the same show",
                    field_errors={"seat_ids": ["Seats span more than one show"]}
                )
            show_id = show_ids.pop()

            invalid_seats = []
            for seat_id in requested:
                reason = self._hold_problem(seats[seat_id], user_id, now)
                if reason is not None:
                    invalid_seats.append(self._describe_invalid(seats[seat_id], reason))
            if invalid_seats:
                raise BookingConflictError(invalid_seats)

            # Snapshot before the Core updates; the ORM copies are not synchronized
            locked = [
                (seat_id, seats[seat_id].version, seats[seat_id].price)
                for seat_id in requested
            ]

            for seat_id, version, _ in locked:
                result = await self.session.execute(
                    update(Seat)
                    .where(
                        and_(
                            Seat.id == seat_id,
                            Seat.version == version,
                            Seat.status == SeatStatus.RESERVED,
                            Seat.holder == user_id
                        )
                    )
                    .values(
                        status=SeatStatus.BOOKED,
                        holder=None,
                        reserved_at=None,
                        expires_at=None,
                        booked_at=now,
                        version=Seat.version + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise BookingConflictError([self._describe_invalid(
                        seats[seat_id], "modified_concurrently"
                    )])

            bookings = [
                Booking(
                    user_id=user_id,
                    show_id=show_id,
                    seat_id=seat_id,
                    total_amount=price,
                    status=BookingStatus.CONFIRMED,
                    booking_date=now,
                )
                for seat_id, _, price in locked
            ]
            self.session.add_all(bookings)
            await self.session.flush()

            record_seat_change(self.session, show_id, SeatChangeAction.CONFIRM, requested)
            await self.session.commit()

        except (SeatNotFoundError, ValidationError, BookingConflictError):
            await self.session.rollback()
            raise

        except IntegrityError as e:
            # The unique seat_id on bookings caught a double sale
            await self.session.rollback()
            logger.warning(f"Booking uniqueness violated for user {user_id}: {e}")
            raise BookingConflictError(await self._already_booked(requested)) from e

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to confirm seats for user {user_id}: {e}")
            raise InternalError("Failed to confirm booking") from e

        booking_ids = [booking.id for booking in bookings]
        bookings = await self._load_bookings(booking_ids)
        total_amount = sum((booking.total_amount for booking in bookings), Decimal("0.00"))

        logger.info(f"User {user_id} booked {len(bookings)} seats for show {show_id}")
        log_business_event(
            "seats_booked",
            {
                "show_id": str(show_id),
                "seat_count": len(bookings),
                "total_amount": str(total_amount),
            },
            user_id=user_id,
        )

        return ConfirmResult(bookings=bookings, total_amount=total_amount)

    async def list_user_bookings(
        self,
        user_id: str,
        show_id: Optional[UUID] = None
    ) -> List[Booking]:
        """
        Get bookings for a user, newest first.

        Args:
            user_id: Opaque user id
            show_id: Optional show filter

        Returns:
            List of bookings with their seats loaded
        """
        if not user_id or not user_id.strip():
            raise ValidationError(
                "A user ID is required",
                field_errors={"user_id": ["A user ID is required"]}
            )

        query = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.booking_date.desc(), Booking.created_at.desc())
        )
        if show_id is not None:
            query = query.where(Booking.show_id == show_id)

        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read bookings for user {user_id}: {e}")
            raise InternalError("Failed to read bookings") from e

        return list(result.unique().scalars().all())

    # Private helper methods

    async def _lock_seats(self, seat_ids: List[UUID]) -> Dict[UUID, Seat]:
        """Read seats with row locks; backends without them ignore FOR UPDATE."""
        result = await self.session.execute(
            select(Seat)
            .where(Seat.id.in_(seat_ids))
            .order_by(Seat.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {seat.id: seat for seat in result.scalars().all()}

    async def _already_booked(self, seat_ids: List[UUID]) -> List[Dict[str, Any]]:
        """Describe the requested seats that already carry a booking."""
        try:
            result = await self.session.execute(
                select(Seat)
                .join(Booking, Booking.seat_id == Seat.id)
                .where(Seat.id.in_(seat_ids))
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to read booked seats: {e}")
            raise InternalError("Failed to confirm booking") from e

        booked = {seat.id: seat for seat in result.scalars().all()}
        if not booked:
            # The sale that collided was rolled back in the meantime
            return [{"id": str(seat_id), "reason": "already_booked"} for seat_id in seat_ids]
        return [
            self._describe_invalid(booked[seat_id], "already_booked")
            for seat_id in seat_ids
            if seat_id in booked
        ]

    async def _load_bookings(self, booking_ids: List[UUID]) -> List[Booking]:
        result = await self.session.execute(
            select(Booking)
            .where(Booking.id.in_(booking_ids))
            .execution_options(populate_existing=True)
        )
        by_id = {booking.id: booking for booking in result.unique().scalars().all()}
        return [by_id[booking_id] for booking_id in booking_ids]

    @staticmethod
    def _hold_problem(seat: Seat, user_id: str, now: datetime) -> Optional[str]:
        if seat.status != SeatStatus.RESERVED:
            return "not_reserved"
        if seat.holder != user_id:
            return "held_by_another_user"
        if seat.hold_expired(now):
            return "hold_expired"
        return None

    @staticmethod
    def _describe_invalid(seat: Seat, reason: str) -> Dict[str, Any]:
        return {
            "id": str(seat.id),
            "row": seat.row,
            "number": seat.number,
            "status": seat.status.value,
            "reason": reason,
        }
