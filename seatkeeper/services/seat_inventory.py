"""
Seat inventory service: durable seat maps and read access to them.
"""

import logging
from typing import Dict, Iterable, List, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Seat, SeatChangeAction, SeatStatus, ShowSeatMap
from ..schemas.seat import SectionLayout
from ..utils.clock import Clock, utc_now
from ..utils.exceptions import InternalError, ShowNotFoundError, ValidationError
from .expiry_reaper import ExpiryReaper
from .seat_events import record_seat_change

logger = logging.getLogger(__name__)


class SeatInventoryService:
    """Service class for seat map creation and reads."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        """Initialize the inventory service with a database session."""
        self.session = session
        self.clock = clock

    async def initialize(
        self,
        show_id: UUID,
        layout: Sequence[SectionLayout]
    ) -> Tuple[List[Seat], bool]:
        """
        Create the full seat set for a show, once.

        Every seat takes its section's price. Calling this again for a show
        that already has seats returns the existing map and creates nothing.

        Args:
            show_id: Show UUID supplied by the catalog
            layout: Priced sections with their row labels

        Returns:
            Tuple of (seats ordered by row and number, whether they were created now)

        Raises:
            ValidationError: If the layout is empty
        """
        if not layout:
            raise ValidationError("Seat layout must contain at least one section")

        if await self._seat_count(show_id) > 0:
            logger.info(f"Seat map for show {show_id} already initialized")
            return await self.snapshot(show_id), False

        seats = [
            Seat(
                show_id=show_id,
                section=section.name,
                row=row_label,
                number=number,
                price=section.price,
                status=SeatStatus.AVAILABLE,
            )
            for section in layout
            for row_label in section.rows
            for number in range(
                section.seat_number_start,
                section.seat_number_start + section.seats_per_row
            )
        ]

        try:
            # Claim the show before writing seats; a concurrent claim waits on this key
            self.session.add(ShowSeatMap(show_id=show_id, seat_count=len(seats)))
            await self.session.flush()

        except IntegrityError:
            await self.session.rollback()
            logger.info(f"Seat map for show {show_id} was initialized concurrently")
            return await self.snapshot(show_id), False

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to claim seat map for show {show_id}: {e}")
            raise InternalError("Failed to initialize seat map") from e

        try:
            self.session.add_all(seats)
            await self.session.flush()
            record_seat_change(
                self.session, show_id, SeatChangeAction.INITIALIZE, [seat.id for seat in seats]
            )
            await self.session.commit()

        except IntegrityError:
            await self.session.rollback()
            raise ValidationError("Seat layout contains duplicate seat positions")

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to initialize seats for show {show_id}: {e}")
            raise InternalError("Failed to initialize seat map") from e

        logger.info(f"Initialized {len(seats)} seats for show {show_id}")
        return await self.snapshot(show_id), True

    async def list(self, show_id: UUID) -> List[Seat]:
        """
        List every seat of a show after reclaiming expired holds.

        Args:
            show_id: Show UUID

        Returns:
            Seats ordered by (row, number)

        Raises:
            ShowNotFoundError: If the show has no seat map
        """
        await ExpiryReaper(self.session, self.clock).sweep(show_id)

        seats = await self.snapshot(show_id)
        if not seats:
            raise ShowNotFoundError(str(show_id))
        return seats

    async def snapshot(self, show_id: UUID) -> List[Seat]:
        """Read a show's seats as stored, without reaping."""
        try:
            result = await self.session.execute(
                select(Seat)
                .where(Seat.show_id == show_id)
                .order_by(Seat.row, Seat.number, Seat.section)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to read seats for show {show_id}: {e}")
            raise InternalError("Failed to read seat inventory") from e
        return list(result.scalars().all())

    async def get_seats(self, seat_ids: Iterable[UUID]) -> Dict[UUID, Seat]:
        """Fetch seats by id; unknown ids are absent from the result."""
        ids = list(seat_ids)
        if not ids:
            return {}

        result = await self.session.execute(
            select(Seat)
            .where(Seat.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {seat.id: seat for seat in result.scalars().all()}

    @staticmethod
    def summarize(seats: Iterable[Seat]) -> Dict[str, int]:
        """Count seats per status."""
        summary = {"total": 0, "available": 0, "reserved": 0, "booked": 0}
        for seat in seats:
            summary["total"] += 1
            summary[seat.status.value] += 1
        return summary

    async def _seat_count(self, show_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(Seat.id)).where(Seat.show_id == show_id)
        )
        return result.scalar_one()
