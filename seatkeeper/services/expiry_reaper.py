"""
Expiry reaper: returns abandoned holds to the pool.

Sweeps run synchronously before every inventory read and from the periodic
Celery beat task, so an expired hold stays visibly reserved only until the
next read or the next beat tick, whichever comes first. Expiry is never
observed at an exact wall-clock instant.
"""

import logging
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Seat, SeatChangeAction, SeatStatus
from ..utils.clock import Clock, utc_now
from ..utils.exceptions import InternalError
from ..utils.logging_config import log_business_event
from .seat_events import group_by_show, record_seat_change

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """Reclaims reserved seats whose hold has expired."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self.session = session
        self.clock = clock

    async def sweep(self, show_id: UUID) -> List[UUID]:
        """
        Reset expired holds for one show to available.

        Args:
            show_id: Show UUID

        Returns:
            IDs of the seats that were reclaimed
        """
        reclaimed = await self._reclaim(show_id)
        return reclaimed.get(show_id, [])

    async def sweep_all(self) -> Dict[UUID, List[UUID]]:
        """
        Reset expired holds across every show.

        Returns:
            Mapping of show ID to reclaimed seat IDs
        """
        return await self._reclaim(None)

    async def _reclaim(self, show_id: Optional[UUID]) -> Dict[UUID, List[UUID]]:
        now = self.clock()
        conditions = [Seat.status == SeatStatus.RESERVED, Seat.expires_at <= now]
        if show_id is not None:
            conditions.append(Seat.show_id == show_id)

        try:
            # Row locks in id order, the order hold and confirm take them in
            await self.session.execute(
                select(Seat.id).where(and_(*conditions)).order_by(Seat.id).with_for_update()
            )
            result = await self.session.execute(
                update(Seat)
                .where(and_(*conditions))
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
            reclaimed = group_by_show(result.all())

            for affected_show, seat_ids in reclaimed.items():
                record_seat_change(self.session, affected_show, SeatChangeAction.EXPIRE, seat_ids)

            await self.session.commit()

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Expiry sweep failed: {e}")
            raise InternalError("Failed to sweep expired holds") from e

        for affected_show, seat_ids in reclaimed.items():
            log_business_event(
                "holds_expired",
                {"show_id": str(affected_show), "seat_count": len(seat_ids)},
            )

        return reclaimed
