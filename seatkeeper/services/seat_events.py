"""
Outbox writes for seat mutations.

Every service that changes seat state calls ``record_seat_change`` before it
commits, so the change event and the seat rows land in the same transaction.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import SeatChangeAction, SeatChangeEvent


def group_by_show(rows: Iterable[Tuple[UUID, UUID]]) -> Dict[UUID, List[UUID]]:
    """Group (seat_id, show_id) pairs into show_id -> [seat_id]."""
    grouped: Dict[UUID, List[UUID]] = defaultdict(list)
    for seat_id, show_id in rows:
        grouped[show_id].append(seat_id)
    return dict(grouped)


def record_seat_change(
    session: AsyncSession,
    show_id: UUID,
    action: SeatChangeAction,
    seat_ids: Iterable[UUID],
) -> SeatChangeEvent:
    """Stage an outbox row in the caller's transaction."""
    event = SeatChangeEvent(
        show_id=show_id,
        action=action,
        seat_ids=[str(seat_id) for seat_id in seat_ids],
    )
    session.add(event)
    return event
