"""
Realtime seat notifications.

Seat mutations never talk to sockets directly. Each one commits a row to the
``seat_change_events`` outbox, and every process runs a ``SeatBroadcaster``
that tails the outbox and pushes a full seat snapshot to the subscribers of
each affected show. Subscribers are process-local and advisory: a failed send
drops the subscriber, and a lost message is repaired by the next snapshot.

Outbox ids come from a sequence that is drawn at insert time, so rows can
commit out of id order. When the cursor jumps past an id that is not visible
yet, the id is remembered as a gap and re-queried on later polls until it
shows up or ``notifier_gap_timeout_seconds`` passes (rolled-back transactions
leave gaps that never fill).
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..database import get_db_session
from ..models import SeatChangeEvent
from ..schemas.realtime import SeatSnapshotMessage
from ..schemas.seat import SeatResponse, SeatSummary
from .seat_inventory import SeatInventoryService

logger = logging.getLogger(__name__)


class SeatBroadcaster:
    """Outbox-fed broadcaster of seat snapshots to WebSocket subscribers."""

    def __init__(
        self,
        poll_interval: Optional[float] = None,
        batch_size: Optional[int] = None,
        gap_timeout: Optional[float] = None
    ):
        settings = get_settings()
        self.poll_interval = poll_interval or settings.notifier_poll_interval_seconds
        self.batch_size = batch_size or settings.notifier_batch_size
        self.gap_timeout = (
            gap_timeout if gap_timeout is not None else settings.notifier_gap_timeout_seconds
        )

        self.group_connections: Dict[UUID, Set[WebSocket]] = {}
        self.connection_info: Dict[WebSocket, UUID] = {}
        self.cursor: Optional[int] = None
        # Outbox id -> monotonic time it was first skipped
        self.gaps: Dict[int, float] = {}
        self._task: Optional[asyncio.Task] = None

    # Subscribers

    async def connect(self, websocket: WebSocket, show_id: UUID) -> None:
        await websocket.accept()
        self.group_connections.setdefault(show_id, set()).add(websocket)
        self.connection_info[websocket] = show_id
        logger.debug(f"WebSocket subscribed to show {show_id}")

    async def disconnect(self, websocket: WebSocket) -> None:
        show_id = self.connection_info.pop(websocket, None)
        if show_id is None:
            return

        group = self.group_connections.get(show_id)
        if group is not None:
            group.discard(websocket)
            if not group:
                del self.group_connections[show_id]

    def get_group_size(self, show_id: UUID) -> int:
        return len(self.group_connections.get(show_id, set()))

    @property
    def subscriber_count(self) -> int:
        return len(self.connection_info)

    async def send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        """Send to one subscriber; a failed send drops it."""
        try:
            await websocket.send_json(message)
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.info(f"Dropping WebSocket subscriber after failed send: {e}")
            await self.disconnect(websocket)
            return False

    async def broadcast(self, show_id: UUID, message: Dict[str, Any]) -> int:
        """Send a message to every subscriber of a show; returns deliveries."""
        delivered = 0
        for websocket in list(self.group_connections.get(show_id, set())):
            if await self.send(websocket, message):
                delivered += 1
        return delivered

    # Snapshots

    async def build_snapshot(self, session: AsyncSession, show_id: UUID) -> Dict[str, Any]:
        inventory = SeatInventoryService(session)
        seats = await inventory.snapshot(show_id)
        message = SeatSnapshotMessage(
            show_id=show_id,
            sequence=self.cursor or 0,
            seats=[SeatResponse.model_validate(seat) for seat in seats],
            summary=SeatSummary(**inventory.summarize(seats)),
        )
        return message.model_dump(mode="json", by_alias=True)

    # Outbox tailing

    async def prime(self) -> int:
        """Start the cursor at the newest outbox row; history is not replayed."""
        async with get_db_session() as session:
            result = await session.execute(select(func.max(SeatChangeEvent.id)))
            self.cursor = result.scalar_one() or 0
        self.gaps.clear()
        logger.info(f"Seat broadcaster cursor primed at {self.cursor}")
        return self.cursor

    async def poll_once(self) -> int:
        """
        Deliver snapshots for outbox rows committed since the last poll.

        Returns:
            Number of outbox rows consumed
        """
        if self.cursor is None:
            await self.prime()

        self._forget_stale_gaps()
        pending = SeatChangeEvent.id > self.cursor
        if self.gaps:
            pending = or_(pending, SeatChangeEvent.id.in_(list(self.gaps)))

        async with get_db_session() as session:
            result = await session.execute(
                select(SeatChangeEvent)
                .where(pending)
                .order_by(SeatChangeEvent.id)
                .limit(self.batch_size)
            )
            events: List[SeatChangeEvent] = list(result.scalars().all())
            if not events:
                return 0

            self._advance(events)

            changed_shows = list(dict.fromkeys(event.show_id for event in events))
            for show_id in changed_shows:
                if not self.get_group_size(show_id):
                    continue
                snapshot = await self.build_snapshot(session, show_id)
                delivered = await self.broadcast(show_id, snapshot)
                logger.debug(f"Sent snapshot of show {show_id} to {delivered} subscribers")

        return len(events)

    def _advance(self, events: List[SeatChangeEvent]) -> None:
        """Move the cursor past new rows, noting skipped ids and filled gaps."""
        now = time.monotonic()
        expected = self.cursor + 1
        for event in events:
            if event.id in self.gaps:
                del self.gaps[event.id]
                logger.debug(f"Outbox row {event.id} committed after later rows")
                continue
            for missing in range(expected, event.id):
                self.gaps.setdefault(missing, now)
            expected = event.id + 1
        self.cursor = max(self.cursor, expected - 1)

    def _forget_stale_gaps(self) -> None:
        deadline = time.monotonic() - self.gap_timeout
        stale = [event_id for event_id, seen in self.gaps.items() if seen <= deadline]
        for event_id in stale:
            del self.gaps[event_id]
        if stale:
            logger.debug(f"Gave up on {len(stale)} outbox ids that never committed")

    async def run(self) -> None:
        """Poll the outbox until cancelled."""
        logger.info(f"Seat broadcaster polling every {self.poll_interval}s")
        while True:
            try:
                consumed = await self.poll_once()
            except Exception as e:
                logger.error(f"Seat broadcaster poll failed: {e}", exc_info=True)
                consumed = 0

            # Drain backlogs without waiting
            if consumed < self.batch_size:
                await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="seat-broadcaster")

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.cursor = None
        self.gaps.clear()

        for websocket in list(self.connection_info):
            await self.disconnect(websocket)
        logger.info("Seat broadcaster stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()


# Global broadcaster instance
seat_broadcaster = SeatBroadcaster()
