import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import update

from seatkeeper.models import Seat, SeatChangeAction, SeatStatus
from seatkeeper.services.notification_service import SeatBroadcaster
from seatkeeper.services.seat_events import record_seat_change
from seatkeeper.services.reservation_service import ReservationService


class MockWebSocket:
    """Records what the broadcaster sends."""

    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("WebSocket is not connected")
        self.sent.append(message)


@pytest.fixture
def broadcaster():
    return SeatBroadcaster(poll_interval=0.01, batch_size=10)


class TestSubscribers:

    async def test_connect_and_disconnect_track_groups(self, broadcaster):
        show_id = uuid4()
        first, second = MockWebSocket(), MockWebSocket()

        await broadcaster.connect(first, show_id)
        await broadcaster.connect(second, show_id)
        assert first.accepted
        assert broadcaster.get_group_size(show_id) == 2

        await broadcaster.disconnect(first)
        await broadcaster.disconnect(second)
        assert broadcaster.get_group_size(show_id) == 0
        assert show_id not in broadcaster.group_connections

    async def test_failed_send_drops_the_subscriber(self, broadcaster):
        show_id = uuid4()
        healthy, broken = MockWebSocket(), MockWebSocket(fail=True)
        await broadcaster.connect(healthy, show_id)
        await broadcaster.connect(broken, show_id)

        delivered = await broadcaster.broadcast(show_id, {"type": "seats-update"})

        assert delivered == 1
        assert healthy.sent == [{"type": "seats-update"}]
        assert broadcaster.get_group_size(show_id) == 1

    async def test_broadcast_without_subscribers_sends_nothing(self, broadcaster):
        websocket = AsyncMock()

        assert await broadcaster.broadcast(uuid4(), {"type": "seats-update"}) == 0
        websocket.send_json.assert_not_called()


class TestOutboxPolling:

    async def test_prime_skips_history(self, broadcaster, seats):
        cursor = await broadcaster.prime()

        assert cursor == 1
        assert await broadcaster.poll_once() == 0

    async def test_poll_sends_snapshot_of_changed_show(self, broadcaster, session, clock, show_id, seats):
        await broadcaster.prime()
        watcher, bystander = MockWebSocket(), MockWebSocket()
        await broadcaster.connect(watcher, show_id)
        await broadcaster.connect(bystander, uuid4())

        await ReservationService(session, clock).hold([seats[0].id], "alice")
        consumed = await broadcaster.poll_once()

        assert consumed == 1
        assert bystander.sent == []
        assert len(watcher.sent) == 1

        snapshot = watcher.sent[0]
        assert snapshot["type"] == "seats-update"
        assert snapshot["showId"] == str(show_id)
        assert snapshot["sequence"] == 2
        assert snapshot["summary"] == {"total": 6, "available": 5, "reserved": 1, "booked": 0}
        held = next(seat for seat in snapshot["seats"] if seat["id"] == str(seats[0].id))
        assert held["status"] == "reserved"
        assert held["holder"] == "alice"
        assert held["price"] == 100.0

    async def test_several_events_for_one_show_send_one_snapshot(self, broadcaster, session, clock, show_id, seats):
        await broadcaster.prime()
        watcher = MockWebSocket()
        await broadcaster.connect(watcher, show_id)

        reservations = ReservationService(session, clock)
        await reservations.hold([seats[0].id], "alice")
        await reservations.release([seats[0].id], "alice")
        await reservations.hold([seats[1].id], "bob")

        assert await broadcaster.poll_once() == 3
        assert len(watcher.sent) == 1
        assert watcher.sent[0]["summary"]["reserved"] == 1

    async def test_row_committed_after_a_later_row_is_delivered(
        self, broadcaster, session_factory, clock, show_id, seats
    ):
        cursor = await broadcaster.prime()
        watcher = MockWebSocket()
        await broadcaster.connect(watcher, show_id)

        async with session_factory() as later:
            event = record_seat_change(later, show_id, SeatChangeAction.RELEASE, [seats[1].id])
            event.id = cursor + 2
            await later.commit()

        assert await broadcaster.poll_once() == 1
        assert broadcaster.cursor == cursor + 2
        assert set(broadcaster.gaps) == {cursor + 1}

        # The transaction that drew the lower id commits last
        async with session_factory() as earlier:
            await earlier.execute(
                update(Seat)
                .where(Seat.id == seats[0].id)
                .values(
                    status=SeatStatus.RESERVED,
                    holder="alice",
                    expires_at=clock() + timedelta(seconds=300)
                )
            )
            event = record_seat_change(earlier, show_id, SeatChangeAction.HOLD, [seats[0].id])
            event.id = cursor + 1
            await earlier.commit()

        assert await broadcaster.poll_once() == 1
        assert broadcaster.gaps == {}
        assert broadcaster.cursor == cursor + 2
        assert len(watcher.sent) == 2
        assert watcher.sent[-1]["summary"]["reserved"] == 1

    async def test_gap_that_never_fills_is_written_off(self, session_factory, show_id, seats):
        broadcaster = SeatBroadcaster(poll_interval=0.01, batch_size=10, gap_timeout=0)
        cursor = await broadcaster.prime()

        async with session_factory() as later:
            event = record_seat_change(later, show_id, SeatChangeAction.HOLD, [seats[0].id])
            event.id = cursor + 2
            await later.commit()

        assert await broadcaster.poll_once() == 1
        assert set(broadcaster.gaps) == {cursor + 1}
        assert await broadcaster.poll_once() == 0
        assert broadcaster.gaps == {}

    async def test_run_loop_delivers_until_stopped(self, broadcaster, session, clock, show_id, seats):
        await broadcaster.prime()
        watcher = MockWebSocket()
        await broadcaster.connect(watcher, show_id)

        broadcaster.start()
        assert broadcaster.is_running
        await ReservationService(session, clock).hold([seats[0].id], "alice")

        for _ in range(100):
            if watcher.sent:
                break
            await asyncio.sleep(0.01)
        await broadcaster.stop()

        assert watcher.sent
        assert not broadcaster.is_running
        assert broadcaster.subscriber_count == 0
