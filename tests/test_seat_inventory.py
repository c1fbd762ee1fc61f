import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from seatkeeper.models import SeatChangeEvent, SeatStatus
from seatkeeper.schemas.seat import SectionLayout
from seatkeeper.services.reservation_service import ReservationService
from seatkeeper.services.seat_inventory import SeatInventoryService
from seatkeeper.utils.exceptions import ShowNotFoundError, ValidationError
from sqlalchemy import select

from .conftest import seat_at, theatre_layout


class TestInitialize:

    async def test_creates_every_seat_available_at_section_price(self, seats):
        assert len(seats) == 6
        assert all(seat.status == SeatStatus.AVAILABLE for seat in seats)
        assert all(seat.holder is None and seat.expires_at is None for seat in seats)
        assert seat_at(seats, "A", 2).price == Decimal("150.00")
        assert seat_at(seats, "B", 3).price == Decimal("80.00")

    async def test_second_call_returns_existing_map(self, session, clock, show_id, seats):
        again, created = await SeatInventoryService(session, clock).initialize(show_id, theatre_layout())

        assert created is False
        assert [seat.id for seat in again] == [seat.id for seat in seats]

    async def test_empty_layout_is_rejected(self, session, clock):
        with pytest.raises(ValidationError):
            await SeatInventoryService(session, clock).initialize(uuid4(), [])

    async def test_duplicate_positions_are_rejected(self, session, clock):
        layout = [
            SectionLayout(name="Stalls", price="10", rows=["A"], seats_per_row=2),
            SectionLayout(name="Stalls", price="12", rows=["A"], seats_per_row=2),
        ]

        with pytest.raises(ValidationError):
            await SeatInventoryService(session, clock).initialize(uuid4(), layout)

    async def test_rejected_layout_leaves_the_show_unclaimed(self, session, clock):
        show_id = uuid4()
        duplicated = [
            SectionLayout(name="Stalls", price="10", rows=["A"], seats_per_row=1),
            SectionLayout(name="Stalls", price="10", rows=["A"], seats_per_row=1),
        ]
        inventory = SeatInventoryService(session, clock)

        with pytest.raises(ValidationError):
            await inventory.initialize(show_id, duplicated)
        created_seats, created = await inventory.initialize(show_id, theatre_layout())

        assert created is True
        assert len(created_seats) == 6

    async def test_concurrent_initializers_create_one_map(self, session_factory, clock):
        show_id = uuid4()
        stalls = [SectionLayout(name="Stalls", price="50", rows=["A"], seats_per_row=3)]
        balcony = [SectionLayout(name="Balcony", price="30", rows=["C", "D"], seats_per_row=2)]

        async def initialize(layout):
            async with session_factory() as own_session:
                return await SeatInventoryService(own_session, clock).initialize(show_id, layout)

        outcomes = await asyncio.gather(initialize(stalls), initialize(balcony))

        assert sorted(created for _, created in outcomes) == [False, True]
        winner_seats, _ = next(outcome for outcome in outcomes if outcome[1])
        loser_seats, _ = next(outcome for outcome in outcomes if not outcome[1])
        assert [seat.id for seat in loser_seats] == [seat.id for seat in winner_seats]

        async with session_factory() as check:
            stored = await SeatInventoryService(check, clock).snapshot(show_id)
            events = (await check.execute(
                select(SeatChangeEvent).where(SeatChangeEvent.show_id == show_id)
            )).scalars().all()
        assert len(stored) == len(winner_seats)
        assert len({seat.section for seat in stored}) == 1
        assert len(events) == 1

    async def test_writes_initialize_event(self, session, show_id, seats):
        events = (await session.execute(select(SeatChangeEvent))).scalars().all()

        assert len(events) == 1
        assert events[0].show_id == show_id
        assert len(events[0].seat_ids) == len(seats)


class TestList:

    async def test_orders_by_row_then_number(self, session, clock, show_id, seats):
        listed = await SeatInventoryService(session, clock).list(show_id)

        assert [(seat.row, seat.number) for seat in listed] == [
            ("A", 1), ("A", 2), ("A", 3), ("B", 1), ("B", 2), ("B", 3)
        ]

    async def test_unknown_show_is_not_found(self, session, clock, seats):
        with pytest.raises(ShowNotFoundError):
            await SeatInventoryService(session, clock).list(uuid4())

    async def test_read_reclaims_expired_holds(self, session, clock, show_id, seats):
        seat = seat_at(seats, "A", 1)
        await ReservationService(session, clock).hold([seat.id], "alice")

        clock.advance(299)
        listed = {s.id: s for s in await SeatInventoryService(session, clock).list(show_id)}
        assert listed[seat.id].status == SeatStatus.RESERVED

        clock.advance(1)
        listed = {s.id: s for s in await SeatInventoryService(session, clock).list(show_id)}
        assert listed[seat.id].status == SeatStatus.AVAILABLE
        assert listed[seat.id].holder is None
        assert listed[seat.id].reserved_at is None

    async def test_summary_counts_each_status(self, session, clock, show_id, seats):
        await ReservationService(session, clock).hold([seat_at(seats, "A", 1).id], "alice")
        inventory = SeatInventoryService(session, clock)

        summary = inventory.summarize(await inventory.list(show_id))

        assert summary == {"total": 6, "available": 5, "reserved": 1, "booked": 0}
