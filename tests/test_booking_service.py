import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from seatkeeper.models import Booking, BookingStatus, SeatChangeEvent, SeatStatus
from seatkeeper.services.booking_service import BookingService
from seatkeeper.services.reservation_service import ReservationService
from seatkeeper.services.seat_inventory import SeatInventoryService
from seatkeeper.utils.exceptions import BookingConflictError, SeatNotFoundError, ValidationError

from .conftest import START, seat_at, theatre_layout


async def _booking_count(session) -> int:
    return (await session.execute(select(func.count(Booking.id)))).scalar_one()


class TestConfirm:

    async def test_books_every_held_seat_at_its_price(self, session, clock, show_id, seats):
        a1, a2, a3 = (seat_at(seats, "A", n) for n in (1, 2, 3))
        await ReservationService(session, clock).hold([a1.id, a2.id, a3.id], "alice")

        clock.advance(60)
        result = await BookingService(session, clock).confirm([a1.id, a2.id, a3.id], "alice")

        assert [booking.total_amount for booking in result.bookings] == [
            Decimal("100.00"), Decimal("150.00"), Decimal("100.00")
        ]
        assert result.total_amount == Decimal("350.00")
        for booking in result.bookings:
            assert booking.user_id == "alice"
            assert booking.show_id == show_id
            assert booking.status == BookingStatus.CONFIRMED

        current = await SeatInventoryService(session, clock).get_seats([a1.id, a2.id, a3.id])
        for seat in current.values():
            assert seat.status == SeatStatus.BOOKED
            assert seat.holder is None
            assert seat.reserved_at is None
            assert seat.expires_at is None
            assert seat.booked_at == START.replace(minute=31)

    async def test_writes_confirm_event(self, session, clock, seats):
        seat = seat_at(seats, "B", 2)
        await ReservationService(session, clock).hold([seat.id], "alice")
        await BookingService(session, clock).confirm([seat.id], "alice")

        actions = (
            await session.execute(select(SeatChangeEvent.action).order_by(SeatChangeEvent.id))
        ).scalars().all()

        assert [action.value for action in actions] == ["initialize", "hold", "confirm"]

    async def test_unheld_seat_rejects_the_whole_batch(self, session, clock, seats):
        a1, a2 = seat_at(seats, "A", 1), seat_at(seats, "A", 2)
        await ReservationService(session, clock).hold([a1.id], "alice")

        with pytest.raises(BookingConflictError) as exc_info:
            await BookingService(session, clock).confirm([a1.id, a2.id], "alice")

        assert exc_info.value.invalid_seats == [{
            "id": str(a2.id), "row": "A", "number": 2, "status": "available", "reason": "not_reserved"
        }]
        assert await _booking_count(session) == 0
        current = await SeatInventoryService(session, clock).get_seats([a1.id])
        assert current[a1.id].status == SeatStatus.RESERVED

    async def test_seat_held_by_someone_else_is_rejected(self, session, clock, seats):
        seat = seat_at(seats, "A", 1)
        await ReservationService(session, clock).hold([seat.id], "bob")

        with pytest.raises(BookingConflictError) as exc_info:
            await BookingService(session, clock).confirm([seat.id], "alice")

        assert exc_info.value.invalid_seats[0]["reason"] == "held_by_another_user"

    async def test_expired_hold_is_rejected(self, session, clock, seats):
        seat = seat_at(seats, "A", 1)
        await ReservationService(session, clock).hold([seat.id], "alice")

        clock.advance(301)
        with pytest.raises(BookingConflictError) as exc_info:
            await BookingService(session, clock).confirm([seat.id], "alice")

        assert exc_info.value.invalid_seats[0]["reason"] == "hold_expired"
        assert await _booking_count(session) == 0

    async def test_booked_seat_cannot_be_booked_again(self, session, clock, seats):
        seat = seat_at(seats, "A", 1)
        await ReservationService(session, clock).hold([seat.id], "alice")
        await BookingService(session, clock).confirm([seat.id], "alice")

        with pytest.raises(BookingConflictError) as exc_info:
            await BookingService(session, clock).confirm([seat.id], "alice")

        assert exc_info.value.invalid_seats[0]["status"] == "booked"
        assert await _booking_count(session) == 1

    async def test_double_sale_names_only_the_sold_seat(self, session, clock, show_id, seats):
        a1, a2 = seat_at(seats, "A", 1), seat_at(seats, "A", 2)
        await ReservationService(session, clock).hold([a1.id, a2.id], "alice")
        # A sale recorded outside the hold flow, so only the booking constraint can catch it
        session.add(Booking(
            user_id="bob",
            show_id=show_id,
            seat_id=a1.id,
            total_amount=Decimal("100.00"),
            status=BookingStatus.CONFIRMED,
            booking_date=clock(),
        ))
        await session.commit()

        with pytest.raises(BookingConflictError) as exc_info:
            await BookingService(session, clock).confirm([a1.id, a2.id], "alice")

        assert exc_info.value.invalid_seats == [
            {"id": str(a1.id), "row": "A", "number": 1, "status": "reserved", "reason": "already_booked"}
        ]
        assert await _booking_count(session) == 1

    async def test_missing_seats_are_listed(self, session, clock, seats):
        seat = seat_at(seats, "A", 1)
        missing = uuid4()
        await ReservationService(session, clock).hold([seat.id], "alice")

        with pytest.raises(SeatNotFoundError) as exc_info:
            await BookingService(session, clock).confirm([seat.id, missing], "alice")

        assert exc_info.value.missing_seat_ids == [str(missing)]

    async def test_seats_from_two_shows_are_rejected(self, session, clock, seats):
        other, _ = await SeatInventoryService(session, clock).initialize(uuid4(), theatre_layout())
        seat_ids = [seats[0].id, other[0].id]
        await ReservationService(session, clock).hold(seat_ids, "alice")

        with pytest.raises(ValidationError):
            await BookingService(session, clock).confirm(seat_ids, "alice")

    async def test_hold_then_rebook_scenario(self, session, clock, seats):
        """A1/A3 at 100 and A2 at 150: two users, one expiry, one sale."""
        a1, a2, a3 = (seat_at(seats, "A", n) for n in (1, 2, 3))
        reservations = ReservationService(session, clock)
        bookings = BookingService(session, clock)

        await reservations.hold([a1.id, a2.id], "alice")
        clock.advance(100)
        clash = await reservations.hold([a2.id, a3.id], "bob")
        assert [seat.id for seat in clash.held_seats] == [a3.id]
        assert clash.failed_seat_ids == [a2.id]

        clock.advance(200)
        retry = await reservations.hold([a2.id], "bob")
        assert retry.is_complete

        result = await bookings.confirm([a2.id, a3.id], "bob")
        assert result.total_amount == Decimal("250.00")

        with pytest.raises(BookingConflictError) as exc_info:
            await bookings.confirm([a1.id], "alice")
        assert exc_info.value.invalid_seats[0]["reason"] == "hold_expired"

        listed = {seat.id: seat for seat in await SeatInventoryService(session, clock).list(seats[0].show_id)}
        assert listed[a1.id].status == SeatStatus.AVAILABLE
        assert listed[a2.id].status == SeatStatus.BOOKED
        assert listed[a3.id].status == SeatStatus.BOOKED


class TestConcurrentConfirm:

    @pytest.mark.parametrize("attempt", range(5))
    async def test_overlapping_confirms_book_each_seat_once(self, session_factory, clock, show_id, attempt):
        async with session_factory() as setup:
            created, _ = await SeatInventoryService(setup, clock).initialize(show_id, theatre_layout())
            seat_ids = [seat.id for seat in created[:3]]
            await ReservationService(setup, clock).hold(seat_ids, "alice")

        async def confirm():
            async with session_factory() as session:
                return await BookingService(session, clock).confirm(seat_ids, "alice")

        outcomes = await asyncio.gather(confirm(), confirm(), confirm(), return_exceptions=True)

        successes = [outcome for outcome in outcomes if not isinstance(outcome, BaseException)]
        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        assert len(successes) == 1
        assert all(isinstance(failure, BookingConflictError) for failure in failures)

        async with session_factory() as check:
            booked = (await check.execute(
                select(Booking.seat_id).where(Booking.seat_id.in_(seat_ids))
            )).scalars().all()
        assert sorted(booked) == sorted(seat_ids)

    @pytest.mark.parametrize("attempt", range(5))
    async def test_confirm_racing_release_is_all_or_nothing(self, session_factory, clock, show_id, attempt):
        async with session_factory() as setup:
            created, _ = await SeatInventoryService(setup, clock).initialize(show_id, theatre_layout())
            a1, a2 = seat_at(created, "A", 1).id, seat_at(created, "A", 2).id
            await ReservationService(setup, clock).hold([a1, a2], "alice")

        async def confirm():
            async with session_factory() as session:
                return await BookingService(session, clock).confirm([a1, a2], "alice")

        async def release():
            async with session_factory() as session:
                return await ReservationService(session, clock).release([a2], "alice")

        confirmed, released = await asyncio.gather(confirm(), release(), return_exceptions=True)

        async with session_factory() as check:
            current = await SeatInventoryService(check, clock).get_seats([a1, a2])
            bookings = await _booking_count(check)

        if isinstance(confirmed, BaseException):
            assert isinstance(confirmed, BookingConflictError)
            assert released == [a2]
            assert bookings == 0
            assert current[a1].status == SeatStatus.RESERVED
            assert current[a1].holder == "alice"
            assert current[a2].status == SeatStatus.AVAILABLE
        else:
            assert released == []
            assert bookings == 2
            assert {seat.status for seat in current.values()} == {SeatStatus.BOOKED}

    async def test_only_the_holder_wins_a_confirm_race(self, session_factory, clock, show_id):
        async with session_factory() as setup:
            created, _ = await SeatInventoryService(setup, clock).initialize(show_id, theatre_layout())
            seat_id = created[0].id
            await ReservationService(setup, clock).hold([seat_id], "alice")

        async def confirm(user_id):
            async with session_factory() as session:
                return await BookingService(session, clock).confirm([seat_id], user_id)

        by_alice, by_bob = await asyncio.gather(
            confirm("alice"), confirm("bob"), return_exceptions=True
        )

        assert not isinstance(by_alice, BaseException)
        assert isinstance(by_bob, BookingConflictError)
        assert by_bob.invalid_seats[0]["reason"] in {"held_by_another_user", "not_reserved"}


class TestListUserBookings:

    async def test_lists_newest_first_and_filters_by_show(self, session, clock, show_id, seats):
        reservations = ReservationService(session, clock)
        bookings = BookingService(session, clock)

        await reservations.hold([seats[0].id], "alice")
        await bookings.confirm([seats[0].id], "alice")
        clock.advance(10)
        await reservations.hold([seats[1].id], "alice")
        await bookings.confirm([seats[1].id], "alice")

        other_show = uuid4()
        other, _ = await SeatInventoryService(session, clock).initialize(other_show, theatre_layout())
        clock.advance(10)
        await reservations.hold([other[0].id], "alice")
        await bookings.confirm([other[0].id], "alice")

        everything = await bookings.list_user_bookings("alice")
        assert [booking.seat_id for booking in everything] == [other[0].id, seats[1].id, seats[0].id]

        one_show = await bookings.list_user_bookings("alice", show_id)
        assert [booking.seat_id for booking in one_show] == [seats[1].id, seats[0].id]
        assert one_show[0].seat.row == seats[1].row

        assert await bookings.list_user_bookings("bob") == []
