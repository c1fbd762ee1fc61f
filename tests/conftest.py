import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import List
from uuid import UUID, uuid4

# Settings are read once at import; point them at a throwaway SQLite file first
_db_dir = Path(tempfile.mkdtemp(prefix="seatkeeper-tests-"))
os.environ.setdefault("SEATKEEPER_DATABASE_URL", f"sqlite+aiosqlite:///{_db_dir / 'test.db'}")
os.environ.setdefault("SEATKEEPER_NOTIFIER_POLL_INTERVAL_SECONDS", "0.05")
os.environ.setdefault("SEATKEEPER_ENABLE_REQUEST_LOGGING", "false")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from seatkeeper import database  # noqa: E402
from seatkeeper.main import app  # noqa: E402
from seatkeeper.models import Base, Seat  # noqa: E402
from seatkeeper.schemas.seat import SectionLayout  # noqa: E402
from seatkeeper.services.seat_inventory import SeatInventoryService  # noqa: E402
from seatkeeper.utils.dependencies import get_clock  # noqa: E402

API = "/api/v1"
START = datetime(2026, 3, 14, 19, 30, 0)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
async def db():
    """Fresh schema per test on the file-backed SQLite database."""
    await database.init_database(create_tables=False)
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield database
    await database.close_database()


@pytest.fixture
async def session(db):
    async with db.async_session_factory() as session:
        yield session


@pytest.fixture
def session_factory(db):
    return db.async_session_factory


@pytest.fixture
async def client(db, clock):
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def theatre_layout() -> List[SectionLayout]:
    """Row A in two priced sections plus a plain row B."""
    return [
        SectionLayout(name="Stalls", price="100.00", rows=["A"], seats_per_row=1),
        SectionLayout(name="Premium", price="150.00", rows=["A"], seats_per_row=1, seat_number_start=2),
        SectionLayout(name="Stalls", price="100.00", rows=["A"], seats_per_row=1, seat_number_start=3),
        SectionLayout(name="Stalls", price="80.00", rows=["B"], seats_per_row=3),
    ]


@pytest.fixture
def show_id() -> UUID:
    return uuid4()


@pytest.fixture
async def seats(session_factory, clock, show_id) -> List[Seat]:
    """
    Initialized seat map: A1 100, A2 150, A3 100, B1-B3 80.

    Built in its own session so the returned seats stay detached and readable
    after a test session rolls back.
    """
    async with session_factory() as setup:
        created, _ = await SeatInventoryService(setup, clock).initialize(show_id, theatre_layout())
    return created


def seat_at(seats: List[Seat], row: str, number: int) -> Seat:
    return next(seat for seat in seats if seat.row == row and seat.number == number)
