import os

# database.py builds its module-level engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta

import pytest

from booking_service import BookingService
from booking_store import BookingStore, RoomLocks
from clock import FixedClock
from database import build_engine, build_session_factory, init_db
from models import Room
from schemas import BookingCreate

# A Monday morning, UTC
NOW = datetime(2030, 1, 7, 8, 0)


def at(hour: int, minute: int = 0, second: int = 0, days: int = 0) -> datetime:
    return NOW.replace(hour=hour, minute=minute, second=second) + timedelta(days=days)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def locks():
    return RoomLocks()


@pytest.fixture
def store(session):
    return BookingStore(session)


@pytest.fixture
def service(session, clock, locks):
    return BookingService(session, clock=clock, locks=locks)


@pytest.fixture
def make_draft():
    def _make(room_id, start, end, title="Meeting", created_by="alice@example.com", participants=None):
        return BookingCreate(
            room_id=room_id,
            title=title,
            start_time=start,
            end_time=end,
            created_by=created_by,
            number_of_participants=participants,
        )

    return _make


@pytest.fixture
def add_room(session):
    async def _add(name="Room R", location="First Floor - Building A", capacity=4):
        room = Room(name=name, location=location, capacity=capacity)
        session.add(room)
        await session.commit()
        await session.refresh(room)
        return room

    return _add


@pytest.fixture
async def room(add_room):
    return await add_room()
