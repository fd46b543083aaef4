"""Shared fixtures: a throwaway SQLite database, a fake clock and seeded catalog."""

from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from boxoffice.models import (
    Base,
    Cinema,
    DayType,
    PriceRule,
    Room,
    Seat,
    SeatType,
    Showing,
)
from boxoffice.models.price_rule import GLOBAL_SCOPE
from boxoffice.services.booking_service import ReservationOrchestrator
from boxoffice.services.seat_lock_service import SeatLockManager
from tests.doubles import (
    FakeClock,
    InMemoryDraftStore,
    InMemoryLeaseStore,
    RecordingBroadcaster,
)

# Tuesday; the seeded showing is the following Monday evening
NOW = datetime(2030, 1, 1, 12, 0, 0)
SHOWING_START = datetime(2030, 1, 7, 19, 0, 0)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'boxoffice.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock(NOW)


async def seed_catalog(
    session_factory,
    start_at: datetime = SHOWING_START,
    price_rules: bool = True,
) -> SimpleNamespace:
    """Insert one cinema with a bookable showing; returns plain ids."""
    async with session_factory() as session:
        cinema = Cinema(name="Galaxy Nguyen Du", city="Ho Chi Minh City")
        other_cinema = Cinema(name="Galaxy Tan Binh", city="Ho Chi Minh City")
        room = Room(cinema=cinema, name="Room 1")
        other_room = Room(cinema=cinema, name="Room 2")
        seats = {
            "A1": Seat(room=room, row_label="A", seat_number=1, seat_type=SeatType.STANDARD),
            "A2": Seat(room=room, row_label="A", seat_number=2, seat_type=SeatType.VIP),
            "A3": Seat(room=room, row_label="A", seat_number=3, seat_type=SeatType.STANDARD),
            "A4": Seat(
                room=room,
                row_label="A",
                seat_number=4,
                seat_type=SeatType.STANDARD,
                is_active=False,
            ),
            "C1": Seat(room=room, row_label="C", seat_number=1, seat_type=SeatType.COUPLE),
            "B1": Seat(room=other_room, row_label="B", seat_number=1),
        }
        showing = Showing(
            room=room,
            movie_title="Dune: Part Three",
            start_at=start_at,
            end_at=start_at.replace(hour=21),
            base_price=70000,
        )
        session.add_all([cinema, other_cinema, room, other_room, showing, *seats.values()])
        for day_type in DayType if price_rules else ():
            session.add_all(
                [
                    PriceRule(
                        scope_key=GLOBAL_SCOPE,
                        day_type=day_type,
                        seat_type=SeatType.STANDARD,
                        price=80000 if day_type == DayType.WEEKDAY else 95000,
                        is_active=True,
                    ),
                    PriceRule(
                        scope_key=GLOBAL_SCOPE,
                        day_type=day_type,
                        seat_type=SeatType.VIP,
                        price=120000 if day_type == DayType.WEEKDAY else 140000,
                        is_active=True,
                    ),
                ]
            )
        await session.commit()

        return SimpleNamespace(
            cinema_id=cinema.cinema_id,
            other_cinema_id=other_cinema.cinema_id,
            room_id=room.room_id,
            showing_id=showing.showing_id,
            seats={label: seat.seat_id for label, seat in seats.items()},
        )


@pytest.fixture
async def catalog(session_factory):
    return await seed_catalog(session_factory)


@pytest.fixture
def lease_store(clock):
    return InMemoryLeaseStore(clock)


@pytest.fixture
def drafts(clock):
    return InMemoryDraftStore(clock)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def seat_locks(lease_store, broadcaster, clock):
    return SeatLockManager(lease_store, broadcaster, clock)


@pytest.fixture
def orchestrator(db, seat_locks, drafts, broadcaster, clock):
    return ReservationOrchestrator(db, seat_locks, drafts, broadcaster, clock)
