"""Shared fixtures: in-memory SQLite database and model factories."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from pokerclub.models import (
    Base,
    ClubTable,
    Registration,
    RegistrationStatus,
    SeatAssignment,
    Tournament,
    TournamentEntry,
    TournamentStructure,
    TournamentTableAssignment,
)
from pokerclub.tournament.event_bus import TournamentEventBus
from pokerclub.utils.db import enable_sqlite_savepoints

TEST_DATABASE_URL = "sqlite+aiosqlite://"

BASE_TIME = datetime(2026, 3, 14, 19, 0, tzinfo=timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database per test; savepoints enabled like production."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def event_bus() -> TournamentEventBus:
    return TournamentEventBus()


@pytest.fixture
def recorded_events(event_bus: TournamentEventBus) -> list:
    """Every event published on `event_bus`, in order."""
    from pokerclub.tournament.models import TournamentEventType

    events = []

    async def handler(event):
        events.append(event)

    event_bus.subscribe(list(TournamentEventType), handler)
    return events


# =============================================================================
# Factories
# =============================================================================


async def create_tournament(
    db: AsyncSession,
    club_id: str | None = None,
    name: str = "Friday Deepstack",
    live_status: str = "registration_open",
    buy_in_cents: int = 10000,
    seat_cap: int | None = None,
    early_bird_bonus_chips: int | None = None,
    updated_at: datetime | None = None,
) -> Tournament:
    tournament = Tournament(
        id=new_id(),
        club_id=club_id or new_id(),
        name=name,
        live_status=live_status,
        buy_in_cents=buy_in_cents,
        seat_cap=seat_cap,
        early_bird_bonus_chips=early_bird_bonus_chips,
    )
    if updated_at is not None:
        tournament.created_at = updated_at
        tournament.updated_at = updated_at
    db.add(tournament)
    await db.commit()
    return tournament


async def create_table(
    db: AsyncSession,
    tournament: Tournament,
    table_number: int,
    max_seats: int = 9,
    in_play: bool = True,
) -> ClubTable:
    """Club table of the tournament's club, optionally already in play."""
    table = ClubTable(
        id=new_id(),
        club_id=tournament.club_id,
        table_number=table_number,
        table_name=f"Table {table_number}",
        max_seats=max_seats,
    )
    db.add(table)
    if in_play:
        db.add(
            TournamentTableAssignment(
                tournament_id=tournament.id,
                club_table_id=table.id,
            )
        )
    await db.commit()
    return table


async def create_registration(
    db: AsyncSession,
    tournament: Tournament,
    user_id: str | None = None,
    status: RegistrationStatus = RegistrationStatus.REGISTERED,
    registration_time: datetime | None = None,
) -> Registration:
    registration = Registration(
        tournament_id=tournament.id,
        user_id=user_id or new_id(),
        status=status.value,
        registration_time=registration_time or datetime.now(timezone.utc),
    )
    db.add(registration)
    await db.commit()
    return registration


async def seat_player(
    db: AsyncSession,
    tournament: Tournament,
    table: ClubTable,
    seat_number: int,
    user_id: str | None = None,
    assigned_at: datetime | None = None,
    stack_size: int | None = None,
) -> SeatAssignment:
    """Registration plus a current seat, written directly."""
    registration = await create_registration(
        db, tournament, user_id=user_id, status=RegistrationStatus.SEATED
    )
    assignment = SeatAssignment(
        id=new_id(),
        tournament_id=tournament.id,
        club_table_id=table.id,
        user_id=registration.user_id,
        seat_number=seat_number,
        stack_size=stack_size,
        assigned_at=assigned_at or datetime.now(timezone.utc),
    )
    db.add(assignment)
    await db.commit()
    return assignment


async def create_structure(
    db: AsyncSession,
    tournament: Tournament,
    durations: list[int],
) -> list[TournamentStructure]:
    """Levels 1..n with doubling blinds and the given durations in minutes."""
    levels = [
        TournamentStructure(
            tournament_id=tournament.id,
            level_number=index + 1,
            small_blind=100 * 2 ** index,
            big_blind=200 * 2 ** index,
            ante=0,
            duration_minutes=minutes,
        )
        for index, minutes in enumerate(durations)
    ]
    db.add_all(levels)
    await db.commit()
    return levels


async def create_entry(
    db: AsyncSession,
    tournament: Tournament,
    user_id: str,
    amount_cents: int,
    entry_type: str = "initial",
    chips_received: int | None = 20000,
) -> TournamentEntry:
    entry = TournamentEntry(
        tournament_id=tournament.id,
        user_id=user_id,
        entry_type=entry_type,
        amount_cents=amount_cents,
        chips_received=chips_received,
    )
    db.add(entry)
    await db.commit()
    return entry


class FakeClock:
    """Controllable now() for clock tests."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)
