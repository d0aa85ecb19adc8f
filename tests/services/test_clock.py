"""Tests for the tournament clock state machine.

Tests:
- start / pause / resume / advance / revert transitions
- Pause accounting and derived remaining time
- Ticker checks: auto-advance and final level
- Structure replacement
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update

from conftest import FakeClock, create_structure, create_tournament, new_id
from pokerclub.models import ClockEventType, TournamentClock
from pokerclub.services.clock import FINAL_LEVEL_REASON, ClockService
from pokerclub.tournament.models import BlindLevel, TournamentEventType
from pokerclub.utils.errors import (
    AlreadyAtFirstLevel,
    ClockAlreadyExists,
    ClockNotFound,
    ConcurrentModification,
    InvalidClockTransition,
    LevelNotFound,
    TournamentNotFound,
    ValidationError,
)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


async def make_clock(db, fake_clock, durations=(20, 20, 30), event_bus=None):
    tournament = await create_tournament(db, live_status="in_progress")
    await create_structure(db, tournament, list(durations))
    service = ClockService(db, event_bus, now_fn=fake_clock)
    await service.create_clock(tournament.id)
    return tournament.id, service


async def bump_level_elsewhere(db, tournament_id, level):
    """Write the level the way another process would, leaving loaded rows stale."""
    await db.execute(
        update(TournamentClock)
        .where(TournamentClock.tournament_id == tournament_id)
        .values(current_level=level)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


# =============================================================================
# Create
# =============================================================================

class TestCreateClock:

    @pytest.mark.asyncio
    async def test_starts_stopped_at_level_one(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        state = await service.get_clock_state(tournament_id)

        assert state.clock_status == "stopped"
        assert state.current_level == 1
        assert state.auto_advance is True
        assert state.time_remaining == timedelta(minutes=20)
        assert state.current_blind.big_blind == 200
        assert state.next_blind.level == 2

    @pytest.mark.asyncio
    async def test_duplicate(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        with pytest.raises(ClockAlreadyExists):
            await service.create_clock(tournament_id)

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, db):
        with pytest.raises(TournamentNotFound):
            await ClockService(db).create_clock(new_id())

    @pytest.mark.asyncio
    async def test_missing_clock(self, db):
        with pytest.raises(ClockNotFound):
            await ClockService(db).get_clock_state(new_id())


# =============================================================================
# Start / pause / resume
# =============================================================================

class TestRunning:

    @pytest.mark.asyncio
    async def test_start(self, db, fake_clock, event_bus, recorded_events):
        tournament_id, service = await make_clock(db, fake_clock, event_bus=event_bus)

        state = await service.start_clock(tournament_id)

        assert state.clock_status == "running"
        assert state.level_started_at == fake_clock.now
        assert state.level_end_time == fake_clock.now + timedelta(minutes=20)
        assert recorded_events[-1].event_type == TournamentEventType.CLOCK_UPDATED
        assert recorded_events[-1].data["event_type"] == "start"

    @pytest.mark.asyncio
    async def test_remaining_time_counts_down(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)

        fake_clock.advance(minutes=8)
        state = await service.get_clock_state(tournament_id)

        assert state.time_remaining == timedelta(minutes=12)
        assert state.time_remaining_seconds == 720

    @pytest.mark.asyncio
    async def test_start_while_running(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)

        with pytest.raises(InvalidClockTransition) as exc_info:
            await service.start_clock(tournament_id)
        assert exc_info.value.details["current_state"] == "running"

    @pytest.mark.asyncio
    async def test_pause_freezes_remaining_time(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        fake_clock.advance(minutes=5)

        paused = await service.pause_clock(tournament_id)
        fake_clock.advance(minutes=30)
        later = await service.get_clock_state(tournament_id)

        assert paused.clock_status == "paused"
        assert paused.time_remaining == timedelta(minutes=15)
        assert later.time_remaining == timedelta(minutes=15)

    @pytest.mark.asyncio
    async def test_resume_shifts_deadline(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        started = await service.start_clock(tournament_id)
        fake_clock.advance(minutes=5)
        await service.pause_clock(tournament_id)
        fake_clock.advance(minutes=7)

        resumed = await service.resume_clock(tournament_id)

        assert resumed.clock_status == "running"
        assert resumed.pause_started_at is None
        assert resumed.level_end_time == started.level_end_time + timedelta(minutes=7)
        assert resumed.total_pause_duration == timedelta(minutes=7)
        assert resumed.time_remaining == timedelta(minutes=15)

    @pytest.mark.asyncio
    async def test_pauses_accumulate(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        for minutes in (2, 3):
            await service.pause_clock(tournament_id)
            fake_clock.advance(minutes=minutes)
            await service.resume_clock(tournament_id)

        state = await service.get_clock_state(tournament_id)
        assert state.total_pause_duration == timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_start_from_paused_folds_pause_in(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        await service.pause_clock(tournament_id)
        fake_clock.advance(minutes=4)

        state = await service.start_clock(tournament_id)

        assert state.clock_status == "running"
        assert state.total_pause_duration == timedelta(minutes=4)
        # The level restarts in full
        assert state.time_remaining == timedelta(minutes=20)

    @pytest.mark.asyncio
    async def test_pause_when_stopped(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        with pytest.raises(InvalidClockTransition):
            await service.pause_clock(tournament_id)

    @pytest.mark.asyncio
    async def test_resume_when_running(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)

        with pytest.raises(InvalidClockTransition):
            await service.resume_clock(tournament_id)

    @pytest.mark.asyncio
    async def test_start_without_structure(self, db, fake_clock):
        tournament = await create_tournament(db)
        service = ClockService(db, now_fn=fake_clock)
        await service.create_clock(tournament.id)
        tournament_id = tournament.id

        with pytest.raises(LevelNotFound):
            await service.start_clock(tournament_id)


# =============================================================================
# Levels
# =============================================================================

class TestLevels:

    @pytest.mark.asyncio
    async def test_advance(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        fake_clock.advance(minutes=3)

        state = await service.advance_level(tournament_id)

        assert state.current_level == 2
        assert state.clock_status == "running"
        assert state.level_started_at == fake_clock.now
        assert state.current_blind.small_blind == 200

        events = await service.list_events(tournament_id)
        assert events[0].event_type == ClockEventType.MANUAL_ADVANCE.value
        assert events[0].event_metadata == {"from_level": 1, "to_level": 2}

    @pytest.mark.asyncio
    async def test_advance_from_stopped_runs_clock(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        state = await service.advance_level(tournament_id)

        assert state.clock_status == "running"
        assert state.current_level == 2

    @pytest.mark.asyncio
    async def test_advance_while_paused_folds_pause_in(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        await service.pause_clock(tournament_id)
        fake_clock.advance(minutes=6)

        state = await service.advance_level(tournament_id)

        assert state.clock_status == "running"
        assert state.pause_started_at is None
        assert state.total_pause_duration == timedelta(minutes=6)

    @pytest.mark.asyncio
    async def test_advance_past_last_level(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock, durations=(20,))

        with pytest.raises(LevelNotFound):
            await service.advance_level(tournament_id)

        state = await service.get_clock_state(tournament_id)
        assert state.current_level == 1

    @pytest.mark.asyncio
    async def test_advance_with_stale_expected_level(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.advance_level(tournament_id)

        with pytest.raises(ConcurrentModification):
            await service.advance_level(tournament_id, expected_level=1)

    @pytest.mark.asyncio
    async def test_advance_loses_race_to_other_writer(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.get_clock_state(tournament_id)
        await bump_level_elsewhere(db, tournament_id, 2)

        with pytest.raises(ConcurrentModification):
            await service.advance_level(tournament_id)

        state = await service.get_clock_state(tournament_id)
        assert state.current_level == 2

    @pytest.mark.asyncio
    async def test_ticker_advance_loses_race_quietly(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        fake_clock.advance(minutes=21)
        await bump_level_elsewhere(db, tournament_id, 2)

        assert await service.advance_level(tournament_id, auto=True) is None

        state = await service.get_clock_state(tournament_id)
        assert state.current_level == 2

    @pytest.mark.asyncio
    async def test_revert(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.advance_level(tournament_id)
        fake_clock.advance(minutes=1)

        state = await service.revert_level(tournament_id)

        assert state.current_level == 1
        assert state.time_remaining == timedelta(minutes=20)

    @pytest.mark.asyncio
    async def test_revert_at_first_level(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        with pytest.raises(AlreadyAtFirstLevel):
            await service.revert_level(tournament_id)

    @pytest.mark.asyncio
    async def test_set_auto_advance(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        state = await service.set_auto_advance(tournament_id, False)

        assert state.auto_advance is False
        events = await service.list_events(tournament_id)
        assert events[0].event_metadata == {"enabled": False}

    @pytest.mark.asyncio
    async def test_events_newest_first(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        fake_clock.advance(seconds=10)
        await service.pause_clock(tournament_id)
        fake_clock.advance(seconds=10)
        await service.resume_clock(tournament_id)

        events = await service.list_events(tournament_id)
        assert [e.event_type for e in events] == ["resume", "pause", "start"]
        assert events[0].event_metadata == {"paused_seconds": 10}

        limited = await service.list_events(tournament_id, limit=1)
        assert len(limited) == 1


# =============================================================================
# Ticker checks
# =============================================================================

class TestTickerChecks:

    @pytest.mark.asyncio
    async def test_auto_advance_when_level_expires(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)

        fake_clock.advance(minutes=19)
        assert await service.process_auto_advance() == 0

        fake_clock.advance(minutes=1)
        assert await service.process_auto_advance() == 1

        state = await service.get_clock_state(tournament_id)
        assert state.current_level == 2
        events = await service.list_events(tournament_id)
        assert events[0].event_type == ClockEventType.LEVEL_ADVANCE.value
        assert events[0].actor_id is None

    @pytest.mark.asyncio
    async def test_auto_advance_disabled(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        await service.set_auto_advance(tournament_id, False)

        fake_clock.advance(minutes=25)
        assert await service.process_auto_advance() == 0

    @pytest.mark.asyncio
    async def test_paused_clock_is_not_advanced(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        await service.pause_clock(tournament_id)

        fake_clock.advance(hours=2)
        assert await service.process_auto_advance() == 0

    @pytest.mark.asyncio
    async def test_auto_advance_skips_when_level_moved(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.start_clock(tournament_id)
        fake_clock.advance(minutes=21)

        # Someone advanced manually after the ticker read level 1
        await service.advance_level(tournament_id)
        assert await service.advance_level(tournament_id, auto=True, expected_level=1) is None

        state = await service.get_clock_state(tournament_id)
        assert state.current_level == 2

    @pytest.mark.asyncio
    async def test_final_level_stops_clock(self, db, fake_clock, event_bus, recorded_events):
        tournament_id, service = await make_clock(
            db, fake_clock, durations=(20, 20), event_bus=event_bus
        )
        await service.advance_level(tournament_id)

        fake_clock.advance(minutes=20)
        assert await service.process_auto_advance() == 0
        assert await service.process_final_levels() == 1

        state = await service.get_clock_state(tournament_id)
        assert state.clock_status == "stopped"
        assert state.auto_advance is False
        assert state.current_level == 2

        events = await service.list_events(tournament_id)
        assert events[0].event_type == ClockEventType.FINAL_LEVEL_COMPLETE.value
        assert events[0].event_metadata == {"reason": FINAL_LEVEL_REASON}
        assert recorded_events[-1].data["event_type"] == "final_level_complete"

        # Nothing left to do on the next tick
        assert await service.process_final_levels() == 0


# =============================================================================
# Structure
# =============================================================================

def blind(level: int, minutes: int = 15) -> BlindLevel:
    return BlindLevel(
        level=level,
        small_blind=50 * level,
        big_blind=100 * level,
        duration_minutes=minutes,
    )


class TestReplaceStructure:

    @pytest.mark.asyncio
    async def test_replace(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        rows = await service.replace_structure(tournament_id, [blind(1), blind(2, minutes=25)])

        assert [r.level_number for r in rows] == [1, 2]
        structure = await service.get_structure(tournament_id)
        assert [s.duration_minutes for s in structure] == [15, 25]

    @pytest.mark.asyncio
    async def test_gaps_rejected(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        with pytest.raises(ValidationError):
            await service.replace_structure(tournament_id, [blind(1), blind(3)])

    @pytest.mark.asyncio
    async def test_duration_must_be_positive(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)

        with pytest.raises(ValidationError):
            await service.replace_structure(tournament_id, [blind(1, minutes=0)])

    @pytest.mark.asyncio
    async def test_editing_spent_levels_is_allowed(self, db, fake_clock):
        tournament_id, service = await make_clock(db, fake_clock)
        await service.advance_level(tournament_id)

        rows = await service.replace_structure(
            tournament_id, [blind(1), blind(2), blind(3)]
        )

        assert len(rows) == 3
        state = await service.get_clock_state(tournament_id)
        assert state.current_blind.big_blind == 200
