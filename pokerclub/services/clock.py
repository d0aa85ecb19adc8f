"""
Tournament clock state machine.

States:
─────────────────────────────────────────────────────────────────
    stopped ──start──► running ◄──resume── paused
                          │                  ▲
                          └──────pause───────┘

    advance / revert: any state, forces running
    final level expiry (ticker): running ──► stopped, auto_advance off
─────────────────────────────────────────────────────────────────

Every row change is a compare-and-set on (current_level, clock_status) so a
manual operation and the background ticker can never both apply a transition
computed from the same starting state.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import and_, delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from pokerclub.config import get_settings
from pokerclub.logging_config import get_logger
from pokerclub.middleware.prometheus import record_clock_transition
from pokerclub.models.base import utcnow
from pokerclub.models.clock import (
    ClockEventType,
    ClockStatus,
    TournamentClock,
    TournamentClockEvent,
)
from pokerclub.models.tournament import Tournament, TournamentStructure
from pokerclub.tournament.event_bus import TournamentEventBus, emit_safely
from pokerclub.tournament.models import (
    BlindLevel,
    ClockSnapshot,
    TournamentEvent,
    TournamentEventType,
)
from pokerclub.tournament.timing import ZERO, resume_shift, time_remaining
from pokerclub.utils.db import transaction
from pokerclub.utils.errors import (
    AlreadyAtFirstLevel,
    ClockAlreadyExists,
    ClockNotFound,
    ConcurrentModification,
    InvalidClockTransition,
    LevelNotFound,
    TournamentNotFound,
    TournamentOpsError,
    ValidationError,
)

settings = get_settings()
logger = get_logger(__name__)

FINAL_LEVEL_REASON = "No more levels in structure"


def blind_from_structure(level: TournamentStructure) -> BlindLevel:
    return BlindLevel(
        level=level.level_number,
        small_blind=level.small_blind,
        big_blind=level.big_blind,
        ante=level.ante,
        duration_minutes=level.duration_minutes,
        is_break=level.is_break,
        break_duration_minutes=level.break_duration_minutes,
    )


class ClockService:
    """Tournament clock operations and the checks the ticker runs."""

    def __init__(
        self,
        db: AsyncSession,
        event_bus: Optional[TournamentEventBus] = None,
        now_fn: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.event_bus = event_bus
        self.now_fn = now_fn

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_clock(self, tournament_id: str) -> TournamentClock:
        result = await self.db.execute(
            select(TournamentClock).where(TournamentClock.tournament_id == tournament_id)
        )
        clock = result.scalar_one_or_none()
        if clock is None:
            raise ClockNotFound(tournament_id)
        return clock

    async def find_level(
        self,
        tournament_id: str,
        level_number: int,
    ) -> TournamentStructure | None:
        result = await self.db.execute(
            select(TournamentStructure)
            .where(TournamentStructure.tournament_id == tournament_id)
            .where(TournamentStructure.level_number == level_number)
        )
        return result.scalar_one_or_none()

    async def get_level(self, tournament_id: str, level_number: int) -> TournamentStructure:
        level = await self.find_level(tournament_id, level_number)
        if level is None:
            raise LevelNotFound(tournament_id, level_number)
        return level

    async def get_structure(self, tournament_id: str) -> list[TournamentStructure]:
        result = await self.db.execute(
            select(TournamentStructure)
            .where(TournamentStructure.tournament_id == tournament_id)
            .order_by(TournamentStructure.level_number)
        )
        return list(result.scalars().all())

    async def get_clock_state(self, tournament_id: str) -> ClockSnapshot:
        clock = await self.get_clock(tournament_id)
        return await self._snapshot(clock)

    async def list_events(
        self,
        tournament_id: str,
        limit: int | None = None,
    ) -> list[TournamentClockEvent]:
        """Clock audit log, newest first."""
        limit = min(
            limit or settings.seating_history_default_limit,
            settings.seating_history_max_limit,
        )
        result = await self.db.execute(
            select(TournamentClockEvent)
            .where(TournamentClockEvent.tournament_id == tournament_id)
            .order_by(TournamentClockEvent.event_time.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Transitions
    # =========================================================================

    async def create_clock(self, tournament_id: str) -> TournamentClock:
        """Create the clock at level 1, stopped."""
        async with transaction(self.db):
            if await self.db.get(Tournament, tournament_id) is None:
                raise TournamentNotFound(tournament_id)
            existing = await self.db.execute(
                select(TournamentClock.id).where(TournamentClock.tournament_id == tournament_id)
            )
            if existing.first() is not None:
                raise ClockAlreadyExists(tournament_id)

            clock = TournamentClock(
                tournament_id=tournament_id,
                clock_status=ClockStatus.STOPPED.value,
                current_level=1,
                total_pause_duration=ZERO,
                auto_advance=True,
            )
            self.db.add(clock)
            await self.db.flush()

        logger.info("clock_created", tournament_id=tournament_id)
        return clock

    async def start_clock(self, tournament_id: str, actor_id: str | None = None) -> ClockSnapshot:
        """stopped|paused → running, restarting the current level's timer.

        Pause accounting is reset only when starting from stopped.
        """
        async with transaction(self.db):
            clock = await self.get_clock(tournament_id)
            status = ClockStatus(clock.clock_status)
            if status == ClockStatus.RUNNING:
                raise InvalidClockTransition("start", status.value)

            level = await self.get_level(tournament_id, clock.current_level)
            now = self.now_fn()
            if status == ClockStatus.STOPPED:
                total_pause = ZERO
            else:
                total_pause = clock.total_pause_duration + resume_shift(clock.pause_started_at, now)

            await self._compare_and_set(
                clock,
                clock_status=ClockStatus.RUNNING.value,
                level_started_at=now,
                level_end_time=now + timedelta(minutes=level.duration_minutes),
                pause_started_at=None,
                total_pause_duration=total_pause,
            )
            self._log_event(clock, ClockEventType.START, actor_id, now)

        return await self._after_transition(clock, ClockEventType.START)

    async def pause_clock(self, tournament_id: str, actor_id: str | None = None) -> ClockSnapshot:
        """running → paused. level_end_time is kept as the running deadline."""
        async with transaction(self.db):
            clock = await self.get_clock(tournament_id)
            if clock.clock_status != ClockStatus.RUNNING.value:
                raise InvalidClockTransition("pause", clock.clock_status)

            now = self.now_fn()
            await self._compare_and_set(
                clock,
                clock_status=ClockStatus.PAUSED.value,
                pause_started_at=now,
            )
            self._log_event(clock, ClockEventType.PAUSE, actor_id, now)

        return await self._after_transition(clock, ClockEventType.PAUSE)

    async def resume_clock(self, tournament_id: str, actor_id: str | None = None) -> ClockSnapshot:
        """paused → running, shifting the deadline by the time spent paused."""
        async with transaction(self.db):
            clock = await self.get_clock(tournament_id)
            if clock.clock_status != ClockStatus.PAUSED.value:
                raise InvalidClockTransition("resume", clock.clock_status)

            now = self.now_fn()
            shift = resume_shift(clock.pause_started_at, now)
            await self._compare_and_set(
                clock,
                clock_status=ClockStatus.RUNNING.value,
                pause_started_at=None,
                total_pause_duration=clock.total_pause_duration + shift,
                level_end_time=(
                    clock.level_end_time + shift if clock.level_end_time is not None else None
                ),
            )
            self._log_event(
                clock,
                ClockEventType.RESUME,
                actor_id,
                now,
                {"paused_seconds": int(shift.total_seconds())},
            )

        return await self._after_transition(clock, ClockEventType.RESUME)

    async def advance_level(
        self,
        tournament_id: str,
        actor_id: str | None = None,
        auto: bool = False,
        expected_level: int | None = None,
    ) -> ClockSnapshot | None:
        """
        Move to the next level and run it.

        With `auto=True` (the ticker) a lost race returns None instead of
        raising ConcurrentModification.

        Raises:
            LevelNotFound: The structure has no next level
        """
        event_type = ClockEventType.LEVEL_ADVANCE if auto else ClockEventType.MANUAL_ADVANCE
        async with transaction(self.db):
            clock = await self.get_clock(tournament_id)
            if auto and not self._is_due(clock):
                return None
            if expected_level is not None and clock.current_level != expected_level:
                if auto:
                    return None
                raise ConcurrentModification(
                    "Clock level changed concurrently",
                    tournament_id=tournament_id,
                    expected_level=expected_level,
                    current_level=clock.current_level,
                )

            applied = await self._change_level(
                clock, clock.current_level + 1, event_type, actor_id, raise_on_conflict=not auto
            )
            if not applied:
                return None

        return await self._after_transition(clock, event_type)

    async def revert_level(self, tournament_id: str, actor_id: str | None = None) -> ClockSnapshot:
        """Go back one level.

        Raises:
            AlreadyAtFirstLevel: The clock is at level 1
        """
        async with transaction(self.db):
            clock = await self.get_clock(tournament_id)
            if clock.current_level <= 1:
                raise AlreadyAtFirstLevel(tournament_id)
            await self._change_level(
                clock, clock.current_level - 1, ClockEventType.MANUAL_REVERT, actor_id
            )

        return await self._after_transition(clock, ClockEventType.MANUAL_REVERT)

    async def set_auto_advance(
        self,
        tournament_id: str,
        enabled: bool,
        actor_id: str | None = None,
    ) -> ClockSnapshot:
        async with transaction(self.db):
            clock = await self.get_clock(tournament_id)
            clock.auto_advance = enabled
            await self.db.flush()
            self._log_event(
                clock,
                ClockEventType.AUTO_ADVANCE_CHANGED,
                actor_id,
                self.now_fn(),
                {"enabled": enabled},
            )

        return await self._after_transition(clock, ClockEventType.AUTO_ADVANCE_CHANGED)

    async def replace_structure(
        self,
        tournament_id: str,
        levels: list[BlindLevel],
    ) -> list[TournamentStructure]:
        """Replace the blind structure. Levels must be 1..n without gaps."""
        numbers = [level.level for level in levels]
        if numbers != list(range(1, len(levels) + 1)):
            raise ValidationError(
                "Blind levels must be numbered 1..n without gaps",
                {"levels": numbers},
            )
        for level in levels:
            if level.duration_minutes <= 0:
                raise ValidationError(
                    "Level duration must be positive",
                    {"level": level.level, "duration_minutes": level.duration_minutes},
                )

        async with transaction(self.db):
            if await self.db.get(Tournament, tournament_id) is None:
                raise TournamentNotFound(tournament_id)

            result = await self.db.execute(
                select(TournamentClock).where(TournamentClock.tournament_id == tournament_id)
            )
            clock = result.scalar_one_or_none()
            if clock is not None and clock.level_started_at is not None:
                old = {s.level_number: blind_from_structure(s) for s in await self.get_structure(tournament_id)}
                spent = [
                    level.level for level in levels
                    if level.level <= clock.current_level and old.get(level.level) != level
                ]
                if spent:
                    logger.warning(
                        "structure_edit_spent_levels",
                        tournament_id=tournament_id,
                        current_level=clock.current_level,
                        levels=spent,
                    )

            await self.db.execute(
                delete(TournamentStructure).where(TournamentStructure.tournament_id == tournament_id)
            )
            rows = [
                TournamentStructure(
                    tournament_id=tournament_id,
                    level_number=level.level,
                    small_blind=level.small_blind,
                    big_blind=level.big_blind,
                    ante=level.ante,
                    duration_minutes=level.duration_minutes,
                    is_break=level.is_break,
                    break_duration_minutes=level.break_duration_minutes,
                )
                for level in levels
            ]
            self.db.add_all(rows)
            await self.db.flush()

        logger.info("structure_replaced", tournament_id=tournament_id, levels=len(rows))
        return rows

    # =========================================================================
    # Ticker checks
    # =========================================================================

    def _due_query(self, now: datetime, has_next_level: bool):
        next_level = aliased(TournamentStructure)
        next_exists = exists().where(
            and_(
                next_level.tournament_id == TournamentClock.tournament_id,
                next_level.level_number == TournamentClock.current_level + 1,
            )
        )
        return (
            select(TournamentClock.tournament_id, TournamentClock.current_level)
            .where(TournamentClock.clock_status == ClockStatus.RUNNING.value)
            .where(TournamentClock.auto_advance.is_(True))
            .where(TournamentClock.level_end_time.is_not(None))
            .where(TournamentClock.level_end_time <= now)
            .where(next_exists if has_next_level else ~next_exists)
        )

    async def find_due_for_advance(self) -> list[tuple[str, int]]:
        result = await self.db.execute(self._due_query(self.now_fn(), has_next_level=True))
        return [(row[0], row[1]) for row in result.all()]

    async def find_due_final_level(self) -> list[tuple[str, int]]:
        result = await self.db.execute(self._due_query(self.now_fn(), has_next_level=False))
        return [(row[0], row[1]) for row in result.all()]

    async def process_auto_advance(self) -> int:
        """Advance every running clock whose level has expired. Returns the count."""
        advanced = 0
        for tournament_id, level in await self.find_due_for_advance():
            try:
                snapshot = await self.advance_level(
                    tournament_id, auto=True, expected_level=level
                )
            except TournamentOpsError as e:
                logger.warning(
                    "clock_auto_advance_failed",
                    tournament_id=tournament_id,
                    level=level,
                    error=e.message,
                )
                continue
            if snapshot is not None:
                advanced += 1
        return advanced

    async def process_final_levels(self) -> int:
        """Stop clocks whose last level has expired. Returns the count."""
        stopped = 0
        for tournament_id, level in await self.find_due_final_level():
            async with transaction(self.db):
                clock = await self.get_clock(tournament_id)
                if clock.current_level != level:
                    continue
                applied = await self._compare_and_set(
                    clock,
                    raise_on_conflict=False,
                    clock_status=ClockStatus.STOPPED.value,
                    auto_advance=False,
                )
                if not applied:
                    continue
                self._log_event(
                    clock,
                    ClockEventType.FINAL_LEVEL_COMPLETE,
                    None,
                    self.now_fn(),
                    {"reason": FINAL_LEVEL_REASON},
                )

            logger.info(
                "clock_final_level_complete",
                tournament_id=tournament_id,
                level=level,
            )
            await self._after_transition(clock, ClockEventType.FINAL_LEVEL_COMPLETE)
            stopped += 1
        return stopped

    # =========================================================================
    # Internals
    # =========================================================================

    def _is_due(self, clock: TournamentClock) -> bool:
        return (
            clock.clock_status == ClockStatus.RUNNING.value
            and clock.auto_advance
            and clock.level_end_time is not None
            and clock.level_end_time <= self.now_fn()
        )

    async def _change_level(
        self,
        clock: TournamentClock,
        new_level: int,
        event_type: ClockEventType,
        actor_id: str | None,
        raise_on_conflict: bool = True,
    ) -> bool:
        level = await self.get_level(clock.tournament_id, new_level)
        now = self.now_fn()
        previous = clock.current_level
        total_pause = clock.total_pause_duration
        if clock.clock_status == ClockStatus.PAUSED.value:
            total_pause += resume_shift(clock.pause_started_at, now)

        applied = await self._compare_and_set(
            clock,
            raise_on_conflict=raise_on_conflict,
            current_level=new_level,
            clock_status=ClockStatus.RUNNING.value,
            level_started_at=now,
            level_end_time=now + timedelta(minutes=level.duration_minutes),
            pause_started_at=None,
            total_pause_duration=total_pause,
        )
        if applied:
            self._log_event(
                clock,
                event_type,
                actor_id,
                now,
                {"from_level": previous, "to_level": new_level},
            )
        return applied

    async def _compare_and_set(
        self,
        clock: TournamentClock,
        raise_on_conflict: bool = True,
        **values: Any,
    ) -> bool:
        """Apply `values` only if level and status are still what we read."""
        expected_level = clock.current_level
        expected_status = clock.clock_status
        result = await self.db.execute(
            update(TournamentClock)
            .where(TournamentClock.id == clock.id)
            .where(TournamentClock.current_level == expected_level)
            .where(TournamentClock.clock_status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "clock_transition_lost_race",
                tournament_id=clock.tournament_id,
                expected_level=expected_level,
                expected_status=expected_status,
            )
            tournament_id = clock.tournament_id
            self.db.expire(clock)
            if raise_on_conflict:
                raise ConcurrentModification(
                    "Clock was modified concurrently; reload and retry",
                    tournament_id=tournament_id,
                    expected_level=expected_level,
                    expected_status=expected_status,
                )
            return False

        await self.db.refresh(clock)
        return True

    def _log_event(
        self,
        clock: TournamentClock,
        event_type: ClockEventType,
        actor_id: str | None,
        event_time: datetime,
        metadata: dict | None = None,
    ) -> None:
        self.db.add(
            TournamentClockEvent(
                tournament_id=clock.tournament_id,
                event_type=event_type.value,
                level_number=clock.current_level,
                actor_id=actor_id,
                event_time=event_time,
                event_metadata=metadata or {},
            )
        )

    async def _snapshot(self, clock: TournamentClock) -> ClockSnapshot:
        current = await self.find_level(clock.tournament_id, clock.current_level)
        following = await self.find_level(clock.tournament_id, clock.current_level + 1)
        duration = timedelta(minutes=current.duration_minutes) if current else ZERO
        return ClockSnapshot(
            tournament_id=clock.tournament_id,
            clock_status=clock.clock_status,
            current_level=clock.current_level,
            time_remaining=time_remaining(
                clock.clock_status,
                clock.level_end_time,
                clock.pause_started_at,
                duration,
                self.now_fn(),
            ),
            total_pause_duration=clock.total_pause_duration,
            auto_advance=clock.auto_advance,
            level_started_at=clock.level_started_at,
            level_end_time=clock.level_end_time,
            pause_started_at=clock.pause_started_at,
            current_blind=blind_from_structure(current) if current else None,
            next_blind=blind_from_structure(following) if following else None,
        )

    async def _after_transition(
        self,
        clock: TournamentClock,
        event_type: ClockEventType,
    ) -> ClockSnapshot:
        record_clock_transition(event_type.value)
        logger.info(
            "clock_transition",
            tournament_id=clock.tournament_id,
            event_type=event_type.value,
            level=clock.current_level,
            clock_status=clock.clock_status,
        )
        snapshot = await self._snapshot(clock)
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=TournamentEventType.CLOCK_UPDATED,
                tournament_id=clock.tournament_id,
                data={"event_type": event_type.value, "clock": snapshot.to_dict()},
            ),
        )
        return snapshot
