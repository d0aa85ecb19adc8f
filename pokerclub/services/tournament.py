"""Tournament lifecycle: live status transitions and the stale sweep."""

from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pokerclub.logging_config import get_logger
from pokerclub.models.base import utcnow
from pokerclub.models.clock import ClockStatus, TournamentClock
from pokerclub.models.tournament import (
    RUNNING_LIVE_STATUSES,
    LiveStatus,
    Tournament,
)
from pokerclub.tournament.event_bus import TournamentEventBus, emit_safely
from pokerclub.tournament.models import TournamentEvent, TournamentEventType
from pokerclub.utils.db import transaction
from pokerclub.utils.errors import InvalidStatusTransition, TournamentNotFound

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[LiveStatus, frozenset[LiveStatus]] = {
    LiveStatus.NOT_STARTED: frozenset({
        LiveStatus.REGISTRATION_OPEN,
        LiveStatus.IN_PROGRESS,
    }),
    LiveStatus.REGISTRATION_OPEN: frozenset({
        LiveStatus.LATE_REGISTRATION,
        LiveStatus.IN_PROGRESS,
    }),
    LiveStatus.LATE_REGISTRATION: frozenset({
        LiveStatus.IN_PROGRESS,
        LiveStatus.BREAK,
    }),
    LiveStatus.IN_PROGRESS: frozenset({
        LiveStatus.BREAK,
        LiveStatus.FINAL_TABLE,
        LiveStatus.FINISHED,
    }),
    LiveStatus.BREAK: frozenset({
        LiveStatus.IN_PROGRESS,
        LiveStatus.FINAL_TABLE,
        LiveStatus.FINISHED,
    }),
    LiveStatus.FINAL_TABLE: frozenset({
        LiveStatus.BREAK,
        LiveStatus.FINISHED,
    }),
    LiveStatus.FINISHED: frozenset(),
}


def can_transition(current: LiveStatus | str, target: LiveStatus | str) -> bool:
    return LiveStatus(target) in ALLOWED_TRANSITIONS[LiveStatus(current)]


class TournamentService:
    def __init__(self, db: AsyncSession, event_bus: TournamentEventBus | None = None):
        self.db = db
        self.event_bus = event_bus

    async def get_tournament(self, tournament_id: str) -> Tournament:
        tournament = await self.db.get(Tournament, tournament_id)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        return tournament

    async def update_live_status(
        self,
        tournament_id: str,
        live_status: LiveStatus | str,
    ) -> Tournament:
        """Move the tournament to a new live status.

        Raises:
            InvalidStatusTransition: The move is not allowed from the current status
        """
        target = LiveStatus(live_status)
        async with transaction(self.db):
            tournament = await self.get_tournament(tournament_id)
            previous = tournament.live_status
            if not can_transition(previous, target):
                raise InvalidStatusTransition(
                    f"Cannot change tournament status from {previous} to {target.value}",
                    previous,
                    target=target.value,
                )

            tournament.live_status = target.value
            if target == LiveStatus.FINISHED:
                tournament.end_time = utcnow()
            elif target == LiveStatus.IN_PROGRESS and tournament.start_time is None:
                tournament.start_time = utcnow()
            await self.db.flush()

        logger.info(
            "tournament_status_changed",
            tournament_id=tournament_id,
            previous=previous,
            live_status=target.value,
        )
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=TournamentEventType.TOURNAMENT_STATUS_CHANGED,
                tournament_id=tournament_id,
                data={
                    "previous": previous,
                    "live_status": target.value,
                    "status": tournament.status.value,
                },
            ),
        )
        return tournament

    async def force_finish_stale(
        self,
        threshold: timedelta,
        now: datetime | None = None,
    ) -> list[str]:
        """Finish running tournaments untouched for longer than `threshold`.

        A clock written to within the threshold (a level change, pause or
        resume) counts as activity. Their clocks are stopped. Returns the
        finished tournament ids.
        """
        now = now or utcnow()
        cutoff = now - threshold
        recent_clock = (
            select(TournamentClock.id)
            .where(TournamentClock.tournament_id == Tournament.id)
            .where(TournamentClock.updated_at >= cutoff)
            .exists()
        )

        async with transaction(self.db):
            result = await self.db.execute(
                select(Tournament)
                .where(Tournament.live_status.in_([s.value for s in RUNNING_LIVE_STATUSES]))
                .where(Tournament.updated_at < cutoff)
                .where(~recent_clock)
            )
            stale = list(result.scalars().all())
            if not stale:
                return []

            for tournament in stale:
                tournament.live_status = LiveStatus.FINISHED.value
                tournament.end_time = now

            clocks = await self.db.execute(
                select(TournamentClock).where(
                    TournamentClock.tournament_id.in_([t.id for t in stale])
                )
            )
            for clock in clocks.scalars().all():
                clock.clock_status = ClockStatus.STOPPED.value
                clock.pause_started_at = None
                clock.level_end_time = None
            await self.db.flush()

        finished = [t.id for t in stale]
        logger.warning(
            "stale_tournaments_finished",
            count=len(finished),
            tournament_ids=finished,
            threshold_hours=threshold.total_seconds() / 3600,
        )
        for tournament_id in finished:
            await emit_safely(
                self.event_bus,
                TournamentEvent(
                    event_type=TournamentEventType.TOURNAMENT_STATUS_CHANGED,
                    tournament_id=tournament_id,
                    data={"live_status": LiveStatus.FINISHED.value, "reason": "stale"},
                ),
            )
        return finished
