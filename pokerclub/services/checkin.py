"""Tournament check-in with optional automatic seating."""

import random
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pokerclub.logging_config import get_logger
from pokerclub.middleware.prometheus import record_checkin, record_seat_change
from pokerclub.models.registration import Registration, RegistrationStatus
from pokerclub.models.seating import SeatAssignment
from pokerclub.models.tournament import EntryType, LiveStatus, Tournament, TournamentEntry
from pokerclub.services.registration import RegistrationService
from pokerclub.services.seating import SeatingService
from pokerclub.tournament.event_bus import TournamentEventBus, emit_safely
from pokerclub.tournament.models import TournamentEvent, TournamentEventType
from pokerclub.tournament.strategies import AssignmentStrategy, SeatingStrategy, get_strategy
from pokerclub.utils.db import transaction
from pokerclub.utils.errors import (
    ConflictError,
    InvalidStatusTransition,
    RegistrationNotFound,
    TournamentNotFound,
)

logger = get_logger(__name__)

# Live statuses during which players may check themselves in
SELF_CHECKIN_STATUSES = frozenset({
    LiveStatus.REGISTRATION_OPEN,
    LiveStatus.LATE_REGISTRATION,
    LiveStatus.IN_PROGRESS,
})

# Live statuses during which a walk-up player may still register
OPEN_REGISTRATION_STATUSES = frozenset({
    LiveStatus.REGISTRATION_OPEN,
    LiveStatus.LATE_REGISTRATION,
})

MSG_CHECKED_IN = "Player checked in successfully"
MSG_ASSIGNED = "Player checked in and assigned to Table {table}, Seat {seat}"
MSG_NO_SEATS = "Player checked in but no seats available for auto-assignment"
MSG_NO_TABLES = "Player checked in but no tables assigned to tournament yet"

# Seat selection is retried once with fresh occupancy after losing a race
SEAT_ATTEMPTS = 2


class CheckinError(InvalidStatusTransition):
    """Registration state forbids checking in."""


@dataclass
class CheckInResult:
    registration: Registration
    message: str
    seat_assignment: Optional[SeatAssignment] = None
    table_number: Optional[int] = None
    bonus_chips: int = 0
    waitlisted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "tournament_id": self.registration.tournament_id,
            "user_id": self.registration.user_id,
            "status": self.registration.status,
            "message": self.message,
            "seat_assignment": (
                self.seat_assignment.to_dict() if self.seat_assignment else None
            ),
            "table_number": self.table_number,
            "bonus_chips": self.bonus_chips,
            "waitlisted": self.waitlisted,
        }


class CheckinService:
    """Check-in service"""

    def __init__(self, db: AsyncSession, event_bus: TournamentEventBus | None = None):
        self.db = db
        self.event_bus = event_bus
        self.seating = SeatingService(db, event_bus)
        self.registrations = RegistrationService(db, event_bus)

    async def check_in_player(
        self,
        tournament_id: str,
        user_id: str,
        actor_id: str | None = None,
        grant_early_bird_bonus: bool = False,
        auto_assign: bool = False,
        strategy: AssignmentStrategy | str = AssignmentStrategy.BALANCED,
        rng: random.Random | None = None,
    ) -> CheckInResult:
        """
        Check a registered player in, optionally seating them.

        Status change, bonus and seat commit together. Running out of tables or
        seats is reported in the message, not raised.

        Raises:
            TournamentNotFound
            RegistrationNotFound: The player never registered
            InvalidStatusTransition: Registration is not in "registered"
        """
        async with transaction(self.db):
            tournament = await self._get_tournament(tournament_id)
            registration = await self.registrations.get_registration(tournament_id, user_id)
            if registration is None:
                raise RegistrationNotFound(tournament_id, user_id)
            if registration.status != RegistrationStatus.REGISTERED.value:
                raise CheckinError(
                    f"Player cannot be checked in from status: {registration.status}",
                    registration.status,
                )

            result = await self._check_in(
                tournament,
                registration,
                actor_id=actor_id,
                grant_bonus=grant_early_bird_bonus,
                seating_strategy=(
                    get_strategy(strategy, rng) if auto_assign else None
                ),
                source="check-in",
            )

        await self._after_commit(result)
        return result

    async def self_check_in(
        self,
        tournament_id: str,
        user_id: str,
        strategy: AssignmentStrategy | str = AssignmentStrategy.BALANCED,
        rng: random.Random | None = None,
    ) -> CheckInResult:
        """
        Player-initiated check-in.

        Registers walk-ups while registration is open, waitlisting them when the
        tournament is full. Repeating the call is harmless.
        """
        async with transaction(self.db):
            tournament = await self._get_tournament(tournament_id)
            live_status = LiveStatus(tournament.live_status)
            if live_status not in SELF_CHECKIN_STATUSES:
                raise CheckinError(
                    "Check-in is not open for this tournament",
                    tournament.live_status,
                )

            registration = await self.registrations.get_registration(tournament_id, user_id)
            newly_registered = registration is None
            checked_in_now = False

            if registration is None:
                if live_status not in OPEN_REGISTRATION_STATUSES:
                    raise CheckinError(
                        "Registration is not open for this tournament",
                        tournament.live_status,
                    )
                registration = await self.registrations.add_registration(
                    tournament, user_id, notes="Registered at self check-in"
                )
                if registration.status == RegistrationStatus.WAITLISTED.value:
                    result = CheckInResult(
                        registration=registration,
                        message=(
                            "Tournament is full. You have been added to the "
                            f"waitlist for {tournament.name}"
                        ),
                        waitlisted=True,
                    )
                    newly_registered = False
                else:
                    result = None
            else:
                result = self._existing_registration_result(tournament, registration)

            if result is None:
                result = await self._check_in(
                    tournament,
                    registration,
                    actor_id=user_id,
                    grant_bonus=False,
                    seating_strategy=get_strategy(strategy, rng),
                    source="self check-in",
                )
                checked_in_now = True
                result.message = self._self_message(tournament, result, newly_registered)

        if result.waitlisted:
            record_checkin("waitlisted")
            await emit_safely(
                self.event_bus,
                TournamentEvent(
                    event_type=TournamentEventType.PLAYER_WAITLISTED,
                    tournament_id=tournament_id,
                    user_id=user_id,
                    data={"status": registration.status},
                ),
            )
        elif checked_in_now:
            await self._after_commit(result)
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    async def _get_tournament(self, tournament_id: str) -> Tournament:
        tournament = await self.db.get(Tournament, tournament_id)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        return tournament

    def _existing_registration_result(
        self,
        tournament: Tournament,
        registration: Registration,
    ) -> CheckInResult | None:
        status = RegistrationStatus(registration.status)
        if status == RegistrationStatus.REGISTERED:
            return None
        if status in (RegistrationStatus.CHECKED_IN, RegistrationStatus.SEATED):
            return CheckInResult(
                registration=registration,
                message=f"You are already checked in for {tournament.name}",
            )
        if status == RegistrationStatus.WAITLISTED:
            raise CheckinError(
                "You are on the waitlist. Please wait for a spot to open up.",
                registration.status,
            )
        raise CheckinError(
            f"Your registration was {registration.status}. "
            "Please contact the tournament manager.",
            registration.status,
        )

    @staticmethod
    def _self_message(
        tournament: Tournament,
        result: CheckInResult,
        newly_registered: bool,
    ) -> str:
        if result.seat_assignment is not None:
            prefix = "Registered, checked in" if newly_registered else "Checked in"
            return (
                f"{prefix} and assigned to Table {result.table_number}, "
                f"Seat {result.seat_assignment.seat_number}"
            )
        if newly_registered:
            return f"Registered and checked in for {tournament.name}"
        return f"Checked in for {tournament.name}"

    async def _check_in(
        self,
        tournament: Tournament,
        registration: Registration,
        actor_id: str | None,
        grant_bonus: bool,
        seating_strategy: SeatingStrategy | None,
        source: str,
    ) -> CheckInResult:
        registration.status = RegistrationStatus.CHECKED_IN.value
        await self.db.flush()

        bonus = 0
        if grant_bonus and tournament.early_bird_bonus_chips:
            bonus = await self._apply_early_bird_bonus(
                tournament.id, registration.user_id, tournament.early_bird_bonus_chips
            )

        result = CheckInResult(
            registration=registration,
            message=MSG_CHECKED_IN,
            bonus_chips=bonus,
        )
        if seating_strategy is None or not seating_strategy.auto_assigns:
            return result

        await self._auto_assign(tournament, registration, result, actor_id, seating_strategy, source)
        return result

    async def _apply_early_bird_bonus(self, tournament_id: str, user_id: str, bonus: int) -> int:
        result = await self.db.execute(
            select(TournamentEntry)
            .where(TournamentEntry.tournament_id == tournament_id)
            .where(TournamentEntry.user_id == user_id)
            .where(TournamentEntry.entry_type == EntryType.INITIAL.value)
        )
        entries = list(result.scalars().all())
        for entry in entries:
            entry.chips_received = (entry.chips_received or 0) + bonus
        await self.db.flush()
        return bonus if entries else 0

    async def _auto_assign(
        self,
        tournament: Tournament,
        registration: Registration,
        result: CheckInResult,
        actor_id: str | None,
        seating_strategy: SeatingStrategy,
        source: str,
    ) -> None:
        for attempt in range(1, SEAT_ATTEMPTS + 1):
            snapshots = await self.seating.get_table_snapshots(tournament.id)
            if not snapshots:
                result.message = MSG_NO_TABLES
                return

            occupancy = {s.table_id: s.player_count for s in snapshots}
            table = seating_strategy.choose_table(snapshots, occupancy)
            seat_number = seating_strategy.choose_seat(table) if table else None
            if table is None or seat_number is None:
                result.message = MSG_NO_SEATS
                return

            try:
                assignment = await self.seating.insert_current(
                    SeatAssignment(
                        tournament_id=tournament.id,
                        club_table_id=table.table_id,
                        user_id=registration.user_id,
                        seat_number=seat_number,
                        assigned_by=actor_id,
                        notes=(
                            f"Auto-assigned on {source} using "
                            f"{seating_strategy.label} strategy"
                        ),
                    )
                )
            except ConflictError as e:
                logger.warning(
                    "checkin_seat_race",
                    tournament_id=tournament.id,
                    user_id=registration.user_id,
                    table_id=table.table_id,
                    seat_number=seat_number,
                    attempt=attempt,
                    error=e.code,
                )
                continue

            registration.status = RegistrationStatus.SEATED.value
            await self.db.flush()
            result.seat_assignment = assignment
            result.table_number = table.table_number
            result.message = MSG_ASSIGNED.format(table=table.table_number, seat=seat_number)
            return

        # Check-in stands; the player is seated later by a manager
        result.message = MSG_NO_SEATS

    async def _after_commit(self, result: CheckInResult) -> None:
        registration = result.registration
        seated = result.seat_assignment is not None
        record_checkin("seated" if seated else "checked_in")
        logger.info(
            "player_checked_in",
            tournament_id=registration.tournament_id,
            user_id=registration.user_id,
            seated=seated,
            bonus_chips=result.bonus_chips,
        )

        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=TournamentEventType.PLAYER_CHECKED_IN,
                tournament_id=registration.tournament_id,
                user_id=registration.user_id,
                data={"message": result.message, "bonus_chips": result.bonus_chips},
            ),
        )
        if seated:
            record_seat_change("assigned")
            await emit_safely(
                self.event_bus,
                TournamentEvent(
                    event_type=TournamentEventType.PLAYER_ASSIGNED,
                    tournament_id=registration.tournament_id,
                    table_id=result.seat_assignment.club_table_id,
                    user_id=registration.user_id,
                    data={"assignment": result.seat_assignment.to_dict()},
                ),
            )
