"""Tournament registration and waitlist."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pokerclub.logging_config import get_logger
from pokerclub.models.base import utcnow
from pokerclub.models.registration import (
    ACTIVE_REGISTRATION_STATUSES,
    TERMINAL_REGISTRATION_STATUSES,
    Registration,
    RegistrationStatus,
)
from pokerclub.models.seating import SeatAssignment
from pokerclub.models.tournament import Tournament
from pokerclub.tournament.event_bus import TournamentEventBus, emit_safely
from pokerclub.tournament.models import TournamentEvent, TournamentEventType
from pokerclub.utils.db import transaction
from pokerclub.utils.errors import (
    AlreadyRegistered,
    InvalidStatusTransition,
    RegistrationNotFound,
    TournamentNotFound,
)

logger = get_logger(__name__)

_ACTIVE_VALUES = [s.value for s in ACTIVE_REGISTRATION_STATUSES]


class RegistrationService:
    def __init__(self, db: AsyncSession, event_bus: TournamentEventBus | None = None):
        self.db = db
        self.event_bus = event_bus

    async def get_registration(self, tournament_id: str, user_id: str) -> Registration | None:
        result = await self.db.execute(
            select(Registration)
            .where(Registration.tournament_id == tournament_id)
            .where(Registration.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def count_confirmed(self, tournament_id: str) -> int:
        """Registrations holding a place: registered, checked in or seated."""
        return await self.db.scalar(
            select(func.count())
            .select_from(Registration)
            .where(Registration.tournament_id == tournament_id)
            .where(Registration.status.in_(_ACTIVE_VALUES))
        ) or 0

    async def has_capacity(self, tournament: Tournament) -> bool:
        if tournament.seat_cap is None:
            return True
        return await self.count_confirmed(tournament.id) < tournament.seat_cap

    async def add_registration(
        self,
        tournament: Tournament,
        user_id: str,
        notes: str | None = None,
    ) -> Registration:
        """Insert a registration without committing; waitlisted when full."""
        status = RegistrationStatus.REGISTERED
        if not await self.has_capacity(tournament):
            status = RegistrationStatus.WAITLISTED

        registration = Registration(
            tournament_id=tournament.id,
            user_id=user_id,
            status=status.value,
            registration_time=utcnow(),
            notes=notes,
        )
        self.db.add(registration)
        await self.db.flush()
        return registration

    async def register(
        self,
        tournament_id: str,
        user_id: str,
        notes: str | None = None,
    ) -> Registration:
        """
        Register a player.

        The registration is waitlisted when the seat cap is already reached.

        Raises:
            TournamentNotFound
            AlreadyRegistered: The pair is already registered (any status)
        """
        async with transaction(self.db):
            tournament = await self.db.get(Tournament, tournament_id)
            if tournament is None:
                raise TournamentNotFound(tournament_id)
            if await self.get_registration(tournament_id, user_id) is not None:
                raise AlreadyRegistered(tournament_id, user_id)
            registration = await self.add_registration(tournament, user_id, notes)

        waitlisted = registration.status == RegistrationStatus.WAITLISTED.value
        logger.info(
            "player_registered",
            tournament_id=tournament_id,
            user_id=user_id,
            status=registration.status,
        )
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=(
                    TournamentEventType.PLAYER_WAITLISTED
                    if waitlisted
                    else TournamentEventType.PLAYER_REGISTERED
                ),
                tournament_id=tournament_id,
                user_id=user_id,
                data={"status": registration.status},
            ),
        )
        return registration

    async def cancel(
        self,
        tournament_id: str,
        user_id: str,
        actor_id: str | None = None,
    ) -> Registration:
        """Cancel a registration and free the player's seat, if any."""
        async with transaction(self.db):
            registration = await self.get_registration(tournament_id, user_id)
            if registration is None:
                raise RegistrationNotFound(tournament_id, user_id)
            if RegistrationStatus(registration.status) in TERMINAL_REGISTRATION_STATUSES:
                raise InvalidStatusTransition(
                    f"Registration cannot be cancelled from status: {registration.status}",
                    registration.status,
                )

            result = await self.db.execute(
                select(SeatAssignment)
                .where(SeatAssignment.tournament_id == tournament_id)
                .where(SeatAssignment.user_id == user_id)
                .where(SeatAssignment.is_current.is_(True))
            )
            seat = result.scalar_one_or_none()
            if seat is not None:
                seat.is_current = False
                seat.unassigned_at = utcnow()
                seat.unassigned_by = actor_id

            registration.status = RegistrationStatus.CANCELLED.value
            await self.db.flush()

        logger.info("registration_cancelled", tournament_id=tournament_id, user_id=user_id)
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=TournamentEventType.PLAYER_CANCELLED,
                tournament_id=tournament_id,
                user_id=user_id,
                table_id=seat.club_table_id if seat is not None else None,
            ),
        )
        return registration

    async def promote_next_waitlisted(self, tournament_id: str) -> Registration | None:
        """Move the oldest waitlisted registration to registered if a place is free."""
        async with transaction(self.db):
            tournament = await self.db.get(Tournament, tournament_id)
            if tournament is None:
                raise TournamentNotFound(tournament_id)
            if not await self.has_capacity(tournament):
                return None

            result = await self.db.execute(
                select(Registration)
                .where(Registration.tournament_id == tournament_id)
                .where(Registration.status == RegistrationStatus.WAITLISTED.value)
                .order_by(Registration.registration_time)
                .limit(1)
            )
            registration = result.scalar_one_or_none()
            if registration is None:
                return None
            registration.status = RegistrationStatus.REGISTERED.value
            await self.db.flush()

        logger.info(
            "waitlist_promoted",
            tournament_id=tournament_id,
            user_id=registration.user_id,
        )
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=TournamentEventType.PLAYER_PROMOTED,
                tournament_id=tournament_id,
                user_id=registration.user_id,
            ),
        )
        return registration

    async def mark_no_shows(self, tournament_id: str) -> int:
        """Flag everyone still merely registered as a no-show. Returns the count."""
        async with transaction(self.db):
            result = await self.db.execute(
                select(Registration)
                .where(Registration.tournament_id == tournament_id)
                .where(Registration.status == RegistrationStatus.REGISTERED.value)
            )
            registrations = list(result.scalars().all())
            for registration in registrations:
                registration.status = RegistrationStatus.NO_SHOW.value
            await self.db.flush()

        if registrations:
            logger.info(
                "no_shows_marked",
                tournament_id=tournament_id,
                count=len(registrations),
            )
        return len(registrations)
