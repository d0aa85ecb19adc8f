"""Seat assignment store and table management.

Invariants enforced here and, independently, by partial unique indexes:
- at most one current seat per (tournament, user)
- at most one current occupant per (table, seat_number)

The application pre-checks give readable errors; the indexes make a lost race
fail with an IntegrityError, which is mapped back to SeatOccupied or
AlreadySeated and leaves the previous seat untouched.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pokerclub.config import get_settings
from pokerclub.logging_config import get_logger
from pokerclub.middleware.prometheus import record_seat_change, record_seat_conflict
from pokerclub.models.base import utcnow
from pokerclub.models.registration import (
    ACTIVE_REGISTRATION_STATUSES,
    Registration,
    RegistrationStatus,
)
from pokerclub.models.seating import CURRENT_SEAT_INDEX, SeatAssignment
from pokerclub.models.table import ClubTable, TournamentTableAssignment
from pokerclub.models.tournament import Tournament
from pokerclub.tournament.balancer import (
    BalancingPlan,
    SeatedPlayer,
    TableBalancer,
    TableSnapshot,
)
from pokerclub.tournament.event_bus import TournamentEventBus, emit_safely
from pokerclub.tournament.models import TournamentEvent, TournamentEventType
from pokerclub.utils.db import transaction
from pokerclub.utils.errors import (
    AlreadySeated,
    NotCurrent,
    NotSeated,
    RegistrationNotFound,
    SeatAssignmentNotFound,
    SeatOccupied,
    TableAlreadyAssigned,
    TableHasSeatedPlayers,
    TableNotFound,
    TableNotInTournament,
    TournamentNotFound,
    ValidationError,
)

settings = get_settings()
logger = get_logger(__name__)

BALANCE_NOTES = "Balanced by system"
ELIMINATED_NOTES = "Player eliminated"


class SeatingService:
    """Service for seat assignments, tournament tables and balancing."""

    def __init__(
        self,
        db: AsyncSession,
        event_bus: Optional[TournamentEventBus] = None,
        balancer: Optional[TableBalancer] = None,
    ):
        self.db = db
        self.event_bus = event_bus
        self.balancer = balancer or TableBalancer()

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_tournament(self, tournament_id: str) -> Tournament:
        tournament = await self.db.get(Tournament, tournament_id)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        return tournament

    async def get_table(self, table_id: str) -> ClubTable:
        table = await self.db.get(ClubTable, table_id)
        if table is None:
            raise TableNotFound(table_id)
        return table

    async def list_tournament_tables(self, tournament_id: str) -> list[ClubTable]:
        """Active tables in play for the tournament, by table number."""
        result = await self.db.execute(
            select(ClubTable)
            .join(
                TournamentTableAssignment,
                TournamentTableAssignment.club_table_id == ClubTable.id,
            )
            .where(TournamentTableAssignment.tournament_id == tournament_id)
            .where(TournamentTableAssignment.is_active.is_(True))
            .where(ClubTable.is_active.is_(True))
            .order_by(ClubTable.table_number)
        )
        return list(result.scalars().all())

    async def get_table_in_play(self, tournament_id: str, table_id: str) -> ClubTable:
        table = await self.get_table(table_id)
        link = await self._get_table_link(tournament_id, table_id)
        if link is None or not link.is_active or not table.is_active:
            raise TableNotInTournament(tournament_id, table_id)
        return table

    async def get_current_for_user(
        self,
        tournament_id: str,
        user_id: str,
        for_update: bool = False,
    ) -> SeatAssignment | None:
        query = (
            select(SeatAssignment)
            .where(SeatAssignment.tournament_id == tournament_id)
            .where(SeatAssignment.user_id == user_id)
            .where(SeatAssignment.is_current.is_(True))
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_assignment(self, assignment_id: str) -> SeatAssignment:
        assignment = await self.db.get(SeatAssignment, assignment_id)
        if assignment is None:
            raise SeatAssignmentNotFound(assignment_id=assignment_id)
        return assignment

    async def get_occupied_seats(self, table_id: str) -> set[int]:
        """Seat numbers currently taken at a table, in one round trip."""
        result = await self.db.execute(
            select(SeatAssignment.seat_number)
            .where(SeatAssignment.club_table_id == table_id)
            .where(SeatAssignment.is_current.is_(True))
        )
        return set(result.scalars().all())

    async def list_current_for_tournament(
        self,
        tournament_id: str,
        for_update: bool = False,
    ) -> list[SeatAssignment]:
        query = (
            select(SeatAssignment)
            .where(SeatAssignment.tournament_id == tournament_id)
            .where(SeatAssignment.is_current.is_(True))
            .order_by(SeatAssignment.assigned_at)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_current_for_table(self, table_id: str) -> list[SeatAssignment]:
        result = await self.db.execute(
            select(SeatAssignment)
            .where(SeatAssignment.club_table_id == table_id)
            .where(SeatAssignment.is_current.is_(True))
            .order_by(SeatAssignment.seat_number)
        )
        return list(result.scalars().all())

    async def list_unassigned_players(self, tournament_id: str) -> list[Registration]:
        """Registered, checked-in or seated players without a current seat."""
        seated = (
            select(SeatAssignment.user_id)
            .where(SeatAssignment.tournament_id == tournament_id)
            .where(SeatAssignment.is_current.is_(True))
        )
        result = await self.db.execute(
            select(Registration)
            .where(Registration.tournament_id == tournament_id)
            .where(Registration.status.in_([s.value for s in ACTIVE_REGISTRATION_STATUSES]))
            .where(Registration.user_id.not_in(seated))
            .order_by(Registration.registration_time)
        )
        return list(result.scalars().all())

    async def get_history(
        self,
        tournament_id: str | None = None,
        table_id: str | None = None,
        user_id: str | None = None,
        is_current: bool | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[SeatAssignment]:
        """Seating history, newest first, capped at the configured maximum."""
        if limit is None:
            limit = settings.seating_history_default_limit
        if limit < 1:
            raise ValidationError("History limit must be at least 1", {"limit": limit})
        limit = min(limit, settings.seating_history_max_limit)

        query = select(SeatAssignment)
        if tournament_id is not None:
            query = query.where(SeatAssignment.tournament_id == tournament_id)
        if table_id is not None:
            query = query.where(SeatAssignment.club_table_id == table_id)
        if user_id is not None:
            query = query.where(SeatAssignment.user_id == user_id)
        if is_current is not None:
            query = query.where(SeatAssignment.is_current.is_(is_current))
        if since is not None:
            query = query.where(SeatAssignment.assigned_at >= since)
        if until is not None:
            query = query.where(SeatAssignment.assigned_at <= until)

        result = await self.db.execute(
            query.order_by(SeatAssignment.assigned_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_table_snapshots(self, tournament_id: str) -> list[TableSnapshot]:
        """In-play tables with their occupied seats, for balancing and check-in."""
        tables = await self.list_tournament_tables(tournament_id)
        if not tables:
            return []

        result = await self.db.execute(
            select(SeatAssignment.club_table_id, SeatAssignment.seat_number)
            .where(SeatAssignment.club_table_id.in_([t.id for t in tables]))
            .where(SeatAssignment.is_current.is_(True))
        )
        occupied: dict[str, set[int]] = {t.id: set() for t in tables}
        for table_id, seat_number in result.all():
            occupied[table_id].add(seat_number)

        return [
            TableSnapshot(
                table_id=t.id,
                table_number=t.table_number,
                max_seats=t.max_seats,
                occupied_seats=frozenset(occupied[t.id]),
            )
            for t in tables
        ]

    async def get_seating_chart(self, tournament_id: str) -> dict[str, Any]:
        """Tables with their current seats plus players still waiting for one."""
        tournament = await self.get_tournament(tournament_id)
        tables = await self.list_tournament_tables(tournament_id)
        current = await self.list_current_for_tournament(tournament_id)

        seats_by_table: dict[str, list[SeatAssignment]] = {t.id: [] for t in tables}
        for assignment in current:
            seats_by_table.setdefault(assignment.club_table_id, []).append(assignment)

        unassigned = await self.list_unassigned_players(tournament_id)
        return {
            "tournament_id": tournament.id,
            "tables": [
                {
                    "table_id": t.id,
                    "table_number": t.table_number,
                    "max_seats": t.max_seats,
                    "seats": [
                        a.to_dict()
                        for a in sorted(seats_by_table[t.id], key=lambda a: a.seat_number)
                    ],
                }
                for t in tables
            ],
            "unassigned_user_ids": [r.user_id for r in unassigned],
        }

    # =========================================================================
    # Seat mutations
    # =========================================================================

    async def create_assignment(
        self,
        tournament_id: str,
        table_id: str,
        user_id: str,
        seat_number: int,
        stack_size: int | None = None,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> SeatAssignment:
        """Seat a player who has no current seat in this tournament.

        Raises:
            SeatOccupied: Another player holds the seat
            AlreadySeated: The player already has a current seat (move instead)
        """
        async with transaction(self.db):
            await self.get_tournament(tournament_id)
            table = await self.get_table_in_play(tournament_id, table_id)
            self._validate_seat(table, seat_number)
            self._validate_stack(stack_size)

            if await self.get_current_for_user(tournament_id, user_id) is not None:
                record_seat_conflict("already_seated")
                raise AlreadySeated(tournament_id, user_id)
            if seat_number in await self.get_occupied_seats(table_id):
                record_seat_conflict("seat_occupied")
                raise SeatOccupied(table_id, seat_number)

            assignment = await self.insert_current(
                SeatAssignment(
                    tournament_id=tournament_id,
                    club_table_id=table_id,
                    user_id=user_id,
                    seat_number=seat_number,
                    stack_size=stack_size,
                    assigned_by=actor_id,
                    notes=notes,
                ),
            )
            await self._mark_seated(tournament_id, user_id)

        record_seat_change("assigned")
        logger.info(
            "player_assigned",
            tournament_id=tournament_id,
            table_id=table_id,
            user_id=user_id,
            seat_number=seat_number,
        )
        await self._emit(
            TournamentEventType.PLAYER_ASSIGNED,
            tournament_id,
            table_id=table_id,
            user_id=user_id,
            data={
                "assignment": assignment.to_dict(),
                "message": f"Player assigned to seat {seat_number}",
            },
        )
        return assignment

    async def move_player(
        self,
        tournament_id: str,
        user_id: str,
        new_table_id: str,
        new_seat_number: int,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> SeatAssignment:
        """Atomically retire the player's current seat and take a new one.

        When the target seat is taken (even by a racing writer) the move fails
        with SeatOccupied and the old seat stays current.
        """
        async with transaction(self.db):
            table = await self.get_table_in_play(tournament_id, new_table_id)
            self._validate_seat(table, new_seat_number)

            current = await self.get_current_for_user(tournament_id, user_id, for_update=True)
            if current is None:
                raise NotSeated(tournament_id, user_id)
            if current.club_table_id == new_table_id and current.seat_number == new_seat_number:
                raise ValidationError(
                    "Player is already in that seat",
                    {"table_id": new_table_id, "seat_number": new_seat_number},
                )
            if new_seat_number in await self.get_occupied_seats(new_table_id):
                record_seat_conflict("seat_occupied")
                raise SeatOccupied(
                    new_table_id, new_seat_number, "Target seat is already occupied"
                )

            old_table_id, old_seat = current.club_table_id, current.seat_number
            assignment = await self.insert_current(
                SeatAssignment(
                    tournament_id=tournament_id,
                    club_table_id=new_table_id,
                    user_id=user_id,
                    seat_number=new_seat_number,
                    stack_size=current.stack_size,
                    assigned_by=actor_id,
                    notes=notes,
                ),
                replaces=current,
            )

        record_seat_change("moved")
        logger.info(
            "player_moved",
            tournament_id=tournament_id,
            user_id=user_id,
            from_table_id=old_table_id,
            from_seat=old_seat,
            to_table_id=new_table_id,
            to_seat=new_seat_number,
        )
        await self._emit(
            TournamentEventType.PLAYER_MOVED,
            tournament_id,
            table_id=new_table_id,
            user_id=user_id,
            data={
                "assignment": assignment.to_dict(),
                "from_table_id": old_table_id,
                "from_seat": old_seat,
                "message": f"Player moved to seat {new_seat_number}",
            },
        )
        return assignment

    async def unassign(
        self,
        tournament_id: str,
        assignment_id: str,
        actor_id: str | None = None,
    ) -> SeatAssignment:
        """Retire a current assignment of this tournament.

        Raises:
            SeatAssignmentNotFound: No such assignment in this tournament
            NotCurrent: The assignment was already unassigned
        """
        async with transaction(self.db):
            assignment = await self.get_assignment(assignment_id)
            if assignment.tournament_id != tournament_id:
                raise SeatAssignmentNotFound(
                    assignment_id=assignment_id, tournament_id=tournament_id
                )
            if not assignment.is_current:
                raise NotCurrent(assignment_id)
            self._retire(assignment, actor_id)
            await self.db.flush()

        record_seat_change("unassigned")
        logger.info(
            "player_unassigned",
            tournament_id=assignment.tournament_id,
            table_id=assignment.club_table_id,
            user_id=assignment.user_id,
        )
        await self._emit(
            TournamentEventType.PLAYER_UNASSIGNED,
            assignment.tournament_id,
            table_id=assignment.club_table_id,
            user_id=assignment.user_id,
            data={"assignment": assignment.to_dict()},
        )
        return assignment

    async def update_stack_size(
        self,
        tournament_id: str,
        user_id: str,
        stack_size: int,
    ) -> SeatAssignment:
        self._validate_stack(stack_size)
        async with transaction(self.db):
            assignment = await self.get_current_for_user(tournament_id, user_id)
            if assignment is None:
                raise NotSeated(tournament_id, user_id)
            assignment.stack_size = stack_size
            await self.db.flush()

        await self._emit(
            TournamentEventType.STACK_UPDATED,
            tournament_id,
            table_id=assignment.club_table_id,
            user_id=user_id,
            data={"stack_size": stack_size, "message": f"Stack updated to {stack_size}"},
        )
        return assignment

    async def eliminate_player(
        self,
        tournament_id: str,
        user_id: str,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> SeatAssignment:
        """Bust a seated player: stack to zero, seat retired, registration busted."""
        async with transaction(self.db):
            assignment = await self.get_current_for_user(tournament_id, user_id, for_update=True)
            if assignment is None:
                raise NotSeated(tournament_id, user_id)

            assignment.stack_size = 0
            assignment.notes = notes or ELIMINATED_NOTES
            self._retire(assignment, actor_id)

            registration = await self._get_registration(tournament_id, user_id)
            if registration is not None:
                registration.status = RegistrationStatus.BUSTED.value
            await self.db.flush()

        record_seat_change("eliminated")
        logger.info(
            "player_eliminated",
            tournament_id=tournament_id,
            table_id=assignment.club_table_id,
            user_id=user_id,
        )
        await self._emit(
            TournamentEventType.PLAYER_ELIMINATED,
            tournament_id,
            table_id=assignment.club_table_id,
            user_id=user_id,
            data={
                "assignment": assignment.to_dict(),
                "message": "Player eliminated from tournament",
            },
        )
        return assignment

    # =========================================================================
    # Tournament tables
    # =========================================================================

    async def assign_table_to_tournament(
        self,
        tournament_id: str,
        table_id: str,
    ) -> TournamentTableAssignment:
        """Put a club table in play; it must belong to the tournament's club."""
        async with transaction(self.db):
            tournament = await self.get_tournament(tournament_id)
            table = await self.get_table(table_id)
            if table.club_id != tournament.club_id:
                raise ValidationError(
                    "Table does not belong to this tournament's club",
                    {"table_id": table_id, "club_id": tournament.club_id},
                )
            if not table.is_active:
                raise ValidationError("Table is not active", {"table_id": table_id})

            link = await self._get_table_link(tournament_id, table_id)
            if link is not None and link.is_active:
                raise TableAlreadyAssigned(tournament_id, table_id)

            if link is None:
                link = TournamentTableAssignment(
                    tournament_id=tournament_id,
                    club_table_id=table_id,
                )
                self.db.add(link)
            else:
                link.is_active = True
                link.assigned_at = utcnow()
                link.unassigned_at = None
            await self.db.flush()

        logger.info("table_assigned", tournament_id=tournament_id, table_id=table_id)
        await self._emit(
            TournamentEventType.TABLE_CREATED,
            tournament_id,
            table_id=table_id,
            data={"table_number": table.table_number, "max_seats": table.max_seats},
        )
        return link

    async def unassign_table_from_tournament(
        self,
        tournament_id: str,
        table_id: str,
    ) -> TournamentTableAssignment:
        """Take a table out of play. Refused while anyone is seated at it."""
        async with transaction(self.db):
            link = await self._get_table_link(tournament_id, table_id)
            if link is None or not link.is_active:
                raise TableNotInTournament(tournament_id, table_id)

            seated = await self.db.scalar(
                select(func.count())
                .select_from(SeatAssignment)
                .where(SeatAssignment.tournament_id == tournament_id)
                .where(SeatAssignment.club_table_id == table_id)
                .where(SeatAssignment.is_current.is_(True))
            )
            if seated:
                raise TableHasSeatedPlayers(table_id, seated)

            link.is_active = False
            link.unassigned_at = utcnow()
            await self.db.flush()

        logger.info("table_unassigned", tournament_id=tournament_id, table_id=table_id)
        await self._emit(
            TournamentEventType.TABLE_REMOVED,
            tournament_id,
            table_id=table_id,
        )
        return link

    # =========================================================================
    # Balancing
    # =========================================================================

    async def plan_balancing(
        self,
        tournament_id: str,
        target_per_table: int | None = None,
    ) -> BalancingPlan:
        """Dry run: what balance_tables() would do right now."""
        await self.get_tournament(tournament_id)
        return await self._build_plan(tournament_id, target_per_table)

    async def balance_tables(
        self,
        tournament_id: str,
        actor_id: str | None = None,
        target_per_table: int | None = None,
    ) -> BalancingPlan:
        """Rebalance tables in one transaction; all moves commit or none do."""
        if target_per_table is not None and target_per_table < 1:
            raise ValidationError(
                "Target players per table must be at least 1",
                {"target_per_table": target_per_table},
            )

        async with transaction(self.db):
            await self.get_tournament(tournament_id)
            plan = await self._build_plan(tournament_id, target_per_table, for_update=True)

            for move in plan.moves:
                current = await self.get_current_for_user(tournament_id, move.user_id)
                if current is None:
                    raise NotSeated(tournament_id, move.user_id)
                await self.insert_current(
                    SeatAssignment(
                        tournament_id=tournament_id,
                        club_table_id=move.to_table_id,
                        user_id=move.user_id,
                        seat_number=move.to_seat,
                        stack_size=current.stack_size,
                        assigned_by=actor_id,
                        notes=BALANCE_NOTES,
                    ),
                    replaces=current,
                )

        if plan.moves:
            record_seat_change("balanced", plan.total_moves)
            logger.info(
                "tables_balanced",
                tournament_id=tournament_id,
                moves=plan.total_moves,
                target_per_table=plan.target_per_table,
            )
            await self._emit(
                TournamentEventType.TABLES_BALANCED,
                tournament_id,
                data={
                    "moves": [m.to_dict() for m in plan.moves],
                    "message": f"Tables balanced: {plan.total_moves} players moved",
                },
            )
        return plan

    async def _build_plan(
        self,
        tournament_id: str,
        target_per_table: int | None,
        for_update: bool = False,
    ) -> BalancingPlan:
        snapshots = await self.get_table_snapshots(tournament_id)
        current = await self.list_current_for_tournament(tournament_id, for_update=for_update)
        players = [
            SeatedPlayer(
                user_id=a.user_id,
                table_id=a.club_table_id,
                seat_number=a.seat_number,
                assigned_at=a.assigned_at,
                stack_size=a.stack_size,
            )
            for a in current
        ]
        return self.balancer.calculate_balancing_plan(
            tournament_id, snapshots, players, target_override=target_per_table
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def insert_current(
        self,
        assignment: SeatAssignment,
        replaces: SeatAssignment | None = None,
    ) -> SeatAssignment:
        """Retire `replaces` and insert `assignment` inside a savepoint.

        A uniqueness violation rolls the savepoint back, so `replaces` stays
        current, and surfaces as SeatOccupied or AlreadySeated.
        """
        try:
            async with self.db.begin_nested():
                if replaces is not None:
                    self._retire(replaces, assignment.assigned_by)
                    await self.db.flush()
                self.db.add(assignment)
                await self.db.flush()
        except IntegrityError as e:
            raise self._conflict_from_integrity_error(e, assignment) from e
        return assignment

    def _conflict_from_integrity_error(
        self,
        error: IntegrityError,
        assignment: SeatAssignment,
    ) -> Exception:
        message = str(error.orig)
        if CURRENT_SEAT_INDEX in message or "seat_number" in message:
            record_seat_conflict("seat_occupied")
            logger.warning(
                "seat_write_conflict",
                table_id=assignment.club_table_id,
                seat_number=assignment.seat_number,
            )
            return SeatOccupied(assignment.club_table_id, assignment.seat_number)
        record_seat_conflict("already_seated")
        return AlreadySeated(assignment.tournament_id, assignment.user_id)

    def _retire(self, assignment: SeatAssignment, actor_id: str | None) -> None:
        assignment.is_current = False
        assignment.unassigned_at = utcnow()
        assignment.unassigned_by = actor_id

    async def _mark_seated(self, tournament_id: str, user_id: str) -> None:
        registration = await self._get_registration(tournament_id, user_id)
        if registration is None:
            raise RegistrationNotFound(tournament_id, user_id)
        if registration.status in (
            RegistrationStatus.REGISTERED.value,
            RegistrationStatus.CHECKED_IN.value,
        ):
            registration.status = RegistrationStatus.SEATED.value
            await self.db.flush()

    async def _get_registration(self, tournament_id: str, user_id: str) -> Registration | None:
        result = await self.db.execute(
            select(Registration)
            .where(Registration.tournament_id == tournament_id)
            .where(Registration.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _get_table_link(
        self,
        tournament_id: str,
        table_id: str,
    ) -> TournamentTableAssignment | None:
        result = await self.db.execute(
            select(TournamentTableAssignment)
            .where(TournamentTableAssignment.tournament_id == tournament_id)
            .where(TournamentTableAssignment.club_table_id == table_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _validate_seat(table: ClubTable, seat_number: int) -> None:
        if seat_number < 1 or seat_number > table.max_seats:
            raise ValidationError(
                f"Seat number must be between 1 and {table.max_seats}",
                {"seat_number": seat_number, "max_seats": table.max_seats},
            )

    @staticmethod
    def _validate_stack(stack_size: int | None) -> None:
        if stack_size is not None and stack_size < 0:
            raise ValidationError("Stack size cannot be negative", {"stack_size": stack_size})

    async def _emit(
        self,
        event_type: TournamentEventType,
        tournament_id: str,
        table_id: str | None = None,
        user_id: str | None = None,
        data: dict | None = None,
    ) -> None:
        await emit_safely(
            self.event_bus,
            TournamentEvent(
                event_type=event_type,
                tournament_id=tournament_id,
                table_id=table_id,
                user_id=user_id,
                data=data or {},
            ),
        )
