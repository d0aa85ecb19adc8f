"""Tests for the seat assignment store.

Tests:
- Create, move, unassign and eliminate
- Uniqueness of current seats (pre-checks and index-enforced races)
- Tournament table assignment
- Balancing execution
- History queries
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from conftest import (
    BASE_TIME,
    create_registration,
    create_table,
    create_tournament,
    new_id,
    seat_player,
)
from pokerclub.models import Registration, RegistrationStatus, SeatAssignment
from pokerclub.services.seating import BALANCE_NOTES, SeatingService
from pokerclub.tournament.models import TournamentEventType
from pokerclub.utils.errors import (
    AlreadySeated,
    NotCurrent,
    NotSeated,
    RegistrationNotFound,
    SeatAssignmentNotFound,
    SeatOccupied,
    TableAlreadyAssigned,
    TableHasSeatedPlayers,
    TableNotInTournament,
    ValidationError,
)


async def current_seats(db, tournament_id: str, user_id: str) -> list[SeatAssignment]:
    result = await db.execute(
        select(SeatAssignment)
        .where(SeatAssignment.tournament_id == tournament_id)
        .where(SeatAssignment.user_id == user_id)
        .where(SeatAssignment.is_current.is_(True))
    )
    return list(result.scalars().all())


async def registration_status(db, tournament_id: str, user_id: str) -> str:
    return await db.scalar(
        select(Registration.status)
        .where(Registration.tournament_id == tournament_id)
        .where(Registration.user_id == user_id)
    )


# =============================================================================
# Create
# =============================================================================

class TestCreateAssignment:

    @pytest.mark.asyncio
    async def test_seats_registered_player(self, db, event_bus, recorded_events):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        registration = await create_registration(db, tournament)
        service = SeatingService(db, event_bus)

        assignment = await service.create_assignment(
            tournament.id, table.id, registration.user_id, 5, stack_size=20000
        )

        assert assignment.is_current is True
        assert assignment.seat_number == 5
        assert assignment.stack_size == 20000
        assert await registration_status(db, tournament.id, registration.user_id) == "seated"
        assert [e.event_type for e in recorded_events] == [TournamentEventType.PLAYER_ASSIGNED]

    @pytest.mark.asyncio
    async def test_occupied_seat(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        await seat_player(db, tournament, table, 5)
        registration = await create_registration(db, tournament)
        tournament_id, table_id, user_id = tournament.id, table.id, registration.user_id

        with pytest.raises(SeatOccupied):
            await SeatingService(db).create_assignment(tournament_id, table_id, user_id, 5)

        assert await current_seats(db, tournament_id, user_id) == []

    @pytest.mark.asyncio
    async def test_already_seated_player(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seated = await seat_player(db, tournament, table, 1)
        tournament_id, table_id, user_id = tournament.id, table.id, seated.user_id

        with pytest.raises(AlreadySeated):
            await SeatingService(db).create_assignment(tournament_id, table_id, user_id, 2)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seat_number", [0, 10])
    async def test_seat_out_of_range(self, db, seat_number):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1, max_seats=9)
        registration = await create_registration(db, tournament)
        tournament_id, table_id, user_id = tournament.id, table.id, registration.user_id

        with pytest.raises(ValidationError):
            await SeatingService(db).create_assignment(
                tournament_id, table_id, user_id, seat_number
            )

    @pytest.mark.asyncio
    async def test_table_not_in_play(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1, in_play=False)
        registration = await create_registration(db, tournament)
        tournament_id, table_id, user_id = tournament.id, table.id, registration.user_id

        with pytest.raises(TableNotInTournament):
            await SeatingService(db).create_assignment(tournament_id, table_id, user_id, 1)

    @pytest.mark.asyncio
    async def test_unregistered_player_is_rolled_back(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        tournament_id, table_id, user_id = tournament.id, table.id, new_id()

        with pytest.raises(RegistrationNotFound):
            await SeatingService(db).create_assignment(tournament_id, table_id, user_id, 1)

        assert await current_seats(db, tournament_id, user_id) == []

    @pytest.mark.asyncio
    async def test_lost_race_on_seat_index(self, db, monkeypatch):
        """A writer that skipped the pre-check still cannot double-book a seat."""
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        await seat_player(db, tournament, table, 3)
        registration = await create_registration(db, tournament)
        tournament_id, table_id, user_id = tournament.id, table.id, registration.user_id

        service = SeatingService(db)
        monkeypatch.setattr(service, "get_occupied_seats", AsyncMock(return_value=set()))

        with pytest.raises(SeatOccupied):
            await service.create_assignment(tournament_id, table_id, user_id, 3)

        assert await current_seats(db, tournament_id, user_id) == []


# =============================================================================
# Move
# =============================================================================

class TestMovePlayer:

    @pytest.mark.asyncio
    async def test_move_retires_old_seat(self, db, event_bus, recorded_events):
        tournament = await create_tournament(db)
        table1 = await create_table(db, tournament, 1)
        table2 = await create_table(db, tournament, 2)
        old = await seat_player(db, tournament, table1, 4, stack_size=18000)
        service = SeatingService(db, event_bus)

        moved = await service.move_player(tournament.id, old.user_id, table2.id, 7)

        assert moved.club_table_id == table2.id
        assert moved.seat_number == 7
        assert moved.stack_size == 18000
        await db.refresh(old)
        assert old.is_current is False
        assert old.unassigned_at is not None

        seats = await current_seats(db, tournament.id, old.user_id)
        assert [s.id for s in seats] == [moved.id]
        assert recorded_events[-1].event_type == TournamentEventType.PLAYER_MOVED
        assert recorded_events[-1].data["from_seat"] == 4

    @pytest.mark.asyncio
    async def test_move_within_table(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        old = await seat_player(db, tournament, table, 1)

        moved = await SeatingService(db).move_player(tournament.id, old.user_id, table.id, 2)

        assert moved.seat_number == 2
        assert await SeatingService(db).get_occupied_seats(table.id) == {2}

    @pytest.mark.asyncio
    async def test_move_to_own_seat(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        old = await seat_player(db, tournament, table, 1)
        tournament_id, table_id, user_id = tournament.id, table.id, old.user_id

        with pytest.raises(ValidationError):
            await SeatingService(db).move_player(tournament_id, user_id, table_id, 1)

    @pytest.mark.asyncio
    async def test_move_unseated_player(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        registration = await create_registration(db, tournament)
        tournament_id, table_id, user_id = tournament.id, table.id, registration.user_id

        with pytest.raises(NotSeated):
            await SeatingService(db).move_player(tournament_id, user_id, table_id, 1)

    @pytest.mark.asyncio
    async def test_move_to_occupied_seat_keeps_old_seat(self, db):
        tournament = await create_tournament(db)
        table1 = await create_table(db, tournament, 1)
        table2 = await create_table(db, tournament, 2)
        mover = await seat_player(db, tournament, table1, 1)
        await seat_player(db, tournament, table2, 1)
        tournament_id, table2_id, user_id, old_id = (
            tournament.id, table2.id, mover.user_id, mover.id,
        )

        with pytest.raises(SeatOccupied) as exc_info:
            await SeatingService(db).move_player(tournament_id, user_id, table2_id, 1)
        assert exc_info.value.message == "Target seat is already occupied"

        seats = await current_seats(db, tournament_id, user_id)
        assert [s.id for s in seats] == [old_id]

    @pytest.mark.asyncio
    async def test_lost_race_keeps_old_seat(self, db, monkeypatch):
        """Index violation during a move rolls back the retirement too."""
        tournament = await create_tournament(db)
        table1 = await create_table(db, tournament, 1)
        table2 = await create_table(db, tournament, 2)
        mover = await seat_player(db, tournament, table1, 1)
        await seat_player(db, tournament, table2, 6)
        tournament_id, table2_id, user_id, old_id = (
            tournament.id, table2.id, mover.user_id, mover.id,
        )

        service = SeatingService(db)
        monkeypatch.setattr(service, "get_occupied_seats", AsyncMock(return_value=set()))

        with pytest.raises(SeatOccupied):
            await service.move_player(tournament_id, user_id, table2_id, 6)

        seats = await current_seats(db, tournament_id, user_id)
        assert [s.id for s in seats] == [old_id]


# =============================================================================
# Unassign / eliminate / stacks
# =============================================================================

class TestUnassignAndEliminate:

    @pytest.mark.asyncio
    async def test_unassign(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        manager = new_id()
        seat = await seat_player(db, tournament, table, 2)
        seat.assigned_by = manager
        await db.commit()

        actor = new_id()
        result = await SeatingService(db).unassign(tournament.id, seat.id, actor_id=actor)

        assert result.is_current is False
        assert result.unassigned_at is not None
        assert result.unassigned_by == actor
        assert result.assigned_by == manager
        assert await SeatingService(db).get_occupied_seats(table.id) == set()

    @pytest.mark.asyncio
    async def test_unassign_twice(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seat = await seat_player(db, tournament, table, 2)
        service = SeatingService(db)
        await service.unassign(tournament.id, seat.id)

        with pytest.raises(NotCurrent):
            await service.unassign(tournament.id, seat.id)

    @pytest.mark.asyncio
    async def test_unassign_through_other_tournament(self, db):
        theirs = await create_tournament(db, name="Sunday Main")
        table = await create_table(db, theirs, 1)
        seat = await seat_player(db, theirs, table, 4)
        mine = await create_tournament(db, name="Friday Deepstack")
        theirs_id, mine_id, seat_id, user_id = theirs.id, mine.id, seat.id, seat.user_id

        with pytest.raises(SeatAssignmentNotFound):
            await SeatingService(db).unassign(mine_id, seat_id)

        assert [s.id for s in await current_seats(db, theirs_id, user_id)] == [seat_id]

    @pytest.mark.asyncio
    async def test_eliminate(self, db, event_bus, recorded_events):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seat = await seat_player(db, tournament, table, 2, stack_size=5000)

        result = await SeatingService(db, event_bus).eliminate_player(tournament.id, seat.user_id)

        assert result.stack_size == 0
        assert result.is_current is False
        assert result.notes == "Player eliminated"
        assert await registration_status(db, tournament.id, seat.user_id) == "busted"
        assert recorded_events[-1].event_type == TournamentEventType.PLAYER_ELIMINATED

    @pytest.mark.asyncio
    async def test_eliminate_unseated(self, db):
        tournament = await create_tournament(db)
        tournament_id = tournament.id

        with pytest.raises(NotSeated):
            await SeatingService(db).eliminate_player(tournament_id, new_id())

    @pytest.mark.asyncio
    async def test_update_stack(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seat = await seat_player(db, tournament, table, 2, stack_size=5000)

        result = await SeatingService(db).update_stack_size(tournament.id, seat.user_id, 12500)
        assert result.stack_size == 12500

    @pytest.mark.asyncio
    async def test_negative_stack(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seat = await seat_player(db, tournament, table, 2)

        with pytest.raises(ValidationError):
            await SeatingService(db).update_stack_size(tournament.id, seat.user_id, -1)


# =============================================================================
# Tournament tables
# =============================================================================

class TestTournamentTables:

    @pytest.mark.asyncio
    async def test_assign_and_reassign(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1, in_play=False)
        service = SeatingService(db)

        link = await service.assign_table_to_tournament(tournament.id, table.id)
        assert link.is_active is True

        await service.unassign_table_from_tournament(tournament.id, table.id)
        assert await service.list_tournament_tables(tournament.id) == []

        relinked = await service.assign_table_to_tournament(tournament.id, table.id)
        assert relinked.id == link.id
        assert relinked.is_active is True
        assert relinked.unassigned_at is None

    @pytest.mark.asyncio
    async def test_assign_twice(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        tournament_id, table_id = tournament.id, table.id

        with pytest.raises(TableAlreadyAssigned):
            await SeatingService(db).assign_table_to_tournament(tournament_id, table_id)

    @pytest.mark.asyncio
    async def test_table_from_other_club(self, db):
        tournament = await create_tournament(db)
        other = await create_tournament(db)
        table = await create_table(db, other, 1, in_play=False)
        tournament_id, table_id = tournament.id, table.id

        with pytest.raises(ValidationError):
            await SeatingService(db).assign_table_to_tournament(tournament_id, table_id)

    @pytest.mark.asyncio
    async def test_unassign_table_with_players(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        await seat_player(db, tournament, table, 1)
        await seat_player(db, tournament, table, 2)
        tournament_id, table_id = tournament.id, table.id

        with pytest.raises(TableHasSeatedPlayers) as exc_info:
            await SeatingService(db).unassign_table_from_tournament(tournament_id, table_id)
        assert exc_info.value.details["seated_count"] == 2

    @pytest.mark.asyncio
    async def test_unassign_table_not_in_play(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1, in_play=False)
        tournament_id, table_id = tournament.id, table.id

        with pytest.raises(TableNotInTournament):
            await SeatingService(db).unassign_table_from_tournament(tournament_id, table_id)


# =============================================================================
# Balancing
# =============================================================================

async def seat_field(db, tournament, table, count: int, minute_offset: int = 0) -> list:
    seats = []
    for seat_number in range(1, count + 1):
        seats.append(
            await seat_player(
                db,
                tournament,
                table,
                seat_number,
                assigned_at=BASE_TIME + timedelta(minutes=minute_offset + seat_number),
                stack_size=20000,
            )
        )
    return seats


class TestBalanceTables:

    @pytest.mark.asyncio
    async def test_nine_and_three(self, db, event_bus, recorded_events):
        tournament = await create_tournament(db)
        table1 = await create_table(db, tournament, 1)
        table2 = await create_table(db, tournament, 2)
        big = await seat_field(db, tournament, table1, 9)
        await seat_field(db, tournament, table2, 3, minute_offset=100)
        service = SeatingService(db, event_bus)

        plan = await service.balance_tables(tournament.id)

        assert plan.total_moves == 3
        assert len(await service.list_current_for_table(table1.id)) == 6
        assert len(await service.list_current_for_table(table2.id)) == 6

        # The three most recently seated players at table 1 moved
        moved_users = {m.user_id for m in plan.moves}
        assert moved_users == {s.user_id for s in big[6:]}

        history = await service.get_history(tournament_id=tournament.id, is_current=True)
        balanced = [a for a in history if a.notes == BALANCE_NOTES]
        assert len(balanced) == 3
        assert all(a.stack_size == 20000 for a in balanced)
        assert recorded_events[-1].event_type == TournamentEventType.TABLES_BALANCED

    @pytest.mark.asyncio
    async def test_failed_move_rolls_back_whole_balance(
        self, db, event_bus, recorded_events, monkeypatch
    ):
        tournament = await create_tournament(db)
        table1 = await create_table(db, tournament, 1)
        table2 = await create_table(db, tournament, 2)
        big = await seat_field(db, tournament, table1, 9)
        await seat_field(db, tournament, table2, 3, minute_offset=100)
        tournament_id, table1_id, table2_id = tournament.id, table1.id, table2.id
        first_mover, first_seat_id = big[8].user_id, big[8].id

        service = SeatingService(db, event_bus)
        real_insert = service.insert_current
        calls = []

        async def fail_second_move(assignment, replaces=None):
            calls.append(assignment.user_id)
            if len(calls) == 2:
                raise SeatOccupied(assignment.club_table_id, assignment.seat_number)
            return await real_insert(assignment, replaces=replaces)

        monkeypatch.setattr(service, "insert_current", fail_second_move)

        with pytest.raises(SeatOccupied):
            await service.balance_tables(tournament_id)

        assert calls[0] == first_mover
        assert [s.id for s in await current_seats(db, tournament_id, first_mover)] == [
            first_seat_id
        ]
        assert len(await service.list_current_for_table(table1_id)) == 9
        assert len(await service.list_current_for_table(table2_id)) == 3
        assert recorded_events == []

    @pytest.mark.asyncio
    async def test_balanced_tables_are_untouched(self, db, recorded_events, event_bus):
        tournament = await create_tournament(db)
        table1 = await create_table(db, tournament, 1)
        table2 = await create_table(db, tournament, 2)
        await seat_field(db, tournament, table1, 6)
        await seat_field(db, tournament, table2, 5, minute_offset=100)

        plan = await SeatingService(db, event_bus).balance_tables(tournament.id)

        assert plan.moves == []
        assert recorded_events == []

    @pytest.mark.asyncio
    async def test_plan_is_a_dry_run(self, db):
        tournament = await create_tournament(db)
        table1 = await create_table(db, tournament, 1)
        table2 = await create_table(db, tournament, 2)
        await seat_field(db, tournament, table1, 9)
        await seat_field(db, tournament, table2, 3, minute_offset=100)
        service = SeatingService(db)

        plan = await service.plan_balancing(tournament.id)

        assert plan.total_moves == 3
        assert len(await service.list_current_for_table(table1.id)) == 9

    @pytest.mark.asyncio
    async def test_invalid_target(self, db):
        tournament = await create_tournament(db)
        tournament_id = tournament.id

        with pytest.raises(ValidationError):
            await SeatingService(db).balance_tables(tournament_id, target_per_table=0)


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    @pytest.mark.asyncio
    async def test_history_newest_first_with_limit(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        await seat_field(db, tournament, table, 4)

        history = await SeatingService(db).get_history(tournament_id=tournament.id, limit=2)

        assert [a.seat_number for a in history] == [4, 3]

    @pytest.mark.asyncio
    async def test_history_includes_retired_rows(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seat = await seat_player(db, tournament, table, 1)
        service = SeatingService(db)
        await service.move_player(tournament.id, seat.user_id, table.id, 2)

        history = await service.get_history(user_id=seat.user_id)
        assert sorted(a.is_current for a in history) == [False, True]

    @pytest.mark.asyncio
    async def test_history_limit_must_be_positive(self, db):
        with pytest.raises(ValidationError):
            await SeatingService(db).get_history(limit=0)

    @pytest.mark.asyncio
    async def test_seating_chart(self, db):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seat = await seat_player(db, tournament, table, 3)
        waiting = await create_registration(db, tournament, status=RegistrationStatus.CHECKED_IN)

        chart = await SeatingService(db).get_seating_chart(tournament.id)

        assert chart["tables"][0]["table_number"] == 1
        assert [s["user_id"] for s in chart["tables"][0]["seats"]] == [seat.user_id]
        assert chart["unassigned_user_ids"] == [waiting.user_id]

    @pytest.mark.asyncio
    async def test_unassigned_players_skip_waitlist(self, db):
        tournament = await create_tournament(db)
        registered = await create_registration(db, tournament)
        await create_registration(db, tournament, status=RegistrationStatus.WAITLISTED)

        players = await SeatingService(db).list_unassigned_players(tournament.id)
        assert [p.user_id for p in players] == [registered.user_id]
