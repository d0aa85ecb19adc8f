"""Tests for registration and the waitlist."""

from datetime import timedelta

import pytest

from conftest import (
    BASE_TIME,
    create_registration,
    create_table,
    create_tournament,
    new_id,
    seat_player,
)
from pokerclub.models import RegistrationStatus
from pokerclub.services.registration import RegistrationService
from pokerclub.services.seating import SeatingService
from pokerclub.tournament.models import TournamentEventType
from pokerclub.utils.errors import (
    AlreadyRegistered,
    InvalidStatusTransition,
    RegistrationNotFound,
    TournamentNotFound,
)


class TestRegister:

    @pytest.mark.asyncio
    async def test_register(self, db, event_bus, recorded_events):
        tournament = await create_tournament(db)
        user_id = new_id()

        registration = await RegistrationService(db, event_bus).register(tournament.id, user_id)

        assert registration.status == "registered"
        assert recorded_events[0].event_type == TournamentEventType.PLAYER_REGISTERED

    @pytest.mark.asyncio
    async def test_waitlisted_when_full(self, db, event_bus, recorded_events):
        tournament = await create_tournament(db, seat_cap=1)
        service = RegistrationService(db, event_bus)
        await service.register(tournament.id, new_id())

        second = await service.register(tournament.id, new_id())

        assert second.status == "waitlisted"
        assert recorded_events[-1].event_type == TournamentEventType.PLAYER_WAITLISTED

    @pytest.mark.asyncio
    async def test_duplicate(self, db):
        tournament = await create_tournament(db)
        registration = await create_registration(db, tournament)
        tournament_id, user_id = tournament.id, registration.user_id

        with pytest.raises(AlreadyRegistered):
            await RegistrationService(db).register(tournament_id, user_id)

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, db):
        with pytest.raises(TournamentNotFound):
            await RegistrationService(db).register(new_id(), new_id())

    @pytest.mark.asyncio
    async def test_busted_players_free_their_place(self, db):
        tournament = await create_tournament(db, seat_cap=1)
        await create_registration(db, tournament, status=RegistrationStatus.BUSTED)

        registration = await RegistrationService(db).register(tournament.id, new_id())
        assert registration.status == "registered"


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_frees_seat(self, db, event_bus, recorded_events):
        tournament = await create_tournament(db)
        table = await create_table(db, tournament, 1)
        seat = await seat_player(db, tournament, table, 4)

        manager = new_id()

        registration = await RegistrationService(db, event_bus).cancel(
            tournament.id, seat.user_id, actor_id=manager
        )

        assert registration.status == "cancelled"
        await db.refresh(seat)
        assert seat.is_current is False
        assert seat.unassigned_by == manager
        assert await SeatingService(db).get_occupied_seats(table.id) == set()
        assert recorded_events[-1].event_type == TournamentEventType.PLAYER_CANCELLED
        assert recorded_events[-1].table_id == table.id

    @pytest.mark.asyncio
    async def test_cancel_twice(self, db):
        tournament = await create_tournament(db)
        registration = await create_registration(db, tournament, status=RegistrationStatus.CANCELLED)
        tournament_id, user_id = tournament.id, registration.user_id

        with pytest.raises(InvalidStatusTransition):
            await RegistrationService(db).cancel(tournament_id, user_id)

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, db):
        tournament = await create_tournament(db)
        tournament_id = tournament.id

        with pytest.raises(RegistrationNotFound):
            await RegistrationService(db).cancel(tournament_id, new_id())


class TestWaitlist:

    @pytest.mark.asyncio
    async def test_promotes_oldest_first(self, db):
        tournament = await create_tournament(db, seat_cap=2)
        await create_registration(db, tournament)
        later = await create_registration(
            db,
            tournament,
            status=RegistrationStatus.WAITLISTED,
            registration_time=BASE_TIME + timedelta(minutes=5),
        )
        earlier = await create_registration(
            db,
            tournament,
            status=RegistrationStatus.WAITLISTED,
            registration_time=BASE_TIME,
        )
        service = RegistrationService(db)

        promoted = await service.promote_next_waitlisted(tournament.id)
        assert promoted.user_id == earlier.user_id
        assert promoted.status == "registered"

        # Cap reached again: nobody else moves up
        assert await service.promote_next_waitlisted(tournament.id) is None
        await db.refresh(later)
        assert later.status == "waitlisted"

    @pytest.mark.asyncio
    async def test_empty_waitlist(self, db):
        tournament = await create_tournament(db)
        assert await RegistrationService(db).promote_next_waitlisted(tournament.id) is None

    @pytest.mark.asyncio
    async def test_cancel_then_promote(self, db):
        tournament = await create_tournament(db, seat_cap=1)
        holder = await create_registration(db, tournament)
        waiting = await create_registration(db, tournament, status=RegistrationStatus.WAITLISTED)
        service = RegistrationService(db)

        await service.cancel(tournament.id, holder.user_id)
        promoted = await service.promote_next_waitlisted(tournament.id)

        assert promoted.user_id == waiting.user_id


@pytest.mark.asyncio
async def test_mark_no_shows(db):
    tournament = await create_tournament(db)
    await create_registration(db, tournament)
    await create_registration(db, tournament)
    checked_in = await create_registration(db, tournament, status=RegistrationStatus.CHECKED_IN)

    count = await RegistrationService(db).mark_no_shows(tournament.id)

    assert count == 2
    await db.refresh(checked_in)
    assert checked_in.status == "checked_in"
