"""Registration and check-in API endpoints."""

from fastapi import APIRouter, status

from pokerclub.api.deps import (
    CurrentActor,
    DbSession,
    EventBus,
    TournamentManager,
    require_self_or_manager,
)
from pokerclub.schemas import (
    CheckInRequest,
    CheckInResponse,
    CountResponse,
    ErrorResponse,
    RegisterPlayerRequest,
    RegistrationResponse,
    SelfCheckInRequest,
)
from pokerclub.services.checkin import CheckinService
from pokerclub.services.registration import RegistrationService

router = APIRouter(prefix="/tournaments/{tournament_id}", tags=["Check-in"])


# ============================================================================
# Registrations
# ============================================================================


@router.post(
    "/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse, "description": "Already registered"}},
)
async def register_player(
    tournament_id: str,
    request: RegisterPlayerRequest,
    actor: CurrentActor,
    db: DbSession,
    event_bus: EventBus,
):
    """Register a player. Registering someone else needs a manager of the club.

    - Waitlisted when the seat cap is reached
    """
    await require_self_or_manager(tournament_id, request.user_id, actor, db)
    return await RegistrationService(db, event_bus).register(
        tournament_id, request.user_id, notes=request.notes
    )


@router.delete("/registrations/{user_id}", response_model=RegistrationResponse)
async def cancel_registration(
    tournament_id: str,
    user_id: str,
    actor: CurrentActor,
    db: DbSession,
    event_bus: EventBus,
):
    await require_self_or_manager(tournament_id, user_id, actor, db)
    return await RegistrationService(db, event_bus).cancel(
        tournament_id, user_id, actor_id=actor.id
    )


@router.post("/registrations/promote", response_model=RegistrationResponse | None)
async def promote_waitlisted(
    tournament_id: str,
    _manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    """Promote the oldest waitlisted player if a place is free."""
    return await RegistrationService(db, event_bus).promote_next_waitlisted(tournament_id)


@router.post("/registrations/no-shows", response_model=CountResponse)
async def mark_no_shows(
    tournament_id: str,
    _manager: TournamentManager,
    db: DbSession,
):
    count = await RegistrationService(db).mark_no_shows(tournament_id)
    return CountResponse(count=count, message=f"{count} players marked as no-show")


# ============================================================================
# Check-in
# ============================================================================


@router.post("/check-in", response_model=CheckInResponse)
async def check_in_player(
    tournament_id: str,
    request: CheckInRequest,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    """Check a registered player in.

    - Optional early-bird bonus chips
    - Optional auto-assignment (balanced, random, sequential, manual)
    """
    result = await CheckinService(db, event_bus).check_in_player(
        tournament_id,
        request.user_id,
        actor_id=manager.id,
        grant_early_bird_bonus=request.grant_early_bird_bonus,
        auto_assign=request.auto_assign,
        strategy=request.strategy,
    )
    return CheckInResponse(**result.to_dict())


@router.post("/check-in/self", response_model=CheckInResponse)
async def self_check_in(
    tournament_id: str,
    actor: CurrentActor,
    db: DbSession,
    event_bus: EventBus,
    request: SelfCheckInRequest | None = None,
):
    """Check yourself in, registering first while registration is open."""
    result = await CheckinService(db, event_bus).self_check_in(
        tournament_id,
        actor.id,
        strategy=request.strategy if request else SelfCheckInRequest().strategy,
    )
    return CheckInResponse(**result.to_dict())
