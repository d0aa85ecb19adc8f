"""Tournament clock API endpoints."""

from fastapi import APIRouter, Query, status

from pokerclub.api.deps import CurrentActor, DbSession, EventBus, TournamentManager
from pokerclub.schemas import AutoAdvanceRequest, ErrorResponse, ReplaceStructureRequest
from pokerclub.services.clock import ClockService
from pokerclub.tournament.models import BlindLevel

router = APIRouter(prefix="/tournaments/{tournament_id}/clock", tags=["Clock"])

TRANSITION_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Clock or level not found"},
    409: {"model": ErrorResponse, "description": "Transition not allowed or lost a race"},
}


@router.post("", status_code=status.HTTP_201_CREATED, responses=TRANSITION_RESPONSES)
async def create_clock(
    tournament_id: str,
    _manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    service = ClockService(db, event_bus)
    await service.create_clock(tournament_id)
    return (await service.get_clock_state(tournament_id)).to_dict()


@router.get("")
async def get_clock_state(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
):
    """Current level, blinds and time remaining."""
    return (await ClockService(db).get_clock_state(tournament_id)).to_dict()


@router.post("/start", responses=TRANSITION_RESPONSES)
async def start_clock(
    tournament_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    snapshot = await ClockService(db, event_bus).start_clock(tournament_id, manager.id)
    return snapshot.to_dict()


@router.post("/pause", responses=TRANSITION_RESPONSES)
async def pause_clock(
    tournament_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    snapshot = await ClockService(db, event_bus).pause_clock(tournament_id, manager.id)
    return snapshot.to_dict()


@router.post("/resume", responses=TRANSITION_RESPONSES)
async def resume_clock(
    tournament_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    snapshot = await ClockService(db, event_bus).resume_clock(tournament_id, manager.id)
    return snapshot.to_dict()


@router.post("/advance", responses=TRANSITION_RESPONSES)
async def advance_level(
    tournament_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
    expected_level: int | None = Query(default=None, ge=1),
):
    """Advance one level. Pass expected_level to guard against double clicks."""
    snapshot = await ClockService(db, event_bus).advance_level(
        tournament_id, actor_id=manager.id, expected_level=expected_level
    )
    return snapshot.to_dict()


@router.post("/revert", responses=TRANSITION_RESPONSES)
async def revert_level(
    tournament_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    snapshot = await ClockService(db, event_bus).revert_level(tournament_id, manager.id)
    return snapshot.to_dict()


@router.put("/auto-advance", responses=TRANSITION_RESPONSES)
async def set_auto_advance(
    tournament_id: str,
    request: AutoAdvanceRequest,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    snapshot = await ClockService(db, event_bus).set_auto_advance(
        tournament_id, request.enabled, manager.id
    )
    return snapshot.to_dict()


@router.get("/events")
async def list_clock_events(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
    limit: int = Query(default=100, ge=1),
):
    events = await ClockService(db).list_events(tournament_id, limit)
    return {"events": [e.to_dict() for e in events]}


@router.put("/structure")
async def replace_structure(
    tournament_id: str,
    request: ReplaceStructureRequest,
    _manager: TournamentManager,
    db: DbSession,
):
    """Replace the blind structure."""
    levels = await ClockService(db).replace_structure(
        tournament_id,
        [BlindLevel(**level.model_dump()) for level in request.levels],
    )
    return {"levels": [level.to_dict() for level in levels]}
