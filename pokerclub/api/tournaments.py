"""Tournament lifecycle API endpoints."""

from fastapi import APIRouter

from pokerclub.api.deps import CurrentActor, DbSession, EventBus, TournamentManager
from pokerclub.schemas import ErrorResponse, UpdateLiveStatusRequest
from pokerclub.services.tournament import TournamentService

router = APIRouter(prefix="/tournaments/{tournament_id}", tags=["Tournaments"])


def _tournament_dict(tournament) -> dict:
    return {
        "id": tournament.id,
        "club_id": tournament.club_id,
        "name": tournament.name,
        "live_status": tournament.live_status,
        "status": tournament.status.value,
        "start_time": tournament.start_time,
        "end_time": tournament.end_time,
        "seat_cap": tournament.seat_cap,
    }


@router.get("")
async def get_tournament(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
):
    return _tournament_dict(await TournamentService(db).get_tournament(tournament_id))


@router.put(
    "/live-status",
    responses={409: {"model": ErrorResponse, "description": "Transition not allowed"}},
)
async def update_live_status(
    tournament_id: str,
    request: UpdateLiveStatusRequest,
    _manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    tournament = await TournamentService(db, event_bus).update_live_status(
        tournament_id, request.live_status
    )
    return _tournament_dict(tournament)
