"""Tables, seats and balancing API endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query, status

from pokerclub.api.deps import CurrentActor, DbSession, EventBus, TournamentManager
from pokerclub.schemas import (
    AssignTableRequest,
    BalanceRequest,
    CreateSeatRequest,
    EliminateRequest,
    ErrorResponse,
    MoveSeatRequest,
    RegistrationResponse,
    SeatAssignmentResponse,
    TableAssignmentResponse,
    TableResponse,
    UpdateStackRequest,
)
from pokerclub.services.seating import SeatingService

router = APIRouter(prefix="/tournaments/{tournament_id}", tags=["Seating"])

CONFLICT_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Not a manager of this club"},
    404: {"model": ErrorResponse, "description": "Tournament, table or player not found"},
    409: {"model": ErrorResponse, "description": "Seat conflict or invalid state"},
}


# =============================================================================
# Tables
# =============================================================================


@router.get("/tables", response_model=list[TableResponse])
async def list_tables(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
):
    """Tables in play for the tournament with their current occupancy."""
    service = SeatingService(db)
    tables = await service.list_tournament_tables(tournament_id)
    counts = {s.table_id: s.player_count for s in await service.get_table_snapshots(tournament_id)}
    return [
        TableResponse(
            id=t.id,
            table_number=t.table_number,
            table_name=t.table_name,
            max_seats=t.max_seats,
            player_count=counts.get(t.id, 0),
        )
        for t in tables
    ]


@router.post(
    "/tables",
    response_model=TableAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CONFLICT_RESPONSES,
)
async def assign_table(
    tournament_id: str,
    request: AssignTableRequest,
    _manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    return await SeatingService(db, event_bus).assign_table_to_tournament(
        tournament_id, request.table_id
    )


@router.delete(
    "/tables/{table_id}",
    response_model=TableAssignmentResponse,
    responses=CONFLICT_RESPONSES,
)
async def unassign_table(
    tournament_id: str,
    table_id: str,
    _manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    """Take a table out of play. Fails while players are seated at it."""
    return await SeatingService(db, event_bus).unassign_table_from_tournament(
        tournament_id, table_id
    )


# =============================================================================
# Seats
# =============================================================================


@router.post(
    "/seats",
    response_model=SeatAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CONFLICT_RESPONSES,
)
async def create_seat(
    tournament_id: str,
    request: CreateSeatRequest,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    return await SeatingService(db, event_bus).create_assignment(
        tournament_id,
        request.table_id,
        request.user_id,
        request.seat_number,
        stack_size=request.stack_size,
        actor_id=manager.id,
        notes=request.notes,
    )


@router.post(
    "/seats/move",
    response_model=SeatAssignmentResponse,
    responses=CONFLICT_RESPONSES,
)
async def move_seat(
    tournament_id: str,
    request: MoveSeatRequest,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    return await SeatingService(db, event_bus).move_player(
        tournament_id,
        request.user_id,
        request.new_table_id,
        request.new_seat_number,
        actor_id=manager.id,
        notes=request.notes,
    )


@router.delete(
    "/seats/{assignment_id}",
    response_model=SeatAssignmentResponse,
    responses=CONFLICT_RESPONSES,
)
async def unassign_seat(
    tournament_id: str,
    assignment_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    return await SeatingService(db, event_bus).unassign(
        tournament_id, assignment_id, actor_id=manager.id
    )


@router.get("/seats", response_model=list[SeatAssignmentResponse])
async def list_current_seats(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
    table_id: str | None = Query(default=None),
):
    service = SeatingService(db)
    if table_id is not None:
        return await service.list_current_for_table(table_id)
    return await service.list_current_for_tournament(tournament_id)


@router.get("/seats/history", response_model=list[SeatAssignmentResponse])
async def seat_history(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
    table_id: str | None = Query(default=None),
    user_id: str | None = Query(default=None),
    is_current: bool | None = Query(default=None),
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    limit: int = Query(default=100, ge=1),
):
    """Seating history, newest first."""
    return await SeatingService(db).get_history(
        tournament_id=tournament_id,
        table_id=table_id,
        user_id=user_id,
        is_current=is_current,
        since=since,
        until=until,
        limit=limit,
    )


@router.get("/seats/unassigned-players", response_model=list[RegistrationResponse])
async def unassigned_players(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
):
    return await SeatingService(db).list_unassigned_players(tournament_id)


@router.get("/seats/chart")
async def seating_chart(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
):
    return await SeatingService(db).get_seating_chart(tournament_id)


# =============================================================================
# Players
# =============================================================================


@router.post(
    "/players/{user_id}/eliminate",
    response_model=SeatAssignmentResponse,
    responses=CONFLICT_RESPONSES,
)
async def eliminate_player(
    tournament_id: str,
    user_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
    request: EliminateRequest | None = None,
):
    return await SeatingService(db, event_bus).eliminate_player(
        tournament_id,
        user_id,
        actor_id=manager.id,
        notes=request.notes if request else None,
    )


@router.put(
    "/players/{user_id}/stack",
    response_model=SeatAssignmentResponse,
    responses=CONFLICT_RESPONSES,
)
async def update_stack(
    tournament_id: str,
    user_id: str,
    request: UpdateStackRequest,
    _manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    return await SeatingService(db, event_bus).update_stack_size(
        tournament_id, user_id, request.stack_size
    )


# =============================================================================
# Balancing
# =============================================================================


@router.get("/balance")
async def check_balance(
    tournament_id: str,
    _manager: TournamentManager,
    db: DbSession,
    target_per_table: int | None = Query(default=None, ge=1),
):
    """Preview the moves a rebalance would make."""
    plan = await SeatingService(db).plan_balancing(tournament_id, target_per_table)
    return plan.to_dict()


@router.post("/balance", responses=CONFLICT_RESPONSES)
async def balance_tables(
    tournament_id: str,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
    request: BalanceRequest | None = None,
):
    plan = await SeatingService(db, event_bus).balance_tables(
        tournament_id,
        actor_id=manager.id,
        target_per_table=request.target_per_table if request else None,
    )
    return plan.to_dict()
