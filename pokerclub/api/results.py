"""Payouts and results API endpoints."""

from fastapi import APIRouter, Query, status

from pokerclub.api.deps import CurrentActor, DbSession, EventBus, TournamentManager
from pokerclub.models.payout import DealType
from pokerclub.schemas import (
    CalculatePayoutsRequest,
    CreatePayoutTemplateRequest,
    EnterResultsRequest,
    EnterResultsResponse,
    ErrorResponse,
    PayoutTemplateResponse,
    PlayerDealResponse,
    TournamentPayoutResponse,
    TournamentResultResponse,
)
from pokerclub.services.results import ResultsService
from pokerclub.tournament.payouts import Deal, PayoutLevel
from pokerclub.utils.errors import PermissionDenied

router = APIRouter(tags=["Results"])


# =============================================================================
# Templates
# =============================================================================


@router.get("/payout-templates", response_model=list[PayoutTemplateResponse])
async def list_suitable_templates(
    _actor: CurrentActor,
    db: DbSession,
    player_count: int = Query(..., ge=1),
):
    """Templates whose player range fits `player_count`."""
    return await ResultsService(db).find_suitable_templates(player_count)


@router.post(
    "/payout-templates",
    response_model=PayoutTemplateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse, "description": "Percentages invalid"}},
)
async def create_template(
    request: CreatePayoutTemplateRequest,
    actor: CurrentActor,
    db: DbSession,
):
    if actor.role not in ("manager", "admin"):
        raise PermissionDenied()
    return await ResultsService(db).create_template(
        name=request.name,
        description=request.description,
        min_players=request.min_players,
        max_players=request.max_players,
        payout_structure=[
            PayoutLevel(position=p.position, percentage=p.percentage)
            for p in request.payout_structure
        ],
    )


# =============================================================================
# Payouts
# =============================================================================


@router.post(
    "/tournaments/{tournament_id}/payouts",
    response_model=TournamentPayoutResponse,
)
async def calculate_payouts(
    tournament_id: str,
    _manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
    request: CalculatePayoutsRequest | None = None,
):
    return await ResultsService(db, event_bus).calculate_tournament_payouts(
        tournament_id,
        template_id=request.template_id if request else None,
    )


@router.get(
    "/tournaments/{tournament_id}/payouts",
    response_model=TournamentPayoutResponse | None,
)
async def get_payouts(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
):
    return await ResultsService(db).get_payouts(tournament_id)


# =============================================================================
# Results
# =============================================================================


@router.post(
    "/tournaments/{tournament_id}/results",
    response_model=EnterResultsResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse, "description": "Results already entered"}},
)
async def enter_results(
    tournament_id: str,
    request: EnterResultsRequest,
    manager: TournamentManager,
    db: DbSession,
    event_bus: EventBus,
):
    """Record final positions, compute prizes and finish the tournament."""
    deal = None
    if request.deal is not None:
        deal = Deal(
            deal_type=DealType(request.deal.deal_type),
            affected_positions=tuple(request.deal.affected_positions),
            custom_payouts={
                p.user_id: p.amount_cents for p in request.deal.custom_payouts or []
            },
        )

    results, deal_row = await ResultsService(db, event_bus).enter_results(
        tournament_id,
        [(p.user_id, p.final_position) for p in request.player_positions],
        template_id=request.payout_template_id,
        deal=deal,
        points={p.user_id: p.points for p in request.player_positions},
        actor_id=manager.id,
        deal_notes=request.deal.notes if request.deal else None,
    )
    return EnterResultsResponse(
        results=[TournamentResultResponse.model_validate(r) for r in results],
        deal=PlayerDealResponse.model_validate(deal_row) if deal_row else None,
    )


@router.get(
    "/tournaments/{tournament_id}/results",
    response_model=list[TournamentResultResponse],
)
async def list_results(
    tournament_id: str,
    _actor: CurrentActor,
    db: DbSession,
):
    return await ResultsService(db).list_results(tournament_id)
