"""API response schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from pokerclub.schemas.common import BaseSchema


# =============================================================================
# Seating Responses
# =============================================================================


class SeatAssignmentResponse(BaseSchema):
    id: str
    tournament_id: str
    club_table_id: str
    user_id: str
    seat_number: int
    stack_size: int | None = None
    is_current: bool
    assigned_at: datetime
    unassigned_at: datetime | None = None
    assigned_by: str | None = None
    unassigned_by: str | None = None
    notes: str | None = None


class TableResponse(BaseSchema):
    id: str
    table_number: int
    table_name: str | None = None
    max_seats: int
    player_count: int = 0


class TableAssignmentResponse(BaseSchema):
    id: str
    tournament_id: str
    club_table_id: str
    is_active: bool
    assigned_at: datetime
    unassigned_at: datetime | None = None


class RegistrationResponse(BaseSchema):
    id: str
    tournament_id: str
    user_id: str
    status: str
    registration_time: datetime
    notes: str | None = None


# =============================================================================
# Check-in Responses
# =============================================================================


class CheckInResponse(BaseModel):
    tournament_id: str
    user_id: str
    status: str
    message: str
    seat_assignment: SeatAssignmentResponse | None = None
    table_number: int | None = None
    bonus_chips: int = 0
    waitlisted: bool = False


# =============================================================================
# Results Responses
# =============================================================================


class PayoutTemplateResponse(BaseSchema):
    id: str
    name: str
    description: str | None = None
    min_players: int
    max_players: int | None = None
    payout_structure: list[dict[str, Any]]


class TournamentPayoutResponse(BaseSchema):
    tournament_id: str
    template_id: str | None = None
    player_count: int
    total_prize_pool: int
    payout_positions: list[dict[str, Any]]


class TournamentResultResponse(BaseSchema):
    user_id: str
    final_position: int
    prize_cents: int
    points: int
    notes: str | None = None


class PlayerDealResponse(BaseSchema):
    id: str
    deal_type: str
    affected_positions: list[int]
    custom_payouts: dict[str, int] | None = None
    total_amount_cents: int
    notes: str | None = None


class EnterResultsResponse(BaseModel):
    success: bool = True
    results: list[TournamentResultResponse]
    deal: PlayerDealResponse | None = None
