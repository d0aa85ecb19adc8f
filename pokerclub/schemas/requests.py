"""API request schemas."""

from pydantic import BaseModel, Field, field_validator, model_validator

from pokerclub.models.payout import DealType
from pokerclub.models.tournament import LiveStatus
from pokerclub.tournament.strategies import AssignmentStrategy


# =============================================================================
# Seating Requests
# =============================================================================


class AssignTableRequest(BaseModel):
    table_id: str = Field(..., description="Club table to put in play")


class CreateSeatRequest(BaseModel):
    """Seat a player who has no current seat."""

    table_id: str
    user_id: str
    seat_number: int = Field(..., ge=1)
    stack_size: int | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=500)


class MoveSeatRequest(BaseModel):
    user_id: str
    new_table_id: str
    new_seat_number: int = Field(..., ge=1)
    notes: str | None = Field(None, max_length=500)


class UpdateStackRequest(BaseModel):
    stack_size: int = Field(..., ge=0)


class EliminateRequest(BaseModel):
    notes: str | None = Field(None, max_length=500)


class BalanceRequest(BaseModel):
    target_per_table: int | None = Field(None, ge=1)


# =============================================================================
# Registration / Check-in Requests
# =============================================================================


class RegisterPlayerRequest(BaseModel):
    user_id: str
    notes: str | None = Field(None, max_length=500)


class CheckInRequest(BaseModel):
    """Manager check-in of a registered player."""

    user_id: str
    grant_early_bird_bonus: bool = False
    auto_assign: bool = False
    strategy: AssignmentStrategy = AssignmentStrategy.BALANCED


class SelfCheckInRequest(BaseModel):
    strategy: AssignmentStrategy = AssignmentStrategy.BALANCED


class UpdateLiveStatusRequest(BaseModel):
    live_status: LiveStatus


# =============================================================================
# Clock Requests
# =============================================================================


class BlindLevelRequest(BaseModel):
    level: int = Field(..., ge=1)
    small_blind: int = Field(..., ge=0)
    big_blind: int = Field(..., ge=0)
    ante: int = Field(default=0, ge=0)
    duration_minutes: int = Field(..., ge=1)
    is_break: bool = False
    break_duration_minutes: int | None = Field(None, ge=1)


class ReplaceStructureRequest(BaseModel):
    levels: list[BlindLevelRequest] = Field(..., min_length=1)


class AutoAdvanceRequest(BaseModel):
    enabled: bool


# =============================================================================
# Results Requests
# =============================================================================


class PayoutLevelRequest(BaseModel):
    position: int = Field(..., ge=1)
    percentage: float


class CreatePayoutTemplateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    min_players: int = Field(default=2, ge=1)
    max_players: int | None = Field(None, ge=1)
    payout_structure: list[PayoutLevelRequest] = Field(..., min_length=1)


class CalculatePayoutsRequest(BaseModel):
    template_id: str | None = None


class PlayerPositionRequest(BaseModel):
    user_id: str
    final_position: int = Field(..., ge=1)
    points: int = 0


class CustomPayoutRequest(BaseModel):
    user_id: str
    amount_cents: int = Field(..., ge=0)


class DealRequest(BaseModel):
    deal_type: DealType
    affected_positions: list[int] = Field(..., min_length=1)
    custom_payouts: list[CustomPayoutRequest] | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def check_custom_payouts(self) -> "DealRequest":
        if self.deal_type == DealType.CUSTOM and not self.custom_payouts:
            raise ValueError("Custom deals need custom_payouts")
        return self


class EnterResultsRequest(BaseModel):
    player_positions: list[PlayerPositionRequest] = Field(..., min_length=1)
    payout_template_id: str | None = None
    deal: DealRequest | None = None

    @field_validator("player_positions")
    @classmethod
    def unique_players(cls, v: list[PlayerPositionRequest]) -> list[PlayerPositionRequest]:
        users = [p.user_id for p in v]
        if len(set(users)) != len(users):
            raise ValueError("Each player may appear only once in the results")
        return v
