"""Pydantic schemas for API requests and responses."""

from pokerclub.schemas.common import (
    BaseSchema,
    CountResponse,
    ErrorDetail,
    ErrorResponse,
)
from pokerclub.schemas.requests import (
    AssignTableRequest,
    AutoAdvanceRequest,
    BalanceRequest,
    BlindLevelRequest,
    CalculatePayoutsRequest,
    CheckInRequest,
    CreatePayoutTemplateRequest,
    CreateSeatRequest,
    DealRequest,
    EliminateRequest,
    EnterResultsRequest,
    MoveSeatRequest,
    RegisterPlayerRequest,
    ReplaceStructureRequest,
    SelfCheckInRequest,
    UpdateLiveStatusRequest,
    UpdateStackRequest,
)
from pokerclub.schemas.responses import (
    CheckInResponse,
    EnterResultsResponse,
    PayoutTemplateResponse,
    PlayerDealResponse,
    RegistrationResponse,
    SeatAssignmentResponse,
    TableAssignmentResponse,
    TableResponse,
    TournamentPayoutResponse,
    TournamentResultResponse,
)

__all__ = [
    # Common
    "BaseSchema",
    "CountResponse",
    "ErrorDetail",
    "ErrorResponse",
    # Requests
    "AssignTableRequest",
    "AutoAdvanceRequest",
    "BalanceRequest",
    "BlindLevelRequest",
    "CalculatePayoutsRequest",
    "CheckInRequest",
    "CreatePayoutTemplateRequest",
    "CreateSeatRequest",
    "DealRequest",
    "EliminateRequest",
    "EnterResultsRequest",
    "MoveSeatRequest",
    "RegisterPlayerRequest",
    "ReplaceStructureRequest",
    "SelfCheckInRequest",
    "UpdateLiveStatusRequest",
    "UpdateStackRequest",
    # Responses
    "CheckInResponse",
    "EnterResultsResponse",
    "PayoutTemplateResponse",
    "PlayerDealResponse",
    "RegistrationResponse",
    "SeatAssignmentResponse",
    "TableAssignmentResponse",
    "TableResponse",
    "TournamentPayoutResponse",
    "TournamentResultResponse",
]
