"""Error taxonomy for tournament operations.

Every failure the core raises belongs to one of a closed set of kinds so that
callers (and the HTTP layer) can branch on the kind instead of message text:

- ValidationError: bad input shape or range, raised before any mutation
- NotFoundError: a referenced entity does not exist
- ConflictError: a uniqueness invariant would be violated
- InvalidStateTransition: the entity is in a state that forbids the operation
- PermissionDenied: the actor may not perform the operation
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FORBIDDEN = "FORBIDDEN"

    # Not found
    TOURNAMENT_NOT_FOUND = "TOURNAMENT_NOT_FOUND"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    SEAT_ASSIGNMENT_NOT_FOUND = "SEAT_ASSIGNMENT_NOT_FOUND"
    CLOCK_NOT_FOUND = "CLOCK_NOT_FOUND"
    LEVEL_NOT_FOUND = "LEVEL_NOT_FOUND"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"

    # Conflict
    SEAT_OCCUPIED = "SEAT_OCCUPIED"
    ALREADY_SEATED = "ALREADY_SEATED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    CLOCK_ALREADY_EXISTS = "CLOCK_ALREADY_EXISTS"
    TABLE_ALREADY_ASSIGNED = "TABLE_ALREADY_ASSIGNED"
    RESULTS_ALREADY_ENTERED = "RESULTS_ALREADY_ENTERED"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Invalid state transition
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    INVALID_CLOCK_TRANSITION = "INVALID_CLOCK_TRANSITION"
    ALREADY_AT_FIRST_LEVEL = "ALREADY_AT_FIRST_LEVEL"
    TABLE_HAS_SEATED_PLAYERS = "TABLE_HAS_SEATED_PLAYERS"
    TABLE_NOT_IN_TOURNAMENT = "TABLE_NOT_IN_TOURNAMENT"
    NOT_CURRENT = "NOT_CURRENT"
    NOT_SEATED = "NOT_SEATED"


class TournamentOpsError(Exception):
    """Base exception for tournament operation errors.

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message suitable for an operator-facing client
        details: Additional error details
    """

    kind = "error"

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Kinds
# =============================================================================


class ValidationError(TournamentOpsError):
    """Input rejected before any mutation."""

    kind = "validation"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class NotFoundError(TournamentOpsError):
    kind = "not_found"


class ConflictError(TournamentOpsError):
    """Uniqueness invariant violated; retryable after re-reading state."""

    kind = "conflict"


class InvalidStateTransition(TournamentOpsError):
    """Current state forbids the operation. `details["current_state"]` names it."""

    kind = "invalid_state"


class PermissionDenied(TournamentOpsError):
    kind = "forbidden"

    def __init__(self, message: str = "Only club managers can perform this action"):
        super().__init__(ErrorCode.FORBIDDEN, message)


# =============================================================================
# Not found
# =============================================================================


class TournamentNotFound(NotFoundError):
    def __init__(self, tournament_id: str):
        super().__init__(
            ErrorCode.TOURNAMENT_NOT_FOUND,
            "Tournament not found",
            {"tournament_id": tournament_id},
        )


class TableNotFound(NotFoundError):
    def __init__(self, table_id: str):
        super().__init__(
            ErrorCode.TABLE_NOT_FOUND,
            "Table not found",
            {"table_id": table_id},
        )


class RegistrationNotFound(NotFoundError):
    def __init__(self, tournament_id: str, user_id: str):
        super().__init__(
            ErrorCode.REGISTRATION_NOT_FOUND,
            "Player not registered for this tournament",
            {"tournament_id": tournament_id, "user_id": user_id},
        )


class SeatAssignmentNotFound(NotFoundError):
    def __init__(self, message: str = "Seat assignment not found", **details: Any):
        super().__init__(ErrorCode.SEAT_ASSIGNMENT_NOT_FOUND, message, details)


class ClockNotFound(NotFoundError):
    def __init__(self, tournament_id: str):
        super().__init__(
            ErrorCode.CLOCK_NOT_FOUND,
            "Tournament clock not found",
            {"tournament_id": tournament_id},
        )


class LevelNotFound(NotFoundError):
    def __init__(self, tournament_id: str, level_number: int):
        super().__init__(
            ErrorCode.LEVEL_NOT_FOUND,
            f"Blind level {level_number} is not defined for this tournament",
            {"tournament_id": tournament_id, "level_number": level_number},
        )


class TemplateNotFound(NotFoundError):
    def __init__(self, template_id: str):
        super().__init__(
            ErrorCode.TEMPLATE_NOT_FOUND,
            "Payout template not found",
            {"template_id": template_id},
        )


# =============================================================================
# Conflicts
# =============================================================================


class SeatOccupied(ConflictError):
    def __init__(
        self,
        table_id: str,
        seat_number: int,
        message: str = "Seat is already occupied",
    ):
        super().__init__(
            ErrorCode.SEAT_OCCUPIED,
            message,
            {"table_id": table_id, "seat_number": seat_number},
        )


class AlreadySeated(ConflictError):
    def __init__(self, tournament_id: str, user_id: str):
        super().__init__(
            ErrorCode.ALREADY_SEATED,
            "Player is already seated in this tournament; move them instead",
            {"tournament_id": tournament_id, "user_id": user_id},
        )


class AlreadyRegistered(ConflictError):
    def __init__(self, tournament_id: str, user_id: str):
        super().__init__(
            ErrorCode.ALREADY_REGISTERED,
            "Player is already registered for this tournament",
            {"tournament_id": tournament_id, "user_id": user_id},
        )


class ClockAlreadyExists(ConflictError):
    def __init__(self, tournament_id: str):
        super().__init__(
            ErrorCode.CLOCK_ALREADY_EXISTS,
            "Tournament clock already exists",
            {"tournament_id": tournament_id},
        )


class TableAlreadyAssigned(ConflictError):
    def __init__(self, tournament_id: str, table_id: str):
        super().__init__(
            ErrorCode.TABLE_ALREADY_ASSIGNED,
            "Table is already assigned to this tournament",
            {"tournament_id": tournament_id, "table_id": table_id},
        )


class ResultsAlreadyEntered(ConflictError):
    def __init__(self, tournament_id: str):
        super().__init__(
            ErrorCode.RESULTS_ALREADY_ENTERED,
            "Results have already been entered for this tournament",
            {"tournament_id": tournament_id},
        )


class ConcurrentModification(ConflictError):
    def __init__(self, message: str, **details: Any):
        super().__init__(ErrorCode.CONCURRENT_MODIFICATION, message, details)


# =============================================================================
# Invalid state transitions
# =============================================================================


class InvalidStatusTransition(InvalidStateTransition):
    def __init__(self, message: str, current_state: str, **details: Any):
        super().__init__(
            ErrorCode.INVALID_STATUS_TRANSITION,
            message,
            {"current_state": current_state, **details},
        )


class InvalidClockTransition(InvalidStateTransition):
    def __init__(self, operation: str, current_state: str):
        super().__init__(
            ErrorCode.INVALID_CLOCK_TRANSITION,
            f"Cannot {operation} clock while it is {current_state}",
            {"current_state": current_state, "operation": operation},
        )


class AlreadyAtFirstLevel(InvalidStateTransition):
    def __init__(self, tournament_id: str):
        super().__init__(
            ErrorCode.ALREADY_AT_FIRST_LEVEL,
            "Tournament is already at level 1",
            {"tournament_id": tournament_id, "current_state": "level 1"},
        )


class TableHasSeatedPlayers(InvalidStateTransition):
    def __init__(self, table_id: str, seated_count: int):
        super().__init__(
            ErrorCode.TABLE_HAS_SEATED_PLAYERS,
            "Cannot unassign table: there are still players seated at this table. "
            "Move or eliminate all players first.",
            {
                "table_id": table_id,
                "seated_count": seated_count,
                "current_state": f"{seated_count} seated",
            },
        )


class TableNotInTournament(InvalidStateTransition):
    def __init__(self, tournament_id: str, table_id: str):
        super().__init__(
            ErrorCode.TABLE_NOT_IN_TOURNAMENT,
            "Table is not assigned to this tournament",
            {
                "tournament_id": tournament_id,
                "table_id": table_id,
                "current_state": "unassigned",
            },
        )


class NotCurrent(InvalidStateTransition):
    def __init__(self, assignment_id: str):
        super().__init__(
            ErrorCode.NOT_CURRENT,
            "Seat assignment is no longer current",
            {"assignment_id": assignment_id, "current_state": "unassigned"},
        )


class NotSeated(InvalidStateTransition):
    def __init__(self, tournament_id: str, user_id: str):
        super().__init__(
            ErrorCode.NOT_SEATED,
            "Player does not have a current seat in this tournament",
            {
                "tournament_id": tournament_id,
                "user_id": user_id,
                "current_state": "unseated",
            },
        )
