"""Database models."""

from pokerclub.models.base import Base, TimestampMixin, UUIDMixin
from pokerclub.models.clock import (
    ClockEventType,
    ClockStatus,
    TournamentClock,
    TournamentClockEvent,
)
from pokerclub.models.payout import (
    DealType,
    PayoutTemplate,
    PlayerDeal,
    TournamentPayout,
    TournamentResult,
)
from pokerclub.models.registration import Registration, RegistrationStatus
from pokerclub.models.seating import SeatAssignment
from pokerclub.models.table import ClubTable, TournamentTableAssignment
from pokerclub.models.tournament import (
    EntryType,
    LiveStatus,
    Tournament,
    TournamentEntry,
    TournamentStatus,
    TournamentStructure,
    coarse_status,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Tournament
    "Tournament",
    "TournamentStructure",
    "TournamentEntry",
    "EntryType",
    "LiveStatus",
    "TournamentStatus",
    "coarse_status",
    # Registration
    "Registration",
    "RegistrationStatus",
    # Tables & seating
    "ClubTable",
    "TournamentTableAssignment",
    "SeatAssignment",
    # Clock
    "TournamentClock",
    "TournamentClockEvent",
    "ClockStatus",
    "ClockEventType",
    # Payouts
    "PayoutTemplate",
    "TournamentPayout",
    "PlayerDeal",
    "TournamentResult",
    "DealType",
]
