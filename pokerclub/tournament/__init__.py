"""
Tournament operations core for live poker clubs.

This module provides:
- Table balancing plans for the seats in play
- Seat selection strategies used on check-in
- Blind clock timing and snapshots
- Payout and deal calculation
- Event fan-out to local subscribers and Redis Streams

The background clock ticker lives in `pokerclub.tournament.clock_ticker`.
"""

from .models import (
    BlindLevel,
    ClockSnapshot,
    TournamentEvent,
    TournamentEventType,
)
from .balancer import BalancingPlan, PlayerMove, TableBalancer, TableSnapshot
from .strategies import AssignmentStrategy, get_strategy
from .payouts import Deal, PayoutLevel, compute_payouts, validate_payout_structure
from .event_bus import TournamentEventBus

__all__ = [
    "BlindLevel",
    "ClockSnapshot",
    "TournamentEvent",
    "TournamentEventType",
    "BalancingPlan",
    "PlayerMove",
    "TableBalancer",
    "TableSnapshot",
    "AssignmentStrategy",
    "get_strategy",
    "Deal",
    "PayoutLevel",
    "compute_payouts",
    "validate_payout_structure",
    "TournamentEventBus",
]
