"""
Tournament domain events and read-side snapshots.

Events are plain dataclasses handed to the event bus after the producing
transaction has committed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional
from uuid import uuid4

from pokerclub.utils.json_utils import json_dumps


class TournamentEventType(Enum):
    """Event types for the tournament event bus."""

    # Tables
    TABLE_CREATED = auto()
    TABLE_REMOVED = auto()
    TABLES_BALANCED = auto()

    # Players
    PLAYER_REGISTERED = auto()
    PLAYER_WAITLISTED = auto()
    PLAYER_PROMOTED = auto()
    PLAYER_CANCELLED = auto()
    PLAYER_CHECKED_IN = auto()
    PLAYER_ASSIGNED = auto()
    PLAYER_MOVED = auto()
    PLAYER_UNASSIGNED = auto()
    PLAYER_ELIMINATED = auto()
    STACK_UPDATED = auto()

    # Tournament
    TOURNAMENT_STATUS_CHANGED = auto()
    CLOCK_UPDATED = auto()
    RESULTS_ENTERED = auto()
    PAYOUTS_CALCULATED = auto()


@dataclass
class TournamentEvent:
    """
    Tournament event for the event bus.

    Consumers fan these out to websockets, notifications or analytics;
    none of that is the producer's concern.
    """

    event_type: TournamentEventType
    tournament_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    table_id: Optional[str] = None
    user_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.name,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "table_id": self.table_id,
            "user_id": self.user_id,
        }

    def to_json(self) -> str:
        return json_dumps(self.to_dict())


@dataclass(frozen=True)
class BlindLevel:
    """Blind level as shown on the clock."""

    level: int
    small_blind: int
    big_blind: int
    ante: int = 0
    duration_minutes: int = 15
    is_break: bool = False
    break_duration_minutes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "small_blind": self.small_blind,
            "big_blind": self.big_blind,
            "ante": self.ante,
            "duration_minutes": self.duration_minutes,
            "is_break": self.is_break,
            "break_duration_minutes": self.break_duration_minutes,
        }


@dataclass(frozen=True)
class ClockSnapshot:
    """Read model of a tournament clock at one instant."""

    tournament_id: str
    clock_status: str
    current_level: int
    time_remaining: timedelta
    total_pause_duration: timedelta
    auto_advance: bool
    level_started_at: Optional[datetime] = None
    level_end_time: Optional[datetime] = None
    pause_started_at: Optional[datetime] = None
    current_blind: Optional[BlindLevel] = None
    next_blind: Optional[BlindLevel] = None

    @property
    def time_remaining_seconds(self) -> int:
        return int(self.time_remaining.total_seconds())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "clock_status": self.clock_status,
            "current_level": self.current_level,
            "time_remaining_seconds": self.time_remaining_seconds,
            "total_pause_seconds": int(self.total_pause_duration.total_seconds()),
            "auto_advance": self.auto_advance,
            "level_started_at": self.level_started_at,
            "level_end_time": self.level_end_time,
            "pause_started_at": self.pause_started_at,
            "current_blind": self.current_blind.to_dict() if self.current_blind else None,
            "next_blind": self.next_blind.to_dict() if self.next_blind else None,
        }
