"""Seat assignment strategies used by check-in.

Each strategy picks a table from the tournament's in-play tables:
- Balanced: fewest current occupants (first table wins ties)
- Random: any in-play table, uniformly
- Sequential: first table (by table number) that is not full
- Manual: never auto-assigns

Once a table is chosen the seat is drawn uniformly from its free seats.
"""

import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

from pokerclub.tournament.balancer import TableSnapshot


class AssignmentStrategy(str, Enum):
    BALANCED = "balanced"
    RANDOM = "random"
    SEQUENTIAL = "sequential"
    MANUAL = "manual"


class SeatingStrategy(ABC):
    """Base class for check-in seating strategies."""

    name: AssignmentStrategy
    label: str = "Base"
    auto_assigns: bool = True

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    @abstractmethod
    def choose_table(
        self,
        available_tables: Sequence[TableSnapshot],
        occupancy: Dict[str, int],
    ) -> Optional[TableSnapshot]:
        """Pick a table, or None when the strategy cannot place anyone.

        Args:
            available_tables: In-play tables in table-number order
            occupancy: Current player count per table id
        """

    def choose_seat(self, table: TableSnapshot) -> Optional[int]:
        """Uniformly random free seat on the table."""
        free = available_seats(table)
        if not free:
            return None
        return self.rng.choice(free)


def available_seats(table: TableSnapshot) -> List[int]:
    return [
        seat for seat in range(1, table.max_seats + 1)
        if seat not in table.occupied_seats
    ]


class BalancedSeating(SeatingStrategy):
    name = AssignmentStrategy.BALANCED
    label = "Balanced"

    def choose_table(self, available_tables, occupancy):
        best = None
        for table in available_tables:
            if best is None or occupancy.get(table.table_id, 0) < occupancy.get(best.table_id, 0):
                best = table
        return best


class RandomSeating(SeatingStrategy):
    name = AssignmentStrategy.RANDOM
    label = "Random"

    def choose_table(self, available_tables, occupancy):
        if not available_tables:
            return None
        return self.rng.choice(list(available_tables))


class SequentialSeating(SeatingStrategy):
    name = AssignmentStrategy.SEQUENTIAL
    label = "Sequential"

    def choose_table(self, available_tables, occupancy):
        for table in available_tables:
            if occupancy.get(table.table_id, 0) < table.max_seats:
                return table
        return None


class ManualSeating(SeatingStrategy):
    name = AssignmentStrategy.MANUAL
    label = "Manual"
    auto_assigns = False

    def choose_table(self, available_tables, occupancy):
        return None


_STRATEGIES = {
    AssignmentStrategy.BALANCED: BalancedSeating,
    AssignmentStrategy.RANDOM: RandomSeating,
    AssignmentStrategy.SEQUENTIAL: SequentialSeating,
    AssignmentStrategy.MANUAL: ManualSeating,
}


def get_strategy(
    strategy: AssignmentStrategy | str,
    rng: Optional[random.Random] = None,
) -> SeatingStrategy:
    """Get a strategy instance by name."""
    return _STRATEGIES[AssignmentStrategy(strategy)](rng=rng)
