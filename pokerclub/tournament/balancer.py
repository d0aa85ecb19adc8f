"""
Table Balancing Algorithm.

Decides per-table target occupancy and which players move where. Everything
here works on already-fetched snapshots; the seating service loads the
snapshots, asks for a plan and executes it inside one transaction.

Design rules:
1. Rebalance only when tables drift apart by more than 2 players, or when a
   multi-table tournament has a table below 4 players
2. Move the most recently seated players first (least settled)
3. Fill needy tables in order, lowest free seat first
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set

# Tables this far apart (max - min) are out of balance
MAX_COUNT_SPREAD = 2
# Below this many players a table is short-handed
MIN_PLAYERS_PER_TABLE = 4


@dataclass(frozen=True)
class SeatedPlayer:
    """Snapshot of one current seat assignment."""

    user_id: str
    table_id: str
    seat_number: int
    assigned_at: datetime
    stack_size: Optional[int] = None


@dataclass(frozen=True)
class TableSnapshot:
    """Snapshot of one in-play table and the seats taken at it."""

    table_id: str
    table_number: int
    max_seats: int
    occupied_seats: frozenset = frozenset()

    @property
    def player_count(self) -> int:
        return len(self.occupied_seats)


@dataclass(frozen=True)
class PlayerMove:
    """Single player move instruction."""

    user_id: str
    from_table_id: str
    from_seat: int
    to_table_id: str
    to_seat: int
    stack_size: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "user_id": self.user_id,
            "from_table_id": self.from_table_id,
            "from_seat": self.from_seat,
            "to_table_id": self.to_table_id,
            "to_seat": self.to_seat,
        }


@dataclass
class BalancingPlan:
    """Complete balancing plan."""

    tournament_id: str = ""
    target_per_table: int = 0
    table_counts: Dict[str, int] = field(default_factory=dict)
    needs_rebalancing: bool = False
    moves: List[PlayerMove] = field(default_factory=list)

    @property
    def total_moves(self) -> int:
        return len(self.moves)

    def to_dict(self) -> Dict:
        return {
            "tournament_id": self.tournament_id,
            "target_per_table": self.target_per_table,
            "table_counts": dict(self.table_counts),
            "needs_rebalancing": self.needs_rebalancing,
            "total_moves": self.total_moves,
            "moves": [m.to_dict() for m in self.moves],
        }


def needs_rebalancing(table_counts: Mapping[str, int]) -> bool:
    """True iff the spread exceeds 2, or a multi-table field has a table under 4."""
    if not table_counts:
        return False

    counts = list(table_counts.values())
    max_count = max(counts)
    min_count = min(counts)

    if max_count - min_count > MAX_COUNT_SPREAD:
        return True
    return min_count < MIN_PLAYERS_PER_TABLE and len(counts) > 1


def target_per_table(
    total_players: int,
    table_count: int,
    override: Optional[int] = None,
) -> int:
    """ceil(total / tables), unless the caller supplies an explicit target."""
    if override is not None:
        return override
    if table_count <= 0:
        return 0
    return math.ceil(total_players / table_count)


def lowest_available_seat(max_seats: int, occupied: Iterable[int]) -> Optional[int]:
    taken = set(occupied)
    for seat in range(1, max_seats + 1):
        if seat not in taken:
            return seat
    return None


class TableBalancer:
    """
    Tournament table balancing engine.

    Algorithm:
    ─────────────────────────────────────────────────────────────────

    1. Count current players per in-play table
    2. If needs_rebalancing() over the occupied tables is false, return an
       empty plan
    3. target = ceil(total / in-play tables) unless overridden; empty
       tables still take players as needy tables
    4. Excess tables (count > target) give up count - target players,
       newest assigned_at first
    5. Each candidate goes to the first needy table (count < target) that
       still has a free seat, at its lowest free seat number
    6. A needy table drops out once it reaches target

    ─────────────────────────────────────────────────────────────────

    Candidates left over when no needy table remains stay where they are.
    """

    def calculate_balancing_plan(
        self,
        tournament_id: str,
        tables: List[TableSnapshot],
        players: List[SeatedPlayer],
        target_override: Optional[int] = None,
    ) -> BalancingPlan:
        plan = BalancingPlan(tournament_id=tournament_id)
        if not tables:
            return plan

        ordered_tables = sorted(tables, key=lambda t: t.table_number)
        players_by_table: Dict[str, List[SeatedPlayer]] = {
            t.table_id: [] for t in ordered_tables
        }
        for player in players:
            if player.table_id in players_by_table:
                players_by_table[player.table_id].append(player)

        counts = {
            table_id: len(seated) for table_id, seated in players_by_table.items()
        }
        plan.table_counts = dict(counts)
        # A freshly opened empty table alone does not trigger a rebalance
        plan.needs_rebalancing = needs_rebalancing(
            {table_id: count for table_id, count in counts.items() if count > 0}
        )
        plan.target_per_table = target_per_table(
            sum(counts.values()), len(counts), target_override
        )

        if not plan.needs_rebalancing:
            return plan

        target = plan.target_per_table
        candidates = self._select_excess_players(
            ordered_tables, players_by_table, counts, target
        )
        if not candidates:
            return plan

        # Needy tables with their working copy of taken seats
        needy: List[TableSnapshot] = [
            t for t in ordered_tables if counts[t.table_id] < target
        ]
        occupied: Dict[str, Set[int]] = {
            t.table_id: set(t.occupied_seats) for t in needy
        }

        for player in candidates:
            destination = None
            seat = None
            for table in needy:
                if counts[table.table_id] >= target:
                    continue
                seat = lowest_available_seat(table.max_seats, occupied[table.table_id])
                if seat is not None:
                    destination = table
                    break

            if destination is None:
                break

            plan.moves.append(
                PlayerMove(
                    user_id=player.user_id,
                    from_table_id=player.table_id,
                    from_seat=player.seat_number,
                    to_table_id=destination.table_id,
                    to_seat=seat,
                    stack_size=player.stack_size,
                )
            )
            occupied[destination.table_id].add(seat)
            counts[destination.table_id] += 1
            counts[player.table_id] -= 1

            needy = [t for t in needy if counts[t.table_id] < target]
            if not needy:
                break

        return plan

    def _select_excess_players(
        self,
        ordered_tables: List[TableSnapshot],
        players_by_table: Dict[str, List[SeatedPlayer]],
        counts: Dict[str, int],
        target: int,
    ) -> List[SeatedPlayer]:
        candidates: List[SeatedPlayer] = []
        for table in ordered_tables:
            excess = counts[table.table_id] - target
            if excess <= 0:
                continue
            newest_first = sorted(
                players_by_table[table.table_id],
                key=lambda p: p.assigned_at,
                reverse=True,
            )
            candidates.extend(newest_first[:excess])
        return candidates
