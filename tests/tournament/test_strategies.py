"""Tests for check-in seating strategies."""

import random

import pytest

from pokerclub.tournament.balancer import TableSnapshot
from pokerclub.tournament.strategies import (
    AssignmentStrategy,
    BalancedSeating,
    ManualSeating,
    RandomSeating,
    SequentialSeating,
    available_seats,
    get_strategy,
)


def make_table(table_id: str, number: int, occupied: set[int], max_seats: int = 9) -> TableSnapshot:
    return TableSnapshot(
        table_id=table_id,
        table_number=number,
        max_seats=max_seats,
        occupied_seats=frozenset(occupied),
    )


def occupancy(tables: list[TableSnapshot]) -> dict[str, int]:
    return {t.table_id: t.player_count for t in tables}


class TestBalancedSeating:

    def test_picks_fewest_players(self):
        tables = [
            make_table("a", 1, {1, 2, 3}),
            make_table("b", 2, {1}),
            make_table("c", 3, {1, 2}),
        ]
        chosen = BalancedSeating().choose_table(tables, occupancy(tables))
        assert chosen.table_id == "b"

    def test_first_table_wins_ties(self):
        tables = [make_table("a", 1, {1}), make_table("b", 2, {2})]
        chosen = BalancedSeating().choose_table(tables, occupancy(tables))
        assert chosen.table_id == "a"

    def test_no_tables(self):
        assert BalancedSeating().choose_table([], {}) is None


class TestSequentialSeating:

    def test_first_table_with_room(self):
        tables = [
            make_table("a", 1, {1, 2}, max_seats=2),
            make_table("b", 2, {1}),
        ]
        chosen = SequentialSeating().choose_table(tables, occupancy(tables))
        assert chosen.table_id == "b"

    def test_all_full(self):
        tables = [make_table("a", 1, {1, 2}, max_seats=2)]
        assert SequentialSeating().choose_table(tables, occupancy(tables)) is None


class TestRandomSeating:

    def test_choice_is_reproducible_with_seeded_rng(self):
        tables = [make_table(str(i), i, set()) for i in range(1, 6)]
        first = RandomSeating(random.Random(7)).choose_table(tables, occupancy(tables))
        second = RandomSeating(random.Random(7)).choose_table(tables, occupancy(tables))
        assert first == second

    def test_may_pick_full_table(self):
        full = make_table("full", 1, {1, 2}, max_seats=2)
        strategy = RandomSeating(random.Random(1))
        chosen = strategy.choose_table([full], occupancy([full]))

        assert chosen is full
        assert strategy.choose_seat(chosen) is None


class TestManualSeating:

    def test_never_assigns(self):
        tables = [make_table("a", 1, set())]
        strategy = ManualSeating()
        assert strategy.auto_assigns is False
        assert strategy.choose_table(tables, occupancy(tables)) is None


class TestSeatChoice:

    def test_seat_is_free(self):
        table = make_table("a", 1, {1, 2, 3, 5}, max_seats=6)
        strategy = BalancedSeating(random.Random(3))
        for _ in range(20):
            assert strategy.choose_seat(table) in {4, 6}

    def test_available_seats(self):
        table = make_table("a", 1, {2}, max_seats=3)
        assert available_seats(table) == [1, 3]


@pytest.mark.parametrize(
    "name,cls",
    [
        ("balanced", BalancedSeating),
        ("random", RandomSeating),
        ("sequential", SequentialSeating),
        ("manual", ManualSeating),
    ],
)
def test_get_strategy(name, cls):
    assert isinstance(get_strategy(name), cls)
    assert isinstance(get_strategy(AssignmentStrategy(name)), cls)


def test_unknown_strategy():
    with pytest.raises(ValueError):
        get_strategy("clockwise")
