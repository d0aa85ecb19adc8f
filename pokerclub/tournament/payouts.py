"""
Payout and deal calculation.

Pure functions: no I/O, no clock. The results service loads the template,
prize pool and deal, calls compute_payouts() and persists the outcome.

Usage:
    payouts = compute_payouts(
        [("u1", 1), ("u2", 2), ("u3", 3)],
        10000,
        template=[PayoutLevel(1, 50.0), PayoutLevel(2, 30.0), PayoutLevel(3, 20.0)],
    )
    # [5000, 3000, 2000]
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pokerclub.models.payout import DealType
from pokerclub.utils.errors import ValidationError

# Allowed distance of a template's percentage sum from 100
PERCENTAGE_SUM_TOLERANCE = 0.01


@dataclass(frozen=True)
class PayoutLevel:
    """Share of the prize pool for one finishing position."""

    position: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {"position": self.position, "percentage": self.percentage}


@dataclass(frozen=True)
class Deal:
    """Player-negotiated deal covering some finishing positions."""

    deal_type: DealType
    affected_positions: Tuple[int, ...]
    custom_payouts: Dict[str, int] = field(default_factory=dict)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_payout_structure(raw: Iterable[Mapping[str, Any]]) -> List[PayoutLevel]:
    """Convert stored JSON rows into PayoutLevel objects."""
    try:
        return [
            PayoutLevel(position=int(item["position"]), percentage=float(item["percentage"]))
            for item in raw
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(
            "Payout structure entries need a position and a percentage",
            {"error": str(e)},
        ) from e


def validate_payout_structure(structure: Sequence[PayoutLevel]) -> None:
    """Reject templates whose shares are out of range or do not add up to 100%."""
    for level in structure:
        if level.percentage < 0.0 or level.percentage > 100.0:
            raise ValidationError(
                "Each payout percentage must be between 0 and 100",
                {"position": level.position, "percentage": level.percentage},
            )

    total = sum(level.percentage for level in structure)
    if abs(total - 100.0) > PERCENTAGE_SUM_TOLERANCE:
        raise ValidationError(
            f"Payout percentages must sum to 100%, got {round(total, 2)}%",
            {"total_percentage": total},
        )


def _percentage_for(template: Optional[Sequence[PayoutLevel]], position: int) -> Optional[float]:
    if not template:
        return None
    for level in template:
        if level.position == position:
            return level.percentage
    return None


def _deal_pool(
    deal: Deal,
    total_prize_pool_cents: int,
    template: Optional[Sequence[PayoutLevel]],
) -> int:
    """Cents the deal's positions share between them."""
    if not template:
        return total_prize_pool_cents
    share = sum(
        _percentage_for(template, position) or 0.0
        for position in deal.affected_positions
    )
    return round_half_away(total_prize_pool_cents * share / 100.0)


def compute_payouts(
    positions: Sequence[Tuple[str, int]],
    total_prize_pool_cents: int,
    template: Optional[Sequence[PayoutLevel]] = None,
    deal: Optional[Deal] = None,
) -> List[int]:
    """
    Compute each player's prize in cents.

    Args:
        positions: (user_id, final_position) pairs
        total_prize_pool_cents: Prize pool to distribute
        template: Percentage per finishing position
        deal: Optional deal replacing the template for its positions

    Returns:
        Cents per entry of `positions`, in the same order

    Rounding remainders go to the last position (by input order) that
    receives a nonzero payout, so the payouts add up to the pool exactly
    whenever anything is paid at all. ICM deals are paid as an even split.
    """
    if total_prize_pool_cents < 0:
        raise ValidationError("Prize pool cannot be negative")
    if template:
        validate_payout_structure(template)

    payouts = [0] * len(positions)
    affected = set(deal.affected_positions) if deal else set()

    if deal and deal.deal_type in (DealType.EVEN_SPLIT, DealType.ICM) and affected:
        per_player = _deal_pool(deal, total_prize_pool_cents, template) // len(
            deal.affected_positions
        )
        for index, (_, final_position) in enumerate(positions):
            if final_position in affected:
                payouts[index] = per_player

    elif deal and deal.deal_type == DealType.CUSTOM:
        for index, (user_id, final_position) in enumerate(positions):
            if final_position in affected and user_id in deal.custom_payouts:
                payouts[index] = int(deal.custom_payouts[user_id])

    for index, (_, final_position) in enumerate(positions):
        if final_position in affected:
            continue
        percentage = _percentage_for(template, final_position)
        if percentage is not None:
            payouts[index] = round_half_away(total_prize_pool_cents * percentage / 100.0)

    remainder = total_prize_pool_cents - sum(payouts)
    if remainder:
        for index in range(len(payouts) - 1, -1, -1):
            if payouts[index] > 0:
                payouts[index] += remainder
                break

    return payouts


def deal_total(
    deal: Deal,
    positions: Sequence[Tuple[str, int]],
    payouts: Sequence[int],
) -> int:
    """Amount recorded on a PlayerDeal row."""
    if deal.deal_type == DealType.CUSTOM:
        return sum(int(amount) for amount in deal.custom_payouts.values())
    affected = set(deal.affected_positions)
    return sum(
        amount
        for (_, final_position), amount in zip(positions, payouts)
        if final_position in affected
    )


def template_amounts(
    template: Sequence[PayoutLevel],
    total_prize_pool_cents: int,
) -> List[Dict[str, Any]]:
    """Per-position breakdown stored in the TournamentPayout snapshot."""
    ordered = sorted(template, key=lambda level: level.position)
    amounts = compute_payouts(
        [(str(level.position), level.position) for level in ordered],
        total_prize_pool_cents,
        template=ordered,
    )
    return [
        {
            "position": level.position,
            "percentage": level.percentage,
            "amount_cents": amount,
        }
        for level, amount in zip(ordered, amounts)
    ]
