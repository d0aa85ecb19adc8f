"""Payout templates, cached payout snapshots, deals and final results."""

from enum import Enum

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pokerclub.models.base import Base, TimestampMixin, UUIDMixin
from pokerclub.utils.db_types import UniversalJSON


class DealType(str, Enum):
    EVEN_SPLIT = "even_split"
    ICM = "icm"
    CUSTOM = "custom"


class PayoutTemplate(Base, UUIDMixin, TimestampMixin):
    """Percentage distribution for a range of field sizes.

    payout_structure: [{"position": 1, "percentage": 50.0}, ...]
    """

    __tablename__ = "payout_templates"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_players: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    max_players: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payout_structure: Mapped[list] = mapped_column(UniversalJSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<PayoutTemplate {self.name!r} {self.min_players}-{self.max_players}>"


class TournamentPayout(Base, UUIDMixin, TimestampMixin):
    """Cached payout snapshot; recomputable from entries and template.

    payouts: [{"position": 1, "percentage": 50.0, "amount_cents": 5000}, ...]
    """

    __tablename__ = "tournament_payouts"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    template_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("payout_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    player_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_prize_pool: Mapped[int] = mapped_column(Integer, nullable=False)
    payout_positions: Mapped[list] = mapped_column(UniversalJSON, nullable=False, default=list)


class PlayerDeal(Base, UUIDMixin, TimestampMixin):
    """Player-negotiated deal recorded with the results."""

    __tablename__ = "player_deals"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    deal_type: Mapped[str] = mapped_column(String(20), nullable=False)
    affected_positions: Mapped[list] = mapped_column(UniversalJSON, nullable=False)
    # {user_id: cents}, custom deals only
    custom_payouts: Mapped[dict | None] = mapped_column(UniversalJSON, nullable=True)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)


class TournamentResult(Base, UUIDMixin, TimestampMixin):
    """Final placing and prize of one player."""

    __tablename__ = "tournament_results"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
    final_position: Mapped[int] = mapped_column(Integer, nullable=False)
    prize_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_result_tournament_user"),
        UniqueConstraint("tournament_id", "final_position", name="uq_result_tournament_position"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "user_id": self.user_id,
            "final_position": self.final_position,
            "prize_cents": self.prize_cents,
            "points": self.points,
            "notes": self.notes,
        }
