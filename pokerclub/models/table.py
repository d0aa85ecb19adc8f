"""Physical club tables and their assignment to tournaments."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pokerclub.models.base import Base, TimestampMixin, UUIDMixin, utcnow
from pokerclub.utils.db_types import UTCDateTime


class ClubTable(Base, UUIDMixin, TimestampMixin):
    """Physical poker table owned by a club."""

    __tablename__ = "club_tables"

    club_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    table_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    max_seats: Mapped[int] = mapped_column(Integer, default=9, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("club_id", "table_number", name="uq_club_table_number"),
    )

    def __repr__(self) -> str:
        return f"<ClubTable #{self.table_number} club={self.club_id} seats={self.max_seats}>"


class TournamentTableAssignment(Base, UUIDMixin):
    """Links a ClubTable to a tournament; the table is in play while active."""

    __tablename__ = "tournament_table_assignments"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    club_table_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("club_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    unassigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("tournament_id", "club_table_id", name="uq_tournament_table"),
    )

    def __repr__(self) -> str:
        return (
            f"<TournamentTableAssignment tournament={self.tournament_id} "
            f"table={self.club_table_id} active={self.is_active}>"
        )
