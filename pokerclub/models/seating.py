"""Seat assignment history.

Rows are never deleted. A move flips the current row to is_current=false and
inserts a new current row in the same transaction, so one table answers both
"who sits where now" and "full seating history".
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from pokerclub.models.base import Base, TimestampMixin, UUIDMixin, utcnow
from pokerclub.utils.db_types import UTCDateTime

CURRENT_SEAT_INDEX = "uq_seat_assignments_current_seat"
CURRENT_USER_INDEX = "uq_seat_assignments_current_user"


class SeatAssignment(Base, UUIDMixin, TimestampMixin):
    """One (possibly historical) seat of a player in a tournament."""

    __tablename__ = "table_seat_assignments"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
    )
    club_table_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("club_tables.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
    seat_number: Mapped[int] = mapped_column(Integer, nullable=False)
    stack_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_current: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    unassigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    assigned_by: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    unassigned_by: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("seat_number >= 1", name="seat_number_positive"),
        # At most one current seat per player per tournament
        Index(
            CURRENT_USER_INDEX,
            "tournament_id",
            "user_id",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current = 1"),
        ),
        # At most one current occupant per physical seat
        Index(
            CURRENT_SEAT_INDEX,
            "club_table_id",
            "seat_number",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current = 1"),
        ),
        Index("ix_seat_assignments_tournament_current", "tournament_id", "is_current"),
        Index("ix_seat_assignments_assigned_at", "assigned_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "club_table_id": self.club_table_id,
            "user_id": self.user_id,
            "seat_number": self.seat_number,
            "stack_size": self.stack_size,
            "is_current": self.is_current,
            "assigned_at": self.assigned_at,
            "unassigned_at": self.unassigned_at,
            "assigned_by": self.assigned_by,
            "unassigned_by": self.unassigned_by,
            "notes": self.notes,
        }

    def __repr__(self) -> str:
        return (
            f"<SeatAssignment user={self.user_id} table={self.club_table_id} "
            f"seat={self.seat_number} current={self.is_current}>"
        )
