"""Tournament registration model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pokerclub.models.base import Base, TimestampMixin, UUIDMixin, utcnow
from pokerclub.utils.db_types import UTCDateTime


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    CHECKED_IN = "checked_in"
    SEATED = "seated"
    BUSTED = "busted"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that hold (or are entitled to) a seat
ACTIVE_REGISTRATION_STATUSES = frozenset({
    RegistrationStatus.REGISTERED,
    RegistrationStatus.CHECKED_IN,
    RegistrationStatus.SEATED,
})

TERMINAL_REGISTRATION_STATUSES = frozenset({
    RegistrationStatus.BUSTED,
    RegistrationStatus.CANCELLED,
    RegistrationStatus.NO_SHOW,
})


class Registration(Base, UUIDMixin, TimestampMixin):
    """A user's registration for a tournament (unique per pair)."""

    __tablename__ = "tournament_registrations"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=RegistrationStatus.REGISTERED.value,
        nullable=False,
    )
    # FIFO order for the waitlist
    registration_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_registration_tournament_user"),
        Index("ix_registration_tournament_status", "tournament_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Registration tournament={self.tournament_id} user={self.user_id} status={self.status}>"
