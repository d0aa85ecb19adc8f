"""Tournament, blind structure and entry ledger models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pokerclub.models.base import Base, TimestampMixin, UUIDMixin
from pokerclub.utils.db_types import UTCDateTime


class LiveStatus(str, Enum):
    """Fine-grained tournament state (source of truth)."""

    NOT_STARTED = "not_started"
    REGISTRATION_OPEN = "registration_open"
    LATE_REGISTRATION = "late_registration"
    IN_PROGRESS = "in_progress"
    BREAK = "break"
    FINAL_TABLE = "final_table"
    FINISHED = "finished"


class TournamentStatus(str, Enum):
    """Coarse status derived from LiveStatus; never stored."""

    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Live statuses during which play is under way
RUNNING_LIVE_STATUSES = frozenset({
    LiveStatus.LATE_REGISTRATION,
    LiveStatus.IN_PROGRESS,
    LiveStatus.BREAK,
    LiveStatus.FINAL_TABLE,
})


def coarse_status(live_status: LiveStatus | str) -> TournamentStatus:
    live_status = LiveStatus(live_status)
    if live_status in (LiveStatus.NOT_STARTED, LiveStatus.REGISTRATION_OPEN):
        return TournamentStatus.UPCOMING
    if live_status == LiveStatus.FINISHED:
        return TournamentStatus.COMPLETED
    return TournamentStatus.IN_PROGRESS


class Tournament(Base, UUIDMixin, TimestampMixin):
    """Club tournament."""

    __tablename__ = "tournaments"

    # Club CRUD lives outside this service; the id is an opaque reference
    club_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    buy_in_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    seat_cap: Mapped[int | None] = mapped_column(Integer, nullable=True)
    early_bird_bonus_chips: Mapped[int | None] = mapped_column(Integer, nullable=True)

    live_status: Mapped[str] = mapped_column(
        String(30),
        default=LiveStatus.NOT_STARTED.value,
        nullable=False,
        index=True,
    )

    @property
    def status(self) -> TournamentStatus:
        return coarse_status(self.live_status)

    def __repr__(self) -> str:
        return f"<Tournament {self.name!r} live_status={self.live_status}>"


class TournamentStructure(Base, UUIDMixin):
    """One blind level of a tournament's structure (1-based, contiguous)."""

    __tablename__ = "tournament_structures"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level_number: Mapped[int] = mapped_column(Integer, nullable=False)
    small_blind: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    big_blind: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ante: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_break: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    break_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("tournament_id", "level_number", name="uq_structure_level"),
    )

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    def to_dict(self) -> dict:
        return {
            "level_number": self.level_number,
            "small_blind": self.small_blind,
            "big_blind": self.big_blind,
            "ante": self.ante,
            "duration_minutes": self.duration_minutes,
            "is_break": self.is_break,
            "break_duration_minutes": self.break_duration_minutes,
        }

    def __repr__(self) -> str:
        return f"<TournamentStructure level={self.level_number} {self.small_blind}/{self.big_blind}>"


class EntryType(str, Enum):
    INITIAL = "initial"
    REBUY = "rebuy"
    RE_ENTRY = "re_entry"
    ADDON = "addon"


class TournamentEntry(Base, UUIDMixin, TimestampMixin):
    """Buy-in ledger row; summed into the prize pool."""

    __tablename__ = "tournament_entries"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)
    entry_type: Mapped[str] = mapped_column(String(20), default=EntryType.INITIAL.value, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chips_received: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recorded_by: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<TournamentEntry {self.entry_type} user={self.user_id} amount={self.amount_cents}>"
