"""Tournament clock and its audit log."""

from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Interval, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pokerclub.models.base import Base, TimestampMixin, UUIDMixin, utcnow
from pokerclub.utils.db_types import UniversalJSON, UTCDateTime


class ClockStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


class ClockEventType(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    LEVEL_ADVANCE = "level_advance"
    MANUAL_ADVANCE = "manual_advance"
    MANUAL_REVERT = "manual_revert"
    FINAL_LEVEL_COMPLETE = "final_level_complete"
    AUTO_ADVANCE_CHANGED = "auto_advance_changed"


class TournamentClock(Base, UUIDMixin, TimestampMixin):
    """Blind-level clock, one per tournament.

    Remaining time is derived from these timestamps on read and never stored.
    """

    __tablename__ = "tournament_clocks"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    clock_status: Mapped[str] = mapped_column(
        String(20),
        default=ClockStatus.STOPPED.value,
        nullable=False,
    )
    current_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    level_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Deadline of the current level had the clock kept running
    level_end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Set only while paused
    pause_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    total_pause_duration: Mapped[timedelta] = mapped_column(
        Interval,
        default=timedelta(0),
        nullable=False,
    )
    auto_advance: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_tournament_clocks_status_end", "clock_status", "level_end_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<TournamentClock tournament={self.tournament_id} "
            f"status={self.clock_status} level={self.current_level}>"
        )


class TournamentClockEvent(Base, UUIDMixin):
    """Append-only audit row written for each successful clock transition."""

    __tablename__ = "tournament_clock_events"

    tournament_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    level_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    event_time: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict | None] = mapped_column(
        "metadata",
        UniversalJSON,
        nullable=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "event_type": self.event_type,
            "level_number": self.level_number,
            "actor_id": self.actor_id,
            "event_time": self.event_time,
            "metadata": self.event_metadata,
        }
