"""Clock time arithmetic.

Remaining time is always derived from stored timestamps, never stored.
"""

from datetime import datetime, timedelta
from typing import Optional

from pokerclub.models.clock import ClockStatus

ZERO = timedelta(0)


def time_remaining(
    clock_status: ClockStatus | str,
    level_end_time: Optional[datetime],
    pause_started_at: Optional[datetime],
    level_duration: timedelta,
    now: datetime,
) -> timedelta:
    """Time left in the current level.

    - running: until level_end_time
    - paused: frozen at the instant the pause began
    - stopped: the level's full duration
    """
    status = ClockStatus(clock_status)

    if status == ClockStatus.RUNNING and level_end_time is not None:
        return max(ZERO, level_end_time - now)

    if status == ClockStatus.PAUSED and level_end_time is not None:
        reference = pause_started_at or now
        return max(ZERO, level_end_time - reference)

    return level_duration


def resume_shift(pause_started_at: Optional[datetime], now: datetime) -> timedelta:
    """How long the clock has been paused."""
    if pause_started_at is None:
        return ZERO
    return max(ZERO, now - pause_started_at)
