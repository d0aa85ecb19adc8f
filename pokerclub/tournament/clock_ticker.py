"""
Background clock ticker.

One asyncio task per process:
─────────────────────────────────────────────────────────────────
every clock_tick_seconds:
    1. advance running clocks whose level expired (auto_advance on)
    2. stop clocks whose final level expired
every stale_sweep_interval_seconds:
    3. force-finish tournaments with no updates for stale_tournament_hours
─────────────────────────────────────────────────────────────────

Each job uses its own session. A failing job is logged and counted and the
loop carries on with the next tick.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pokerclub.config import get_settings
from pokerclub.logging_config import get_logger
from pokerclub.middleware.prometheus import record_tick_failure
from pokerclub.middleware.sentry import set_tournament_context
from pokerclub.models.base import utcnow
from pokerclub.services.clock import ClockService
from pokerclub.services.tournament import TournamentService
from pokerclub.tournament.event_bus import TournamentEventBus
from pokerclub.utils.db import async_session_factory

settings = get_settings()
logger = get_logger(__name__)


@dataclass
class TickerMetrics:
    ticks: int = 0
    levels_advanced: int = 0
    clocks_finished: int = 0
    tournaments_swept: int = 0
    failures: int = 0
    last_tick_at: Optional[datetime] = None


class ClockTicker:
    """Drives auto-advance, final-level stops and the stale sweep."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        event_bus: Optional[TournamentEventBus] = None,
        tick_seconds: float | None = None,
        stale_sweep_interval_seconds: float | None = None,
        stale_threshold: timedelta | None = None,
    ):
        self.session_factory = session_factory
        self.event_bus = event_bus
        self.tick_seconds = tick_seconds or settings.clock_tick_seconds
        self.stale_sweep_interval_seconds = (
            stale_sweep_interval_seconds or settings.stale_sweep_interval_seconds
        )
        self.stale_threshold = stale_threshold or timedelta(
            hours=settings.stale_tournament_hours
        )

        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._last_sweep: Optional[float] = None
        self._metrics = TickerMetrics()

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="clock-ticker")
        logger.info(
            "clock_ticker_started",
            tick_seconds=self.tick_seconds,
            stale_sweep_interval_seconds=self.stale_sweep_interval_seconds,
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("clock_ticker_stopped")

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running:
            try:
                await self.tick()

                if (
                    self._last_sweep is None
                    or loop.time() - self._last_sweep >= self.stale_sweep_interval_seconds
                ):
                    self._last_sweep = loop.time()
                    await self.sweep_stale()

                await asyncio.sleep(self.tick_seconds)
            except asyncio.CancelledError:
                break

    # ─────────────────────────────────────────────────────────────────────────
    # Jobs
    # ─────────────────────────────────────────────────────────────────────────

    async def tick(self) -> None:
        """Run one round of clock checks."""
        self._metrics.ticks += 1
        self._metrics.last_tick_at = utcnow()

        advanced = await self._run_job("auto_advance", self._auto_advance)
        finished = await self._run_job("final_level", self._final_levels)
        self._metrics.levels_advanced += advanced or 0
        self._metrics.clocks_finished += finished or 0

    async def sweep_stale(self) -> list[str]:
        finished = await self._run_job("stale_sweep", self._stale_sweep)
        self._metrics.tournaments_swept += len(finished or [])
        return finished or []

    async def _auto_advance(self, session: AsyncSession) -> int:
        return await ClockService(session, self.event_bus).process_auto_advance()

    async def _final_levels(self, session: AsyncSession) -> int:
        return await ClockService(session, self.event_bus).process_final_levels()

    async def _stale_sweep(self, session: AsyncSession) -> list[str]:
        return await TournamentService(session, self.event_bus).force_finish_stale(
            self.stale_threshold
        )

    async def _run_job(self, job: str, func) -> Any:
        try:
            async with self.session_factory() as session:
                return await func(session)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._metrics.failures += 1
            record_tick_failure(job)
            set_tournament_context(tournament_id=getattr(e, "details", {}).get("tournament_id"))
            logger.exception("clock_tick_failed", job=job, error=str(e))
            return None

    # ─────────────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────────────

    def get_metrics(self) -> TickerMetrics:
        return self._metrics

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "tick_seconds": self.tick_seconds,
            "ticks": self._metrics.ticks,
            "levels_advanced": self._metrics.levels_advanced,
            "clocks_finished": self._metrics.clocks_finished,
            "tournaments_swept": self._metrics.tournaments_swept,
            "failures": self._metrics.failures,
            "last_tick_at": self._metrics.last_tick_at,
        }
