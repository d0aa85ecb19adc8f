"""
Tournament Event Bus.

Best-effort, fire-and-forget delivery of domain events:
1. Local fan-out to in-process subscribers (websocket gateways, caches)
2. Optional append to a Redis Stream for other processes

Publishing never raises. A failed handler or an unreachable Redis is logged
and counted; the mutation that produced the event has already committed.
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set
from uuid import uuid4

import redis.asyncio as redis

from pokerclub.logging_config import get_logger
from pokerclub.utils.json_utils import json_dumps
from .models import TournamentEvent, TournamentEventType

logger = get_logger(__name__)

EventHandler = Callable[[TournamentEvent], Awaitable[None]]


@dataclass
class Subscription:
    """Event subscription metadata."""

    subscription_id: str
    event_types: Set[TournamentEventType]
    handler: EventHandler
    tournament_id: Optional[str] = None  # None = all tournaments
    is_active: bool = True


@dataclass
class EventMetrics:
    """Event delivery metrics."""

    events_published: int = 0
    events_failed: int = 0
    stream_failures: int = 0
    avg_processing_time_ms: float = 0.0
    last_event_time: Optional[datetime] = None


class TournamentEventBus:
    """
    Event sink used by every service.

    Delivery path:
    ─────────────────────────────────────────────────────────────────

    publish(event)
      ├─ local subscribers (filtered by event type and tournament),
      │  run concurrently, each isolated by _safe_handler_call
      └─ XADD tournament:events:all (only when a Redis client is set)

    ─────────────────────────────────────────────────────────────────
    """

    STREAM_KEY = "tournament:events:all"
    STREAM_MAX_LEN = 10000

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis = redis_client

        self._subscriptions: Dict[str, Subscription] = {}
        self._handlers_by_type: Dict[TournamentEventType, List[Subscription]] = (
            defaultdict(list)
        )
        self._metrics = EventMetrics()

    def subscribe(
        self,
        event_types: Iterable[TournamentEventType],
        handler: EventHandler,
        tournament_id: Optional[str] = None,
    ) -> str:
        """
        Subscribe to tournament events.

        Args:
            event_types: Event types to listen for
            handler: Async function to call on event
            tournament_id: Filter for a specific tournament (None = all)

        Returns:
            Subscription ID for unsubscribe
        """
        subscription = Subscription(
            subscription_id=str(uuid4()),
            event_types=set(event_types),
            handler=handler,
            tournament_id=tournament_id,
        )
        self._subscriptions[subscription.subscription_id] = subscription
        for event_type in subscription.event_types:
            self._handlers_by_type[event_type].append(subscription)
        return subscription.subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove subscription."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if not subscription:
            return False

        subscription.is_active = False
        for event_type in subscription.event_types:
            self._handlers_by_type[event_type] = [
                s for s in self._handlers_by_type[event_type]
                if s.subscription_id != subscription_id
            ]
        return True

    async def publish(self, event: TournamentEvent) -> None:
        """Deliver one event. Never raises."""
        self._metrics.events_published += 1
        self._metrics.last_event_time = datetime.now(timezone.utc)

        await self._dispatch_local(event)

        if self.redis is not None:
            await self._publish_to_stream(event)

    async def publish_many(self, events: Iterable[TournamentEvent]) -> None:
        for event in events:
            await self.publish(event)

    async def _publish_to_stream(self, event: TournamentEvent) -> None:
        data = {
            "event_id": event.event_id,
            "event_type": event.event_type.name,
            "tournament_id": event.tournament_id,
            "timestamp": event.timestamp.isoformat(),
            "data": json_dumps(event.data),
            "table_id": event.table_id or "",
            "user_id": event.user_id or "",
        }
        try:
            await self.redis.xadd(
                self.STREAM_KEY,
                data,
                maxlen=self.STREAM_MAX_LEN,
                approximate=True,
            )
        except Exception as e:
            self._metrics.stream_failures += 1
            logger.warning(
                "event_stream_publish_failed",
                event_type=event.event_type.name,
                tournament_id=event.tournament_id,
                error=str(e),
            )

    async def _dispatch_local(self, event: TournamentEvent) -> None:
        tasks = []
        for subscription in self._handlers_by_type.get(event.event_type, []):
            if not subscription.is_active:
                continue
            if (
                subscription.tournament_id
                and subscription.tournament_id != event.tournament_id
            ):
                continue
            tasks.append(
                asyncio.create_task(self._safe_handler_call(subscription.handler, event))
            )

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _safe_handler_call(
        self,
        handler: EventHandler,
        event: TournamentEvent,
    ) -> None:
        """Call handler, logging instead of propagating failures."""
        try:
            start_time = time.perf_counter()
            await handler(event)
            elapsed_ms = (time.perf_counter() - start_time) * 1000

            delivered = self._metrics.events_published
            avg = self._metrics.avg_processing_time_ms
            self._metrics.avg_processing_time_ms = (
                avg * (delivered - 1) + elapsed_ms
            ) / delivered
        except Exception as e:
            self._metrics.events_failed += 1
            logger.warning(
                "event_handler_failed",
                event_type=event.event_type.name,
                tournament_id=event.tournament_id,
                error=str(e),
            )

    def get_metrics(self) -> EventMetrics:
        return self._metrics


async def emit_safely(
    sink: Optional["TournamentEventBus"],
    event: TournamentEvent,
) -> None:
    """Hand an event to any sink without letting its failure escape."""
    if sink is None:
        return
    try:
        await sink.publish(event)
    except Exception as e:
        logger.warning(
            "event_publish_failed",
            event_type=event.event_type.name,
            tournament_id=event.tournament_id,
            error=str(e),
        )
