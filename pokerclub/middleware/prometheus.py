"""Prometheus metrics middleware and custom metrics.

Features:
- HTTP request metrics (latency, count, size)
- Seating, check-in and clock counters
"""

from prometheus_client import Counter, Info
from prometheus_fastapi_instrumentator import Instrumentator, metrics
from fastapi import FastAPI


# =============================================================================
# Custom Metrics
# =============================================================================

APP_INFO = Info("pokerclub_app", "Application information")

SEAT_CHANGES = Counter(
    "pokerclub_seat_changes_total",
    "Seat assignment changes",
    ["action"],  # assigned, moved, unassigned, eliminated, balanced
)

SEAT_CONFLICTS = Counter(
    "pokerclub_seat_conflicts_total",
    "Seat writes rejected by a uniqueness conflict",
    ["reason"],  # seat_occupied, already_seated
)

CHECKINS = Counter(
    "pokerclub_checkins_total",
    "Completed check-ins",
    ["outcome"],  # seated, no_seats, no_tables, not_assigned, waitlisted
)

CLOCK_TRANSITIONS = Counter(
    "pokerclub_clock_transitions_total",
    "Tournament clock transitions",
    ["event_type"],
)

CLOCK_TICK_FAILURES = Counter(
    "pokerclub_clock_tick_failures_total",
    "Background clock tick iterations that raised",
    ["job"],  # auto_advance, final_level, stale_sweep
)


# =============================================================================
# Instrumentator Setup
# =============================================================================

def setup_prometheus(app: FastAPI, app_version: str = "1.0.0") -> Instrumentator:
    """Setup Prometheus metrics instrumentation and expose /metrics."""
    APP_INFO.info({
        "version": app_version,
        "app_name": "pokerclub",
    })

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        excluded_handlers=["/health", "/metrics"],
    )

    instrumentator.add(
        metrics.default(
            metric_namespace="pokerclub",
            metric_subsystem="http",
        )
    )

    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint="/metrics", include_in_schema=True, tags=["Monitoring"])

    return instrumentator


# =============================================================================
# Metric Helper Functions
# =============================================================================

def record_seat_change(action: str, count: int = 1) -> None:
    SEAT_CHANGES.labels(action=action).inc(count)


def record_seat_conflict(reason: str) -> None:
    SEAT_CONFLICTS.labels(reason=reason).inc()


def record_checkin(outcome: str) -> None:
    CHECKINS.labels(outcome=outcome).inc()


def record_clock_transition(event_type: str) -> None:
    CLOCK_TRANSITIONS.labels(event_type=event_type).inc()


def record_tick_failure(job: str) -> None:
    CLOCK_TICK_FAILURES.labels(job=job).inc()
