"""Sentry error tracking integration.

Features:
- Automatic error capture
- Expected business errors filtered out
- Tournament context tags
"""

import logging
import os

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

# Raised on purpose for operator mistakes; never worth an alert
EXPECTED_ERRORS = {
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "InvalidStateTransition",
    "PermissionDenied",
}


def init_sentry(
    dsn: str | None = None,
    environment: str = "development",
    release: str | None = None,
    traces_sample_rate: float = 0.05,
) -> bool:
    """Initialize Sentry SDK.

    Returns:
        True if Sentry was initialized, False when no DSN is configured
    """
    sentry_dsn = dsn or os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        return False

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=environment,
        release=release or os.getenv("APP_VERSION", "1.0.0"),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=_before_send,
    )
    return True


def _is_expected(exc_type: type) -> bool:
    return any(cls.__name__ in EXPECTED_ERRORS for cls in exc_type.__mro__)


def _before_send(event: dict, hint: dict) -> dict | None:
    """Drop expected business errors."""
    if "exc_info" in hint:
        exc_type, _, _ = hint["exc_info"]
        if _is_expected(exc_type):
            return None
    return event


def set_tournament_context(tournament_id: str | None = None, table_id: str | None = None) -> None:
    if tournament_id:
        sentry_sdk.set_tag("tournament_id", tournament_id)
    if table_id:
        sentry_sdk.set_tag("table_id", table_id)
