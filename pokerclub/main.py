"""FastAPI application entry point.

Poker club tournament operations API: seating, check-in, clock and payouts.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from pokerclub.api import (
    checkin_router,
    clock_router,
    results_router,
    seating_router,
    tournaments_router,
)
from pokerclub.config import get_settings
from pokerclub.logging_config import bind_context, clear_context, configure_logging, get_logger
from pokerclub.middleware.prometheus import setup_prometheus
from pokerclub.middleware.sentry import init_sentry
from pokerclub.tournament.clock_ticker import ClockTicker
from pokerclub.tournament.event_bus import TournamentEventBus
from pokerclub.utils.db import close_db, engine, init_db
from pokerclub.utils.errors import ErrorCode, TournamentOpsError
from pokerclub.utils.json_utils import ORJSONResponse
from pokerclub.utils.redis_client import close_redis, init_redis

APP_VERSION = "1.0.0"

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
    app_env=settings.app_env,
)
logger = get_logger(__name__)

sentry_enabled = init_sentry(
    dsn=settings.sentry_dsn,
    environment=settings.app_env,
    release=APP_VERSION,
    traces_sample_rate=settings.sentry_traces_sample_rate
    if settings.app_env == "production"
    else 0.0,
)
if sentry_enabled:
    logger.info("sentry_initialized")
elif settings.app_env == "production":
    logger.warning("sentry_dsn_missing")


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("application_starting")

    await init_db()
    redis_instance = await init_redis()
    logger.info("connections_ready", redis_enabled=redis_instance is not None)

    event_bus = TournamentEventBus(redis_instance)
    _app.state.event_bus = event_bus

    ticker = None
    if settings.clock_ticker_enabled:
        ticker = ClockTicker(event_bus=event_bus)
        await ticker.start()
    _app.state.clock_ticker = ticker

    logger.info("application_started")

    yield

    logger.info("application_stopping")
    try:
        if ticker is not None:
            await ticker.stop()
        await close_redis()
        await close_db()
    except Exception:
        logger.exception("shutdown_error")
    logger.info("application_stopped")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Poker Club Tournament Operations API",
    version=APP_VERSION,
    description="Seating, check-in, tournament clock and payouts",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

prometheus_instrumentator = setup_prometheus(app, app_version=APP_VERSION)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add X-Request-ID to every request, response and log line."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = datetime.now(timezone.utc)

        clear_context()
        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            duration = (datetime.now(timezone.utc) - started).total_seconds()

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )
        clear_context()
        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "X-Request-ID",
        "X-Actor-Id",
        "X-Actor-Role",
        "X-Actor-Club-Ids",
    ],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================


# Error kind -> HTTP status. Anything unmapped is a plain 400.
KIND_STATUS = {
    "validation": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "invalid_state": status.HTTP_409_CONFLICT,
    "forbidden": status.HTTP_403_FORBIDDEN,
}


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get(
        "X-Request-ID", str(uuid.uuid4())
    )


def error_json(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    kind: str = "error",
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> ORJSONResponse:
    """Render the error body shared by every failing endpoint."""
    return ORJSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "kind": kind,
                "message": message,
                "details": details or {},
            },
            "traceId": get_request_id(request),
        },
        headers=headers,
    )


@app.exception_handler(TournamentOpsError)
async def tournament_ops_error_handler(
    request: Request, exc: TournamentOpsError
) -> ORJSONResponse:
    logger.warning(
        "tournament_ops_error",
        code=exc.code,
        kind=exc.kind,
        message=exc.message,
    )
    return error_json(
        request,
        KIND_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST),
        exc.code,
        exc.message,
        kind=exc.kind,
        details=exc.details,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    return error_json(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        kind="validation",
        details={"errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(
    request: Request, exc: HTTPException
) -> ORJSONResponse:
    """Identity failures from the gateway headers arrive here pre-formatted."""
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        error = exc.detail["error"]
        return error_json(
            request,
            exc.status_code,
            error["code"],
            error["message"],
            details=error.get("details"),
            headers=exc.headers,
        )
    return error_json(
        request, exc.status_code, "HTTP_ERROR", str(exc.detail), headers=exc.headers
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        exc_info=True,
    )
    # Internals are only exposed with app_debug
    message = f"{type(exc).__name__}: {exc}" if settings.app_debug else "Internal server error"
    return error_json(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR.value,
        message,
    )



# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/health", tags=["Health"], summary="Database, ticker and event sink status")
async def health_check(request: Request) -> dict[str, Any]:
    """Reports "degraded" when the database is unreachable or the ticker died."""
    body: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
        "database": "healthy",
        "clock_ticker": None,
        "event_bus": None,
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        body["database"] = f"unhealthy: {e}"
        body["status"] = "degraded"

    ticker = getattr(request.app.state, "clock_ticker", None)
    if ticker is not None:
        body["clock_ticker"] = ticker.get_status()
        if not ticker.is_running:
            body["status"] = "degraded"

    event_bus = getattr(request.app.state, "event_bus", None)
    if event_bus is not None:
        metrics = event_bus.get_metrics()
        body["event_bus"] = {
            "published": metrics.events_published,
            "failed": metrics.events_failed,
            "stream_failures": metrics.stream_failures,
        }

    return body


@app.get("/health/live", tags=["Health"], summary="Liveness probe")
async def liveness_probe() -> dict[str, str]:
    return {"status": "alive"}


# =============================================================================
# API Routers
# =============================================================================


API_V1_PREFIX = "/api/v1"

app.include_router(tournaments_router, prefix=API_V1_PREFIX)
app.include_router(seating_router, prefix=API_V1_PREFIX)
app.include_router(checkin_router, prefix=API_V1_PREFIX)
app.include_router(clock_router, prefix=API_V1_PREFIX)
app.include_router(results_router, prefix=API_V1_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pokerclub.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )
