"""structlog setup for the tournament operations service.

Log lines carry the request id bound by the request middleware and, once a
route resolves its tournament, the tournament and actor ids. Production
renders JSON; everything else renders for a terminal.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Libraries that log every statement or request at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


def drop_unset_context(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Remove context keys that were bound as None."""
    return {key: value for key, value in event_dict.items() if value is not None}


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Route structlog and stdlib logging through one handler on stdout.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR)
        json_logs: Force JSON output outside production
        app_env: Application environment; production always logs JSON
    """
    as_json = json_logs or app_env == "production"

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        drop_unset_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if as_json:
        pre_chain.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        pre_chain.append(structlog.dev.set_exc_info)
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Module logger. Event names are snake_case with keyword context:

        logger.info("seat_moved", tournament_id=..., user_id=..., table_id=...)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def bind_tournament_context(tournament_id: str, actor_id: str | None = None) -> None:
    """Tag the rest of this request's log lines with the tournament it acts on."""
    structlog.contextvars.bind_contextvars(tournament_id=tournament_id, actor_id=actor_id)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
