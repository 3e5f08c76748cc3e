"""structlog setup for the trust service.

Every entry carries the service name; entries emitted while handling a request
also carry ``request_id`` and, once authenticated, the acting ``agent_id``.
"""

import logging
import sys
from typing import Any

import structlog

# stdlib loggers that drown out trust events at INFO
_NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "crabnet",
) -> None:
    """
    Configure structlog and the stdlib root logger once at startup.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
        json_format: JSON lines for log shipping, colored console output otherwise
        service_name: Bound as ``service`` on every entry
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer: structlog.types.Processor
    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(
    request_id: str,
    agent_id: str | None = None,
    **kwargs: Any,
) -> None:
    """Attach the request id (and acting agent, if known) to later entries."""
    context: dict[str, Any] = {"request_id": request_id, **kwargs}
    if agent_id:
        context["agent_id"] = agent_id
    structlog.contextvars.bind_contextvars(**context)


def clear_request_context() -> None:
    """Drop request-scoped context, keeping the service binding."""
    structlog.contextvars.unbind_contextvars("request_id", "agent_id")
