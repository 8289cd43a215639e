from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping, cast

import structlog

from rentaly.config import LOG_LEVEL

# Type alias for structlog processor
Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]


def setup_logging() -> None:
    """
    Configures structured logging globally using structlog.

    In production (LOG_LEVEL=INFO): Outputs JSON for log aggregation
    In development (LOG_LEVEL=DEBUG): Outputs human-readable console format

    Request-scoped values bound with structlog.contextvars (request_id, caller)
    are merged into every event emitted while the request is being served.
    """
    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=LOG_LEVEL,
    )

    for noisy_logger in [
        "urllib3",
        "requests",
        "sqlalchemy.engine",
        "sqlalchemy.pool",
        "uvicorn.access",
    ]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    renderer: Processor = cast(
        Processor,
        (
            structlog.processors.JSONRenderer()
            if LOG_LEVEL == "INFO"
            else structlog.dev.ConsoleRenderer(colors=True)
        ),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request_context(request_id: str, user_id: str | None, role: str | None) -> None:
    """
    Replace the per-request logging context.

    Args:
        request_id: Correlation id issued by RequestIDMiddleware
        user_id: Caller id forwarded by the auth layer (None for anonymous calls)
        role: Caller role forwarded by the auth layer
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    if user_id:
        structlog.contextvars.bind_contextvars(caller_id=user_id, caller_role=role or "user")
