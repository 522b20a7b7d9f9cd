"""Structured logging configuration using structlog.

``configure_logging`` sets up structlog and the stdlib root logger to emit
JSON lines (CloudWatch) or console output (local development).
``bind_invocation`` tags every log line of a Lambda invocation with its
request id, so one builder run can be filtered out of a shared log stream.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_QUIET_LOGGERS = ("botocore", "urllib3", "httpx")


def configure_logging(*, json_logs: bool = True, log_level: str = "INFO") -> None:
    """Configure structlog and the stdlib root logger.

    The Lambda runtime installs its own root handler; it is replaced, not
    appended to, so lines are not emitted twice.

    Args:
        json_logs: Render logs as JSON (default) or with the console renderer.
        log_level: Root log level name (e.g. ``"INFO"``, ``"DEBUG"``).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_logs:
        final: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final = [structlog.dev.ConsoleRenderer()]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_invocation(lambda_context: Any, **extra: Any) -> None:
    """Replace the per-invocation log context with this invocation's identity."""
    structlog.contextvars.clear_contextvars()
    request_id = getattr(lambda_context, "aws_request_id", None)
    if request_id:
        extra["request_id"] = request_id
    structlog.contextvars.bind_contextvars(**extra)
