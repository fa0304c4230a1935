"""Unified structlog + stdlib JSON logging configuration.

Ensures BOTH ``structlog.get_logger()`` and existing
``logging.getLogger(__name__)`` calls produce uniform output -- either
JSON (production) or colored console (development).

Signed action tokens are bearer credentials, so any event key that could
carry one is dropped before rendering.
"""

import logging
import sys
from typing import TextIO

import structlog

REDACTED_KEYS = frozenset({"token", "token_secret", "accept_url", "decline_url"})


def drop_secrets(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Remove token-bearing keys from an event dict."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict.pop(key)
    return event_dict


def configure_logging(
    json_output: bool = True, log_level: str = "INFO", stream: TextIO | None = None
) -> None:
    """Configure unified logging for both structlog and stdlib.

    Args:
        json_output: If ``True``, render logs as JSON lines. If ``False``,
            use structlog's coloured console renderer for development.
        log_level: Root log level (``"DEBUG"``, ``"INFO"``, ``"WARNING"``, etc.).
        stream: Where log lines go. Defaults to ``sys.stdout``; commands that
            print results on stdout pass ``sys.stderr``.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        drop_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper()))
