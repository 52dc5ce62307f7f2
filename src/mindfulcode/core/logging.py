"""
Structured logging for Mindful Code.

structlog renders every entry; stdlib loggers (the timer scheduler) are routed
through the same ``ProcessorFormatter`` so one process produces one format.

Modules log with an event name plus fields::

    logger = structlog.get_logger()
    logger.info("session_auto_paused", session_id=session.id, idle_minutes=5)

Log lines go to stderr so that ``--json`` command output on stdout stays
parseable.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _renderer(json_output: bool, stream: TextIO) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=stream.isatty())


def _is_ours(handler: logging.Handler) -> bool:
    return isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)


def configure_logging(
    *,
    level: str = "WARNING",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Level name, case-insensitive.  Unknown names fall back to WARNING.
        json_output: Emit one JSON object per line instead of console text.
        stream: Destination, stderr by default.

    Calling it again swaps the previous handler for a new one, so a later
    call can change the level, the format or the stream.
    """
    stream = stream if stream is not None else sys.stderr
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.WARNING

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output, stream),
            ],
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )

    root = logging.getLogger()
    for old in [h for h in root.handlers if _is_ours(h)]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(log_level)

    # Debug output from the event loop drowns the session events.
    logging.getLogger("asyncio").setLevel(logging.WARNING)
