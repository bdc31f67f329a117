"""
Structured logging configuration for termbridge.

Uses structlog on top of the stdlib logging pipeline.  The engine's stdout
carries command results, so every log line goes to stderr (and optionally
to a log file in the configured log directory).

Setup:
    Call ``configure_logging()`` once at process startup.  Every module
    then uses::

        import structlog
        logger = structlog.get_logger()

    Bound loggers carry context automatically::

        log = logger.bind(tag="build", tty="/dev/ttys004")
        log.info("session_resolved", created=False)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog


def configure_logging(
    *,
    level: str = "WARNING",
    json_output: bool = False,
    log_file: Path | None = None,
) -> None:
    """
    Configure structlog + stdlib logging for the process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, emit JSON lines; otherwise coloured console output.
        log_file: If given, also append plain JSON lines to this file.

    Calling it again is safe: handlers are not duplicated.
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    root = logging.getLogger()

    if not any(_is_ours(h) and not isinstance(h, logging.FileHandler) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if log_file is not None and not any(
        isinstance(h, logging.FileHandler) and _is_ours(h) for h in root.handlers
    ):
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as exc:
            # stderr only
            structlog.get_logger().warning("log_file_unavailable", path=str(log_file), error=str(exc))
        else:
            file_handler.setFormatter(
                structlog.stdlib.ProcessorFormatter(
                    processors=[
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        structlog.processors.JSONRenderer(),
                    ],
                    foreign_pre_chain=shared_processors,
                )
            )
            root.addHandler(file_handler)

    root.setLevel(log_level)

    # The MCP server stack is chatty at INFO.
    logging.getLogger("mcp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _is_ours(handler: logging.Handler) -> bool:
    return isinstance(getattr(handler, "formatter", None), structlog.stdlib.ProcessorFormatter)
