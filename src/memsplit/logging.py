"""Structlog configuration.

Warnings about individual mappings and processes (missing PSS fields,
processes that exited mid-read) are suppressed unless asked for, since they
are expected on a busy system.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog


def configure(show_warnings: bool = False, log_file: Path | None = None) -> None:
    """Configure structlog to render through stdlib logging.

    Args:
        show_warnings: Emit warning-level events. Otherwise only errors are shown.
        log_file: Write log lines to this file instead of stderr. Useful with the
            TUI, where stderr output would garble the screen.
    """
    level = logging.WARNING if show_warnings else logging.ERROR

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        handler = logging.StreamHandler(sys.stderr)
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[
                structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
                structlog.processors.add_log_level,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
