# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Lantern, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Logging for Lantern runs.

structlog runs in stdlib-compatible mode: modules log through plain
``logging.getLogger(__name__)`` and every record goes through one
processor chain. Console output always goes to stderr because stdout may
carry results. A log directory adds a rotating file (JSON by default)
that records everything down to DEBUG whatever the console verbosity.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

LOG_FILE_NAME = "lantern.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Above CRITICAL: nothing reaches the console.
SILENT = logging.CRITICAL + 10

_VERBOSITY_LEVELS = {
    "verbose": logging.DEBUG,
    "info": logging.INFO,
    "silent": SILENT,
}

_QUIET_LIBRARIES = ("httpx", "httpcore", "asyncio")


def level_for(verbosity: str) -> int:
    """Return the stdlib level for a run verbosity name."""
    return _VERBOSITY_LEVELS.get(verbosity.lower(), logging.INFO)


def bind_run_context(run_id: str) -> None:
    """Tag every subsequent log line of this context with *run_id*."""
    structlog.contextvars.bind_contextvars(run_id=run_id)


def get_run_id() -> str:
    return structlog.contextvars.get_contextvars().get("run_id", "-")


# ── Processors and formatters ─────────────────────────────────


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_pre_chain(),
    )


def _run_log_handler(log_dir: Path, json_file: bool) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json_file
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    handler.setFormatter(_formatter(renderer))
    handler.setLevel(logging.DEBUG)
    return handler


# ── Setup ─────────────────────────────────────────────────────


def setup_logging(
    level: str | int = "info",
    log_dir: Path | None = None,
    json_file: bool = True,
) -> None:
    """Install Lantern's handlers on the root logger, replacing any others.

    Args:
        level: Console verbosity, either a run verbosity name
            (``verbose``, ``info``, ``silent``) or a stdlib level number.
        log_dir: Where to keep ``lantern.log``; None disables the file.
        json_file: Render the file as JSON lines rather than plain text.
    """
    console_level = level if isinstance(level, int) else level_for(level)

    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(structlog.dev.ConsoleRenderer()))
    console.setLevel(console_level)

    handlers: list[logging.Handler] = [console]
    if log_dir is not None:
        handlers.append(_run_log_handler(log_dir, json_file))

    root = logging.getLogger()
    root.handlers[:] = handlers
    # The file wants DEBUG even when the console is quieter.
    root.setLevel(min(console_level, logging.DEBUG) if log_dir is not None else console_level)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
