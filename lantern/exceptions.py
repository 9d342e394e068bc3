from __future__ import annotations
# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Lantern, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Unified exception hierarchy for Lantern.

All domain-specific exceptions derive from :class:`LanternError`,
enabling callers to catch the entire family with a single clause::

    try:
        ...
    except LanternError as e:
        logger.error("Domain error: %s", e)

Exit-code classification (see :mod:`lantern.errors`) keys off the
concrete classes below, never off message text.
"""


class LanternError(Exception):
    """Base exception for all Lantern errors."""


# ── Configuration ────────────────────────────────────────────


class ConfigError(LanternError):
    """Configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Configuration file not found."""


class ConfigValidationError(ConfigError):
    """Configuration validation failure."""


# ── Worker process ───────────────────────────────────────────


class ProcessError(LanternError):
    """Worker process errors."""


class WorkerNotFoundError(ProcessError):
    """No worker executable could be located."""


class WorkerExitedError(ProcessError):
    """Managed worker exited before its endpoint became reachable."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class WorkerConnectionRefusedError(ProcessError):
    """The worker's control endpoint refused the connection."""

    def __init__(self, message: str = "Connection refused", *, port: int | None = None) -> None:
        super().__init__(message)
        self.port = port


class ProtocolTimeoutError(ProcessError):
    """Readiness was not reached within the probe bound."""

    def __init__(
        self,
        message: str = "Control protocol timed out",
        *,
        port: int | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message)
        self.port = port
        self.attempts = attempts


# ── Jobs / plugins ───────────────────────────────────────────


class JobError(LanternError):
    """Per-target job errors."""


class PluginLoadError(JobError):
    """A job or writer plugin could not be imported."""
