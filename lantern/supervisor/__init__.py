# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
"""
Worker supervision package.

Resolves the control port, launches and probes the managed worker, and
owns the cleanup registry through which it is released.
"""

from __future__ import annotations

from lantern.supervisor.cleanup import CleanupFailure, CleanupRegistry
from lantern.supervisor.manager import ProcessSupervisor
from lantern.supervisor.ports import allocate_ephemeral_port, resolve_port
from lantern.supervisor.worker import WorkerHandle, WorkerState

__all__ = [
    "CleanupFailure",
    "CleanupRegistry",
    "ProcessSupervisor",
    "WorkerHandle",
    "WorkerState",
    "allocate_ephemeral_port",
    "resolve_port",
]
