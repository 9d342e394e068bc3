# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Lantern, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Centralized path resolution for Lantern.

Runtime data directory can be overridden via LANTERN_DATA_DIR environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path

# Default runtime data directory
_DEFAULT_DATA_DIR = Path.home() / ".lantern"


def get_data_dir() -> Path:
    """Return the runtime data directory, respecting LANTERN_DATA_DIR env var."""
    env_val = os.environ.get("LANTERN_DATA_DIR")
    if env_val:
        return Path(env_val).expanduser().resolve()
    return _DEFAULT_DATA_DIR


def get_log_dir() -> Path | None:
    """Return the file-logging directory, or None when LANTERN_LOG_DIR is unset."""
    env_val = os.environ.get("LANTERN_LOG_DIR")
    if env_val:
        return Path(env_val).expanduser().resolve()
    return None
