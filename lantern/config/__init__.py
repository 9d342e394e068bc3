# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from lantern.config.models import (
    DEFAULT_PORT,
    STDOUT_DESTINATION,
    JobOptions,
    LanternSettings,
    LogLevel,
    OutputMode,
    RunConfiguration,
    SupervisorConfig,
    get_config_path,
    invalidate_cache,
    load_audit_config,
    load_settings,
)

__all__ = [
    "DEFAULT_PORT",
    "STDOUT_DESTINATION",
    "JobOptions",
    "LanternSettings",
    "LogLevel",
    "OutputMode",
    "RunConfiguration",
    "SupervisorConfig",
    "get_config_path",
    "invalidate_cache",
    "load_audit_config",
    "load_settings",
]
