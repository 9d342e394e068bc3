# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Lantern, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Central configuration module for Lantern.

Defines Pydantic models for a single audit run and for the persistent
``config.json`` settings, and provides load helpers with a module-level
singleton cache.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lantern.exceptions import ConfigError, ConfigNotFoundError, ConfigValidationError

logger = logging.getLogger("lantern.config")

DEFAULT_PORT = 9222
STDOUT_DESTINATION = "stdout"

# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------


class OutputMode(str, Enum):
    """Result writer modes."""

    JSON = "json"
    PRETTY = "pretty"  # default interactive mode
    HTML = "html"


LogLevel = Literal["verbose", "info", "silent"]


class JobOptions(BaseModel):
    """Boolean flags passed through untouched to the per-target job."""

    model_config = ConfigDict(frozen=True)

    disable_device_emulation: bool = False
    disable_cpu_throttling: bool = True
    disable_network_throttling: bool = False
    save_assets: bool = False
    save_artifacts: bool = False


class RunConfiguration(BaseModel):
    """Immutable description of one invocation.

    The only field that changes during a run is ``port``: when the caller
    asks for port 0 the resolver produces a copy with the allocated port
    via :meth:`with_port`, and that happens at most once.
    """

    model_config = ConfigDict(frozen=True)

    addresses: tuple[str, ...] = ()
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    port_resolved: bool = False
    auto_launch: bool = True
    select_worker: bool = False
    output_mode: OutputMode = OutputMode.PRETTY
    output_path: str = STDOUT_DESTINATION
    log_level: LogLevel = "info"
    audit_config: dict[str, Any] | None = None
    job_options: JobOptions = JobOptions()

    @field_validator("addresses", mode="before")
    @classmethod
    def _coerce_addresses(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @property
    def writes_to_stdout(self) -> bool:
        return self.output_path == STDOUT_DESTINATION

    def with_port(self, port: int) -> RunConfiguration:
        """Return a copy bound to the resolved *port*."""
        if self.port_resolved:
            raise ConfigError(f"Port already resolved to {self.port}")
        if not 0 < port <= 65535:
            raise ConfigValidationError(f"Resolved port out of range: {port}")
        return self.model_copy(update={"port": port, "port_resolved": True})


# ---------------------------------------------------------------------------
# Persistent settings (config.json)
# ---------------------------------------------------------------------------


class SupervisorConfig(BaseModel):
    """Worker launch and readiness probing configuration."""

    worker_path: str | None = None  # None = auto-discover
    worker_command: list[str] | None = None  # argv prefix; skips discovery
    worker_flags: list[str] = []  # appended to the default flag set
    host: str = "127.0.0.1"
    probe_attempts: int = Field(default=20, ge=1)
    probe_interval_sec: float = Field(default=0.5, ge=0.0)
    probe_timeout_sec: float = Field(default=1.0, gt=0.0)
    kill_grace_sec: float = Field(default=5.0, ge=0.0)


class LanternSettings(BaseModel):
    version: int = 1
    supervisor: SupervisorConfig = SupervisorConfig()
    log_dir: str | None = None
    json_log_file: bool = True


# ---------------------------------------------------------------------------
# Singleton cache
# ---------------------------------------------------------------------------

_settings: LanternSettings | None = None
_settings_path: Path | None = None


def invalidate_cache() -> None:
    """Reset the module-level singleton cache."""
    global _settings, _settings_path
    _settings = None
    _settings_path = None


def get_config_path(data_dir: Path | None = None) -> Path:
    """Return the path to config.json inside *data_dir*."""
    if data_dir is None:
        from lantern.paths import get_data_dir

        data_dir = get_data_dir()
    return data_dir / "config.json"


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def load_settings(path: Path | None = None) -> LanternSettings:
    """Load settings from disk, returning the cached instance when possible.

    When the file does not exist the default settings are returned.

    Raises:
        ConfigValidationError: The file is not valid JSON or does not
            match the schema.
    """
    global _settings, _settings_path

    if path is None:
        path = get_config_path()

    if _settings is not None and _settings_path == path:
        return _settings

    if path.is_file():
        logger.debug("Loading settings from %s", path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            settings = LanternSettings.model_validate(data)
        except json.JSONDecodeError as exc:
            raise ConfigValidationError(f"Failed to parse {path}: {exc}") from exc
        except ValidationError as exc:
            raise ConfigValidationError(f"Invalid settings in {path}: {exc}") from exc
    else:
        logger.debug("Settings file not found at %s; using defaults", path)
        settings = LanternSettings()

    _settings = settings
    _settings_path = path
    return settings


def load_audit_config(path: str | Path, cwd: Path | None = None) -> dict[str, Any]:
    """Load a JSON audit configuration, resolving *path* against *cwd*.

    The document is handed to the per-target job as-is.
    """
    resolved = (cwd or Path.cwd()) / Path(path).expanduser()
    resolved = resolved.resolve()
    if not resolved.is_file():
        raise ConfigNotFoundError(f"Audit config not found: {resolved}")
    try:
        data = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigValidationError(f"Failed to parse {resolved}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigValidationError(f"Audit config must be a JSON object: {resolved}")
    logger.debug("Loaded audit config from %s", resolved)
    return data
