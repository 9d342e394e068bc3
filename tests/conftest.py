# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for Lantern.

Provides data-directory isolation, settings cache management, and the
fake worker used by the integration tests.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
from pathlib import Path

import pytest

logger = logging.getLogger(__name__)

HELPERS_DIR = Path(__file__).parent / "helpers"
FAKE_WORKER = HELPERS_DIR / "fake_worker.py"


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of worker discovery and logging."""
    for var in ("LANTERN_WORKER_PATH", "LANTERN_LOG_DIR", "LANTERN_JOB", "LANTERN_WRITER"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create an isolated Lantern runtime data directory.

    - Redirects ``LANTERN_DATA_DIR`` to a temp directory
    - Invalidates the settings cache before and after the test
    """
    from lantern.config import invalidate_cache

    d = tmp_path / ".lantern"
    d.mkdir()
    monkeypatch.setenv("LANTERN_DATA_DIR", str(d))
    invalidate_cache()

    yield d

    invalidate_cache()


@pytest.fixture
def fake_worker_command() -> list[str]:
    """Argv prefix that starts the fake worker instead of a browser."""
    return [sys.executable, str(FAKE_WORKER)]


@pytest.fixture
def reap_fake_workers():
    """Terminate any fake worker a test left behind."""
    yield
    _kill_orphan_workers(str(FAKE_WORKER))


def _kill_orphan_workers(marker: str) -> None:
    """Terminate processes whose cmdline references *marker* (Linux only)."""
    proc_dir = Path("/proc")
    if not proc_dir.exists():
        return

    for pid_dir in proc_dir.iterdir():
        if not pid_dir.name.isdigit():
            continue
        try:
            cmdline = (pid_dir / "cmdline").read_text().replace("\x00", " ")
            if marker in cmdline:
                pid = int(pid_dir.name)
                if pid == os.getpid():
                    continue
                logger.info("Killing orphan fake worker PID=%s", pid)
                os.kill(pid, signal.SIGTERM)
        except (OSError, ValueError):
            pass
