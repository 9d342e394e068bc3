"""
Worker handle for the managed browser process.
"""

# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import sys
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path
from typing import IO, Any

from lantern.config.models import SupervisorConfig
from lantern.exceptions import ProcessError, WorkerNotFoundError

logger = logging.getLogger(__name__)

WORKER_PATH_ENV = "LANTERN_WORKER_PATH"

DEFAULT_WORKER_FLAGS: tuple[str, ...] = (
    "--no-first-run",
    "--disable-extensions",
    "--disable-translate",
    "--disable-background-networking",
    "--disable-sync",
    "--disable-default-apps",
    "--metrics-recording-only",
    "--safebrowsing-disable-auto-update",
)

_EXECUTABLE_NAMES = (
    "google-chrome-stable",
    "google-chrome",
    "chromium",
    "chromium-browser",
    "chrome",
)

_DARWIN_PATHS = (
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
)

_WINDOWS_SUFFIXES = (
    r"\Google\Chrome SxS\Application\chrome.exe",
    r"\Google\Chrome\Application\chrome.exe",
)


# ── Installation discovery ─────────────────────────────────────────

def find_worker_installations(configured: str | None = None) -> list[str]:
    """Return candidate worker executables, most preferred first.

    Order: ``LANTERN_WORKER_PATH``, *configured*, executables on ``PATH``,
    then the platform's usual install locations. Duplicates are dropped.
    """
    candidates: list[str] = []

    for explicit in (os.environ.get(WORKER_PATH_ENV), configured):
        if explicit:
            candidates.append(explicit)

    for name in _EXECUTABLE_NAMES:
        found = shutil.which(name)
        if found:
            candidates.append(found)

    if sys.platform == "darwin":
        candidates.extend(p for p in _DARWIN_PATHS if Path(p).is_file())
    elif sys.platform == "win32":
        for var in ("LOCALAPPDATA", "PROGRAMFILES", "PROGRAMFILES(X86)"):
            prefix = os.environ.get(var)
            if not prefix:
                continue
            candidates.extend(
                prefix + suffix for suffix in _WINDOWS_SUFFIXES
                if Path(prefix + suffix).is_file()
            )

    seen: set[str] = set()
    unique: list[str] = []
    for path in candidates:
        if path not in seen:
            seen.add(path)
            unique.append(path)
    return unique


def choose_installation(
    candidates: Sequence[str],
    select: bool = False,
    prompt: Callable[[str], str] = input,
    out: Callable[[str], Any] = print,
) -> str:
    """Pick one installation, asking the user when *select* is set.

    Raises:
        WorkerNotFoundError: *candidates* is empty.
    """
    if not candidates:
        raise WorkerNotFoundError(
            f"No worker installation found. Set {WORKER_PATH_ENV} to a "
            "Chromium-family browser executable."
        )
    if not select or len(candidates) == 1:
        return candidates[0]

    for i, path in enumerate(candidates, start=1):
        out(f"  {i}) {path}")
    while True:
        answer = prompt(f"Choose a worker installation [1-{len(candidates)}]: ").strip()
        if answer.isdigit() and 1 <= int(answer) <= len(candidates):
            return candidates[int(answer) - 1]
        out(f"Invalid choice: {answer!r}")


def preselect_worker(
    config: SupervisorConfig,
    prompt: Callable[[str], str] = input,
    out: Callable[[str], Any] = print,
) -> SupervisorConfig:
    """Ask the user which installation to launch, before any event loop runs.

    The prompt blocks on ``input()``; asked from inside the loop it would
    hold off the interrupt until answered. The choice is pinned as
    ``worker_command`` so launching never prompts.

    Raises:
        WorkerNotFoundError: No installation was found.
    """
    if config.worker_command:
        return config
    chosen = choose_installation(
        find_worker_installations(config.worker_path), select=True, prompt=prompt, out=out,
    )
    logger.info("Selected worker installation: %s", chosen)
    return config.model_copy(update={"worker_command": [chosen]})


def build_worker_command(
    executable: str | Sequence[str],
    port: int,
    profile_dir: Path,
    extra_flags: Sequence[str] = (),
) -> list[str]:
    """Build the argv that starts a worker with its debugging endpoint on *port*.

    *executable* may be a path or an argv prefix (e.g. a wrapper such as
    ``["xvfb-run", "-a", "chromium"]``).
    """
    prefix = [executable] if isinstance(executable, str) else list(executable)
    return [
        *prefix,
        f"--remote-debugging-port={port}",
        f"--user-data-dir={profile_dir}",
        *DEFAULT_WORKER_FLAGS,
        *extra_flags,
        "about:blank",
    ]


# ── Worker State ───────────────────────────────────────────────────

class WorkerState(Enum):
    """State of the managed worker."""
    NOT_STARTED = "not_started"
    STARTING = "starting"       # Process spawned, endpoint not yet confirmed
    READY = "ready"             # Readiness probe succeeded
    TERMINATED = "terminated"   # Killed or exited


# ── Worker Handle ──────────────────────────────────────────────────

class WorkerHandle:
    """
    Handle for the single managed worker process of a run.

    Owned by :class:`~lantern.supervisor.manager.ProcessSupervisor`; only
    the supervisor's cleanup action calls :meth:`kill`.
    """

    def __init__(
        self,
        command: Sequence[str],
        port: int,
        log_dir: Path | None = None,
        profile_dir: Path | None = None,
        kill_grace_sec: float = 5.0,
    ):
        self.command = list(command)
        self.port = port
        self.log_dir = log_dir
        self.profile_dir = profile_dir
        self.kill_grace_sec = kill_grace_sec

        self.state = WorkerState.NOT_STARTED
        self.process: subprocess.Popen | None = None
        self._stderr_file: IO[str] | None = None

    async def start(self) -> None:
        """Spawn the worker process.

        Raises:
            WorkerNotFoundError: The executable does not exist.
            ProcessError: The handle was already started.
        """
        if self.state != WorkerState.NOT_STARTED:
            raise ProcessError(f"Cannot start worker in state {self.state.value}")

        self.state = WorkerState.STARTING
        logger.info("Starting worker on port %d", self.port)
        logger.debug("Command: %s", " ".join(self.command))

        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._stderr_file = open(  # noqa: SIM115
                self.log_dir / "worker-stderr.log", "a", encoding="utf-8",
            )

        try:
            self.process = subprocess.Popen(
                self.command,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr_file if self._stderr_file else subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            self.state = WorkerState.TERMINATED
            self._cleanup()
            raise WorkerNotFoundError(f"Worker executable not found: {self.command[0]}") from e
        except OSError:
            self.state = WorkerState.TERMINATED
            self._cleanup()
            raise

        logger.info("Worker started (PID %s)", self.process.pid)
        # Yield so the spawn counts as a suspension point for callers.
        await asyncio.sleep(0)

    def mark_ready(self) -> None:
        """Record a successful readiness probe."""
        if self.state != WorkerState.STARTING:
            raise ProcessError(f"Cannot mark worker ready in state {self.state.value}")
        self.state = WorkerState.READY
        logger.info("Worker ready on port %d", self.port)

    def exit_code(self) -> int | None:
        """Return the exit code if the process has exited, else None.

        An exited process moves the handle to ``TERMINATED``.
        """
        if not self.process:
            return None
        code = self.process.poll()
        if code is not None and self.state != WorkerState.TERMINATED:
            logger.warning("Worker exited (code=%s)", code)
            self.state = WorkerState.TERMINATED
        return code

    async def kill(self) -> None:
        """
        Terminate the worker. Safe to call any number of times.

        Sends SIGTERM, waits up to ``kill_grace_sec``, then SIGKILL.
        """
        if self.process is None:
            self.state = WorkerState.TERMINATED
            self._cleanup()
            return

        if self.process.poll() is None:
            logger.info("Stopping worker (PID %s)", self.process.pid)
            self.process.terminate()
            if not await self._wait_exit(self.kill_grace_sec):
                logger.warning(
                    "Worker did not exit after SIGTERM, sending SIGKILL (PID %s)",
                    self.process.pid,
                )
                self.process.kill()
                await self._wait_exit(None)
            logger.info("Worker exited (code=%s)", self.process.returncode)

        self.state = WorkerState.TERMINATED
        self._cleanup()

    async def _wait_exit(self, timeout: float | None) -> bool:
        """Poll until the process exits; False if *timeout* elapsed first."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self.process.poll() is None:
            if deadline is not None and loop.time() >= deadline:
                return False
            await asyncio.sleep(0.05)
        return True

    def _cleanup(self) -> None:
        """Release files owned by the handle."""
        if self._stderr_file:
            try:
                self._stderr_file.close()
            except OSError:
                logger.debug("Failed to close stderr file", exc_info=True)
            self._stderr_file = None

        if self.profile_dir and self.profile_dir.exists():
            shutil.rmtree(self.profile_dir, ignore_errors=True)
            logger.debug("Profile directory removed: %s", self.profile_dir)

    def is_alive(self) -> bool:
        """Check if process is alive."""
        return self.process is not None and self.process.poll() is None

    def get_pid(self) -> int | None:
        """Get process PID."""
        return self.process.pid if self.process else None
