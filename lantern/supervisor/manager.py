"""
Process Supervisor - brings the worker's control endpoint up and tears it down.
"""

# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
import tempfile
from collections.abc import Callable
from pathlib import Path

import httpx

from lantern.config.models import SupervisorConfig
from lantern.exceptions import (
    ProcessError,
    ProtocolTimeoutError,
    WorkerConnectionRefusedError,
    WorkerExitedError,
)
from lantern.supervisor.cleanup import CleanupRegistry
from lantern.supervisor.worker import (
    WorkerHandle,
    build_worker_command,
    choose_installation,
    find_worker_installations,
)

logger = logging.getLogger(__name__)

VERSION_PATH = "/json/version"


class ProcessSupervisor:
    """
    Supervisor for the single worker process of a run.

    Responsibilities:
    - Probe the control endpoint (``/json/version``) without side effects
    - Reuse an already-running worker when the probe succeeds
    - Otherwise launch a managed worker and poll it to readiness, bounded
      by ``probe_attempts``
    - Register exactly one teardown action with the run's CleanupRegistry
    """

    def __init__(
        self,
        port: int,
        cleanup: CleanupRegistry,
        config: SupervisorConfig | None = None,
        *,
        log_dir: Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if port <= 0:
            raise ProcessError(f"Supervisor needs a resolved port, got {port}")
        self.port = port
        self.cleanup = cleanup
        self.config = config if config is not None else SupervisorConfig()
        self.log_dir = log_dir

        self.handle: WorkerHandle | None = None
        self._transport = transport
        self._teardown_registered = False

    @property
    def endpoint(self) -> str:
        return f"http://{self.config.host}:{self.port}"

    # ── Probing ────────────────────────────────────────────────

    async def probe(self) -> dict:
        """Fetch the endpoint's version document.

        Raises:
            httpx.HTTPError: Unreachable, timed out, or non-2xx.
            ValueError: The body is not JSON.
        """
        async with httpx.AsyncClient(
            timeout=self.config.probe_timeout_sec,
            transport=self._transport,
        ) as client:
            resp = await client.get(f"{self.endpoint}{VERSION_PATH}")
            resp.raise_for_status()
            return resp.json()

    async def is_ready(self) -> bool:
        """Return True if a control-protocol handshake completes in time."""
        try:
            info = await self.probe()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Readiness probe failed on port %d: %s", self.port, e)
            return False
        logger.debug("Readiness probe ok on port %d: %s", self.port, info.get("Browser", "?"))
        return True

    async def require_running(self) -> None:
        """Verify an externally managed worker is listening.

        Raises:
            WorkerConnectionRefusedError: The endpoint could not be reached.
        """
        try:
            await self.probe()
        except (httpx.HTTPError, ValueError) as e:
            raise WorkerConnectionRefusedError(
                f"Unable to connect to worker at {self.endpoint}: {e}",
                port=self.port,
            ) from e

    # ── Lifecycle ──────────────────────────────────────────────

    def _register_teardown(self) -> None:
        if self._teardown_registered:
            return
        self.cleanup.register(self.kill, name="worker.kill")
        self._teardown_registered = True

    async def ensure_ready(self, on_probing: Callable[[], None] | None = None) -> bool:
        """Make the endpoint reachable, launching a worker if needed.

        The probe runs first: a worker already listening on the port is
        reused and nothing is started.

        Returns:
            True if a managed worker was launched, False if reused.

        Raises:
            ProtocolTimeoutError: The launched worker never became ready.
            WorkerExitedError: The launched worker exited while starting.
        """
        self._register_teardown()

        if await self.is_ready():
            logger.info("Worker already listening on port %d; skipping launch", self.port)
            return False

        logger.info("Launching worker...")
        await self.launch()
        if on_probing:
            on_probing()
        await self.wait_until_ready()
        return True

    async def launch(self) -> WorkerHandle:
        """Start a managed worker bound to the resolved port."""
        if self.handle is not None:
            raise ProcessError("Worker already launched for this run")
        if self.cleanup.drained:
            raise ProcessError("Run is shutting down; not launching a worker")

        if self.config.worker_command:
            executable: str | list[str] = list(self.config.worker_command)
        else:
            # Never prompts here; interactive choice is made by preselect_worker().
            executable = choose_installation(find_worker_installations(self.config.worker_path))
        profile_dir = Path(tempfile.mkdtemp(prefix="lantern-profile-"))
        command = build_worker_command(
            executable, self.port, profile_dir, self.config.worker_flags,
        )
        self.handle = WorkerHandle(
            command,
            self.port,
            log_dir=self.log_dir,
            profile_dir=profile_dir,
            kill_grace_sec=self.config.kill_grace_sec,
        )
        # Registered before spawning so any later failure still kills it.
        self._register_teardown()
        await self.handle.start()
        return self.handle

    async def wait_until_ready(self) -> None:
        """Poll the endpoint until ready or ``probe_attempts`` is exhausted."""
        if self.handle is None:
            raise ProcessError("No managed worker to wait for")

        attempts = self.config.probe_attempts
        for attempt in range(1, attempts + 1):
            code = self.handle.exit_code()
            if code is not None:
                raise WorkerExitedError(
                    f"Worker exited with code {code} before its endpoint was ready",
                    exit_code=code,
                )
            if await self.is_ready():
                self.handle.mark_ready()
                return
            logger.debug("Worker not ready (attempt %d/%d)", attempt, attempts)
            if attempt < attempts:
                await asyncio.sleep(self.config.probe_interval_sec)

        raise ProtocolTimeoutError(
            f"Control protocol on port {self.port} not ready after {attempts} attempts",
            port=self.port,
            attempts=attempts,
        )

    async def kill(self) -> None:
        """Terminate the managed worker; no-op when none was started."""
        if self.handle is None:
            logger.debug("No managed worker to kill")
            return
        await self.handle.kill()
