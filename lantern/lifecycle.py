# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

"""Top-level audit run: port resolution, worker supervision, sequential
auditing, all raced against the interrupt signal.

State machine::

    INIT -> RESOLVING_PORT -> (LAUNCHING -> PROBING)? -> RUNNING -> CLEANUP -> TERMINATED

An interrupt moves any state before CLEANUP straight to CLEANUP. The
pipeline task that loses the race is not cancelled (an in-flight job has
no cancellation point); its result is ignored, it stops scheduling new
addresses, and it cannot launch a worker once cleanup has started.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from lantern.config.models import LanternSettings, RunConfiguration
from lantern.errors import ExitCode, Failure, classify
from lantern.interrupt import InterruptSignal
from lantern.logging_config import bind_run_context
from lantern.runner import AuditJob, ResultWriter, RunnerReport, SequentialRunner
from lantern.supervisor.cleanup import CleanupFailure, CleanupRegistry
from lantern.supervisor.manager import ProcessSupervisor
from lantern.supervisor.ports import resolve_port

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[[RunConfiguration, CleanupRegistry], ProcessSupervisor]


class RunState(Enum):
    INIT = "init"
    RESOLVING_PORT = "resolving_port"
    LAUNCHING = "launching"
    PROBING = "probing"
    RUNNING = "running"
    CLEANUP = "cleanup"
    TERMINATED = "terminated"


class OutcomeKind(Enum):
    SUCCESS = "success"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


@dataclass(frozen=True)
class RunOutcome:
    """Terminal result of one run."""
    kind: OutcomeKind
    failure: Failure | None = None
    report: RunnerReport | None = None
    cleanup_failures: list[CleanupFailure] = field(default_factory=list)

    @property
    def exit_code(self) -> ExitCode:
        if self.kind is OutcomeKind.SUCCESS:
            return ExitCode.SUCCESS
        if self.kind is OutcomeKind.INTERRUPTED:
            return ExitCode.INTERRUPTED
        return self.failure.exit_code


class AuditRun:
    """
    One invocation of the runner.

    ``run()`` may be awaited once; it always drains the cleanup registry
    before returning, whichever way the run ends.
    """

    def __init__(
        self,
        config: RunConfiguration,
        job: AuditJob,
        writer: ResultWriter,
        *,
        settings: LanternSettings | None = None,
        interrupt: InterruptSignal | None = None,
        cleanup: CleanupRegistry | None = None,
        supervisor_factory: SupervisorFactory | None = None,
        report_dir: Path | None = None,
        log_dir: Path | None = None,
    ):
        self.config = config
        self.job = job
        self.writer = writer
        self.settings = settings if settings is not None else LanternSettings()
        self.interrupt = interrupt
        self.cleanup = cleanup if cleanup is not None else CleanupRegistry()
        self.report_dir = report_dir
        self.log_dir = log_dir
        self._supervisor_factory = supervisor_factory or self._default_supervisor

        if config.select_worker and config.auto_launch and not self.settings.supervisor.worker_command:
            logger.warning(
                "select_worker is set but no installation was preselected; "
                "call preselect_worker() before starting the loop. Using the first found."
            )

        self.state = RunState.INIT
        self.supervisor: ProcessSupervisor | None = None
        self.pipeline_task: asyncio.Task | None = None
        self._outcome: RunOutcome | None = None

    # ── State ──────────────────────────────────────────────────

    def _enter(self, state: RunState) -> None:
        if self.state in (RunState.CLEANUP, RunState.TERMINATED) and state not in (
            RunState.CLEANUP, RunState.TERMINATED,
        ):
            logger.debug("Ignoring late transition to %s", state.value)
            return
        logger.debug("Run state: %s -> %s", self.state.value, state.value)
        self.state = state

    def _stop_requested(self) -> bool:
        return self.state in (RunState.CLEANUP, RunState.TERMINATED)

    def _default_supervisor(
        self, config: RunConfiguration, cleanup: CleanupRegistry,
    ) -> ProcessSupervisor:
        return ProcessSupervisor(
            config.port,
            cleanup,
            self.settings.supervisor,
            log_dir=self.log_dir,
        )

    # ── Pipeline ───────────────────────────────────────────────

    async def _pipeline(self) -> RunnerReport:
        self._enter(RunState.RESOLVING_PORT)
        config = await resolve_port(self.config, self.settings.supervisor.host)
        self.config = config

        supervisor = self._supervisor_factory(config, self.cleanup)
        self.supervisor = supervisor
        if config.auto_launch:
            self._enter(RunState.LAUNCHING)
            await supervisor.ensure_ready(on_probing=lambda: self._enter(RunState.PROBING))
        else:
            await supervisor.require_running()

        self._enter(RunState.RUNNING)
        runner = SequentialRunner(
            config,
            self.job,
            self.writer,
            report_dir=self.report_dir,
            stop_requested=self._stop_requested,
        )
        return await runner.run()

    # ── Race ───────────────────────────────────────────────────

    async def run(self) -> RunOutcome:
        """Run the pipeline against the interrupt and return the outcome."""
        if self._outcome is not None or self.state is not RunState.INIT:
            raise RuntimeError("AuditRun.run() may only be awaited once")

        bind_run_context(uuid.uuid4().hex[:8])
        logger.info("Run started: %d address(es)", len(self.config.addresses))

        owns_interrupt = self.interrupt is None
        interrupt = self.interrupt if self.interrupt is not None else InterruptSignal()
        if owns_interrupt:
            interrupt.install()

        try:
            outcome = await self._race(interrupt)

            self._enter(RunState.CLEANUP)
            cleanup_failures = await self.cleanup.run_all()
            outcome = RunOutcome(
                kind=outcome.kind,
                failure=outcome.failure,
                report=outcome.report,
                cleanup_failures=cleanup_failures,
            )
            self._enter(RunState.TERMINATED)
        finally:
            if owns_interrupt:
                interrupt.uninstall()

        logger.info("Run finished: %s (exit code %d)", outcome.kind.value, outcome.exit_code)
        self._outcome = outcome
        return outcome

    async def _race(self, interrupt: InterruptSignal) -> RunOutcome:
        pipeline = asyncio.create_task(self._pipeline(), name="lantern-pipeline")
        listener = asyncio.create_task(interrupt.wait(), name="lantern-interrupt")
        self.pipeline_task = pipeline

        done, _ = await asyncio.wait({pipeline, listener}, return_when=asyncio.FIRST_COMPLETED)

        if listener in done:
            logger.warning("Interrupted in state %s; cleaning up", self.state.value)
            # Move to CLEANUP now so the abandoned pipeline stops scheduling.
            self._enter(RunState.CLEANUP)
            if not pipeline.done():
                pipeline.add_done_callback(_log_abandoned)
            return RunOutcome(kind=OutcomeKind.INTERRUPTED)

        listener.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await listener

        error = pipeline.exception()
        if error is None:
            return RunOutcome(kind=OutcomeKind.SUCCESS, report=pipeline.result())

        failure = classify(error)
        logger.error("Run failed (%s): %s", failure.cause.value, error)
        return RunOutcome(kind=OutcomeKind.FAILED, failure=failure)


def _log_abandoned(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Abandoned pipeline settled with error: %s", error)
    else:
        logger.debug("Abandoned pipeline settled")


async def run_audits(
    config: RunConfiguration,
    job: AuditJob,
    writer: ResultWriter,
    **kwargs,
) -> RunOutcome:
    """Convenience wrapper: build an :class:`AuditRun` and await it."""
    return await AuditRun(config, job, writer, **kwargs).run()
