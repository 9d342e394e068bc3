# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

"""Sequential per-address job runner.

Addresses are audited strictly one at a time in input order: the worker
process and its control endpoint are a single exclusive resource, and
overlapping audits against one worker corrupt in-flight protocol state.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from lantern.config.models import OutputMode, RunConfiguration

logger = logging.getLogger(__name__)

ResultDocument = Any

# run(address, flags, config) -> result document
AuditJob = Callable[[str, RunConfiguration, "dict[str, Any] | None"], Awaitable[ResultDocument]]
# write(document, mode, destination) -> (possibly transformed) document
ResultWriter = Callable[[ResultDocument, OutputMode, str], Awaitable[ResultDocument]]

_DIGEST_LEN = 8
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._=-]+")


def _readable_slug(address: str) -> str:
    parts = urlsplit(address)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}-{parts.port}"
    rest = parts.path.strip("/")
    if parts.query:
        rest = f"{rest}?{parts.query}" if rest else parts.query
    if not host:
        host, rest = address, ""

    slug = _UNSAFE_CHARS.sub("-", host).strip("-")
    if rest:
        slug = f"{slug}_{_UNSAFE_CHARS.sub('-', rest).strip('-')}"
    return slug or "report"


def filename_prefix(address: str) -> str:
    """Return a stable, filesystem-safe name for *address*.

    A readable slug plus the first 8 hex digits of the address's SHA-256,
    so addresses that slug alike (``/a/b`` and ``/a-b``, http and https)
    get different files: ``https://example.com/a/b?x=1`` becomes
    ``example.com_a-b-x=1-<digest>``.
    """
    digest = hashlib.sha256(address.encode("utf-8")).hexdigest()[:_DIGEST_LEN]
    return f"{_readable_slug(address)}-{digest}"


def html_report_path(address: str, directory: Path | None = None) -> Path:
    """Path of the secondary HTML copy written in the interactive mode."""
    return (directory or Path(".")) / f"{filename_prefix(address)}.report.html"


@dataclass
class RunnerReport:
    """What the runner got through before it settled."""
    completed: list[str] = field(default_factory=list)
    html_reports: list[Path] = field(default_factory=list)


class SequentialRunner:
    """
    Runs the per-target job for each address in order, never two at once.

    Any failure from the job or the writer propagates unchanged and the
    remaining addresses are never started.
    """

    def __init__(
        self,
        config: RunConfiguration,
        job: AuditJob,
        writer: ResultWriter,
        report_dir: Path | None = None,
        stop_requested: Callable[[], bool] | None = None,
    ):
        self.config = config
        self.job = job
        self.writer = writer
        self.report_dir = report_dir
        self._stop_requested = stop_requested or (lambda: False)
        self.report = RunnerReport()
        self._pending: Iterator[str] = iter(config.addresses)

    def _next_address(self) -> str | None:
        # Consumes the shared iterator, so a second run() resumes nothing.
        return next(self._pending, None)

    async def run(self) -> RunnerReport:
        """Process every address; returns once the last result is written."""
        total = len(self.config.addresses)
        index = 0
        while (address := self._next_address()) is not None:
            if self._stop_requested():
                logger.info("Stop requested; not starting %s", address)
                break
            index += 1
            logger.info("Auditing %s (%d/%d)", address, index, total)
            await self._run_one(address)
            self.report.completed.append(address)

        logger.debug("Runner finished: %d address(es)", len(self.report.completed))
        return self.report

    async def _run_one(self, address: str) -> None:
        config = self.config
        results = await self.job(address, config, config.audit_config)
        results = await self.writer(results, config.output_mode, config.output_path)

        if config.output_mode == OutputMode.PRETTY:
            path = html_report_path(address, self.report_dir)
            await self.writer(results, OutputMode.HTML, str(path))
            self.report.html_reports.append(path)
            logger.info("HTML report saved to %s", path)
