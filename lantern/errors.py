# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

"""Failure classification and the process exit-code taxonomy.

A failure is classified once, by walking its exception chain for
explicit markers, in this order:

1. connection refused (:class:`WorkerConnectionRefusedError`, builtin
   :class:`ConnectionRefusedError`, :class:`httpx.ConnectError`)
2. protocol timeout (:class:`ProtocolTimeoutError`)
3. anything else is a runtime error

The chain is walked the way a traceback prints it: an explicit
``__cause__`` is followed, and ``__context__`` only when not suppressed
with ``raise ... from None``.
"""

from __future__ import annotations

import sys
import traceback
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TextIO

import httpx

from lantern.exceptions import ProtocolTimeoutError, WorkerConnectionRefusedError


class ExitCode(IntEnum):
    SUCCESS = 0
    RUNTIME_ERROR = 1
    PROTOCOL_TIMEOUT = 67
    INTERRUPTED = 130


class FailureCause(Enum):
    CONNECTION_REFUSED = "connection_refused"
    PROTOCOL_TIMEOUT = "protocol_timeout"
    RUNTIME_ERROR = "runtime_error"


_EXIT_CODES = {
    FailureCause.CONNECTION_REFUSED: ExitCode.RUNTIME_ERROR,
    FailureCause.PROTOCOL_TIMEOUT: ExitCode.PROTOCOL_TIMEOUT,
    FailureCause.RUNTIME_ERROR: ExitCode.RUNTIME_ERROR,
}

_CONNECTION_REFUSED_TYPES = (
    WorkerConnectionRefusedError,
    ConnectionRefusedError,
    httpx.ConnectError,
)


@dataclass(frozen=True)
class Failure:
    """A classified failure, ready to report."""
    cause: FailureCause
    error: BaseException

    @property
    def exit_code(self) -> ExitCode:
        return _EXIT_CODES[self.cause]


def _chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            # raise ... from None
            current = None
        else:
            current = current.__context__


def classify(error: BaseException) -> Failure:
    """Map *error* to exactly one :class:`FailureCause`."""
    chain = list(_chain(error))
    if any(isinstance(e, _CONNECTION_REFUSED_TYPES) for e in chain):
        return Failure(FailureCause.CONNECTION_REFUSED, error)
    if any(isinstance(e, ProtocolTimeoutError) for e in chain):
        return Failure(FailureCause.PROTOCOL_TIMEOUT, error)
    return Failure(FailureCause.RUNTIME_ERROR, error)


def report_failure(failure: Failure, stream: TextIO | None = None) -> None:
    """Print the user-facing diagnostic for *failure* to *stream* (stderr)."""
    out = stream or sys.stderr
    if failure.cause is FailureCause.CONNECTION_REFUSED:
        print("Unable to connect to the worker.", file=out)
        print(
            "If you're using --skip-autolaunch, make sure a worker with a "
            "remote debugging endpoint is already running on that port.",
            file=out,
        )
    elif failure.cause is FailureCause.PROTOCOL_TIMEOUT:
        print("Control protocol timed out while connecting to the worker.", file=out)
    else:
        err = failure.error
        print(f"Runtime error encountered: {err}", file=out)
        if err.__traceback__ is not None:
            print("".join(traceback.format_exception(err)), end="", file=out)


def report_interrupted(stream: TextIO | None = None) -> None:
    print("Interrupted; cleaned up.", file=stream or sys.stderr)
