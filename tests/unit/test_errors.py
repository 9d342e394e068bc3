"""Unit tests for lantern/errors.py: failure classification and reporting."""
# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import io

import httpx
import pytest

from lantern.errors import ExitCode, FailureCause, classify, report_failure, report_interrupted
from lantern.exceptions import (
    ProtocolTimeoutError,
    WorkerConnectionRefusedError,
    WorkerExitedError,
)


def _raised(error: BaseException) -> BaseException:
    try:
        raise error
    except BaseException as e:  # noqa: BLE001
        return e


class TestClassify:
    def test_worker_connection_refused(self):
        failure = classify(WorkerConnectionRefusedError(port=9222))
        assert failure.cause is FailureCause.CONNECTION_REFUSED
        assert failure.exit_code == ExitCode.RUNTIME_ERROR == 1

    def test_builtin_connection_refused(self):
        assert classify(ConnectionRefusedError(111, "refused")).cause is FailureCause.CONNECTION_REFUSED

    def test_httpx_connect_error(self):
        assert classify(httpx.ConnectError("refused")).cause is FailureCause.CONNECTION_REFUSED

    def test_refused_in_cause_chain(self):
        """A job that wraps the refusal still classifies as connection refused."""
        try:
            try:
                raise ConnectionRefusedError(111, "refused")
            except ConnectionRefusedError as inner:
                raise RuntimeError("gather failed") from inner
        except RuntimeError as outer:
            err = outer
        failure = classify(err)
        assert failure.cause is FailureCause.CONNECTION_REFUSED
        assert failure.error is err

    def test_refused_beats_timeout(self):
        try:
            try:
                raise WorkerConnectionRefusedError()
            except WorkerConnectionRefusedError:
                raise ProtocolTimeoutError()
        except ProtocolTimeoutError as e:
            assert classify(e).cause is FailureCause.CONNECTION_REFUSED

    def test_protocol_timeout(self):
        failure = classify(ProtocolTimeoutError(port=9222, attempts=20))
        assert failure.cause is FailureCause.PROTOCOL_TIMEOUT
        assert failure.exit_code == ExitCode.PROTOCOL_TIMEOUT == 67

    @pytest.mark.parametrize("error", [
        RuntimeError("boom"),
        ValueError("bad"),
        TimeoutError("plain timeout is not a protocol timeout"),
        WorkerExitedError("exited", exit_code=1),
        OSError("no ports"),
    ])
    def test_everything_else_is_runtime(self, error):
        failure = classify(error)
        assert failure.cause is FailureCause.RUNTIME_ERROR
        assert failure.exit_code == 1

    def test_suppressed_refusal_is_runtime(self):
        """`raise ... from None` hides the handled refusal from classification."""
        try:
            try:
                raise ConnectionRefusedError(111, "refused")
            except ConnectionRefusedError:
                raise RuntimeError("gather failed") from None
        except RuntimeError as e:
            err = e
        assert err.__suppress_context__
        assert classify(err).cause is FailureCause.RUNTIME_ERROR

    def test_suppressed_timeout_is_runtime(self):
        try:
            try:
                raise ProtocolTimeoutError(port=9222, attempts=3)
            except ProtocolTimeoutError:
                raise RuntimeError("writer failed") from None
        except RuntimeError as e:
            err = e
        failure = classify(err)
        assert failure.cause is FailureCause.RUNTIME_ERROR
        assert failure.exit_code == 1

    def test_explicit_cause_followed_past_suppression(self):
        try:
            try:
                raise ValueError("unrelated")
            except ValueError:
                raise RuntimeError("gather failed") from WorkerConnectionRefusedError(port=9222)
        except RuntimeError as e:
            err = e
        assert classify(err).cause is FailureCause.CONNECTION_REFUSED

    def test_suppressed_refusal_report_prints_traceback(self):
        try:
            try:
                raise ConnectionRefusedError(111, "refused")
            except ConnectionRefusedError:
                raise RuntimeError("gather failed") from None
        except RuntimeError as e:
            err = e
        out = io.StringIO()
        report_failure(classify(err), out)
        text = out.getvalue()
        assert "Unable to connect" not in text
        assert "Runtime error encountered: gather failed" in text
        assert "Traceback" in text

    def test_message_text_is_not_a_marker(self):
        assert classify(RuntimeError("ECONNREFUSED")).cause is FailureCause.RUNTIME_ERROR

    def test_exit_codes(self):
        assert {c.name: c.value for c in ExitCode} == {
            "SUCCESS": 0,
            "RUNTIME_ERROR": 1,
            "PROTOCOL_TIMEOUT": 67,
            "INTERRUPTED": 130,
        }


class TestReport:
    def test_connection_refused_message(self):
        out = io.StringIO()
        report_failure(classify(WorkerConnectionRefusedError()), out)
        text = out.getvalue()
        assert "Unable to connect to the worker" in text
        assert "--skip-autolaunch" in text

    def test_protocol_timeout_message(self):
        out = io.StringIO()
        report_failure(classify(ProtocolTimeoutError()), out)
        assert "timed out" in out.getvalue()

    def test_runtime_error_includes_traceback(self):
        out = io.StringIO()
        report_failure(classify(_raised(RuntimeError("boom"))), out)
        text = out.getvalue()
        assert "Runtime error encountered: boom" in text
        assert "Traceback" in text

    def test_runtime_error_without_traceback(self):
        out = io.StringIO()
        report_failure(classify(RuntimeError("boom")), out)
        assert "Traceback" not in out.getvalue()

    def test_interrupted_message(self):
        out = io.StringIO()
        report_interrupted(out)
        assert "Interrupted" in out.getvalue()
