"""Unit tests for lantern/runner.py: SequentialRunner."""
# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from lantern.config import OutputMode, RunConfiguration
from lantern.runner import SequentialRunner, filename_prefix, html_report_path


def _config(*addresses: str, mode: OutputMode = OutputMode.JSON, **kw) -> RunConfiguration:
    return RunConfiguration(addresses=addresses, output_mode=mode, **kw)


def _digest(address: str) -> str:
    return hashlib.sha256(address.encode("utf-8")).hexdigest()[:8]


def _echo_writer() -> AsyncMock:
    async def write(results, mode, destination):
        return results
    return AsyncMock(side_effect=write)


# ── Filename prefix ───────────────────────────────────────────────

class TestFilenamePrefix:
    def test_host_only(self):
        assert filename_prefix("https://example.com") == f"example.com-{_digest('https://example.com')}"
        assert filename_prefix("https://example.com/").startswith("example.com-")

    def test_path_and_query(self):
        url = "https://example.com/a/b?x=1"
        assert filename_prefix(url) == f"example.com_a-b-x=1-{_digest(url)}"

    def test_port_kept(self):
        assert filename_prefix("http://localhost:8080/app").startswith("localhost-8080_app-")

    def test_schemeless_address(self):
        assert filename_prefix("example.com").startswith("example.com-")

    def test_deterministic(self):
        url = "https://example.com/path?q=1"
        assert filename_prefix(url) == filename_prefix(url)

    @pytest.mark.parametrize("first,second", [
        ("https://x.test/a/b", "https://x.test/a-b"),
        ("http://x.test/", "https://x.test/"),
        ("https://x.test/a?b", "https://x.test/a/b"),
    ])
    def test_similar_addresses_get_distinct_files(self, first, second):
        assert filename_prefix(first) != filename_prefix(second)
        assert html_report_path(first) != html_report_path(second)

    def test_html_report_path(self, tmp_path):
        name = f"example.com-{_digest('https://example.com')}.report.html"
        assert html_report_path("https://example.com", tmp_path) == tmp_path / name
        assert html_report_path("https://example.com") == Path(name)


# ── Sequencing ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_each_address_once_in_order():
    addresses = [f"https://site{i}.test" for i in range(5)]
    job = AsyncMock(side_effect=lambda address, flags, config: {"url": address})
    writer = _echo_writer()

    report = await SequentialRunner(_config(*addresses), job, writer).run()

    assert [c.args[0] for c in job.call_args_list] == addresses
    assert [c.args[0]["url"] for c in writer.call_args_list] == addresses
    assert report.completed == addresses


@pytest.mark.asyncio
async def test_no_overlap_between_addresses():
    running = 0
    max_running = 0

    async def job(address, flags, config):
        nonlocal running, max_running
        running += 1
        max_running = max(max_running, running)
        await asyncio.sleep(0.01)
        running -= 1
        return {"url": address}

    await SequentialRunner(_config("https://a.test", "https://b.test", "https://c.test"), job, _echo_writer()).run()
    assert max_running == 1


@pytest.mark.asyncio
async def test_job_receives_flags_and_audit_config():
    config = _config("https://a.test", audit_config={"passes": []})
    job = AsyncMock(return_value={})

    await SequentialRunner(config, job, _echo_writer()).run()

    job.assert_awaited_once_with("https://a.test", config, {"passes": []})


@pytest.mark.asyncio
async def test_failure_stops_remaining_addresses():
    addresses = ["https://a.test", "https://b.test", "https://c.test"]

    async def job(address, flags, config):
        if address == "https://b.test":
            raise RuntimeError("gather failed")
        return {"url": address}

    spy = AsyncMock(side_effect=job)
    runner = SequentialRunner(_config(*addresses), spy, _echo_writer())

    with pytest.raises(RuntimeError, match="gather failed"):
        await runner.run()

    assert [c.args[0] for c in spy.call_args_list] == addresses[:2]
    assert runner.report.completed == ["https://a.test"]


@pytest.mark.asyncio
async def test_writer_failure_propagates_unchanged():
    error = OSError("disk full")
    writer = AsyncMock(side_effect=error)
    job = AsyncMock(return_value={})

    with pytest.raises(OSError) as exc_info:
        await SequentialRunner(_config("https://a.test", "https://b.test"), job, writer).run()

    assert exc_info.value is error
    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_empty_address_list():
    job = AsyncMock()
    writer = AsyncMock()

    report = await SequentialRunner(_config(), job, writer).run()

    job.assert_not_called()
    writer.assert_not_called()
    assert report.completed == []


# ── Output modes ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_pretty_mode_writes_secondary_html(tmp_path):
    config = _config("https://example.com", mode=OutputMode.PRETTY, output_path="stdout")

    async def write(results, mode, destination):
        return {"transformed": True, **results}

    writer = AsyncMock(side_effect=write)
    job = AsyncMock(return_value={"score": 1})

    report = await SequentialRunner(config, job, writer, report_dir=tmp_path).run()

    assert writer.await_count == 2
    first, second = writer.call_args_list
    assert first.args == ({"score": 1}, OutputMode.PRETTY, "stdout")
    assert second.args == (
        {"transformed": True, "score": 1},
        OutputMode.HTML,
        str(html_report_path("https://example.com", tmp_path)),
    )
    assert report.html_reports == [html_report_path("https://example.com", tmp_path)]


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [OutputMode.JSON, OutputMode.HTML])
async def test_other_modes_write_once(mode):
    writer = _echo_writer()
    config = _config("https://example.com", mode=mode, output_path="out.file")

    report = await SequentialRunner(config, AsyncMock(return_value={}), writer).run()

    writer.assert_awaited_once_with({}, mode, "out.file")
    assert report.html_reports == []


# ── Stop requests ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stop_request_prevents_next_address():
    stop = {"requested": False}

    async def job(address, flags, config):
        stop["requested"] = True
        return {}

    spy = AsyncMock(side_effect=job)
    runner = SequentialRunner(
        _config("https://a.test", "https://b.test"),
        spy,
        _echo_writer(),
        stop_requested=lambda: stop["requested"],
    )

    report = await runner.run()

    spy.assert_awaited_once()
    assert report.completed == ["https://a.test"]


@pytest.mark.asyncio
async def test_runner_is_not_restartable():
    job = AsyncMock(return_value={})
    runner = SequentialRunner(_config("https://a.test"), job, _echo_writer())

    await runner.run()
    await runner.run()

    job.assert_awaited_once()
