# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import os
import sys
from pathlib import Path
from typing import Any

from lantern.config.models import (
    DEFAULT_PORT,
    STDOUT_DESTINATION,
    JobOptions,
    OutputMode,
    RunConfiguration,
)
from lantern.exceptions import LanternError, PluginLoadError

logger = logging.getLogger("lantern")

_ENV_JOB = "LANTERN_JOB"
_ENV_WRITER = "LANTERN_WRITER"


# ── Parser ────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lantern",
        description="Lantern - run audits against one or more URLs in a supervised browser",
    )
    parser.add_argument("urls", nargs="+", metavar="URL", help="Address(es) to audit, in order")

    logging_group = parser.add_argument_group("Logging")
    verbosity = logging_group.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Displays verbose logging")
    verbosity.add_argument(
        "--quiet", action="store_true",
        help="Displays no progress, debug logs or errors",
    )

    cfg = parser.add_argument_group("Configuration")
    cfg.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help="The port to use for the debugging protocol. Use 0 for a random port",
    )
    cfg.add_argument(
        "--skip-autolaunch", action="store_true",
        help="Use an already running worker instead of launching one",
    )
    cfg.add_argument(
        "--select-worker", action="store_true",
        help="Interactively choose the worker when multiple installations are found",
    )
    cfg.add_argument("--config-path", default=None, help="The path to the audit config JSON")
    cfg.add_argument(
        "--data-dir", default=None,
        help="Override runtime data directory (default: ~/.lantern or LANTERN_DATA_DIR)",
    )
    cfg.add_argument(
        "--job", default=None, metavar="MODULE:ATTR",
        help=f"Per-target audit job (default: ${_ENV_JOB})",
    )
    cfg.add_argument(
        "--writer", default=None, metavar="MODULE:ATTR",
        help=f"Result writer (default: ${_ENV_WRITER})",
    )

    job_flags = parser.add_argument_group("Job options")
    job_flags.add_argument("--disable-device-emulation", action="store_true")
    job_flags.add_argument(
        "--disable-cpu-throttling", action=argparse.BooleanOptionalAction, default=True,
    )
    job_flags.add_argument("--disable-network-throttling", action="store_true")
    job_flags.add_argument(
        "--save-assets", action="store_true",
        help="Save the trace contents & screenshots to disk",
    )
    job_flags.add_argument(
        "--save-artifacts", action="store_true",
        help="Save all gathered artifacts to disk",
    )

    output = parser.add_argument_group("Output")
    output.add_argument(
        "--output", choices=[m.value for m in OutputMode], default=OutputMode.PRETTY.value,
        help="Reporter for the results",
    )
    output.add_argument(
        "--output-path", default=STDOUT_DESTINATION,
        help="The file path to output the results (default: stdout)",
    )
    return parser


def log_level_from_args(args: argparse.Namespace) -> str:
    if args.verbose:
        return "verbose"
    if args.quiet:
        return "silent"
    return "info"


def config_from_args(
    args: argparse.Namespace, audit_config: dict[str, Any] | None = None,
) -> RunConfiguration:
    return RunConfiguration(
        addresses=tuple(args.urls),
        port=args.port,
        auto_launch=not args.skip_autolaunch,
        select_worker=args.select_worker,
        output_mode=OutputMode(args.output),
        output_path=args.output_path,
        log_level=log_level_from_args(args),
        audit_config=audit_config,
        job_options=JobOptions(
            disable_device_emulation=args.disable_device_emulation,
            disable_cpu_throttling=args.disable_cpu_throttling,
            disable_network_throttling=args.disable_network_throttling,
            save_assets=args.save_assets,
            save_artifacts=args.save_artifacts,
        ),
    )


# ── Plugins ───────────────────────────────────────────────


def load_plugin(ref: str | None, what: str) -> Any:
    """Import ``module:attr`` and return the attribute."""
    if not ref:
        raise PluginLoadError(f"No {what} configured")
    module_name, sep, attr = ref.partition(":")
    if not sep or not module_name or not attr:
        raise PluginLoadError(f"Invalid {what} {ref!r}; expected MODULE:ATTR")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise PluginLoadError(f"Cannot load {what} {ref!r}: {exc}") from exc
    if not callable(target):
        raise PluginLoadError(f"{what.capitalize()} {ref!r} is not callable")
    return target


# ── Entry point ───────────────────────────────────────────


def cli_main(argv: list[str] | None = None) -> None:
    from dotenv import load_dotenv

    load_dotenv()

    args = build_parser().parse_args(argv)
    if args.data_dir:
        os.environ["LANTERN_DATA_DIR"] = str(Path(args.data_dir).expanduser())

    from lantern.config.models import load_audit_config, load_settings
    from lantern.errors import classify, report_failure, report_interrupted
    from lantern.lifecycle import AuditRun, OutcomeKind
    from lantern.logging_config import setup_logging
    from lantern.paths import get_log_dir
    from lantern.supervisor.worker import preselect_worker

    try:
        settings = load_settings()
        log_dir = get_log_dir() or (Path(settings.log_dir).expanduser() if settings.log_dir else None)
        setup_logging(level=log_level_from_args(args), log_dir=log_dir, json_file=settings.json_log_file)

        audit_config = load_audit_config(args.config_path) if args.config_path else None
        config = config_from_args(args, audit_config)
        job = load_plugin(args.job or os.environ.get(_ENV_JOB), "job")
        writer = load_plugin(args.writer or os.environ.get(_ENV_WRITER), "writer")
        if config.select_worker and config.auto_launch:
            # input() blocks; ask before the loop so SIGINT stays responsive.
            settings = settings.model_copy(
                update={"supervisor": preselect_worker(settings.supervisor)},
            )
    except LanternError as exc:
        failure = classify(exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(failure.exit_code)

    outcome = asyncio.run(
        AuditRun(config, job, writer, settings=settings, log_dir=log_dir).run()
    )

    if outcome.kind is OutcomeKind.INTERRUPTED:
        report_interrupted()
    elif outcome.kind is OutcomeKind.FAILED:
        report_failure(outcome.failure)
    for cleanup_failure in outcome.cleanup_failures:
        print(f"Cleanup failed ({cleanup_failure.name}): {cleanup_failure.error}", file=sys.stderr)

    sys.exit(int(outcome.exit_code))
