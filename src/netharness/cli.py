"""Command-line interface for netharness."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from netharness import __version__
from netharness.build import BuildTarget
from netharness.clean import clean_build, format_clean_summary
from netharness.config import HarnessConfig, load_config
from netharness.dependencies import ensure_built
from netharness.doctor import run_doctor
from netharness.errors import ConfigurationError, DependencyBuildError, HarnessError
from netharness.logging_utils import LogOptions, configure_logging, log_context
from netharness.models import parse_peer_role
from netharness.pipeline import SessionReport, resolve_backends, run_session

LOGGER = logging.getLogger("netharness.cli")

TARGET_CHOICES = ("library", "tests", "all")


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """Register options shared by every command that reads the configuration."""
    parser.add_argument(
        "--backend",
        action="append",
        help="Backend to use (socket/catnap, kernel-bypass/catnip, or 'all'). Repeatable.",
    )
    parser.add_argument(
        "--driver",
        help="Driver variant for the kernel-bypass backend (mlx5 or mlx4); skips probing.",
    )
    parser.add_argument(
        "--profile",
        choices=("release", "debug"),
        help="Build profile (overrides BUILD).",
    )
    parser.add_argument(
        "--workdir",
        help="Crate root containing Cargo.toml (defaults to the current directory).",
    )


def _add_test_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--test",
        action="append",
        help="Test name to run (repeatable; defaults to TEST).",
    )
    parser.add_argument(
        "--peer",
        choices=("client", "server"),
        help="Peer role of this process (overrides PEER).",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        help="Per-test wall-clock timeout in seconds (overrides TIMEOUT).",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Re-run a failed test up to N times; timeouts are never retried.",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop the session at the first failing step.",
    )


def _add_resolve_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the resolve subcommand."""
    resolve = subparsers.add_parser("resolve", help="Print the resolved backend selection.")
    _add_config_arguments(resolve)


def _add_deps_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the deps subcommand."""
    deps = subparsers.add_parser("deps", help="Build native dependencies of a backend.")
    _add_config_arguments(deps)


def _add_build_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the build subcommand."""
    build = subparsers.add_parser("build", help="Compile the library and/or its tests.")
    _add_config_arguments(build)
    build.add_argument(
        "--target",
        choices=TARGET_CHOICES,
        default="library",
        help="What to compile.",
    )
    build.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop at the first failing backend.",
    )


def _add_test_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the test subcommand."""
    test = subparsers.add_parser("test", help="Build the tests and run named tests.")
    _add_config_arguments(test)
    _add_test_arguments(test)


def _add_run_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    run = subparsers.add_parser(
        "run", help="Full session: dependencies, library, tests build, and tests."
    )
    _add_config_arguments(run)
    _add_test_arguments(run)


def _add_doctor_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the doctor subcommand."""
    doctor = subparsers.add_parser("doctor", help="Check toolchain, hardware, and environment.")
    doctor.add_argument("--workdir", help="Crate root (defaults to the current directory).")


def _add_clean_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the clean subcommand."""
    clean = subparsers.add_parser("clean", help="Remove build outputs.")
    clean.add_argument("--workdir", help="Crate root (defaults to the current directory).")
    clean.add_argument(
        "--deps",
        action="store_true",
        help="Also remove the installed native dependencies.",
    )
    clean.add_argument(
        "--reports",
        action="store_true",
        help="Also remove session reports and step logs.",
    )
    clean.add_argument(
        "--confirm",
        action="store_true",
        help="Actually delete (default is a dry run).",
    )


def _load(args: argparse.Namespace) -> HarnessConfig:
    overrides: dict[str, Any] = {
        "driver": getattr(args, "driver", None),
        "profile": getattr(args, "profile", None),
        "peer": getattr(args, "peer", None),
    }
    workdir = getattr(args, "workdir", None)
    return load_config(
        config_file=Path(args.config) if args.config else None,
        workdir=Path(workdir).resolve() if workdir else None,
        overrides=overrides,
    )


def _targets(value: str) -> tuple[BuildTarget, ...]:
    if value == "all":
        return (BuildTarget.LIBRARY, BuildTarget.TESTS)
    return (BuildTarget(value),)


def _session_exit(report: SessionReport) -> int:
    summary = report.as_dict()["summary"]
    LOGGER.info(
        "Session finished: %s step(s), %s succeeded, %s failed, %s timed out, %s skipped.",
        summary["total"],
        summary["succeeded"],
        summary["failed"],
        summary["timed_out"],
        summary["skipped"],
    )
    for error in report.errors:
        LOGGER.error("%s", error)
    return report.exit_code


def _run_command(args: argparse.Namespace) -> int:
    if args.command == "version":
        print(__version__)
        return 0
    config = _load(args)
    if args.command == "resolve":
        specs = resolve_backends(config, args.backend or ())
        print(json.dumps([spec.as_dict() for spec in specs], indent=2))
        return 0
    if args.command == "deps":
        for spec in resolve_backends(config, args.backend or ()):
            try:
                artifacts = ensure_built(spec, config)
            except DependencyBuildError as exc:
                LOGGER.error("%s", exc, extra=log_context(spec.label, exc.stage))
                if exc.output:
                    LOGGER.error("%s", exc.output, extra=log_context(spec.label))
                return exc.exit_code
            payload = [artifact.as_dict() for artifact in artifacts]
            print(json.dumps({"backend": spec.as_dict(), "artifacts": payload}, indent=2))
        return 0
    if args.command == "build":
        report = run_session(
            config,
            args.backend or (),
            targets=_targets(args.target),
            fail_fast=args.fail_fast,
        )
        return _session_exit(report)
    if args.command in ("test", "run"):
        if args.retries < 0:
            raise ConfigurationError(f"--retries must be >= 0 (got {args.retries}).")
        targets = (
            (BuildTarget.TESTS,)
            if args.command == "test"
            else (BuildTarget.LIBRARY, BuildTarget.TESTS)
        )
        report = run_session(
            config,
            args.backend or (),
            targets=targets,
            tests=args.test or [config.test],
            peer_role=parse_peer_role(args.peer) if args.peer else None,
            fail_fast=args.fail_fast,
            timeout=args.timeout,
            retries=args.retries,
        )
        return _session_exit(report)
    if args.command == "doctor":
        results = run_doctor(config)
        for result in results:
            LOGGER.info("%s: %s - %s", result.name, result.status, result.detail)
        if any(result.failed for result in results):
            return 1
        return 0
    if args.command == "clean":
        include = ["target", "cargo-lock"]
        if args.deps:
            include.append("deps")
        if args.reports:
            include.append("reports")
        report = clean_build(config, include=include, dry_run=not args.confirm)
        for line in format_clean_summary(report):
            LOGGER.info("%s", line)
        return 0
    raise ConfigurationError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Run the CLI entrypoint and return an exit code."""
    parser = argparse.ArgumentParser(
        prog="netharness",
        description="Build and test harness for a multi-backend networking library",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeatable).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce log output to warnings and errors.",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON on stderr.",
    )
    parser.add_argument(
        "--log-file",
        help="Optional path for JSON log output.",
    )
    parser.add_argument(
        "--config",
        help="JSON config file (defaults to NETHARNESS_CONFIG).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("version", help="Print the harness version.")
    _add_resolve_parser(subparsers)
    _add_deps_parser(subparsers)
    _add_build_parser(subparsers)
    _add_test_parser(subparsers)
    _add_run_parser(subparsers)
    _add_doctor_parser(subparsers)
    _add_clean_parser(subparsers)

    args = parser.parse_args(argv)
    log_file_value = getattr(args, "log_file", None)
    log_options = LogOptions(
        verbose=getattr(args, "verbose", 0) or 0,
        quiet=bool(getattr(args, "quiet", False)),
        log_file=Path(log_file_value) if log_file_value else None,
        json_console=bool(getattr(args, "log_json", False)),
    )
    configure_logging(log_options)

    try:
        return _run_command(args)
    except ConfigurationError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return exc.exit_code
    except HarnessError as exc:
        LOGGER.error("%s", exc, extra=log_context(stage=exc.stage))
        return exc.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
