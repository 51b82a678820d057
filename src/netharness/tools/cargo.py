"""Cargo command lines for library builds, test runs, and cleanup."""

from __future__ import annotations

from typing import Iterable, Sequence

from netharness.backends.base import BuildProfile


def _feature_args(features: Iterable[str]) -> list[str]:
    return [f"--features={feature}" for feature in features]


def build_command(
    cargo: Sequence[str],
    features: Iterable[str],
    profile: BuildProfile,
    *,
    tests: bool = False,
    cargo_flags: Sequence[str] = (),
) -> list[str]:
    """Return the ``cargo build`` command for the library or its tests."""
    command = [*cargo, "build"]
    if tests:
        command.append("--tests")
    command.extend(_feature_args(features))
    command.extend(profile.cargo_args())
    command.extend(cargo_flags)
    return command


def run_test_command(
    cargo: Sequence[str],
    features: Iterable[str],
    profile: BuildProfile,
    test_name: str,
    *,
    cargo_flags: Sequence[str] = (),
) -> list[str]:
    """Return the ``cargo test`` command that runs one named test."""
    return [
        *cargo,
        "test",
        *cargo_flags,
        *_feature_args(features),
        *profile.cargo_args(),
        "--",
        "--nocapture",
        test_name,
    ]


def clean_command(cargo: Sequence[str]) -> list[str]:
    """Return the ``cargo clean`` command."""
    return [*cargo, "clean"]
