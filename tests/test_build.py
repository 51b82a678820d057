from __future__ import annotations

import os
from pathlib import Path

import pytest

from netharness import build as build_module
from netharness.backends.base import BackendName, BackendSpec, BuildProfile, DriverVariant
from netharness.build import BuildTarget, build, resolve_features, search_path_environment
from netharness.errors import BuildError, ConfigurationError
from netharness.models import DependencyArtifact, StepStatus
from tests.utils import child_env, make_config, read_records

SOCKET = BackendSpec(BackendName.SOCKET)
KERNEL_BYPASS = BackendSpec(BackendName.KERNEL_BYPASS, DriverVariant.DRIVER_A)


def _artifact(tmp_path: Path, name: str) -> DependencyArtifact:
    return DependencyArtifact(
        name=name,
        install_path=tmp_path / name,
        library_paths=(tmp_path / name / "lib",),
        include_paths=(tmp_path / name / "include",),
    )


def test_resolve_features_merges_extra() -> None:
    assert resolve_features(KERNEL_BYPASS, ["profiler", "mlx5"]) == (
        "catnip-libos",
        "mlx5",
        "profiler",
    )


def test_resolve_features_rejects_both_drivers() -> None:
    with pytest.raises(ConfigurationError, match="driver"):
        resolve_features(KERNEL_BYPASS, ["mlx4"])


def test_resolve_features_rejects_second_backend() -> None:
    with pytest.raises(ConfigurationError, match="backend feature"):
        resolve_features(SOCKET, ["catnip-libos"])


def test_resolve_features_rejects_driver_on_socket() -> None:
    with pytest.raises(ConfigurationError, match="driver features"):
        resolve_features(SOCKET, ["mlx5"])


def test_search_path_environment_appends_in_order(tmp_path: Path) -> None:
    deps = [_artifact(tmp_path, "dpdk"), _artifact(tmp_path, "mtcp")]
    base = {"LD_LIBRARY_PATH": "/usr/lib", "RUSTFLAGS": "-C opt-level=3"}

    env = search_path_environment(deps, base)

    assert env["LD_LIBRARY_PATH"].split(os.pathsep) == [
        "/usr/lib",
        str(tmp_path / "dpdk" / "lib"),
        str(tmp_path / "mtcp" / "lib"),
    ]
    assert env["LIBRARY_PATH"].split(os.pathsep) == [
        str(tmp_path / "dpdk" / "lib"),
        str(tmp_path / "mtcp" / "lib"),
    ]
    assert env["RUSTFLAGS"] == (
        f"-C opt-level=3 -L native={tmp_path / 'dpdk' / 'lib'} "
        f"-L native={tmp_path / 'mtcp' / 'lib'}"
    )
    assert env["C_INCLUDE_PATH"].split(os.pathsep)[0] == str(tmp_path / "dpdk" / "include")
    assert base == {"LD_LIBRARY_PATH": "/usr/lib", "RUSTFLAGS": "-C opt-level=3"}


def test_build_library_success(tmp_path: Path) -> None:
    record = tmp_path / "cargo.jsonl"
    config = make_config(tmp_path)
    deps = [_artifact(tmp_path, "dpdk")]

    result = build(
        KERNEL_BYPASS,
        deps,
        BuildTarget.LIBRARY,
        config,
        environ=child_env(FAKE_CARGO_RECORD=str(record)),
    )

    assert result.status is StepStatus.SUCCESS
    assert result.exit_code == 0
    assert "cargo build output" in result.stdout
    calls = read_records(record)
    assert calls[0]["argv"] == ["build", "--features=catnip-libos", "--features=mlx5", "--release"]
    assert str(tmp_path / "dpdk" / "lib") in calls[0]["env"]["LIBRARY_PATH"]


def test_build_tests_debug_socket(tmp_path: Path) -> None:
    record = tmp_path / "cargo.jsonl"
    config = make_config(tmp_path)
    spec = BackendSpec(BackendName.SOCKET, build_profile=BuildProfile.DEBUG)

    result = build(
        spec, [], BuildTarget.TESTS, config, environ=child_env(FAKE_CARGO_RECORD=str(record))
    )

    assert result.ok
    assert result.stage == "tests"
    assert read_records(record)[0]["argv"] == ["build", "--tests", "--features=catnap-libos"]


def test_build_failure_keeps_exit_code(tmp_path: Path) -> None:
    config = make_config(tmp_path)

    result = build(
        SOCKET, [], BuildTarget.LIBRARY, config, environ=child_env(FAKE_CARGO_EXIT_BUILD="101")
    )

    assert result.status is StepStatus.FAILURE
    assert result.exit_code == 101
    assert "cargo build diagnostics" in result.stderr
    with pytest.raises(BuildError) as excinfo:
        result.raise_for_status()
    assert excinfo.value.exit_code == 101


def test_build_missing_cargo_reports_failure(tmp_path: Path) -> None:
    config = make_config(tmp_path, cargo=[str(tmp_path / "no-such-cargo")])

    result = build(SOCKET, [], BuildTarget.LIBRARY, config)

    assert result.status is StepStatus.FAILURE
    assert result.exit_code == 127


def test_build_rejects_invalid_features_before_spawning(tmp_path: Path, monkeypatch) -> None:
    config = make_config(tmp_path, cargo_features="mlx4")

    def _fail(*_args, **_kwargs):
        raise AssertionError("cargo must not be spawned")

    monkeypatch.setattr(build_module, "run_command", _fail)

    with pytest.raises(ConfigurationError):
        build(KERNEL_BYPASS, [], BuildTarget.LIBRARY, config)


def test_build_rejects_driver_feature_hidden_in_cargo_flags(
    tmp_path: Path, monkeypatch
) -> None:
    config = make_config(tmp_path, cargo_flags="--offline --features=mlx4")

    assert config.cargo_flags == ("--offline",)
    assert config.cargo_features == ("mlx4",)

    def _fail(*_args, **_kwargs):
        raise AssertionError("cargo must not be spawned")

    monkeypatch.setattr(build_module, "run_command", _fail)

    with pytest.raises(ConfigurationError):
        build(KERNEL_BYPASS, [], BuildTarget.LIBRARY, config)


def test_build_passes_cargo_flag_features_once(tmp_path: Path) -> None:
    record = tmp_path / "cargo.jsonl"
    config = make_config(tmp_path, cargo_flags=["-F", "mlx5,catnip-libos", "--locked"])

    result = build(
        KERNEL_BYPASS,
        [],
        BuildTarget.LIBRARY,
        config,
        environ=child_env(FAKE_CARGO_RECORD=str(record)),
    )

    assert result.ok
    assert read_records(record)[0]["argv"] == [
        "build",
        "--features=catnip-libos",
        "--features=mlx5",
        "--release",
        "--locked",
    ]
