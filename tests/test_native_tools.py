from __future__ import annotations

import sys
from pathlib import Path

import pytest

from netharness.backends.base import BuildProfile, DriverVariant
from netharness.errors import DependencyBuildError
from netharness.tools import cargo
from netharness.tools.base import StageHandle, run_step
from netharness.tools.dpdk import DEBUG_CFLAGS, DpdkStack
from netharness.tools.mtcp import MtcpStack


def test_dpdk_build_args_include_driver_and_debug_flags(tmp_path: Path) -> None:
    stack = DpdkStack(
        source_dir=tmp_path,
        driver_variant=DriverVariant.DRIVER_B,
        log_dir=tmp_path / "logs",
        build_profile=BuildProfile.DEBUG,
    )
    handle = StageHandle("packet-library", tmp_path, "x86_64-native-linuxapp-gcc")

    assert stack.build_args(handle) == [
        "T=x86_64-native-linuxapp-gcc",
        "CONFIG_RTE_LIBRTE_MLX4_PMD=y",
        DEBUG_CFLAGS,
    ]


def test_dpdk_configure_creates_target_dirs(tmp_path: Path) -> None:
    stack = DpdkStack(
        source_dir=tmp_path / "dpdk",
        driver_variant=DriverVariant.DRIVER_A,
        log_dir=tmp_path / "logs",
        make=(sys.executable, "-c", "pass"),
    )

    handle = stack.configure("x86_64-native-linuxapp-gcc")

    assert handle.target_triple == "x86_64-native-linuxapp-gcc"
    assert (tmp_path / "dpdk" / "x86_64-native-linuxapp-gcc" / "include").is_dir()
    assert (tmp_path / "dpdk" / "x86_64-native-linuxapp-gcc" / "lib").is_dir()


def test_mtcp_install_requires_build_outputs(tmp_path: Path) -> None:
    stack = MtcpStack(
        source_dir=tmp_path / "mtcp",
        dpdk_install_path=tmp_path / "dpdk",
        include_root=tmp_path,
        log_dir=tmp_path / "logs",
    )
    handle = StageHandle("tcp-stack", tmp_path / "mtcp", "t")

    with pytest.raises(DependencyBuildError) as excinfo:
        stack.install(handle, tmp_path / "dest")

    assert excinfo.value.step == "install"
    assert "not found" in excinfo.value.output


def test_run_step_writes_logs(tmp_path: Path) -> None:
    result = run_step(
        "packet-library",
        "build",
        [sys.executable, "-c", "print('compiled')"],
        log_dir=tmp_path,
    )

    assert result.returncode == 0
    log = tmp_path / "packet-library.build.stdout.log"
    assert log.read_text(encoding="utf-8").strip() == "compiled"


def test_run_step_raises_with_output_tail(tmp_path: Path) -> None:
    with pytest.raises(DependencyBuildError) as excinfo:
        run_step(
            "tcp-stack",
            "configure",
            [sys.executable, "-c", "import sys; print('no dpdk', file=sys.stderr); sys.exit(4)"],
            log_dir=tmp_path,
        )

    assert excinfo.value.exit_code == 4
    assert "no dpdk" in excinfo.value.output
    assert "tcp-stack" in str(excinfo.value)


def test_cargo_build_command() -> None:
    command = cargo.build_command(
        ["cargo"],
        ["catnip-libos", "mlx5"],
        BuildProfile.RELEASE,
        tests=True,
        cargo_flags=["--offline"],
    )

    assert command == [
        "cargo",
        "build",
        "--tests",
        "--features=catnip-libos",
        "--features=mlx5",
        "--release",
        "--offline",
    ]


def test_cargo_run_test_command_debug() -> None:
    command = cargo.run_test_command(
        ["cargo"], ["catnap-libos"], BuildProfile.DEBUG, "tcp_connect"
    )

    assert command == [
        "cargo",
        "test",
        "--features=catnap-libos",
        "--",
        "--nocapture",
        "tcp_connect",
    ]


def test_cargo_clean_command() -> None:
    assert cargo.clean_command(["/opt/cargo"]) == ["/opt/cargo", "clean"]
