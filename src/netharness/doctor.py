"""Environment checks for building and running the networking library."""

from __future__ import annotations

import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from netharness.backends.selector import HIGH_PERFORMANCE_NIC_PATTERN, probe_hardware
from netharness.config import HarnessConfig
from netharness.subprocess_utils import run_command

MIN_PYTHON = (3, 10)
MEMINFO_PATH = Path("/proc/meminfo")
COMMAND_TIMEOUT_SECONDS = 15.0


OK = "ok"
WARN = "warn"
ERROR = "error"


@dataclass(frozen=True)
class CheckResult:
    """One row of doctor output: ``ok``, ``warn`` or ``error`` plus a detail line."""

    name: str
    status: str
    detail: str

    @property
    def failed(self) -> bool:
        return self.status == ERROR


def _status(name: str, status: str, detail: str) -> CheckResult:
    return CheckResult(name=name, status=status, detail=detail)


def check_python_version(version: Sequence[int] | None = None) -> CheckResult:
    current = tuple(sys.version_info[:3] if version is None else version)
    label = ".".join(str(part) for part in current)
    if current[:2] < MIN_PYTHON:
        required = ".".join(str(part) for part in MIN_PYTHON)
        return _status("python", ERROR, f"{label} found; netharness needs {required} or newer")
    return _status("python", OK, label)


def check_command(
    name: str, command: Sequence[str] | None, *, required: bool = True
) -> CheckResult:
    """Probe an external command for availability and a ``--version`` response."""
    if not command:
        return _status(name, WARN, "not configured")
    binary = command[0]
    if not (Path(binary).exists() or shutil.which(binary)):
        return _status(name, ERROR if required else WARN, f"command not found: {binary}")
    result = run_command([*command, "--version"], timeout=COMMAND_TIMEOUT_SECONDS)
    if result.returncode == 0:
        first_line = result.stdout.strip().splitlines()[0] if result.stdout.strip() else "ok"
        return _status(name, OK, first_line)
    return _status(name, WARN, f"non-zero exit: {result.returncode}")


def check_prefix(config: HarnessConfig) -> CheckResult:
    """Report whether pkg-config and library directories were found under PREFIX."""
    missing = [
        label
        for label, value in (
            ("pkg-config dir", config.pkg_config_path),
            ("library dir", config.ld_library_path),
        )
        if not value
    ]
    if missing:
        return _status(
            "prefix",
            WARN,
            f"no {' or '.join(missing)} under {config.prefix / 'lib'}",
        )
    return _status("prefix", OK, str(config.prefix))


def check_config_path(config: HarnessConfig) -> CheckResult:
    """Verify the backend runtime configuration file exists."""
    if config.config_path.is_file():
        return _status("config_path", OK, str(config.config_path))
    return _status("config_path", WARN, f"missing: {config.config_path}")


def check_hugepages(meminfo: Path = MEMINFO_PATH) -> CheckResult:
    """Report reserved hugepages, which the kernel-bypass backend needs."""
    try:
        lines = meminfo.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        return _status("hugepages", WARN, f"unable to read {meminfo}: {exc}")
    for line in lines:
        if line.startswith("HugePages_Total:"):
            value = line.split(":", 1)[1].strip()
            if not value.isdigit():
                return _status("hugepages", WARN, f"unexpected HugePages_Total: {value}")
            total = int(value)
            if total > 0:
                return _status("hugepages", OK, f"{total} reserved")
            return _status("hugepages", WARN, "no hugepages reserved")
    return _status("hugepages", WARN, "HugePages_Total not reported")


def check_nic(lspci: str = "lspci") -> CheckResult:
    """Report whether a NIC supported by the high-performance driver is present."""
    if shutil.which(lspci) is None:
        return _status("nic", WARN, f"{lspci} not found; driver will default to mlx4")
    devices = probe_hardware(lspci=lspci)
    for device in devices:
        if HIGH_PERFORMANCE_NIC_PATTERN.search(device):
            return _status("nic", OK, device)
    return _status("nic", WARN, "no ConnectX-4/5 adapter found; driver will default to mlx4")


def run_doctor(config: HarnessConfig) -> list[CheckResult]:
    """Run all environment checks and return the aggregated results."""
    return [
        check_python_version(),
        check_command("cargo", config.cargo),
        check_command("make", config.make, required=False),
        check_nic(),
        check_prefix(config),
        check_config_path(config),
        check_hugepages(),
    ]
