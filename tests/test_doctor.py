from __future__ import annotations

import sys
from pathlib import Path

from netharness import doctor
from tests.utils import make_config


def test_check_python_version_ok() -> None:
    assert doctor.check_python_version().status == "ok"


def test_check_command_reports_version() -> None:
    result = doctor.check_command("python", [sys.executable])

    assert result.status == "ok"
    assert result.detail.startswith("Python")


def test_check_command_missing(tmp_path: Path) -> None:
    missing = [str(tmp_path / "cargo")]

    assert doctor.check_command("cargo", missing).status == "error"
    assert doctor.check_command("make", missing, required=False).status == "warn"
    assert doctor.check_command("make", None).status == "warn"


def test_check_hugepages(tmp_path: Path) -> None:
    meminfo = tmp_path / "meminfo"
    meminfo.write_text("MemTotal: 1 kB\nHugePages_Total:    1024\n", encoding="utf-8")
    assert doctor.check_hugepages(meminfo).status == "ok"

    meminfo.write_text("HugePages_Total:       0\n", encoding="utf-8")
    assert doctor.check_hugepages(meminfo).status == "warn"

    assert doctor.check_hugepages(tmp_path / "missing").status == "warn"


def test_check_config_path(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    assert doctor.check_config_path(config).status == "warn"

    config.config_path.parent.mkdir(parents=True, exist_ok=True)
    config.config_path.write_text("catnip: {}\n", encoding="utf-8")
    assert doctor.check_config_path(config).status == "ok"


def test_check_nic(monkeypatch) -> None:
    monkeypatch.setattr(doctor.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(doctor, "probe_hardware", lambda **_: ("MT28800 [ConnectX-5 Ex]",))
    assert doctor.check_nic().status == "ok"

    monkeypatch.setattr(doctor, "probe_hardware", lambda **_: ("I219-LM",))
    assert doctor.check_nic().status == "warn"


def test_run_doctor_lists_all_checks(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(doctor, "check_nic", lambda: doctor.CheckResult("nic", "warn", "skipped"))
    config = make_config(tmp_path, cargo=[sys.executable], make=[sys.executable])

    results = doctor.run_doctor(config)

    assert [result.name for result in results] == [
        "python",
        "cargo",
        "make",
        "nic",
        "prefix",
        "config_path",
        "hugepages",
    ]
    assert results[1].status == "ok"


def test_check_python_version_too_old() -> None:
    result = doctor.check_python_version((3, 9, 18))

    assert result.failed
    assert result.detail == "3.9.18 found; netharness needs 3.10 or newer"
