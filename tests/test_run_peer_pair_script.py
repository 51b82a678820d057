from __future__ import annotations

import importlib.util
import sys
import threading
from pathlib import Path

from netharness.backends.base import BackendName, BackendSpec
from netharness.models import PeerRole, StepStatus, TestResult
from tests.utils import make_config


def _load_script():
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "run_peer_pair.py"
    spec = importlib.util.spec_from_file_location("run_peer_pair", module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    spec.loader.exec_module(module)
    return module


def test_run_pair_starts_server_before_client(tmp_path: Path) -> None:
    module = _load_script()
    config = make_config(tmp_path)
    started: list[PeerRole] = []
    lock = threading.Lock()

    def fake_runner(invocation, _config) -> TestResult:
        with lock:
            started.append(invocation.peer_role)
        return TestResult(
            test_name=invocation.test_name,
            peer_role=invocation.peer_role,
            status=StepStatus.SUCCESS,
            exit_code=0,
            duration_ms=1,
        )

    results = module.run_pair(
        config,
        BackendSpec(BackendName.SOCKET),
        (),
        test_name="tcp_push_pop",
        client_delay=0.1,
        runner=fake_runner,
    )

    assert started == [PeerRole.SERVER, PeerRole.CLIENT]
    assert results[PeerRole.CLIENT].ok
    assert results[PeerRole.SERVER].test_name == "tcp_push_pop"


def test_main_returns_first_failure(tmp_path: Path, monkeypatch) -> None:
    module = _load_script()

    def fake_run_pair(*_args, **_kwargs):
        return {
            PeerRole.SERVER: TestResult("t", PeerRole.SERVER, StepStatus.TIMED_OUT, 124, 1000),
            PeerRole.CLIENT: TestResult("t", PeerRole.CLIENT, StepStatus.FAILURE, 1, 10),
        }

    monkeypatch.setattr(module, "run_pair", fake_run_pair)
    monkeypatch.setattr(module, "ensure_built", lambda *_args: ())
    monkeypatch.setattr(
        sys,
        "argv",
        ["run_peer_pair.py", "--backend", "socket", "--workdir", str(tmp_path)],
    )

    assert module.main() == 124
