from __future__ import annotations

import os
import shutil
import textwrap
from pathlib import Path

import pytest

from netharness import pipeline
from netharness.config import load_config
from netharness.models import PeerRole

pytestmark = pytest.mark.integration

REAL_HOME = Path.home()

CARGO_TOML = textwrap.dedent(
    """
    [package]
    name = "harness-probe"
    version = "0.1.0"
    edition = "2021"

    [features]
    catnap-libos = []
    catnip-libos = []
    mlx4 = []
    mlx5 = []
    """
)

LIB_RS = textwrap.dedent(
    """
    #[cfg(test)]
    mod tests {
        #[test]
        fn udp_push_pop() {
            let peer = std::env::var("PEER").unwrap();
            assert!(peer == "client" || peer == "server");
        }

        #[test]
        fn hangs() {
            std::thread::sleep(std::time::Duration::from_secs(120));
        }
    }
    """
)


def _cargo() -> str:
    cargo = shutil.which("cargo") or str(REAL_HOME / ".cargo" / "bin" / "cargo")
    if not Path(cargo).exists():
        pytest.skip("cargo not available")
    return cargo


def _crate(tmp_path: Path) -> Path:
    crate = tmp_path / "crate"
    (crate / "src").mkdir(parents=True)
    (crate / "Cargo.toml").write_text(CARGO_TOML, encoding="utf-8")
    (crate / "src" / "lib.rs").write_text(LIB_RS, encoding="utf-8")
    return crate


def _environ() -> dict[str, str]:
    env = dict(os.environ)
    env.setdefault("CARGO_HOME", str(REAL_HOME / ".cargo"))
    env.setdefault("RUSTUP_HOME", str(REAL_HOME / ".rustup"))
    return env


def test_socket_session_with_real_cargo(tmp_path: Path) -> None:
    crate = _crate(tmp_path)
    config = load_config(
        environ={"HOME": str(tmp_path), "CARGO": _cargo(), "BUILD": ""},
        workdir=crate,
    )

    report = pipeline.run_session(
        config,
        ["socket"],
        tests=["udp_push_pop"],
        peer_role=PeerRole.CLIENT,
        environ=_environ(),
    )

    assert report.exit_code == 0, report.errors


def test_real_cargo_test_timeout(tmp_path: Path) -> None:
    crate = _crate(tmp_path)
    config = load_config(
        environ={"HOME": str(tmp_path), "CARGO": _cargo(), "BUILD": ""},
        workdir=crate,
    )

    report = pipeline.run_session(
        config,
        ["socket"],
        tests=["hangs"],
        timeout=20,
        environ=_environ(),
    )

    assert report.exit_code == 124
