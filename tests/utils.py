from __future__ import annotations

import json
import os
import sys
import textwrap
from pathlib import Path
from typing import Any, Mapping

from netharness.config import HarnessConfig, load_config

# Fake cargo: records argv and selected env vars to a JSON-lines file, then
# behaves according to FAKE_CARGO_* variables.
FAKE_CARGO = textwrap.dedent(
    """
    import json
    import os
    import sys
    import time

    record = os.environ.get("FAKE_CARGO_RECORD")
    if record:
        with open(record, "a", encoding="utf-8") as handle:
            handle.write(json.dumps({
                "argv": sys.argv[1:],
                "env": {key: os.environ.get(key) for key in (
                    "PEER", "TEST", "MTU", "MSS", "CONFIG_PATH", "LD_LIBRARY_PATH",
                    "LIBRARY_PATH", "RUSTFLAGS", "C_INCLUDE_PATH", "PKG_CONFIG_PATH",
                )},
            }) + "\\n")
    sub = sys.argv[1] if len(sys.argv) > 1 else ""
    counter = os.environ.get("FAKE_CARGO_COUNTER")
    if counter and sub == "test":
        count = int(open(counter).read()) if os.path.exists(counter) else 0
        with open(counter, "w") as handle:
            handle.write(str(count + 1))
        fail_until = int(os.environ.get("FAKE_CARGO_FAIL_UNTIL", "0"))
        if count < fail_until:
            sys.exit(int(os.environ.get("FAKE_CARGO_TEST_EXIT", "1")))
        sys.exit(0)
    sleep = float(os.environ.get("FAKE_CARGO_SLEEP_" + sub.upper(), "0"))
    if sleep:
        time.sleep(sleep)
    print(f"cargo {sub} output")
    print(f"cargo {sub} diagnostics", file=sys.stderr)
    sys.exit(int(os.environ.get("FAKE_CARGO_EXIT_" + sub.upper(), "0")))
    """
)

# Fake make/configure: records argv and cwd, fails when FAKE_MAKE_FAIL matches
# any argument.
FAKE_MAKE = textwrap.dedent(
    """
    import json
    import os
    import sys

    record = os.environ.get("FAKE_MAKE_RECORD")
    if record:
        with open(record, "a", encoding="utf-8") as handle:
            handle.write(json.dumps({"argv": sys.argv[1:], "cwd": os.getcwd()}) + "\\n")
    fail = os.environ.get("FAKE_MAKE_FAIL")
    if fail and fail in sys.argv[1:]:
        print("make: *** error", file=sys.stderr)
        sys.exit(2)
    if "install" in sys.argv[1:]:
        for arg in sys.argv[1:]:
            if arg.startswith("DESTDIR="):
                dest = arg.split("=", 1)[1]
                os.makedirs(os.path.join(dest, "lib"), exist_ok=True)
                os.makedirs(os.path.join(dest, "include", "dpdk"), exist_ok=True)
    print("ok")
    """
)

# Fake mTCP ./configure script, run from the mTCP source directory.
FAKE_CONFIGURE = textwrap.dedent(
    """
    import json
    import os
    import sys

    record = os.environ.get("FAKE_MAKE_RECORD")
    if record:
        with open(record, "a", encoding="utf-8") as handle:
            handle.write(json.dumps({"argv": ["./configure", *sys.argv[1:]], "cwd": os.getcwd()}) + "\\n")
    if os.environ.get("FAKE_MAKE_FAIL") == "configure":
        sys.exit(3)
    """
)


def write_script(path: Path, body: str) -> list[str]:
    """Write a Python stand-in for a tool and return the command that runs it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    return [sys.executable, str(path)]


def fake_cargo(tmp_path: Path) -> list[str]:
    return write_script(tmp_path / "tools" / "fake_cargo.py", FAKE_CARGO)


def fake_make(tmp_path: Path) -> list[str]:
    return write_script(tmp_path / "tools" / "fake_make.py", FAKE_MAKE)


def native_sources(tmp_path: Path) -> tuple[Path, Path]:
    """Create fake mTCP and DPDK source trees and return (mtcp, dpdk) dirs."""
    mtcp_dir = tmp_path / "crate" / "submodules" / "mtcp"
    dpdk_dir = mtcp_dir / "dpdk-17.08"
    dpdk_dir.mkdir(parents=True, exist_ok=True)
    for name in ("lib", "include"):
        (mtcp_dir / "mtcp" / name).mkdir(parents=True, exist_ok=True)
    (mtcp_dir / "mtcp" / "lib" / "libmtcp.a").write_text("archive", encoding="utf-8")
    configure = mtcp_dir / "configure"
    configure.write_text(f"#!{sys.executable}\n{FAKE_CONFIGURE}", encoding="utf-8")
    configure.chmod(0o755)
    return mtcp_dir, dpdk_dir


def make_config(
    tmp_path: Path,
    *,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> HarnessConfig:
    """Return a HarnessConfig rooted in tmp_path with fake cargo and make."""
    workdir = tmp_path / "crate"
    workdir.mkdir(parents=True, exist_ok=True)
    base: dict[str, Any] = {
        "cargo": fake_cargo(tmp_path),
        "make": fake_make(tmp_path),
    }
    base.update(overrides)
    env = {"HOME": str(tmp_path / "home"), **(environ or {})}
    return load_config(environ=env, workdir=workdir, overrides=base)


def read_records(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def child_env(**values: str) -> dict[str, str]:
    """Return os.environ extended with string values for fake tool control."""
    env = dict(os.environ)
    env.update(values)
    return env
