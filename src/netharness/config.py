"""Harness configuration resolved once from defaults, a config file, and the environment.

Resolution order, lowest to highest precedence: built-in defaults, the JSON
config file (``--config`` or ``NETHARNESS_CONFIG``), environment variables, and
explicit overrides (CLI flags). The result is a frozen ``HarnessConfig`` that is
passed to every component instead of re-reading the environment.
"""

from __future__ import annotations

import json
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import jsonschema

from netharness.backends.base import (
    BackendName,
    BuildProfile,
    DriverVariant,
    parse_backend_name,
    parse_build_profile,
    parse_driver_variant,
)
from netharness.contracts import validate_harness_config
from netharness.errors import ConfigurationError
from netharness.models import PeerRole, parse_peer_role

ENV_CONFIG_FILE = "NETHARNESS_CONFIG"

DEFAULT_MTU = 1500
DEFAULT_MSS = 9000
DEFAULT_PEER = "server"
DEFAULT_TEST = "udp_push_pop"
DEFAULT_TIMEOUT = 30
DEFAULT_BUILD = "--release"
DEFAULT_DPDK_TARGET = "x86_64-native-linuxapp-gcc"
DEFAULT_DPDK_VERSION = "17.08"
DEFAULT_MTCP_VERSION = "submodule"

# Environment variable name -> config key.
ENV_KEYS: dict[str, str] = {
    "PREFIX": "prefix",
    "PKG_CONFIG_PATH": "pkg_config_path",
    "LD_LIBRARY_PATH": "ld_library_path",
    "CONFIG_PATH": "config_path",
    "MTU": "mtu",
    "MSS": "mss",
    "PEER": "peer",
    "TEST": "test",
    "TIMEOUT": "timeout",
    "BUILD": "profile",
    "CARGO": "cargo",
    "CARGO_FLAGS": "cargo_flags",
    "CARGO_FEATURES": "cargo_features",
    "MAKE": "make",
    "DRIVER": "driver",
    "LIBOS": "backend",
    "DPDK_TARGET": "dpdk_target",
    "DPDK_SOURCE_DIR": "dpdk_source_dir",
    "MTCP_SOURCE_DIR": "mtcp_source_dir",
    "DPDK_VERSION": "dpdk_version",
    "MTCP_VERSION": "mtcp_version",
    "NETHARNESS_DEPS_DIR": "deps_dir",
    "NETHARNESS_BUILD_DIR": "build_dir",
}

# Keys where an explicitly empty value is meaningful (e.g. BUILD= selects Debug).
_KEEP_EMPTY = frozenset(
    {"profile", "cargo_flags", "cargo_features", "pkg_config_path", "ld_library_path"}
)


@dataclass(frozen=True)
class HarnessConfig:
    """Immutable configuration shared by every harness component."""

    workdir: Path
    prefix: Path
    pkg_config_path: str
    ld_library_path: str
    config_path: Path
    mtu: int
    mss: int
    peer: PeerRole
    test: str
    timeout: int
    profile: BuildProfile
    cargo: tuple[str, ...]
    cargo_flags: tuple[str, ...]
    cargo_features: tuple[str, ...]
    make: tuple[str, ...]
    driver: DriverVariant | None
    backend: BackendName | None
    dpdk_target: str
    dpdk_source_dir: Path
    mtcp_source_dir: Path
    dpdk_version: str
    mtcp_version: str
    deps_dir: Path
    build_dir: Path

    @property
    def log_dir(self) -> Path:
        return self.build_dir / "logs"

    def as_dict(self) -> dict[str, Any]:
        return {
            "workdir": str(self.workdir),
            "prefix": str(self.prefix),
            "pkg_config_path": self.pkg_config_path,
            "ld_library_path": self.ld_library_path,
            "config_path": str(self.config_path),
            "mtu": self.mtu,
            "mss": self.mss,
            "peer": self.peer.value,
            "test": self.test,
            "timeout": self.timeout,
            "profile": self.profile.value,
            "cargo": list(self.cargo),
            "cargo_flags": list(self.cargo_flags),
            "cargo_features": list(self.cargo_features),
            "make": list(self.make),
            "driver": self.driver.value if self.driver else None,
            "backend": self.backend.value if self.backend else None,
            "dpdk_target": self.dpdk_target,
            "dpdk_source_dir": str(self.dpdk_source_dir),
            "mtcp_source_dir": str(self.mtcp_source_dir),
            "dpdk_version": self.dpdk_version,
            "mtcp_version": self.mtcp_version,
            "deps_dir": str(self.deps_dir),
            "build_dir": str(self.build_dir),
        }


def _find_lib_dirs(prefix: Path, pattern: str) -> str:
    """Return directories under <prefix>/lib matching a glob, joined by os.pathsep."""
    lib_root = prefix / "lib"
    if not lib_root.is_dir():
        return ""
    try:
        matches = sorted(path for path in lib_root.rglob(pattern) if path.is_dir())
    except OSError:
        return ""
    return os.pathsep.join(str(path) for path in matches)


def _positive_int(value: object, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a positive integer (got {value!r}).")
    try:
        number = int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a positive integer (got {value!r}).") from exc
    if number <= 0:
        raise ConfigurationError(f"{name} must be a positive integer (got {number}).")
    return number


def _command(value: object, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, (list, tuple)):
        command = tuple(str(item) for item in value)
    else:
        command = tuple(shlex.split(str(value)))
    if not command:
        raise ConfigurationError("Command must not be empty.")
    return command


def _args(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if str(item))
    return tuple(shlex.split(str(value)))


def _features(value: object) -> tuple[str, ...]:
    tokens = _args(value)
    features: list[str] = []
    for token in tokens:
        features.extend(part for part in token.split(",") if part)
    return tuple(features)


def _split_feature_flags(flags: tuple[str, ...]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Move cargo feature selections out of CARGO_FLAGS so they can be validated.

    Returns the remaining flags and the features named by ``--features``/``-F``.
    """
    remaining: list[str] = []
    features: list[str] = []
    tokens = iter(flags)
    for token in tokens:
        if token == "--all-features":
            raise ConfigurationError(
                "CARGO_FLAGS must not contain --all-features; it enables every backend."
            )
        if token in ("--features", "-F"):
            value = next(tokens, None)
            if value is None:
                raise ConfigurationError(f"CARGO_FLAGS option {token} is missing a value.")
        elif token.startswith("--features="):
            value = token.partition("=")[2]
        elif token.startswith("-F") and len(token) > 2:
            value = token[2:].lstrip("=")
        else:
            remaining.append(token)
            continue
        features.extend(_features(value))
    return tuple(remaining), tuple(features)


def _path(value: object, default: Path, *, base: Path) -> Path:
    if value is None or value == "":
        return default
    path = Path(str(value)).expanduser()
    return path if path.is_absolute() else base / path


def load_config_file(path: Path) -> dict[str, Any]:
    """Load and validate a JSON harness config file."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Unable to read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"Config file {path} must contain a JSON object.")
    try:
        validate_harness_config(payload)
    except jsonschema.ValidationError as exc:
        raise ConfigurationError(f"Config file {path} is invalid: {exc.message}") from exc
    return dict(payload)


def _raw_settings(
    environ: Mapping[str, str],
    config_file: Path | None,
    overrides: Mapping[str, Any] | None,
) -> dict[str, Any]:
    raw: dict[str, Any] = {}
    file_path = config_file
    if file_path is None and environ.get(ENV_CONFIG_FILE):
        file_path = Path(environ[ENV_CONFIG_FILE]).expanduser()
    if file_path is not None:
        raw.update(load_config_file(file_path))
    for env_name, key in ENV_KEYS.items():
        value = environ.get(env_name)
        if value is None:
            continue
        if value == "" and key not in _KEEP_EMPTY:
            continue
        raw[key] = value
    for key, value in (overrides or {}).items():
        if value is not None:
            raw[key] = value
    return raw


def load_config(
    *,
    environ: Mapping[str, str] | None = None,
    config_file: Path | None = None,
    workdir: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> HarnessConfig:
    """Resolve the harness configuration into an immutable HarnessConfig."""
    env = os.environ if environ is None else environ
    base = Path(workdir) if workdir is not None else Path.cwd()
    home = Path(env.get("HOME") or Path.home())
    raw = _raw_settings(env, config_file, overrides)

    prefix = _path(raw.get("prefix"), home, base=base)
    if "pkg_config_path" in raw:
        pkg_config_path = str(raw["pkg_config_path"])
    else:
        pkg_config_path = _find_lib_dirs(prefix, "*pkgconfig*")
    if "ld_library_path" in raw:
        ld_library_path = str(raw["ld_library_path"])
    else:
        ld_library_path = _find_lib_dirs(prefix, "*x86_64-linux-gnu*")

    driver_value = raw.get("driver")
    backend_value = raw.get("backend")
    build_dir = _path(raw.get("build_dir"), base / "build", base=base)
    mtcp_source_dir = _path(raw.get("mtcp_source_dir"), base / "submodules" / "mtcp", base=base)
    cargo_flags, flag_features = _split_feature_flags(_args(raw.get("cargo_flags")))

    return HarnessConfig(
        workdir=base,
        prefix=prefix,
        pkg_config_path=pkg_config_path,
        ld_library_path=ld_library_path,
        config_path=_path(raw.get("config_path"), home / "config.yaml", base=base),
        mtu=_positive_int(raw.get("mtu", DEFAULT_MTU), "MTU"),
        mss=_positive_int(raw.get("mss", DEFAULT_MSS), "MSS"),
        peer=parse_peer_role(raw.get("peer", DEFAULT_PEER)),
        test=str(raw.get("test") or DEFAULT_TEST),
        timeout=_positive_int(raw.get("timeout", DEFAULT_TIMEOUT), "TIMEOUT"),
        profile=parse_build_profile(raw.get("profile", DEFAULT_BUILD)),
        cargo=_command(raw.get("cargo"), (str(home / ".cargo" / "bin" / "cargo"),)),
        cargo_flags=cargo_flags,
        cargo_features=_features(raw.get("cargo_features")) + flag_features,
        make=_command(raw.get("make"), ("make",)),
        driver=parse_driver_variant(driver_value) if driver_value else None,
        backend=parse_backend_name(backend_value) if backend_value else None,
        dpdk_target=str(raw.get("dpdk_target") or DEFAULT_DPDK_TARGET),
        dpdk_source_dir=_path(
            raw.get("dpdk_source_dir"), mtcp_source_dir / "dpdk-17.08", base=base
        ),
        mtcp_source_dir=mtcp_source_dir,
        dpdk_version=str(raw.get("dpdk_version") or DEFAULT_DPDK_VERSION),
        mtcp_version=str(raw.get("mtcp_version") or DEFAULT_MTCP_VERSION),
        deps_dir=_path(raw.get("deps_dir"), build_dir / "ExternalProject", base=base),
        build_dir=build_dir,
    )
