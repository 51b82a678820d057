"""Compile the library or its tests for one backend with cargo."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from netharness.backends.base import (
    BACKEND_FEATURES,
    DRIVER_FEATURES,
    BackendName,
    BackendSpec,
)
from netharness.config import HarnessConfig
from netharness.errors import ConfigurationError
from netharness.logging_utils import log_context
from netharness.models import BuildResult, DependencyArtifact, StepStatus
from netharness.subprocess_utils import run_command
from netharness.tools import cargo

LOGGER = logging.getLogger(__name__)


class BuildTarget(str, Enum):
    """What a build step compiles."""

    LIBRARY = "library"
    TESTS = "tests"


def resolve_features(spec: BackendSpec, extra_features: Iterable[str] = ()) -> tuple[str, ...]:
    """Merge the spec's cargo features with extra ones and reject invalid pairs."""
    features = list(spec.feature_flags())
    for feature in extra_features:
        if feature and feature not in features:
            features.append(feature)
    backends = [feature for feature in features if feature in BACKEND_FEATURES]
    drivers = [feature for feature in features if feature in DRIVER_FEATURES]
    if len(backends) != 1:
        raise ConfigurationError(
            f"Exactly one backend feature may be enabled (got {', '.join(backends)})."
        )
    if spec.name is BackendName.SOCKET and drivers:
        raise ConfigurationError(
            f"{spec.name.value} does not accept driver features (got {', '.join(drivers)})."
        )
    if spec.name is BackendName.KERNEL_BYPASS and len(drivers) != 1:
        raise ConfigurationError(
            f"Exactly one driver variant may be enabled (got {', '.join(drivers)})."
        )
    return tuple(features)


def append_paths(existing: str | None, additions: Iterable[Path | str]) -> str:
    parts = [part for part in (existing or "").split(os.pathsep) if part]
    parts.extend(str(path) for path in additions)
    return os.pathsep.join(parts)


def base_environment(
    config: HarnessConfig, environ: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Return the process environment with the configured search paths exported."""
    env = dict(os.environ if environ is None else environ)
    if config.pkg_config_path:
        env["PKG_CONFIG_PATH"] = config.pkg_config_path
    if config.ld_library_path:
        env["LD_LIBRARY_PATH"] = config.ld_library_path
    return env


def search_path_environment(
    dependencies: Sequence[DependencyArtifact],
    base_env: Mapping[str, str],
) -> dict[str, str]:
    """Append dependency library and include paths, in order, to the search paths."""
    env = dict(base_env)
    library_paths = [path for dependency in dependencies for path in dependency.library_paths]
    include_paths = [path for dependency in dependencies for path in dependency.include_paths]
    if library_paths:
        env["LIBRARY_PATH"] = append_paths(env.get("LIBRARY_PATH"), library_paths)
        env["LD_LIBRARY_PATH"] = append_paths(env.get("LD_LIBRARY_PATH"), library_paths)
        env["PKG_CONFIG_PATH"] = append_paths(
            env.get("PKG_CONFIG_PATH"), [path / "pkgconfig" for path in library_paths]
        )
        rustflags = env.get("RUSTFLAGS", "").split()
        for path in library_paths:
            rustflags.extend(["-L", f"native={path}"])
        env["RUSTFLAGS"] = " ".join(rustflags)
    if include_paths:
        env["C_INCLUDE_PATH"] = append_paths(env.get("C_INCLUDE_PATH"), include_paths)
    return env


def build(
    spec: BackendSpec,
    dependencies: Sequence[DependencyArtifact],
    target: BuildTarget,
    config: HarnessConfig,
    *,
    extra_features: Iterable[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> BuildResult:
    """Compile the library or tests; a non-zero exit is returned, never retried."""
    features = resolve_features(
        spec, config.cargo_features if extra_features is None else extra_features
    )
    env = search_path_environment(dependencies, base_environment(config, environ))
    command = cargo.build_command(
        config.cargo,
        features,
        spec.build_profile,
        tests=target is BuildTarget.TESTS,
        cargo_flags=config.cargo_flags,
    )
    context = log_context(spec.label, target.value)
    LOGGER.info("Compiling with features %s", ",".join(features), extra=context)
    result = run_command(command, cwd=config.workdir, env=env)
    status = StepStatus.SUCCESS if result.returncode == 0 else StepStatus.FAILURE
    if status is StepStatus.FAILURE:
        LOGGER.error("Compilation failed (exit %s).", result.returncode, extra=context)
    else:
        LOGGER.info("Compiled in %d ms.", result.duration_ms, extra=context)
    return BuildResult(
        stage=target.value,
        status=status,
        exit_code=result.returncode,
        duration_ms=result.duration_ms,
        command=tuple(result.command),
        stdout=result.stdout,
        stderr=result.stderr,
    )
