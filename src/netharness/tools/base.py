"""Shared types for native dependency build tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from netharness.errors import DependencyBuildError
from netharness.logging_utils import log_context
from netharness.subprocess_utils import CommandResult, run_command, tail_lines

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageHandle:
    """A configured native source tree, ready to build."""

    stage: str
    source_dir: Path
    target_triple: str
    env: Mapping[str, str] | None = None
    options: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InstalledPaths:
    """Filesystem locations produced by an install step."""

    library_paths: tuple[Path, ...]
    include_paths: tuple[Path, ...] = ()


class NativeStack(Protocol):
    """Configure/build/install contract for an external native dependency."""

    stage: str

    def configure(self, target_triple: str) -> StageHandle:
        ...

    def build(self, handle: StageHandle) -> CommandResult:
        ...

    def install(self, handle: StageHandle, destination: Path) -> InstalledPaths:
        ...


def run_step(
    stage: str,
    step: str,
    command: Sequence[str],
    *,
    log_dir: Path,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run one dependency build command, raising DependencyBuildError on failure."""
    LOGGER.info(
        "Running %s: %s",
        step,
        " ".join(str(item) for item in command),
        extra=log_context(stage=stage),
    )
    result = run_command(
        command,
        cwd=cwd,
        env=env,
        stdout_path=log_dir / f"{stage}.{step}.stdout.log",
        stderr_path=log_dir / f"{stage}.{step}.stderr.log",
    )
    if result.returncode != 0:
        output = "\n".join(
            part for part in (tail_lines(result.stdout), tail_lines(result.stderr)) if part
        )
        LOGGER.error(
            "%s failed (exit %s); logs in %s",
            step,
            result.returncode,
            log_dir,
            extra=log_context(stage=stage),
        )
        raise DependencyBuildError(
            stage,
            step=step,
            exit_code=result.returncode,
            output=output,
            timed_out=result.timed_out,
        )
    return result
