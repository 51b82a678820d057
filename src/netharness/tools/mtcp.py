"""Build the mTCP kernel-bypass TCP stack against an installed DPDK."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from netharness.errors import DependencyBuildError
from netharness.logging_utils import log_context
from netharness.subprocess_utils import CommandResult
from netharness.tools.base import InstalledPaths, StageHandle, run_step

TCP_STACK_STAGE = "tcp-stack"

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MtcpStack:
    """Configure and build mTCP, then copy its library and headers into place."""

    source_dir: Path
    dpdk_install_path: Path
    include_root: Path
    log_dir: Path
    make: Sequence[str] = ("make",)
    env: Mapping[str, str] | None = None
    stage: str = TCP_STACK_STAGE

    def configure(self, target_triple: str) -> StageHandle:
        run_step(
            self.stage,
            "configure",
            [
                "./configure",
                f"--with-dpdk-lib={self.dpdk_install_path}",
                f"CFLAGS=-I{self.include_root}",
            ],
            log_dir=self.log_dir,
            cwd=self.source_dir,
            env=self.env,
        )
        return StageHandle(
            stage=self.stage,
            source_dir=self.source_dir,
            target_triple=target_triple,
            env=self.env,
            options={"dpdk": str(self.dpdk_install_path)},
        )

    def build(self, handle: StageHandle) -> CommandResult:
        return run_step(
            self.stage,
            "build",
            [*self.make, "-C", str(handle.source_dir)],
            log_dir=self.log_dir,
            env=handle.env,
        )

    def install(self, handle: StageHandle, destination: Path) -> InstalledPaths:
        # mTCP ships no install target; copy the build outputs instead.
        built_lib = handle.source_dir / "mtcp" / "lib"
        built_include = handle.source_dir / "mtcp" / "include"
        missing = [str(path) for path in (built_lib, built_include) if not path.is_dir()]
        if missing:
            raise DependencyBuildError(
                self.stage,
                step="install",
                exit_code=1,
                output=f"Built mTCP outputs not found: {', '.join(missing)}",
            )
        lib_dir = destination / "lib"
        include_dir = destination / "include"
        shutil.copytree(built_lib, lib_dir, dirs_exist_ok=True)
        shutil.copytree(built_include, include_dir, dirs_exist_ok=True)
        LOGGER.info("Copied mTCP outputs to %s", destination, extra=log_context(stage=self.stage))
        return InstalledPaths(library_paths=(lib_dir,), include_paths=(include_dir,))
