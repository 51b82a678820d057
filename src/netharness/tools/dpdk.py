"""Build the DPDK packet-processing library with its legacy make system."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from netharness.backends.base import BuildProfile, DriverVariant
from netharness.subprocess_utils import CommandResult
from netharness.tools.base import InstalledPaths, StageHandle, run_step

PACKET_LIBRARY_STAGE = "packet-library"

# Poll-mode driver switches for the make-based DPDK 17.x tree.
DRIVER_PMD_FLAGS: dict[DriverVariant, str] = {
    DriverVariant.DRIVER_A: "CONFIG_RTE_LIBRTE_MLX5_PMD=y",
    DriverVariant.DRIVER_B: "CONFIG_RTE_LIBRTE_MLX4_PMD=y",
}
DEBUG_CFLAGS = "EXTRA_CFLAGS=-O0 -g"


@dataclass(frozen=True)
class DpdkStack:
    """Configure, build, and install DPDK for one target/driver combination."""

    source_dir: Path
    driver_variant: DriverVariant
    log_dir: Path
    build_profile: BuildProfile = BuildProfile.RELEASE
    make: Sequence[str] = ("make",)
    env: Mapping[str, str] | None = None
    stage: str = PACKET_LIBRARY_STAGE

    def _make(self, *args: str) -> list[str]:
        return [*self.make, "-C", str(self.source_dir), *args]

    def configure(self, target_triple: str) -> StageHandle:
        for name in ("include", "lib"):
            (self.source_dir / target_triple / name).mkdir(parents=True, exist_ok=True)
        run_step(
            self.stage,
            "configure",
            self._make("config", f"T={target_triple}"),
            log_dir=self.log_dir,
            env=self.env,
        )
        return StageHandle(
            stage=self.stage,
            source_dir=self.source_dir,
            target_triple=target_triple,
            env=self.env,
        )

    def build_args(self, handle: StageHandle) -> list[str]:
        args = [f"T={handle.target_triple}", DRIVER_PMD_FLAGS[self.driver_variant]]
        if self.build_profile is BuildProfile.DEBUG:
            args.append(DEBUG_CFLAGS)
        return args

    def build(self, handle: StageHandle) -> CommandResult:
        return run_step(
            self.stage,
            "build",
            self._make(*self.build_args(handle)),
            log_dir=self.log_dir,
            env=handle.env,
        )

    def install(self, handle: StageHandle, destination: Path) -> InstalledPaths:
        destination.mkdir(parents=True, exist_ok=True)
        run_step(
            self.stage,
            "install",
            self._make("install", f"T={handle.target_triple}", f"DESTDIR={destination}"),
            log_dir=self.log_dir,
            env=handle.env,
        )
        return InstalledPaths(
            library_paths=(destination / "lib",),
            include_paths=(destination / "include" / "dpdk",),
        )
