"""Backend identifiers and the resolved compilation target."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from netharness.errors import ConfigurationError


class BackendName(str, Enum):
    """Interchangeable I/O backends of the networking library."""

    SOCKET = "SocketBackend"
    KERNEL_BYPASS = "KernelBypassBackend"

    @property
    def short_name(self) -> str:
        return "catnap" if self is BackendName.SOCKET else "catnip"

    @property
    def feature(self) -> str:
        """Cargo feature that selects this backend."""
        return f"{self.short_name}-libos"


class DriverVariant(str, Enum):
    """NIC-specific code paths of the kernel-bypass backend."""

    DRIVER_A = "DriverA"
    DRIVER_B = "DriverB"

    @property
    def feature(self) -> str:
        """Cargo feature that selects this driver."""
        return "mlx5" if self is DriverVariant.DRIVER_A else "mlx4"


class BuildProfile(str, Enum):
    """Compiler optimization profile."""

    DEBUG = "Debug"
    RELEASE = "Release"

    def cargo_args(self) -> tuple[str, ...]:
        return ("--release",) if self is BuildProfile.RELEASE else ()


BACKEND_ALIASES: dict[str, BackendName] = {
    "socket": BackendName.SOCKET,
    "socketbackend": BackendName.SOCKET,
    "catnap": BackendName.SOCKET,
    "catnap-libos": BackendName.SOCKET,
    "kernel-bypass": BackendName.KERNEL_BYPASS,
    "kernelbypassbackend": BackendName.KERNEL_BYPASS,
    "catnip": BackendName.KERNEL_BYPASS,
    "catnip-libos": BackendName.KERNEL_BYPASS,
    "dpdk": BackendName.KERNEL_BYPASS,
}

DRIVER_ALIASES: dict[str, DriverVariant] = {
    "mlx5": DriverVariant.DRIVER_A,
    "drivera": DriverVariant.DRIVER_A,
    "mlx4": DriverVariant.DRIVER_B,
    "driverb": DriverVariant.DRIVER_B,
}

PROFILE_ALIASES: dict[str, BuildProfile] = {
    "--release": BuildProfile.RELEASE,
    "release": BuildProfile.RELEASE,
    "": BuildProfile.DEBUG,
    "debug": BuildProfile.DEBUG,
    "--debug": BuildProfile.DEBUG,
}

BACKEND_FEATURES: dict[str, BackendName] = {name.feature: name for name in BackendName}
DRIVER_FEATURES: dict[str, DriverVariant] = {
    variant.feature: variant for variant in DriverVariant
}


def parse_backend_name(value: str | BackendName) -> BackendName:
    """Parse a backend name or alias, raising ConfigurationError when unknown."""
    if isinstance(value, BackendName):
        return value
    resolved = BACKEND_ALIASES.get(str(value).strip().lower())
    if resolved is None:
        supported = ", ".join(sorted(BACKEND_ALIASES))
        raise ConfigurationError(f"Unsupported backend '{value}' (expected one of: {supported}).")
    return resolved


def parse_driver_variant(value: str | DriverVariant) -> DriverVariant:
    """Parse a driver variant or cargo driver feature name."""
    if isinstance(value, DriverVariant):
        return value
    resolved = DRIVER_ALIASES.get(str(value).strip().lower())
    if resolved is None:
        supported = ", ".join(sorted(DRIVER_ALIASES))
        raise ConfigurationError(f"Unsupported driver '{value}' (expected one of: {supported}).")
    return resolved


def parse_build_profile(value: str | BuildProfile | None) -> BuildProfile:
    """Parse a profile name or the legacy BUILD flag value."""
    if isinstance(value, BuildProfile):
        return value
    if value is None:
        return BuildProfile.RELEASE
    resolved = PROFILE_ALIASES.get(str(value).strip().lower())
    if resolved is None:
        raise ConfigurationError(f"Unsupported build profile '{value}'.")
    return resolved


@dataclass(frozen=True)
class BackendSpec:
    """Identify one compilation target."""

    name: BackendName
    driver_variant: DriverVariant | None = None
    build_profile: BuildProfile = BuildProfile.RELEASE

    def __post_init__(self) -> None:
        if self.name is BackendName.KERNEL_BYPASS and self.driver_variant is None:
            raise ConfigurationError(f"{self.name.value} requires a driver variant.")
        if self.name is not BackendName.KERNEL_BYPASS and self.driver_variant is not None:
            raise ConfigurationError(
                f"{self.name.value} does not take a driver variant "
                f"(got {self.driver_variant.value})."
            )

    @property
    def label(self) -> str:
        """Short name used in logs, report keys, and directory names."""
        return self.name.short_name

    def feature_flags(self) -> tuple[str, ...]:
        """Return the cargo features enabled by this spec."""
        if self.driver_variant is None:
            return (self.name.feature,)
        return (self.name.feature, self.driver_variant.feature)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name.value,
            "driver_variant": self.driver_variant.value if self.driver_variant else None,
            "build_profile": self.build_profile.value,
            "features": list(self.feature_flags()),
        }
