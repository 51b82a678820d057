"""Backend package exports."""

from netharness.backends.base import (
    BackendName,
    BackendSpec,
    BuildProfile,
    DriverVariant,
    parse_backend_name,
    parse_build_profile,
    parse_driver_variant,
)
from netharness.backends.selector import probe_hardware, resolve

__all__ = [
    "BackendName",
    "BackendSpec",
    "BuildProfile",
    "DriverVariant",
    "parse_backend_name",
    "parse_build_profile",
    "parse_driver_variant",
    "probe_hardware",
    "resolve",
]
