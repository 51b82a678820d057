"""Resolve which backend and driver variant to compile."""

from __future__ import annotations

import logging
import re
import shutil
from typing import Callable, Iterable, Union

from netharness.backends.base import (
    BackendName,
    BackendSpec,
    BuildProfile,
    DriverVariant,
    parse_backend_name,
    parse_driver_variant,
)
from netharness.subprocess_utils import run_command

LOGGER = logging.getLogger(__name__)

# Mellanox ConnectX-4/ConnectX-5 adapters use the mlx5 poll-mode driver.
HIGH_PERFORMANCE_NIC_PATTERN = re.compile(r"ConnectX-[45]")
DEFAULT_BACKEND = BackendName.KERNEL_BYPASS
PROBE_TIMEOUT_SECONDS = 10.0

HardwareProbe = Union[str, Iterable[str], Callable[[], Iterable[str]], None]


def probe_hardware(*, lspci: str = "lspci") -> tuple[str, ...]:
    """Return PCI device descriptions from a read-only lspci query."""
    binary = shutil.which(lspci)
    if binary is None:
        LOGGER.debug("%s not found; hardware probe is empty.", lspci)
        return ()
    result = run_command([binary], timeout=PROBE_TIMEOUT_SECONDS)
    if result.returncode != 0:
        LOGGER.warning(
            "Hardware probe failed (exit %s): %s", result.returncode, result.stderr.strip()
        )
        return ()
    return tuple(line for line in result.stdout.splitlines() if line.strip())


def _capabilities(probe: HardwareProbe) -> tuple[str, ...]:
    if callable(probe):
        probe = probe()
    if probe is None:
        return ()
    if isinstance(probe, str):
        return (probe,)
    return tuple(str(item) for item in probe)


def driver_for_capabilities(capabilities: Iterable[str]) -> DriverVariant:
    """Pick the driver variant matching the probed NIC family."""
    for capability in capabilities:
        if HIGH_PERFORMANCE_NIC_PATTERN.search(capability):
            return DriverVariant.DRIVER_A
    return DriverVariant.DRIVER_B


def resolve(
    explicit_choice: str | BackendName | None = None,
    hardware_probe: HardwareProbe = None,
    *,
    build_profile: BuildProfile = BuildProfile.RELEASE,
    driver_override: str | DriverVariant | None = None,
) -> BackendSpec:
    """Resolve a BackendSpec from an explicit choice or a hardware probe.

    An explicit backend choice is final. The probe is consulted only to pick
    the driver variant of the kernel-bypass backend, and only when no driver
    override is given; callables are evaluated lazily so a socket selection
    never queries the hardware.
    """
    if explicit_choice is not None:
        name = parse_backend_name(explicit_choice)
    else:
        name = DEFAULT_BACKEND
    if name is not BackendName.KERNEL_BYPASS:
        if driver_override:
            LOGGER.debug("Ignoring driver override for %s.", name.value)
        return BackendSpec(name=name, build_profile=build_profile)
    if driver_override:
        driver = parse_driver_variant(driver_override)
    else:
        driver = driver_for_capabilities(_capabilities(hardware_probe))
    LOGGER.debug("Resolved %s with %s.", name.value, driver.value)
    return BackendSpec(name=name, driver_variant=driver, build_profile=build_profile)
