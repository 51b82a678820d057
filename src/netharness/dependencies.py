"""Build native prerequisites of a backend in dependency order.

The kernel-bypass backend needs DPDK (``packet-library``) and then mTCP
(``tcp-stack``) configured against DPDK's install location. Each stage is
fingerprinted; a stage whose stored fingerprint matches is reused without
invoking any build tool, and a fingerprint is only written once configure,
build, and install have all succeeded.
"""

from __future__ import annotations

import logging
from pathlib import Path

from netharness.backends.base import BackendName, BackendSpec
from netharness.cache import (
    CACHE_VERSION,
    CacheEntry,
    FingerprintKey,
    clear_fingerprint,
    load_fingerprint,
    write_fingerprint,
)
from netharness.config import HarnessConfig
from netharness.logging_utils import log_context
from netharness.models import DependencyArtifact
from netharness.tools.base import NativeStack
from netharness.tools.dpdk import PACKET_LIBRARY_STAGE, DpdkStack
from netharness.tools.mtcp import TCP_STACK_STAGE, MtcpStack

LOGGER = logging.getLogger(__name__)

STAGE_ORDER = (PACKET_LIBRARY_STAGE, TCP_STACK_STAGE)
INSTALL_DIRS = {PACKET_LIBRARY_STAGE: "dpdk", TCP_STACK_STAGE: "mtcp"}


def install_path_for(config: HarnessConfig, stage: str) -> Path:
    """Return the install directory of a dependency stage."""
    return config.deps_dir / INSTALL_DIRS[stage]


def fingerprint_key(
    spec: BackendSpec,
    config: HarnessConfig,
    stage: str,
    *,
    upstream: tuple[str, ...] = (),
) -> FingerprintKey:
    """Return the fingerprint key for one stage of a backend build."""
    version = config.dpdk_version if stage == PACKET_LIBRARY_STAGE else config.mtcp_version
    return FingerprintKey(
        stage=stage,
        backend=spec.name.value,
        driver_variant=spec.driver_variant.value if spec.driver_variant else None,
        build_profile=spec.build_profile.value,
        dependency_version=version,
        target_triple=config.dpdk_target,
        upstream=upstream,
    )


def _artifact_from_entry(
    stage: str,
    install_path: Path,
    entry: CacheEntry,
    *,
    depends_on: frozenset[str],
    cached: bool,
) -> DependencyArtifact:
    return DependencyArtifact(
        name=stage,
        install_path=install_path,
        library_paths=tuple(Path(path) for path in entry.library_paths),
        include_paths=tuple(Path(path) for path in entry.include_paths),
        depends_on=depends_on,
        fingerprint=entry.fingerprint,
        cached=cached,
    )


def ensure_stage(
    stack: NativeStack,
    *,
    key: FingerprintKey,
    install_path: Path,
    target_triple: str,
    depends_on: frozenset[str] = frozenset(),
) -> DependencyArtifact:
    """Build one stage unless a matching fingerprint proves it is current."""
    cached = load_fingerprint(install_path)
    if cached is not None and cached.matches(key):
        LOGGER.info(
            "Reusing cached artifact at %s (%s)",
            install_path,
            cached.fingerprint[:12],
            extra=log_context(stage=stack.stage),
        )
        return _artifact_from_entry(
            stack.stage, install_path, cached, depends_on=depends_on, cached=True
        )
    if clear_fingerprint(install_path):
        LOGGER.info(
            "Discarded stale fingerprint in %s", install_path, extra=log_context(stage=stack.stage)
        )

    handle = stack.configure(target_triple)
    stack.build(handle)
    installed = stack.install(handle, install_path)

    entry = CacheEntry(
        version=CACHE_VERSION,
        fingerprint=key.digest(),
        key=key,
        library_paths=tuple(str(path) for path in installed.library_paths),
        include_paths=tuple(str(path) for path in installed.include_paths),
    )
    write_fingerprint(install_path, entry)
    LOGGER.info("Installed to %s", install_path, extra=log_context(stage=stack.stage))
    return _artifact_from_entry(
        stack.stage, install_path, entry, depends_on=depends_on, cached=False
    )


def ensure_built(spec: BackendSpec, config: HarnessConfig) -> tuple[DependencyArtifact, ...]:
    """Ensure the native dependencies of ``spec`` are built and installed.

    Raises DependencyBuildError naming the failing stage; a failed
    ``packet-library`` stage stops the sequence before ``tcp-stack`` starts.
    """
    if spec.name is not BackendName.KERNEL_BYPASS or spec.driver_variant is None:
        LOGGER.debug("%s has no native dependencies.", spec.name.value)
        return ()

    log_dir = config.log_dir / "deps"
    dpdk_install = install_path_for(config, PACKET_LIBRARY_STAGE)
    dpdk = ensure_stage(
        DpdkStack(
            source_dir=config.dpdk_source_dir,
            driver_variant=spec.driver_variant,
            log_dir=log_dir,
            build_profile=spec.build_profile,
            make=config.make,
        ),
        key=fingerprint_key(spec, config, PACKET_LIBRARY_STAGE),
        install_path=dpdk_install,
        target_triple=config.dpdk_target,
    )
    mtcp = ensure_stage(
        MtcpStack(
            source_dir=config.mtcp_source_dir,
            dpdk_install_path=dpdk.install_path,
            include_root=config.workdir,
            log_dir=log_dir,
            make=config.make,
        ),
        key=fingerprint_key(spec, config, TCP_STACK_STAGE, upstream=(dpdk.fingerprint,)),
        install_path=install_path_for(config, TCP_STACK_STAGE),
        target_triple=config.dpdk_target,
        depends_on=frozenset({dpdk.name}),
    )
    return (dpdk, mtcp)
