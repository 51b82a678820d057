"""Run one named test in one peer role under a hard wall-clock timeout.

The runner never coordinates peers. Running a Server and a Client pair means
issuing two invocations, and starting the Server first is the caller's job;
a Client started early simply fails or times out like any other test.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Sequence

from netharness.backends.base import BackendName, BackendSpec
from netharness.build import append_paths, resolve_features
from netharness.config import HarnessConfig
from netharness.logging_utils import log_context
from netharness.models import (
    TIMEOUT_EXIT_CODE,
    DependencyArtifact,
    PeerRole,
    StepStatus,
    TestInvocation,
    TestResult,
)
from netharness.subprocess_utils import CommandResult, run_command
from netharness.tools import cargo

LOGGER = logging.getLogger(__name__)


def runtime_environment(
    config: HarnessConfig,
    spec: BackendSpec,
    dependencies: Sequence[DependencyArtifact] = (),
) -> dict[str, str]:
    """Return backend runtime variables a test binary needs."""
    env = {
        "MTU": str(config.mtu),
        "MSS": str(config.mss),
        "CONFIG_PATH": str(config.config_path),
    }
    if spec.name is BackendName.KERNEL_BYPASS:
        library_paths = [path for dependency in dependencies for path in dependency.library_paths]
        env["LD_LIBRARY_PATH"] = append_paths(config.ld_library_path, library_paths)
    return env


def prepare_invocation(
    config: HarnessConfig,
    spec: BackendSpec,
    dependencies: Sequence[DependencyArtifact] = (),
    *,
    test_name: str | None = None,
    peer_role: PeerRole | None = None,
    timeout_seconds: int | None = None,
    environment: Mapping[str, str] | None = None,
    retries: int = 0,
) -> TestInvocation:
    """Build a TestInvocation from resolved configuration right before execution."""
    env = runtime_environment(config, spec, dependencies)
    if environment:
        env.update(environment)
    return TestInvocation(
        test_name=test_name or config.test,
        backend=spec,
        peer_role=peer_role or config.peer,
        timeout_seconds=timeout_seconds if timeout_seconds is not None else config.timeout,
        environment=env,
        retries=retries,
    )


def _status(result: CommandResult) -> StepStatus:
    if result.timed_out:
        return StepStatus.TIMED_OUT
    if result.returncode == 0:
        return StepStatus.SUCCESS
    return StepStatus.FAILURE


def run_test(
    invocation: TestInvocation,
    config: HarnessConfig,
    *,
    environ: Mapping[str, str] | None = None,
) -> TestResult:
    """Execute a test invocation; the outcome comes only from exit code and timeout.

    Failures are retried up to ``invocation.retries`` times and ``duration_ms``
    spans every attempt. Timeouts are final.
    """
    spec = invocation.backend
    features = resolve_features(spec, config.cargo_features)
    command = cargo.run_test_command(
        config.cargo,
        features,
        spec.build_profile,
        invocation.test_name,
        cargo_flags=config.cargo_flags,
    )
    env = dict(os.environ if environ is None else environ)
    env["PEER"] = invocation.peer_role.value
    env["TEST"] = invocation.test_name
    env.update(invocation.environment)
    context = log_context(spec.label, f"test:{invocation.test_name}")

    attempts = 0
    total_ms = 0
    while True:
        attempts += 1
        LOGGER.info(
            "Running as %s (attempt %d, timeout %ss)",
            invocation.peer_role.value,
            attempts,
            invocation.timeout_seconds,
            extra=context,
        )
        result = run_command(
            command,
            cwd=config.workdir,
            env=env,
            timeout=invocation.timeout_seconds,
        )
        total_ms += result.duration_ms
        status = _status(result)
        if status is StepStatus.FAILURE and attempts <= invocation.retries:
            LOGGER.warning("Failed (exit %s); retrying.", result.returncode, extra=context)
            continue
        break

    if status is StepStatus.TIMED_OUT:
        LOGGER.error("Timed out after %ss.", invocation.timeout_seconds, extra=context)
    elif status is StepStatus.FAILURE:
        LOGGER.error("Failed (exit %s).", result.returncode, extra=context)
    else:
        LOGGER.info("Passed in %d ms.", total_ms, extra=context)
    return TestResult(
        test_name=invocation.test_name,
        peer_role=invocation.peer_role,
        status=status,
        exit_code=TIMEOUT_EXIT_CODE if status is StepStatus.TIMED_OUT else result.returncode,
        duration_ms=total_ms,
        command=tuple(result.command),
        stdout=result.stdout,
        stderr=result.stderr,
        attempts=attempts,
    )
