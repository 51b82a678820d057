"""Session pipeline: dependencies, builds, and tests for one or more backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Iterable, Mapping, Sequence

from netharness.backends.base import BackendName, BackendSpec, parse_backend_name
from netharness.backends.selector import HardwareProbe, probe_hardware, resolve
from netharness.build import BuildTarget, build, resolve_features
from netharness.config import HarnessConfig
from netharness.contracts import validate_session_report
from netharness.dependencies import ensure_built
from netharness.errors import DependencyBuildError
from netharness.logging_utils import log_context
from netharness.models import (
    TIMEOUT_EXIT_CODE,
    BuildResult,
    DependencyArtifact,
    PeerRole,
    StepStatus,
    TestResult,
)
from netharness.reporting import SKIPPED, build_session_report, write_json
from netharness.runner import prepare_invocation, run_test
from netharness.subprocess_utils import tail_lines

LOGGER = logging.getLogger(__name__)

ALL_BACKENDS = "all"
REPORT_FILENAME = "session_report.json"


@dataclass(frozen=True)
class StepRecord:
    """One recorded pipeline step."""

    backend: str
    stage: str
    status: str
    exit_code: int | None
    duration_ms: int = 0
    detail: str = ""
    stdout: str = ""
    stderr: str = ""
    artifacts: tuple[Mapping[str, Any], ...] = ()

    @property
    def failed(self) -> bool:
        return self.status in (StepStatus.FAILURE.value, StepStatus.TIMED_OUT.value)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "backend": self.backend,
            "stage": self.stage,
            "status": self.status,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
        }
        if self.detail:
            payload["detail"] = self.detail
        if self.stdout:
            payload["stdout_tail"] = tail_lines(self.stdout)
        if self.stderr:
            payload["stderr_tail"] = tail_lines(self.stderr)
        if self.artifacts:
            payload["artifacts"] = [dict(item) for item in self.artifacts]
        return payload


@dataclass
class SessionReport:
    """Collected outcome of a session."""

    backends: list[BackendSpec] = field(default_factory=list)
    steps: list[StepRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    path: Path | None = None

    @property
    def exit_code(self) -> int:
        """Zero when nothing failed, else the first failing step's exit code."""
        for step in self.steps:
            if step.failed:
                return step.exit_code or 1
        return 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def as_dict(self) -> dict[str, Any]:
        return build_session_report(
            backends=self.backends,
            steps=[step.as_dict() for step in self.steps],
            exit_code=self.exit_code,
            warnings=self.warnings,
            errors=self.errors,
        )


def expand_backends(choices: Iterable[str | BackendName | None]) -> list[str | BackendName | None]:
    """Expand ``all`` into every backend and drop duplicates, keeping order."""
    expanded: list[str | BackendName | None] = []
    seen: set[BackendName | None] = set()
    for choice in choices:
        if isinstance(choice, str) and choice.strip().lower() == ALL_BACKENDS:
            candidates: list[str | BackendName | None] = list(BackendName)
        else:
            candidates = [choice]
        for candidate in candidates:
            key = parse_backend_name(candidate) if candidate is not None else None
            if key in seen:
                continue
            seen.add(key)
            expanded.append(candidate)
    return expanded


def _memoized_probe(probe: HardwareProbe) -> Callable[[], tuple[str, ...]]:
    cache: list[tuple[str, ...]] = []

    def _probe() -> tuple[str, ...]:
        if not cache:
            if probe is None:
                cache.append(probe_hardware())
            elif callable(probe):
                cache.append(tuple(probe()))
            elif isinstance(probe, str):
                cache.append((probe,))
            else:
                cache.append(tuple(probe))
        return cache[0]

    return _probe


def resolve_backends(
    config: HarnessConfig,
    choices: Sequence[str | BackendName | None] = (),
    *,
    hardware_probe: HardwareProbe = None,
) -> list[BackendSpec]:
    """Resolve every requested backend; invalid selections raise ConfigurationError."""
    requested = expand_backends(choices or [config.backend])
    probe = _memoized_probe(hardware_probe)
    specs = [
        resolve(
            choice,
            probe,
            build_profile=config.profile,
            driver_override=config.driver,
        )
        for choice in requested
    ]
    for spec in specs:
        resolve_features(spec, config.cargo_features)
    return specs


def _dependency_steps(
    spec: BackendSpec, artifacts: Sequence[DependencyArtifact], duration_ms: int
) -> list[StepRecord]:
    return [
        StepRecord(
            backend=spec.label,
            stage=artifact.name,
            status=StepStatus.SUCCESS.value,
            exit_code=0,
            duration_ms=duration_ms if index == len(artifacts) - 1 else 0,
            detail="cached" if artifact.cached else "built",
            artifacts=(artifact.as_dict(),),
        )
        for index, artifact in enumerate(artifacts)
    ]


def _build_step(spec: BackendSpec, result: BuildResult) -> StepRecord:
    return StepRecord(
        backend=spec.label,
        stage=result.stage,
        status=result.status.value,
        exit_code=result.exit_code,
        duration_ms=result.duration_ms,
        stdout=result.stdout,
        stderr=result.stderr,
    )


def _test_step(spec: BackendSpec, result: TestResult) -> StepRecord:
    detail = f"peer={result.peer_role.value}"
    if result.attempts > 1:
        detail = f"{detail} attempts={result.attempts}"
    return StepRecord(
        backend=spec.label,
        stage=f"test:{result.test_name}",
        status=result.status.value,
        exit_code=result.exit_code,
        duration_ms=result.duration_ms,
        detail=detail,
        stdout=result.stdout,
        stderr=result.stderr,
    )


def _skipped(spec: BackendSpec, stages: Iterable[str], reason: str) -> list[StepRecord]:
    return [
        StepRecord(
            backend=spec.label, stage=stage, status=SKIPPED, exit_code=None, detail=reason
        )
        for stage in stages
    ]


def _planned_stages(targets: Sequence[BuildTarget], tests: Sequence[str]) -> list[str]:
    stages = [target.value for target in targets]
    stages.extend(f"test:{name}" for name in tests)
    return stages


def run_session(
    config: HarnessConfig,
    backends: Sequence[str | BackendName | None] = (),
    *,
    targets: Sequence[BuildTarget] = (BuildTarget.LIBRARY, BuildTarget.TESTS),
    tests: Sequence[str] = (),
    peer_role: PeerRole | None = None,
    fail_fast: bool = False,
    timeout: int | None = None,
    retries: int = 0,
    hardware_probe: HardwareProbe = None,
    environ: Mapping[str, str] | None = None,
    report_path: Path | None = None,
) -> SessionReport:
    """Run dependencies, builds, and tests for each backend and write a report.

    Configuration is fully validated before the first process is spawned. A
    failure stops the remaining steps of its backend only, unless
    ``fail_fast`` is set, in which case the whole session stops.
    """
    specs = resolve_backends(config, backends, hardware_probe=hardware_probe)
    ordered_targets = [target for target in BuildTarget if target in targets]
    if tests and BuildTarget.TESTS not in ordered_targets:
        ordered_targets.append(BuildTarget.TESTS)
    for spec in specs:
        for name in tests:
            prepare_invocation(
                config,
                spec,
                test_name=name,
                peer_role=peer_role,
                timeout_seconds=timeout,
                retries=retries,
            )

    report = SessionReport(backends=list(specs))
    stopped = False
    for spec in specs:
        planned = _planned_stages(ordered_targets, tests)
        if stopped:
            report.steps.extend(_skipped(spec, planned, "fail-fast"))
            continue
        context = log_context(spec.label)
        LOGGER.info("Starting %s session.", spec.name.value, extra=context)

        start = perf_counter()
        try:
            artifacts = ensure_built(spec, config)
        except DependencyBuildError as exc:
            status = StepStatus.TIMED_OUT if exc.timed_out else StepStatus.FAILURE
            report.steps.append(
                StepRecord(
                    backend=spec.label,
                    stage=exc.stage,
                    status=status.value,
                    exit_code=TIMEOUT_EXIT_CODE if exc.timed_out else exc.exit_code,
                    duration_ms=int(round((perf_counter() - start) * 1000)),
                    detail=f"failed during {exc.step}",
                    stderr=exc.output,
                )
            )
            report.errors.append(str(exc))
            report.steps.extend(_skipped(spec, planned, f"{exc.stage} failed"))
            stopped = fail_fast
            continue
        report.steps.extend(
            _dependency_steps(spec, artifacts, int(round((perf_counter() - start) * 1000)))
        )

        remaining = list(planned)
        failed = False
        for target in ordered_targets:
            remaining.pop(0)
            result = build(spec, artifacts, target, config, environ=environ)
            report.steps.append(_build_step(spec, result))
            if not result.ok:
                report.errors.append(
                    f"{spec.label}: {target.value} build failed (exit {result.exit_code})."
                )
                report.steps.extend(_skipped(spec, remaining, f"{target.value} failed"))
                failed = True
                break
        if failed:
            stopped = fail_fast
            continue

        for name in tests:
            remaining.pop(0)
            invocation = prepare_invocation(
                config,
                spec,
                artifacts,
                test_name=name,
                peer_role=peer_role,
                timeout_seconds=timeout,
                retries=retries,
            )
            test_result = run_test(invocation, config, environ=environ)
            report.steps.append(_test_step(spec, test_result))
            if not test_result.ok:
                report.errors.append(
                    f"{spec.label}: test '{name}' {test_result.status.value} "
                    f"(exit {test_result.exit_code})."
                )
                if fail_fast:
                    report.steps.extend(_skipped(spec, remaining, "fail-fast"))
                    stopped = True
                    break

    payload = report.as_dict()
    validate_session_report(payload)
    report.path = write_json(report_path or config.build_dir / REPORT_FILENAME, payload)
    LOGGER.info("Session report written to %s (exit %s).", report.path, report.exit_code)
    return report
