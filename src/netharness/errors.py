"""Error taxonomy for configuration, dependency, build, and test failures."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from netharness.models import BuildResult, TestResult

CONFIGURATION_EXIT_CODE = 2


class HarnessError(RuntimeError):
    """Base class for failures reported by the harness."""

    stage: str = "harness"
    exit_code: int = 1


class ConfigurationError(HarnessError):
    """Invalid or contradictory selection, raised before any process is spawned."""

    stage = "configuration"
    exit_code = CONFIGURATION_EXIT_CODE


class DependencyBuildError(HarnessError):
    """A native prerequisite failed to configure, build, or install."""

    def __init__(
        self,
        stage: str,
        *,
        step: str,
        exit_code: int,
        output: str = "",
        timed_out: bool = False,
    ) -> None:
        self.stage = stage
        self.step = step
        self.exit_code = exit_code if exit_code != 0 else 1
        self.output = output
        self.timed_out = timed_out
        reason = "timed out" if timed_out else f"exit {exit_code}"
        super().__init__(f"Dependency stage '{stage}' failed during {step} ({reason}).")


class BuildError(HarnessError):
    """Library or test compilation returned a non-zero exit code."""

    def __init__(self, result: BuildResult) -> None:
        self.result = result
        self.stage = result.stage
        self.exit_code = result.exit_code or 1
        super().__init__(f"Build stage '{result.stage}' failed (exit {result.exit_code}).")


class TestFailure(HarnessError):
    """A test binary exited with a non-zero exit code."""

    __test__ = False

    def __init__(self, result: TestResult) -> None:
        self.result = result
        self.stage = f"test:{result.test_name}"
        self.exit_code = result.exit_code or 1
        super().__init__(
            f"Test '{result.test_name}' ({result.peer_role.value}) failed "
            f"(exit {result.exit_code})."
        )


class TestTimeout(HarnessError):
    """A test binary was killed after exceeding its deadline."""

    __test__ = False

    def __init__(self, result: TestResult, timeout_seconds: int) -> None:
        self.result = result
        self.stage = f"test:{result.test_name}"
        self.exit_code = result.exit_code
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Test '{result.test_name}' ({result.peer_role.value}) timed out "
            f"after {timeout_seconds} seconds."
        )
