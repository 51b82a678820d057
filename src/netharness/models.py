"""Value types shared by the dependency, build, and test stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from netharness.backends.base import BackendSpec
from netharness.errors import BuildError, ConfigurationError, TestFailure, TestTimeout

TIMEOUT_EXIT_CODE = 124


class StepStatus(str, Enum):
    """Outcome of a build or test process."""

    SUCCESS = "Success"
    FAILURE = "Failure"
    TIMED_OUT = "TimedOut"


class PeerRole(str, Enum):
    """Whether a test process initiates or accepts the connection."""

    CLIENT = "client"
    SERVER = "server"


def parse_peer_role(value: str | PeerRole) -> PeerRole:
    """Parse a peer role name, raising ConfigurationError when unknown."""
    if isinstance(value, PeerRole):
        return value
    try:
        return PeerRole(str(value).strip().lower())
    except ValueError as exc:
        raise ConfigurationError(
            f"Unsupported peer role '{value}' (expected client or server)."
        ) from exc


@dataclass(frozen=True)
class DependencyArtifact:
    """Installed output of one native dependency stage."""

    name: str
    install_path: Path
    library_paths: tuple[Path, ...]
    include_paths: tuple[Path, ...] = ()
    depends_on: frozenset[str] = frozenset()
    fingerprint: str = ""
    cached: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "install_path": str(self.install_path),
            "library_paths": [str(path) for path in self.library_paths],
            "include_paths": [str(path) for path in self.include_paths],
            "depends_on": sorted(self.depends_on),
            "fingerprint": self.fingerprint,
            "cached": self.cached,
        }


@dataclass(frozen=True)
class BuildResult:
    """Outcome of a library or test compilation."""

    stage: str
    status: StepStatus
    exit_code: int
    duration_ms: int
    command: tuple[str, ...] = ()
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS

    def raise_for_status(self) -> None:
        if not self.ok:
            raise BuildError(self)


@dataclass(frozen=True)
class TestInvocation:
    """One test run in one peer role, built right before execution."""

    __test__ = False

    test_name: str
    backend: BackendSpec
    peer_role: PeerRole
    timeout_seconds: int
    environment: Mapping[str, str] = field(default_factory=dict)
    retries: int = 0

    def __post_init__(self) -> None:
        if not self.test_name:
            raise ConfigurationError("Test name must not be empty.")
        if (
            isinstance(self.timeout_seconds, bool)
            or not isinstance(self.timeout_seconds, int)
            or self.timeout_seconds <= 0
        ):
            raise ConfigurationError(
                f"Test timeout must be a positive integer (got {self.timeout_seconds!r})."
            )
        if self.retries < 0:
            raise ConfigurationError(f"Test retries must be >= 0 (got {self.retries}).")
        object.__setattr__(
            self,
            "environment",
            MappingProxyType({str(key): str(value) for key, value in self.environment.items()}),
        )


@dataclass(frozen=True)
class TestResult:
    """Outcome of a test invocation."""

    __test__ = False

    test_name: str
    peer_role: PeerRole
    status: StepStatus
    exit_code: int
    duration_ms: int
    command: tuple[str, ...] = ()
    stdout: str = ""
    stderr: str = ""
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS

    def raise_for_status(self, timeout_seconds: int) -> None:
        if self.status is StepStatus.TIMED_OUT:
            raise TestTimeout(self, timeout_seconds)
        if self.status is StepStatus.FAILURE:
            raise TestFailure(self)
