"""Run one test as a Server/Client pair on this host.

The server invocation starts first; the client follows after a short delay.
Both run under the configured timeout and the script exits with the first
non-zero result (server first).
"""

from __future__ import annotations

import argparse
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from netharness.backends.base import BackendSpec
from netharness.config import HarnessConfig, load_config
from netharness.dependencies import ensure_built
from netharness.errors import HarnessError
from netharness.logging_utils import LogOptions, configure_logging
from netharness.models import DependencyArtifact, PeerRole, TestInvocation, TestResult
from netharness.pipeline import resolve_backends
from netharness.runner import prepare_invocation, run_test

LOGGER = logging.getLogger("netharness.scripts.run_peer_pair")

DEFAULT_CLIENT_DELAY = 2.0

TestRunner = Callable[[TestInvocation, HarnessConfig], TestResult]


def run_pair(
    config: HarnessConfig,
    spec: BackendSpec,
    dependencies: tuple[DependencyArtifact, ...],
    *,
    test_name: str,
    client_delay: float = DEFAULT_CLIENT_DELAY,
    timeout: int | None = None,
    runner: TestRunner = run_test,
) -> dict[PeerRole, TestResult]:
    """Start the server, wait ``client_delay`` seconds, then start the client."""
    invocations = {
        role: prepare_invocation(
            config,
            spec,
            dependencies,
            test_name=test_name,
            peer_role=role,
            timeout_seconds=timeout,
        )
        for role in (PeerRole.SERVER, PeerRole.CLIENT)
    }
    futures: dict[PeerRole, Future[TestResult]] = {}
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures[PeerRole.SERVER] = pool.submit(runner, invocations[PeerRole.SERVER], config)
        time.sleep(client_delay)
        futures[PeerRole.CLIENT] = pool.submit(runner, invocations[PeerRole.CLIENT], config)
        return {role: future.result() for role, future in futures.items()}


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a test as a Server/Client pair.")
    parser.add_argument("--backend", help="Backend to test (default: LIBOS or kernel-bypass).")
    parser.add_argument("--test", help="Test name (default: TEST).")
    parser.add_argument("--timeout", type=int, help="Per-peer timeout in seconds.")
    parser.add_argument(
        "--client-delay",
        type=float,
        default=DEFAULT_CLIENT_DELAY,
        help=f"Seconds to wait after starting the server (default: {DEFAULT_CLIENT_DELAY}).",
    )
    parser.add_argument("--workdir", help="Crate root (default: current directory).")
    parser.add_argument("--config", help="JSON config file.")
    args = parser.parse_args()
    configure_logging(LogOptions())

    try:
        config = load_config(
            config_file=Path(args.config) if args.config else None,
            workdir=Path(args.workdir).resolve() if args.workdir else None,
        )
        spec = resolve_backends(config, [args.backend] if args.backend else ())[0]
        dependencies = ensure_built(spec, config)
        results = run_pair(
            config,
            spec,
            dependencies,
            test_name=args.test or config.test,
            client_delay=args.client_delay,
            timeout=args.timeout,
        )
    except HarnessError as exc:
        LOGGER.error("%s", exc)
        return exc.exit_code
    for role, result in results.items():
        LOGGER.info("%s: %s (exit %s)", role.value, result.status.value, result.exit_code)
    for result in results.values():
        if not result.ok:
            return result.exit_code or 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
