"""Session report construction helpers."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from netharness.backends.base import BackendSpec
from netharness.contracts import SCHEMA_VERSION

SKIPPED = "Skipped"


def _utc_now() -> str:
    """Return the current UTC timestamp as ISO8601."""
    return datetime.now(timezone.utc).isoformat()


def summarize_steps(steps: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    """Count step outcomes by status."""
    summary = {"total": 0, "succeeded": 0, "failed": 0, "timed_out": 0, "skipped": 0}
    keys = {
        "Success": "succeeded",
        "Failure": "failed",
        "TimedOut": "timed_out",
        SKIPPED: "skipped",
    }
    for step in steps:
        summary["total"] += 1
        summary[keys[step["status"]]] += 1
    return summary


def build_session_report(
    *,
    backends: Iterable[BackendSpec],
    steps: Iterable[Mapping[str, Any]],
    exit_code: int,
    warnings: Iterable[str] = (),
    errors: Iterable[str] = (),
) -> dict[str, Any]:
    """Create a session report dictionary."""
    step_list = [dict(step) for step in steps]
    return {
        "schema_version": SCHEMA_VERSION,
        "created_at": _utc_now(),
        "backends": [backend.as_dict() for backend in backends],
        "steps": step_list,
        "summary": summarize_steps(step_list),
        "exit_code": exit_code,
        "warnings": list(warnings),
        "errors": list(errors),
    }


def write_json(path: Path, payload: Mapping[str, Any]) -> Path:
    """Write a JSON payload with stable formatting."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path
