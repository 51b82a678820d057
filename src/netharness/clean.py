"""Cleanup helpers for build artifacts."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Callable, Iterable

from netharness.config import HarnessConfig
from netharness.subprocess_utils import run_command
from netharness.tools.cargo import clean_command

LOGGER = logging.getLogger(__name__)

_CLEAN_TARGETS: dict[str, Callable[[HarnessConfig], list[Path]]] = {
    "target": lambda config: [config.workdir / "target"],
    "cargo-lock": lambda config: [config.workdir / "Cargo.lock"],
    "deps": lambda config: [config.deps_dir],
    "reports": lambda config: [config.build_dir / "session_report.json", config.log_dir],
}


def supported_clean_targets() -> tuple[str, ...]:
    return tuple(_CLEAN_TARGETS)


def _resolve_paths(config: HarnessConfig, target: str) -> list[Path]:
    try:
        return _CLEAN_TARGETS[target](config)
    except KeyError:
        raise ValueError(f"Unsupported clean target: {target}") from None


def _remove(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


def clean_build(
    config: HarnessConfig,
    *,
    include: Iterable[str] = ("target", "cargo-lock"),
    dry_run: bool = True,
    run_cargo: bool = True,
) -> dict[str, Any]:
    """Clean build artifacts and return a summary report.

    ``cargo clean`` runs first when ``target`` is included and this is not a
    dry run; its failure is recorded but the filesystem cleanup still happens.
    """
    include_list = list(include)
    resolved = {target: _resolve_paths(config, target) for target in include_list}
    removed: dict[str, list[str]] = {}
    missing: dict[str, list[str]] = {}
    cargo_exit: int | None = None
    if run_cargo and not dry_run and "target" in include_list:
        result = run_command(clean_command(config.cargo), cwd=config.workdir)
        cargo_exit = result.returncode
        if result.returncode != 0:
            LOGGER.warning(
                "cargo clean failed (exit %s): %s", result.returncode, result.stderr.strip()
            )
    for target, paths in resolved.items():
        removed[target] = []
        missing[target] = []
        for path in paths:
            if not path.exists():
                missing[target].append(str(path))
                continue
            removed[target].append(str(path))
            if not dry_run:
                _remove(path)
    return {
        "workdir": str(config.workdir),
        "dry_run": dry_run,
        "include": include_list,
        "removed": removed,
        "missing": missing,
        "cargo_clean_exit": cargo_exit,
    }


def format_clean_summary(report: dict[str, Any]) -> list[str]:
    """Render a clean report as log lines, one per target plus the cargo outcome."""
    dry_run = report["dry_run"]
    removed: dict[str, list[str]] = report["removed"]
    missing: dict[str, list[str]] = report["missing"]

    verb = "would remove" if dry_run else "removed"
    lines = [f"Clean {'dry-run' if dry_run else 'complete'} for {report['workdir']}"]
    for target in report["include"]:
        line = f"{target}: {len(removed.get(target, []))} item(s)"
        absent = len(missing.get(target, []))
        if absent:
            line += f", {absent} already absent"
        lines.append(line)
        lines.extend(f"  {verb} {path}" for path in removed.get(target, []))
    cargo_exit = report.get("cargo_clean_exit")
    if cargo_exit is not None:
        outcome = "ok" if cargo_exit == 0 else f"failed (exit {cargo_exit})"
        lines.append(f"cargo clean: {outcome}")
    if dry_run:
        lines.append("Dry run only; re-run with --confirm to delete.")
    return lines
