"""Logging setup for the netharness CLI, pipeline and helper scripts.

Components attach ``backend`` and ``stage`` to their records through
``extra=log_context(...)``; both formatters render that context.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONTEXT_FIELDS = ("backend", "stage")
HUMAN_FORMAT = "%(levelname)s: %(context)s%(message)s"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "context"}


@dataclass(frozen=True)
class LogOptions:
    """Console and file logging switches collected from the CLI."""

    verbose: int = 0
    quiet: bool = False
    log_file: Path | None = None
    json_console: bool = False

    @property
    def console_level(self) -> int:
        if self.quiet:
            return logging.WARNING
        if self.verbose > 0:
            return logging.DEBUG
        return logging.INFO


def log_context(backend: str | None = None, stage: str | None = None) -> dict[str, str]:
    """Build the ``extra`` mapping for a backend/stage scoped log call."""
    context: dict[str, str] = {}
    if backend:
        context["backend"] = backend
    if stage:
        context["stage"] = stage
    return context


def _context_label(record: logging.LogRecord) -> str:
    parts = (getattr(record, field, None) for field in CONTEXT_FIELDS)
    return "/".join(str(part) for part in parts if part)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; backend and stage are promoted to top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="seconds")
            .replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES:
                continue
            if key in CONTEXT_FIELDS:
                payload[key] = value
            else:
                extra[key] = value
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Render ``LEVEL: [backend/stage] message`` for terminal output."""

    def __init__(self, fmt: str = HUMAN_FORMAT) -> None:
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        label = _context_label(record)
        record.context = f"[{label}] " if label else ""
        return super().format(record)


def configure_logging(options: LogOptions) -> logging.Logger:
    """Install console (and optional JSON-lines file) handlers on the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(options.console_level)
    console.setFormatter(JsonFormatter() if options.json_console else HumanFormatter())
    root.addHandler(console)

    if options.log_file:
        options.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(options.log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

    return root
