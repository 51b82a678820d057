"""Schema validation helpers for harness config files and session reports."""

from __future__ import annotations

import json
from importlib import resources
from typing import Any, Mapping

import jsonschema

SCHEMA_VERSION = "1.0"


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema bundled in the package."""
    with resources.files("netharness.schemas").joinpath(name).open("r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_harness_config(payload: Mapping[str, Any]) -> None:
    """Validate a harness config file payload against the schema."""
    schema = _load_schema("harness_config.schema.json")
    jsonschema.validate(dict(payload), schema)


def validate_session_report(report: Mapping[str, Any]) -> None:
    """Validate a session report against the schema."""
    schema = _load_schema("session_report.schema.json")
    jsonschema.validate(dict(report), schema)
