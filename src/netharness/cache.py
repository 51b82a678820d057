"""Configuration fingerprints stored alongside installed dependency artifacts."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping

CACHE_VERSION = 1
FINGERPRINT_FILENAME = ".netharness-fingerprint.json"


def _canonical_json(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class FingerprintKey:
    """Inputs that determine whether a built dependency can be reused."""

    stage: str
    backend: str
    driver_variant: str | None
    build_profile: str
    dependency_version: str
    target_triple: str
    upstream: tuple[str, ...] = ()

    def digest(self) -> str:
        """Return the SHA-256 content address for this key."""
        return hashlib.sha256(_canonical_json(self.to_dict()).encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["upstream"] = list(self.upstream)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FingerprintKey":
        return cls(
            stage=str(data["stage"]),
            backend=str(data["backend"]),
            driver_variant=data.get("driver_variant"),
            build_profile=str(data["build_profile"]),
            dependency_version=str(data["dependency_version"]),
            target_triple=str(data["target_triple"]),
            upstream=tuple(str(item) for item in data.get("upstream", [])),
        )


@dataclass(frozen=True)
class CacheEntry:
    """Persisted record of a completed dependency stage."""

    version: int
    fingerprint: str
    key: FingerprintKey
    library_paths: tuple[str, ...]
    include_paths: tuple[str, ...]

    def matches(self, key: FingerprintKey) -> bool:
        """Return True when the entry was built from ``key`` and is still on disk."""
        if self.version != CACHE_VERSION:
            return False
        if self.fingerprint != key.digest() or self.key != key:
            return False
        return all(Path(path).exists() for path in self.library_paths)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "fingerprint": self.fingerprint,
            "key": self.key.to_dict(),
            "library_paths": list(self.library_paths),
            "include_paths": list(self.include_paths),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        return cls(
            version=int(data["version"]),
            fingerprint=str(data["fingerprint"]),
            key=FingerprintKey.from_dict(data["key"]),
            library_paths=tuple(str(item) for item in data.get("library_paths", [])),
            include_paths=tuple(str(item) for item in data.get("include_paths", [])),
        )


def fingerprint_path(install_path: Path) -> Path:
    """Return the fingerprint file location for an install directory."""
    return install_path / FINGERPRINT_FILENAME


def load_fingerprint(install_path: Path) -> CacheEntry | None:
    """Load the fingerprint for an install directory if present and readable."""
    path = fingerprint_path(install_path)
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return CacheEntry.from_dict(payload)
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError):
        return None


def write_fingerprint(install_path: Path, entry: CacheEntry) -> Path:
    """Atomically write the fingerprint for a completed stage and return its path."""
    path = fingerprint_path(install_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f"{path.name}.tmp")
    staging.write_text(json.dumps(entry.to_dict(), indent=2), encoding="utf-8")
    os.replace(staging, path)
    return path


def clear_fingerprint(install_path: Path) -> bool:
    """Remove a stored fingerprint so a partial rebuild is never trusted."""
    path = fingerprint_path(install_path)
    if not path.exists():
        return False
    path.unlink()
    return True
