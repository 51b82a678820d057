"""Module entrypoint for `python -m netharness`."""

from __future__ import annotations

from netharness.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
