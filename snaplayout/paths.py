from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_BASE = "/var/log/snaplayout"


def _expand(path: str) -> str:
    candidate = Path(path).expanduser()
    try:
        return str(candidate.resolve())
    except FileNotFoundError:
        return str(candidate)


def base_path() -> str:
    """Return the base directory for snaplayout logs.

    The location can be overridden via the ``SNAPLAYOUT_BASE_PATH``
    environment variable.  When unset we use ``/var/log/snaplayout`` on the
    live system the tool is run from, never the target volume.
    """

    override = os.environ.get("SNAPLAYOUT_BASE_PATH")
    if override:
        return _expand(override)
    return _expand(_DEFAULT_BASE)


def logs_dir() -> str:
    override = os.environ.get("SNAPLAYOUT_BASE_PATH")
    if override:
        return str(Path(base_path()) / "logs")
    return base_path()


def fallback_logs_dir() -> str:
    return "/tmp/snaplayout-logs"
