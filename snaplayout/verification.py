"""Post-step checks on the rewritten fstab and the top-level view."""

from __future__ import annotations

import os
import re
from typing import Any, Dict

from .errors import FstabVerificationError
from .model import MANAGED_NAMES

_FIELDS_RE = re.compile(r"^\s*(\S+)\s+(\S+)\s+(\S+)")


def top_level_leftovers(top: str) -> list[str]:
    """Names at the top level other than the managed subvolumes, hidden ones included."""
    return sorted(name for name in os.listdir(top) if name not in MANAGED_NAMES)


def _data_fields(text: str):
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        m = _FIELDS_RE.match(stripped)
        if m:
            yield m.group(2), m.group(3)


def verify_fstab(text: str, has_efi: bool) -> Dict[str, Any]:
    counts: Dict[str, int] = {}
    swap = 0
    for mountpoint, fstype in _data_fields(text):
        counts[mountpoint] = counts.get(mountpoint, 0) + 1
        if fstype == "swap":
            swap += 1

    checks = {
        "root_once": counts.get("/", 0) == 1,
        "snapshots_once": counts.get("/.snapshots", 0) == 1,
        "boot_once": counts.get("/boot", 0) == 1,
        "efi_ok": counts.get("/boot/efi", 0) == (1 if has_efi else 0),
        "no_swap": swap == 0,
    }
    return {"ok": all(checks.values()), "checks": checks, "counts": counts, "swap_lines": swap}


def require_fstab_ok(path: str, has_efi: bool) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as fh:
        report = verify_fstab(fh.read(), has_efi)
    if not report["ok"]:
        failed = sorted(k for k, v in report["checks"].items() if not v)
        raise FstabVerificationError(
            f"{path} failed checks: {', '.join(failed)}",
            state=report,
        )
    return report
