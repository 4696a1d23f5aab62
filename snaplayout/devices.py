"""Block-device naming and blkid probing."""
from __future__ import annotations

from .errors import UuidResolutionError
from .executil import run, trace


def normalize_device(name: str) -> str:
    """Accept ``sda3`` as well as ``/dev/sda3``."""
    name = (name or "").strip()
    if not name:
        raise ValueError("empty device name")
    if name.startswith("/"):
        return name
    return f"/dev/{name}"


def parse_blkid_export(text: str) -> dict[str, str]:
    """Parse ``blkid --output export`` into a dict.

    Values may be shell-quoted when they contain spaces (labels mostly); the
    quotes are stripped, other characters are kept as-is.
    """

    fields: dict[str, str] = {}
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line or "=" not in line:
            continue
        key, value = line.split("=", 1)
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        fields[key.strip().upper()] = value
    return fields


def blkid_export(device: str) -> dict[str, str]:
    r = run(["blkid", "--output", "export", device], check=False)
    if r.rc != 0:
        trace("devices.blkid_failed", device=device, rc=r.rc, err=(r.err or "").strip())
        return {}
    return parse_blkid_export(r.out)


def fstype_of(device: str) -> str:
    return blkid_export(device).get("TYPE", "")


def uuid_of(device: str) -> str:
    uuid = blkid_export(device).get("UUID", "")
    if not uuid:
        raise UuidResolutionError(
            f"unable to resolve filesystem UUID of {device}",
            state={"device": device},
        )
    trace("devices.uuid", device=device, uuid=uuid)
    return uuid
