"""Rewrite /etc/fstab inside the relocated root."""
from __future__ import annotations

import os
import re
from typing import Iterable

from .devices import uuid_of
from .errors import FstabMissingError
from .executil import trace
from .model import (
    BTRFS_OPTIONS,
    FstabEntry,
    LayoutConfig,
    ROOT_SUBVOLUME,
    SNAPSHOT_SUBVOLUME,
)

# Textual, per-line: assumes one well-formed entry per line.
_MANAGED_TYPE_RE = re.compile(r"^\s*\S+\s+\S+\s+(btrfs|swap)(\s|$)")
_MANAGED_MOUNT_RE = re.compile(r"^\s*\S+\s+/boot(/efi)?/?(\s|$)")


def managed_entries(root_uuid: str, boot_uuid: str, efi_uuid: str | None = None) -> list[FstabEntry]:
    entries = [
        FstabEntry(
            f"UUID={root_uuid}",
            ROOT_SUBVOLUME.mount_target,
            "btrfs",
            f"{BTRFS_OPTIONS},subvol={ROOT_SUBVOLUME.name}",
        ),
        FstabEntry(
            f"UUID={root_uuid}",
            SNAPSHOT_SUBVOLUME.mount_target,
            "btrfs",
            f"{BTRFS_OPTIONS},subvol={SNAPSHOT_SUBVOLUME.name}",
        ),
        FstabEntry(f"UUID={boot_uuid}", "/boot", "ext4", "defaults", 0, 2),
    ]
    if efi_uuid:
        entries.append(FstabEntry(f"UUID={efi_uuid}", "/boot/efi", "vfat", "umask=0077", 0, 1))
    return entries


def render_entries(entries: Iterable[FstabEntry]) -> list[str]:
    """Format entries as aligned columns.

    Fields are separated by two spaces. The Btrfs subvolume lines join
    options and dump with a single space; partition lines keep two, so
    their dump column sits one to the right. This reproduces the published
    layout byte for byte.
    """

    entries = list(entries)
    if not entries:
        return []
    dev_w = max(len(e.device) for e in entries)
    mp_w = max(len(e.mountpoint) for e in entries)
    fs_w = max(len(e.fstype) for e in entries)
    opt_w = max(len(e.options) for e in entries)
    lines = []
    for e in entries:
        gap = " " if e.fstype == "btrfs" else "  "
        lines.append(
            f"{e.device:<{dev_w}}  {e.mountpoint:<{mp_w}}  {e.fstype:<{fs_w}}  "
            f"{e.options:<{opt_w}}{gap}{e.dump} {e.passno}"
        )
    return lines


def is_managed_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return False
    return bool(_MANAGED_TYPE_RE.match(line) or _MANAGED_MOUNT_RE.match(line))


def strip_managed_lines(lines: Iterable[str]) -> list[str]:
    return [line for line in lines if not is_managed_line(line)]


def render_fstab(existing_text: str, entries: Iterable[FstabEntry]) -> str:
    kept = strip_managed_lines(existing_text.splitlines())
    while kept and not kept[-1].strip():
        kept.pop()
    return "\n".join(kept + render_entries(entries)) + "\n"


def rewrite_mount_table(config: LayoutConfig) -> bool:
    """Replace btrfs, swap and boot entries with the managed ones.

    Requires the root subvolume to be mounted and populated.  Returns whether
    the file content changed.
    """

    path = config.fstab_path
    if not os.path.isfile(path):
        raise FstabMissingError(
            f"{path} not found; the root subvolume does not hold the installed system",
            state={"path": path},
        )

    root_uuid = uuid_of(config.root_device)
    boot_uuid = uuid_of(config.boot_device)
    efi_uuid = uuid_of(config.efi_device) if config.has_efi else None

    with open(path, "r", encoding="utf-8") as fh:
        current = fh.read()
    desired = render_fstab(current, managed_entries(root_uuid, boot_uuid, efi_uuid))

    if current == desired:
        trace("fstab.unchanged", path=path)
        return False

    with open(path, "w", encoding="utf-8") as f:
        f.write(desired)
        f.flush()
        os.fsync(f.fileno())
    trace("fstab.rewritten", path=path, root=root_uuid, boot=boot_uuid, efi=efi_uuid)
    return True
