"""Environment guard: privilege, tool availability and device sanity checks."""

from __future__ import annotations

import os
import shutil
import stat
from typing import Iterable

from .errors import InvalidDeviceError, MissingToolError, PrivilegeError
from .executil import trace

REQUIRED_COMMANDS = (
    "blkid",
    "mount",
    "umount",
    "btrfs",
    "mv",
    "chroot",
    "findmnt",
    "update-grub",
    "update-initramfs",
)


def require_root() -> None:
    euid = os.geteuid()
    if euid != 0:
        trace("safety.not_root", euid=euid)
        raise PrivilegeError("must run as root", state={"euid": euid})


def missing_commands(commands: Iterable[str] = REQUIRED_COMMANDS) -> list[str]:
    return [c for c in commands if shutil.which(c) is None]


def require_commands(commands: Iterable[str] = REQUIRED_COMMANDS) -> None:
    missing = missing_commands(commands)
    if missing:
        trace("safety.missing_commands", missing=missing)
        raise MissingToolError(
            "missing command: " + ", ".join(missing),
            state={"missing": missing},
        )


def require_block_device(path: str) -> None:
    try:
        st = os.stat(path)
    except FileNotFoundError:
        raise InvalidDeviceError(f"device {path} does not exist", state={"device": path}) from None
    if not stat.S_ISBLK(st.st_mode):
        raise InvalidDeviceError(f"{path} is not a block device", state={"device": path})


def guard_environment(commands: Iterable[str] = REQUIRED_COMMANDS) -> None:
    """Fail before any mutation when the run cannot possibly succeed."""
    require_root()
    require_commands(commands)
