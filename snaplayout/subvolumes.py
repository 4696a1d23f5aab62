"""Create @ and @snapshots under the top-level view."""
from __future__ import annotations

import os
from subprocess import CalledProcessError

from .errors import SubvolumeConflictError, SubvolumeCreateError
from .executil import run, trace
from .model import LayoutConfig, MANAGED_SUBVOLUMES, SNAPSHOT_SUBVOLUME

# Inode number of every btrfs subvolume root directory.
BTRFS_SUBVOLUME_INO = 256


def is_subvolume(path: str) -> bool:
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return False
    return os.path.isdir(path) and not os.path.islink(path) and st.st_ino == BTRFS_SUBVOLUME_INO


def _create(path: str):
    try:
        run(["btrfs", "subvolume", "create", path], check=True, timeout=None)
    except CalledProcessError as exc:
        msg = (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"
        raise SubvolumeCreateError(
            f"btrfs subvolume create {path} failed: {msg}",
            state={"path": path, "rc": exc.returncode},
        ) from exc


def ensure_managed_subvolumes(config: LayoutConfig) -> list[str]:
    """Create whichever managed subvolumes are missing; return their names.

    Expects the top-level view to be mounted.  An existing object with a
    managed name is reused only when it is a subvolume.
    """

    created: list[str] = []
    for sv in MANAGED_SUBVOLUMES:
        path = config.subvolume_path(sv.name)
        if os.path.lexists(path):
            if not is_subvolume(path):
                raise SubvolumeConflictError(
                    f"{path} exists but is not a btrfs subvolume",
                    state={"path": path},
                )
            trace("subvolumes.exists", name=sv.name, path=path)
            continue
        _create(path)
        trace("subvolumes.created", name=sv.name, path=path)
        created.append(sv.name)

    # Snapshot tooling expects /.snapshots to be a plain directory in the root.
    snap_dir = os.path.join(config.root_subvolume_path, SNAPSHOT_SUBVOLUME.mount_target.lstrip("/"))
    os.makedirs(snap_dir, exist_ok=True)
    return created
