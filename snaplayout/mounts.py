"""Mount helpers for the top-level view, the root subvolume and the chroot binds."""
from subprocess import CalledProcessError, SubprocessError
import os

from .devices import fstype_of
from .errors import MountError, MountPointBusyError, WrongFilesystemError
from .executil import run, trace, warn
from .model import LayoutConfig, ROOT_SUBVOLUME, SNAPSHOT_SUBVOLUME

PSEUDO_FILESYSTEMS = ("proc", "sys", "dev", "run")


def _failure_text(exc: CalledProcessError) -> str:
    return (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"


def _mount(dev: str, target: str, fstype: str | None = None, opts: list[str] | None = None):
    cmd = ["mount"]
    if fstype:
        cmd += ["-t", fstype]
    if opts:
        cmd += ["-o", ",".join(opts)]
    cmd += [dev, target]
    try:
        run(cmd, check=True, timeout=None)
    except CalledProcessError as exc:
        raise MountError(
            f"mounting {dev} at {target} failed: {_failure_text(exc)}",
            state={"cmd": cmd, "rc": exc.returncode},
        ) from exc


def _bind(src: str, dst: str):
    cmd = ["mount", "--bind", src, dst]
    try:
        run(cmd, check=True, timeout=None)
    except CalledProcessError as exc:
        raise MountError(
            f"bind-mounting {src} at {dst} failed: {_failure_text(exc)}",
            state={"cmd": cmd, "rc": exc.returncode},
        ) from exc


def _mkdirs(*paths: str):
    cmd = ["mkdir", "-p", *paths]
    try:
        run(cmd, check=True)
    except CalledProcessError as exc:
        raise MountError(
            f"creating mount point {', '.join(paths)} failed: {_failure_text(exc)}",
            state={"cmd": cmd, "rc": exc.returncode},
        ) from exc


def _findmnt(column: str, path: str) -> str:
    r = run(["findmnt", "-n", "-o", column, "--mountpoint", path], check=False)
    if r.rc != 0:
        return ""
    lines = (r.out or "").strip().splitlines()
    return lines[-1].strip() if lines else ""


def mount_is_active(path: str) -> bool:
    return bool(_findmnt("TARGET", path))


def submounts(path: str) -> list[str]:
    """Every mount at or below ``path``, outermost first."""
    r = run(["findmnt", "-R", "-r", "-n", "-o", "TARGET", path], check=False)
    if r.rc != 0:
        return []
    return [line.strip() for line in (r.out or "").splitlines() if line.strip()]


def _assert_fstype(path: str, expected: str, device: str):
    actual = _findmnt("FSTYPE", path)
    if actual != expected:
        trace("mounts.fstype_mismatch", path=path, device=device, expected=expected, actual=actual)
        raise WrongFilesystemError(
            f"{path} is mounted as {actual or 'nothing'}, expected {expected}; is {device} the right device?",
            state={"path": path, "device": device, "expected": expected, "actual": actual},
        )


def mount_top_level(config: LayoutConfig):
    """Mount the volume's top-level view (subvolid=5) at the mount point."""
    dev, mnt = config.root_device, config.mountpoint
    current = fstype_of(dev)
    if current != "btrfs":
        raise WrongFilesystemError(
            f"{dev} is formatted as {current or 'unknown'}, expected btrfs",
            state={"device": dev, "actual": current},
        )
    _mount(dev, mnt, fstype="btrfs", opts=["subvolid=5"])
    _assert_fstype(mnt, "btrfs", dev)
    trace("mounts.top_level", device=dev, mnt=mnt)


def remount_as_root(config: LayoutConfig):
    """Swap the top-level view for the root subvolume at the same mount point.

    The two views are never mounted at the same time: if the top-level view
    cannot be released the remount is not attempted.
    """

    dev, mnt = config.root_device, config.mountpoint
    try:
        run(["umount", mnt], check=True, timeout=None)
    except CalledProcessError as exc:
        raise MountError(
            f"unable to release top-level view at {mnt}: {_failure_text(exc)}",
            state={"mnt": mnt, "rc": exc.returncode},
        ) from exc
    _mount(dev, mnt, fstype="btrfs", opts=[f"subvol={ROOT_SUBVOLUME.name}"])
    _assert_fstype(mnt, "btrfs", dev)

    options = _findmnt("OPTIONS", mnt).split(",")
    wanted = {f"subvol=/{ROOT_SUBVOLUME.name}", f"subvol={ROOT_SUBVOLUME.name}"}
    if not wanted.intersection(options):
        raise MountError(
            f"{mnt} is not showing subvolume {ROOT_SUBVOLUME.name}",
            state={"mnt": mnt, "options": options},
        )

    dirs = [
        os.path.join(mnt, SNAPSHOT_SUBVOLUME.mount_target.lstrip("/")),
        config.boot_path,
    ]
    if config.has_efi:
        dirs.append(config.efi_path)
    _mkdirs(*dirs)
    trace("mounts.root_subvolume", device=dev, mnt=mnt)


def bind_boot_hierarchy(config: LayoutConfig):
    mnt = config.mountpoint
    for p in PSEUDO_FILESYSTEMS:
        dst = os.path.join(mnt, p)
        _mkdirs(dst)
        _bind(f"/{p}", dst)
    _mkdirs(config.boot_path)
    _mount(config.boot_device, config.boot_path)
    if config.has_efi:
        _mkdirs(config.efi_path)
        _mount(config.efi_device, config.efi_path)
    trace("mounts.boot_hierarchy", mnt=mnt, efi=config.has_efi)


def teardown_paths(mnt: str) -> list[str]:
    paths = [os.path.join(mnt, "dev", "pts")]
    paths += [os.path.join(mnt, p) for p in PSEUDO_FILESYSTEMS]
    paths += [os.path.join(mnt, "boot", "efi"), os.path.join(mnt, "boot"), mnt]
    return paths


def unmount_all(mnt: str):
    """Best-effort teardown of everything this tool may have mounted.

    Never raises: a target that is not mounted is the normal case at the
    start of a run.
    """

    for p in teardown_paths(mnt):
        try:
            r = run(["umount", p], check=False, timeout=None)
        except (OSError, SubprocessError) as exc:
            trace("mounts.umount_error", path=p, error=str(exc))
            continue
        if r.rc != 0:
            trace("mounts.umount_skipped", path=p, rc=r.rc, err=(r.err or "").strip())

    try:
        lingering = submounts(mnt)
        if lingering:
            warn("mounts.lingering", mnt=mnt, targets=lingering)
            run(["umount", "-R", "-l", mnt], check=False, timeout=None)
    except (OSError, SubprocessError) as exc:
        trace("mounts.lingering_error", mnt=mnt, error=str(exc))


class MountSession:
    """Owns the mount point for the duration of a run.

    Stale mounts from an interrupted run are cleared on entry and everything
    is torn down again on exit, whichever way the body leaves.
    """

    def __init__(self, config: LayoutConfig):
        self.config = config

    def __enter__(self) -> "MountSession":
        mnt = self.config.mountpoint
        unmount_all(mnt)
        _mkdirs(mnt)
        if mount_is_active(mnt):
            raise MountPointBusyError(
                f"{mnt} is still mounted after cleanup",
                state={"mnt": mnt, "submounts": submounts(mnt)},
            )
        trace("mounts.session_open", mnt=mnt)
        return self

    def __exit__(self, exc_type, exc, tb):
        unmount_all(self.config.mountpoint)
        trace("mounts.session_closed", mnt=self.config.mountpoint, failed=exc_type is not None)
        return False
