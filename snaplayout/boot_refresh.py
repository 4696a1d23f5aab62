"""Regenerate grub.cfg and the initramfs inside the relocated root."""

from __future__ import annotations

from typing import Any, Dict

from .errors import BootArtifactError
from .executil import run, trace
from .model import LayoutConfig
from .mounts import bind_boot_hierarchy

# Order matters: grub must see the final fstab and /boot before the
# initramfs is rebuilt against it.
BOOT_STEPS = (
    ("update-grub", ["update-grub"]),
    ("update-initramfs", ["update-initramfs", "-u"]),
)


def refresh_boot_artifacts(config: LayoutConfig) -> Dict[str, Any]:
    mnt = config.mountpoint
    bind_boot_hierarchy(config)

    telemetry: Dict[str, Any] = {"steps": []}
    for step, argv in BOOT_STEPS:
        res = run(["chroot", mnt, *argv], check=False, timeout=None)
        telemetry["steps"].append({"step": step, "rc": res.rc, "duration_sec": getattr(res, "duration", None)})
        if res.rc != 0:
            trace("boot_refresh.failed", step=step, rc=res.rc, err=(res.err or "").strip())
            raise BootArtifactError(
                f"{step} failed inside {mnt} (rc={res.rc}); boot artifacts may be stale",
                step=step,
                rc=res.rc,
                stderr=(res.err or "").strip(),
                state=telemetry,
            )
        trace("boot_refresh.step_ok", step=step, duration=getattr(res, "duration", None))
    return telemetry
