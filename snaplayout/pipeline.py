"""Ordered layout stages and the driver that runs them.

Every stage takes the immutable :class:`LayoutConfig` and records what it did
on the :class:`LayoutReport`.  The first :class:`LayoutError` aborts the run;
the mount session guarantees teardown on every exit path.
"""

from __future__ import annotations

import sys
from typing import Callable, Optional

from .boot_refresh import refresh_boot_artifacts
from .executil import trace
from .fstab import rewrite_mount_table
from .model import LayoutConfig, LayoutReport
from .mounts import MountSession, mount_top_level, remount_as_root
from .relocate import relocate_installed_system
from .subvolumes import ensure_managed_subvolumes
from .verification import require_fstab_ok

Narrator = Callable[[str], None]


def _say(message: str):
    print(message, flush=True)


def _stage_mount_top_level(config: LayoutConfig, report: LayoutReport):
    mount_top_level(config)


def _stage_subvolumes(config: LayoutConfig, report: LayoutReport):
    report.created_subvolumes = ensure_managed_subvolumes(config)


def _stage_relocate(config: LayoutConfig, report: LayoutReport):
    reloc = relocate_installed_system(config)
    report.relocation = reloc
    if reloc.skipped:
        print(f"Root subvolume already holds the installed system ({reloc.reason}); skipping move.", flush=True)
    if reloc.leftover:
        print(
            "[WARN] entries left at the top level: " + ", ".join(reloc.leftover),
            file=sys.stderr,
        )


def _stage_remount(config: LayoutConfig, report: LayoutReport):
    remount_as_root(config)


def _stage_fstab(config: LayoutConfig, report: LayoutReport):
    report.fstab_changed = rewrite_mount_table(config)
    report.fstab_checks = require_fstab_ok(config.fstab_path, config.has_efi)


def _stage_boot(config: LayoutConfig, report: LayoutReport):
    report.boot = refresh_boot_artifacts(config)


STAGES = (
    ("mount_top_level", "Mounting Btrfs top-level (subvolid=5)", _stage_mount_top_level),
    ("subvolumes", "Ensuring @ and @snapshots exist", _stage_subvolumes),
    ("relocate", "Moving installed system into @", _stage_relocate),
    ("remount", "Remounting @ as /", _stage_remount),
    ("fstab", "Adjusting /etc/fstab", _stage_fstab),
    ("boot", "Chroot and update boot artifacts", _stage_boot),
)


def run_layout(config: LayoutConfig, narrate: Optional[Narrator] = None) -> LayoutReport:
    say = narrate or _say
    report = LayoutReport(config=config)
    trace("pipeline.start", **config.devices(), mnt=config.mountpoint)
    say("--- Preparation ---")
    with MountSession(config):
        for name, title, stage in STAGES:
            say(f"--- {title} ---")
            trace("pipeline.stage", stage=name)
            stage(config, report)
            report.completed.append(name)
    trace("pipeline.done", completed=report.completed)
    return report
