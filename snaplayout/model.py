from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ManagedSubvolume:
    name: str
    mount_target: str


ROOT_SUBVOLUME = ManagedSubvolume("@", "/")
SNAPSHOT_SUBVOLUME = ManagedSubvolume("@snapshots", "/.snapshots")
MANAGED_SUBVOLUMES = (ROOT_SUBVOLUME, SNAPSHOT_SUBVOLUME)
MANAGED_NAMES = frozenset(sv.name for sv in MANAGED_SUBVOLUMES)

BTRFS_OPTIONS = "defaults,ssd,discard=async,noatime,space_cache=v2,compress=zstd:1"


@dataclass(frozen=True)
class LayoutConfig:
    root_device: str
    boot_device: str
    efi_device: Optional[str] = None
    mountpoint: str = "/mnt"

    @property
    def has_efi(self) -> bool:
        return bool(self.efi_device)

    @property
    def root_subvolume_path(self) -> str:
        """Location of ``@`` while the top-level view is mounted."""
        return os.path.join(self.mountpoint, ROOT_SUBVOLUME.name)

    def subvolume_path(self, name: str) -> str:
        return os.path.join(self.mountpoint, name)

    @property
    def boot_path(self) -> str:
        return os.path.join(self.mountpoint, "boot")

    @property
    def efi_path(self) -> str:
        return os.path.join(self.mountpoint, "boot", "efi")

    @property
    def fstab_path(self) -> str:
        return os.path.join(self.mountpoint, "etc", "fstab")

    def devices(self) -> dict:
        return {
            "root": self.root_device,
            "boot": self.boot_device,
            "efi": self.efi_device,
        }


@dataclass(frozen=True)
class FstabEntry:
    device: str
    mountpoint: str
    fstype: str
    options: str
    dump: int = 0
    passno: int = 0


@dataclass
class RelocationReport:
    skipped: bool = False
    reason: str = ""
    moved: list[str] = field(default_factory=list)
    vanished: list[str] = field(default_factory=list)
    leftover: list[str] = field(default_factory=list)


@dataclass
class LayoutReport:
    config: LayoutConfig
    created_subvolumes: list[str] = field(default_factory=list)
    relocation: Optional[RelocationReport] = None
    fstab_changed: bool = False
    fstab_checks: dict = field(default_factory=dict)
    boot: dict = field(default_factory=dict)
    completed: list[str] = field(default_factory=list)
