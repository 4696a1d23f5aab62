import os

import pytest

from snaplayout import fstab
from snaplayout.errors import FstabMissingError, UuidResolutionError

UUIDS = {
    "/dev/sda3": "<root>",
    "/dev/sda2": "<boot>",
    "/dev/sda1": "<efi>",
}

EXPECTED = [
    "UUID=<root>  /            btrfs  defaults,ssd,discard=async,noatime,space_cache=v2,compress=zstd:1,subvol=@          0 0",
    "UUID=<root>  /.snapshots  btrfs  defaults,ssd,discard=async,noatime,space_cache=v2,compress=zstd:1,subvol=@snapshots 0 0",
    "UUID=<boot>  /boot        ext4   defaults                                                                             0 2",
    "UUID=<efi>   /boot/efi    vfat   umask=0077                                                                           0 1",
]

UBUNTU_FSTAB = """\
# /etc/fstab: static file system information.
#
# <file system> <mount point>   <type>  <options>       <dump>  <pass>
# / was on /dev/sda3 during installation
UUID=1111-old /               btrfs   defaults,subvol=@ 0       1
# /boot was on /dev/sda2 during installation
UUID=2222-old /boot           ext4    defaults        0       2
# /boot/efi was on /dev/sda1 during installation
UUID=3333-old  /boot/efi       vfat    umask=0077      0       1
/swapfile                                 none            swap    sw              0       0
tmpfs\t/tmp\ttmpfs\tdefaults\t0\t0
"""


def _write(config, text):
    path = config.fstab_path
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text)
    return path


def _read(path):
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


def test_rendered_lines_match_fixed_layout():
    lines = fstab.render_entries(fstab.managed_entries("<root>", "<boot>", "<efi>"))
    assert lines == EXPECTED


def test_rendered_lines_without_efi():
    lines = fstab.render_entries(fstab.managed_entries("<root>", "<boot>"))
    assert lines == EXPECTED[:3]


def test_strip_managed_lines():
    kept = fstab.strip_managed_lines(UBUNTU_FSTAB.splitlines())
    assert "tmpfs\t/tmp\ttmpfs\tdefaults\t0\t0" in kept
    assert not any("swap" in line and not line.startswith("#") for line in kept)
    assert not any(line.startswith("UUID=") for line in kept)
    # comments survive, even those mentioning /boot
    assert "# /boot was on /dev/sda2 during installation" in kept


def test_boot_prefix_is_not_matched():
    assert not fstab.is_managed_line("UUID=x /bootstrap ext4 defaults 0 2")
    assert fstab.is_managed_line("UUID=x /boot/ ext4 defaults 0 2")
    assert fstab.is_managed_line("UUID=x\t/boot/efi\tvfat\tumask=0077\t0\t1")


def test_rewrite_mount_table(monkeypatch, config):
    monkeypatch.setattr(fstab, "uuid_of", lambda dev: UUIDS[dev])
    path = _write(config, UBUNTU_FSTAB)

    assert fstab.rewrite_mount_table(config) is True

    lines = _read(path).splitlines()
    assert lines[-4:] == EXPECTED
    assert "tmpfs\t/tmp\ttmpfs\tdefaults\t0\t0" in lines
    assert lines[0] == "# /etc/fstab: static file system information."


def test_rewrite_is_idempotent(monkeypatch, config):
    monkeypatch.setattr(fstab, "uuid_of", lambda dev: UUIDS[dev])
    path = _write(config, UBUNTU_FSTAB)

    fstab.rewrite_mount_table(config)
    first = _read(path)
    assert fstab.rewrite_mount_table(config) is False
    assert _read(path) == first


def test_rewrite_without_efi_never_queries_efi(monkeypatch, config_no_efi):
    queried = []

    def fake_uuid(dev):
        queried.append(dev)
        return UUIDS[dev]

    monkeypatch.setattr(fstab, "uuid_of", fake_uuid)
    path = _write(config_no_efi, UBUNTU_FSTAB)

    fstab.rewrite_mount_table(config_no_efi)

    assert queried == ["/dev/sda3", "/dev/sda2"]
    assert "/boot/efi" not in "\n".join(
        line for line in _read(path).splitlines() if not line.startswith("#")
    )


def test_missing_fstab_is_fatal(monkeypatch, config):
    monkeypatch.setattr(fstab, "uuid_of", lambda dev: pytest.fail("must not query"))
    with pytest.raises(FstabMissingError):
        fstab.rewrite_mount_table(config)
    assert not os.path.exists(config.fstab_path)


def test_unresolvable_uuid_leaves_file_alone(monkeypatch, config):
    def fake_uuid(dev):
        if dev == "/dev/sda2":
            raise UuidResolutionError("no uuid")
        return UUIDS[dev]

    monkeypatch.setattr(fstab, "uuid_of", fake_uuid)
    path = _write(config, UBUNTU_FSTAB)
    with pytest.raises(UuidResolutionError):
        fstab.rewrite_mount_table(config)
    assert _read(path) == UBUNTU_FSTAB
