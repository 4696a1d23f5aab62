import os
import subprocess

import pytest

from snaplayout import subvolumes
from snaplayout.errors import SubvolumeConflictError, SubvolumeCreateError


def _fake_btrfs(recorder):
    """Emulate ``btrfs subvolume create`` with a plain mkdir."""

    def handler(cmd):
        if cmd[:3] == ["btrfs", "subvolume", "create"]:
            os.mkdir(cmd[3])
        return None

    recorder.handler = handler


def test_creates_missing_subvolumes(monkeypatch, recorder, config):
    _fake_btrfs(recorder)
    monkeypatch.setattr(subvolumes, "run", recorder.run)

    created = subvolumes.ensure_managed_subvolumes(config)

    assert created == ["@", "@snapshots"]
    mnt = config.mountpoint
    assert recorder.commands == [
        ["btrfs", "subvolume", "create", os.path.join(mnt, "@")],
        ["btrfs", "subvolume", "create", os.path.join(mnt, "@snapshots")],
    ]
    assert os.path.isdir(os.path.join(mnt, "@", ".snapshots"))


def test_rerun_creates_nothing(monkeypatch, recorder, config):
    _fake_btrfs(recorder)
    monkeypatch.setattr(subvolumes, "run", recorder.run)
    subvolumes.ensure_managed_subvolumes(config)
    recorder.commands.clear()

    monkeypatch.setattr(subvolumes, "is_subvolume", lambda path: True)
    created = subvolumes.ensure_managed_subvolumes(config)

    assert created == []
    assert recorder.commands == []


def test_creates_only_the_missing_one(monkeypatch, recorder, config):
    _fake_btrfs(recorder)
    os.mkdir(os.path.join(config.mountpoint, "@"))
    monkeypatch.setattr(subvolumes, "run", recorder.run)
    monkeypatch.setattr(subvolumes, "is_subvolume", lambda path: True)

    assert subvolumes.ensure_managed_subvolumes(config) == ["@snapshots"]


def test_plain_directory_with_managed_name_is_refused(monkeypatch, recorder, config):
    os.mkdir(os.path.join(config.mountpoint, "@"))
    monkeypatch.setattr(subvolumes, "run", recorder.run)

    with pytest.raises(SubvolumeConflictError):
        subvolumes.ensure_managed_subvolumes(config)
    assert recorder.commands == []


def test_create_failure(monkeypatch, config):
    def fake_run(cmd, check=True, **_kwargs):  # noqa: ARG001
        raise subprocess.CalledProcessError(1, cmd, "", "ERROR: cannot create subvolume")

    monkeypatch.setattr(subvolumes, "run", fake_run)
    with pytest.raises(SubvolumeCreateError) as excinfo:
        subvolumes.ensure_managed_subvolumes(config)
    assert "cannot create subvolume" in str(excinfo.value)


def test_is_subvolume_checks_inode(tmp_path):
    assert not subvolumes.is_subvolume(str(tmp_path / "missing"))
    plain = tmp_path / "plain"
    plain.mkdir()
    assert subvolumes.is_subvolume(str(plain)) == (os.stat(plain).st_ino == 256)
