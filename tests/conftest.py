from types import SimpleNamespace

import pytest

from snaplayout import executil
from snaplayout.model import LayoutConfig


class DummyResult:
    def __init__(self, out: str = "", rc: int = 0, err: str = "") -> None:
        self.out = out
        self.rc = rc
        self.err = err
        self.duration = 0.0


@pytest.fixture(autouse=True)
def _isolated_log(tmp_path_factory, monkeypatch):
    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setattr(executil, "LOG_DIRS", [str(log_dir)])
    monkeypatch.setattr(executil, "LOG_PATH", None)
    return log_dir


@pytest.fixture
def config(tmp_path):
    mnt = tmp_path / "mnt"
    mnt.mkdir()
    return LayoutConfig(
        root_device="/dev/sda3",
        boot_device="/dev/sda2",
        efi_device="/dev/sda1",
        mountpoint=str(mnt),
    )


@pytest.fixture
def config_no_efi(config):
    return LayoutConfig(
        root_device=config.root_device,
        boot_device=config.boot_device,
        mountpoint=config.mountpoint,
    )


@pytest.fixture
def recorder():
    """Fake ``run`` that records commands and answers from a table."""

    state = SimpleNamespace(commands=[], responses={}, handler=None)

    def fake_run(cmd, check=True, **_kwargs):  # noqa: ARG001 - signature compatibility
        cmd = list(cmd)
        state.commands.append(cmd)
        if state.handler is not None:
            res = state.handler(cmd)
            if res is not None:
                return res
        return state.responses.get(tuple(cmd), DummyResult(""))

    state.run = fake_run
    return state
