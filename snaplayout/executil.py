"""Subprocess wrapper and JSONL trace log shared by every step."""

from __future__ import annotations

import datetime as _dt
import json
import os
import subprocess
import time
from typing import Sequence

from .paths import fallback_logs_dir, logs_dir


LOG_DIRS: list[str] | None = None
LOG_PATH: str | None = None
LOG_NAME = "snaplayout.jsonl"


def _log_dirs() -> list[str]:
    if LOG_DIRS:
        return list(LOG_DIRS)
    return [logs_dir(), fallback_logs_dir()]


def _ensure_logger() -> str | None:
    global LOG_PATH
    if LOG_PATH:
        return LOG_PATH
    for d in _log_dirs():
        d_expanded = os.path.expanduser(d)
        try:
            os.makedirs(d_expanded, exist_ok=True)
        except OSError:
            continue
        LOG_PATH = os.path.join(d_expanded, LOG_NAME)
        return LOG_PATH
    LOG_PATH = None
    return None


def resolve_log_path() -> str | None:
    """Return the active log path, creating directories when possible."""

    return _ensure_logger()


class Result:
    def __init__(self, rc: int, out: str, err: str, duration: float):
        self.rc, self.out, self.err, self.duration = rc, out, err, duration


LEVELS = {"TRACE": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "NONE": 100}
LOG_LEVEL = os.environ.get("SNAPLAYOUT_LOG_LEVEL", "TRACE").upper()


def _now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat().replace("+00:00", "Z")


def _write_jsonl(obj: dict):
    path = _ensure_logger()
    if not path:
        return
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(obj, default=str) + "\n")
    except OSError:
        pass


def log(level: str, event: str, **fields):
    lvl = LEVELS.get(level.upper(), 100)
    cur = LEVELS.get(LOG_LEVEL, 100)
    if lvl < cur:
        return
    rec = {"ts": _now(), "level": level.upper(), "event": event}
    rec.update(fields)
    _write_jsonl(rec)


def trace(event: str, **fields):
    log("TRACE", event, **fields)


def warn(event: str, **fields):
    log("WARN", event, **fields)


def run(
    cmd: Sequence[str],
    check: bool = True,
    timeout: float | None = 120.0,
    env: dict | None = None,
) -> Result:
    """Run ``cmd`` and capture its output.

    ``timeout=None`` blocks until the command exits; the mutating steps use
    it for mount, subvolume and boot-tool calls.  A nonzero exit raises
    :class:`subprocess.CalledProcessError` when ``check`` is set.
    """

    trace("exec.start", cmd=list(cmd))
    started = time.time()
    env2 = (env or os.environ).copy()
    env2.setdefault("SNAPLAYOUT_LOG_LEVEL", LOG_LEVEL)
    proc = subprocess.run(list(cmd), capture_output=True, text=True, timeout=timeout, env=env2)
    dur = time.time() - started
    trace(
        "exec.done",
        cmd=list(cmd),
        rc=proc.returncode,
        dur=dur,
        out=proc.stdout,
        err=proc.stderr,
    )
    if check and proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, list(cmd), proc.stdout, proc.stderr)
    return Result(proc.returncode, proc.stdout, proc.stderr, dur)


def append_jsonl(path: str, obj: dict):
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")
    except OSError:
        pass
