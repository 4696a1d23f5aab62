"""Move the installed system from the top-level view into @."""

from __future__ import annotations

import datetime as _dt
import os
from subprocess import CalledProcessError

from .errors import RelocationError
from .executil import run, trace, warn
from .model import LayoutConfig, RelocationReport
from .verification import top_level_leftovers

SENTINEL_RELPATH = os.path.join("var", "lib", "snaplayout", "relocated")
MARKER_DIRS = ("etc", "usr")


def sentinel_path(config: LayoutConfig) -> str:
    return os.path.join(config.root_subvolume_path, SENTINEL_RELPATH)


def _write_sentinel(config: LayoutConfig, reason: str):
    path = sentinel_path(config)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    stamp = _dt.datetime.now(_dt.timezone.utc).replace(microsecond=0).isoformat()
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(f"relocated={stamp}\nreason={reason}\n")
        fh.flush()
        os.fsync(fh.fileno())


def _looks_relocated(config: LayoutConfig) -> bool:
    root = config.root_subvolume_path
    return all(os.path.isdir(os.path.join(root, d)) for d in MARKER_DIRS)


def _move(src: str, dst: str) -> bool:
    """Move one entry; return False when it was already gone."""
    try:
        run(["mv", "-T", "--", src, dst], check=True, timeout=None)
        return True
    except CalledProcessError as exc:
        if not os.path.lexists(src):
            trace("relocate.source_vanished", src=src, rc=exc.returncode)
            return False
        msg = (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"
        raise RelocationError(
            f"moving {src} into the root subvolume failed: {msg}",
            state={"src": src, "dst": dst, "rc": exc.returncode},
        ) from exc


def relocate_installed_system(config: LayoutConfig) -> RelocationReport:
    top = config.mountpoint
    report = RelocationReport()

    if os.path.isfile(sentinel_path(config)):
        report.skipped, report.reason = True, "sentinel"
    elif _looks_relocated(config):
        # An interrupted loop that already moved etc and usr lands here too;
        # only a clean top level counts as relocated, otherwise resume.
        pending = top_level_leftovers(top)
        if pending:
            trace("relocate.resume", reason="marker-dirs", pending=pending)
        else:
            report.skipped, report.reason = True, "marker-dirs"
            _write_sentinel(config, report.reason)

    if report.skipped:
        report.leftover = top_level_leftovers(top)
        if report.leftover:
            warn("relocate.leftover", reason=report.reason, entries=report.leftover)
        trace("relocate.skipped", reason=report.reason)
        return report

    for name in top_level_leftovers(top):
        src = os.path.join(top, name)
        dst = os.path.join(config.root_subvolume_path, name)
        if _move(src, dst):
            report.moved.append(name)
        else:
            report.vanished.append(name)

    report.leftover = top_level_leftovers(top)
    if report.leftover:
        raise RelocationError(
            "entries remain at the top level after relocation: " + ", ".join(report.leftover),
            state={"leftover": report.leftover},
        )
    report.reason = "moved"
    _write_sentinel(config, report.reason)
    trace("relocate.done", moved=len(report.moved), vanished=report.vanished)
    return report
