"""CLI entrypoint for the Btrfs @/@snapshots relayout."""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from dataclasses import asdict
from typing import Any, Dict, Optional

from .devices import normalize_device
from .errors import LayoutError
from .executil import append_jsonl, resolve_log_path, trace
from .model import LayoutConfig
from .pipeline import run_layout
from .safety import guard_environment, require_block_device


USAGE_EXAMPLES = """\
examples:
  sudo snaplayout sda3 sda2
  sudo snaplayout nvme0n1p3 nvme0n1p2 nvme0n1p1

Run from the live system after installation, before the first reboot.
Do not run two invocations against the same mount point at once.
"""

RESULT_CODES: Dict[str, int] = {
    "LAYOUT_OK": 0,
    "FAIL_USAGE": 1,
    "FAIL_PRIVILEGE": 1,
    "FAIL_MISSING_TOOL": 1,
    "FAIL_INVALID_DEVICE": 1,
    "FAIL_MOUNTPOINT_BUSY": 1,
    "FAIL_WRONG_FILESYSTEM": 1,
    "FAIL_MOUNT": 1,
    "FAIL_SUBVOLUME": 1,
    "FAIL_RELOCATION": 1,
    "FAIL_FSTAB_MISSING": 1,
    "FAIL_UUID": 1,
    "FAIL_FSTAB_VERIFY": 1,
    "FAIL_BOOT_ARTIFACTS": 1,
    "FAIL_GENERIC": 1,
    "FAIL_UNHANDLED": 1,
}

CLI_START_MONO = time.perf_counter()


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="snaplayout",
        description="Move a fresh Btrfs install into @ and add @snapshots.",
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("rootdev", help="btrfs partition holding the installed system")
    parser.add_argument("bootdev", help="ext4 partition mounted at /boot")
    parser.add_argument("efidev", nargs="?", default=None, help="vfat partition mounted at /boot/efi")
    parser.add_argument("--mountpoint", default="/mnt", help="working mount point (default: /mnt)")
    return parser


def _checked_mountpoint(path: str) -> str:
    if not os.path.isabs(path):
        raise ValueError(f"mount point must be an absolute path: {path!r}")
    # Teardown unmounts everything below it, so the live root is off limits.
    if os.path.realpath(path) == "/":
        raise ValueError(f"mount point must not be the running system's root: {path!r}")
    return os.path.normpath(path)


def config_from_args(args: argparse.Namespace) -> LayoutConfig:
    return LayoutConfig(
        root_device=normalize_device(args.rootdev),
        boot_device=normalize_device(args.bootdev),
        efi_device=normalize_device(args.efidev) if args.efidev else None,
        mountpoint=_checked_mountpoint(args.mountpoint),
    )


def _emit_result(kind: str, extra: Optional[Dict[str, Any]] = None) -> None:
    payload: Dict[str, Any] = {"result": kind, "ts": int(time.time())}
    if extra:
        payload.update(extra)
    log_path = resolve_log_path()
    if log_path:
        payload.setdefault("log_path", log_path)
        append_jsonl(log_path, payload)
    payload["timing_total_ms"] = int(max(0.0, (time.perf_counter() - CLI_START_MONO) * 1000))
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str))
    raise SystemExit(RESULT_CODES.get(kind, 1))


def _main_impl(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except ValueError as exc:
        _emit_result("FAIL_USAGE", extra={"why": str(exc)})

    devices = config.devices()
    trace("cli.args", mnt=config.mountpoint, **devices)

    try:
        guard_environment()
        for dev in (config.root_device, config.boot_device, config.efi_device):
            if dev:
                require_block_device(dev)
        report = run_layout(config)
    except LayoutError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        _emit_result(exc.result, extra={"why": str(exc), "devices": devices, "state": exc.state})

    relocation = asdict(report.relocation) if report.relocation else None
    print("Script completed successfully!")
    print("Reboot now.")
    _emit_result(
        "LAYOUT_OK",
        extra={
            "devices": devices,
            "created_subvolumes": report.created_subvolumes,
            "relocation": relocation,
            "fstab_changed": report.fstab_changed,
            "boot": report.boot,
        },
    )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    try:
        return _main_impl(argv)
    except SystemExit:
        raise
    except Exception as exc:  # noqa: BLE001
        print(f"ERROR: {exc}", file=sys.stderr)
        _emit_result("FAIL_UNHANDLED", extra={"why": str(exc)})
    return 1


if __name__ == "__main__":
    sys.exit(main())
