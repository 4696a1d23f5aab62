"""Typed failures raised by the layout steps.

Each error names the result kind the CLI reports for it; all of them map to
exit status 1.
"""

from __future__ import annotations


class LayoutError(RuntimeError):
    result = "FAIL_GENERIC"

    def __init__(self, message: str, *, state: dict | None = None) -> None:
        super().__init__(message)
        self.state = state or {}


class PrivilegeError(LayoutError):
    result = "FAIL_PRIVILEGE"


class MissingToolError(LayoutError):
    result = "FAIL_MISSING_TOOL"


class InvalidDeviceError(LayoutError):
    result = "FAIL_INVALID_DEVICE"


class MountPointBusyError(LayoutError):
    result = "FAIL_MOUNTPOINT_BUSY"


class WrongFilesystemError(LayoutError):
    result = "FAIL_WRONG_FILESYSTEM"


class MountError(LayoutError):
    result = "FAIL_MOUNT"


class SubvolumeConflictError(LayoutError):
    result = "FAIL_SUBVOLUME"


class SubvolumeCreateError(LayoutError):
    result = "FAIL_SUBVOLUME"


class RelocationError(LayoutError):
    result = "FAIL_RELOCATION"


class FstabMissingError(LayoutError):
    result = "FAIL_FSTAB_MISSING"


class UuidResolutionError(LayoutError):
    result = "FAIL_UUID"


class FstabVerificationError(LayoutError):
    result = "FAIL_FSTAB_VERIFY"


class BootArtifactError(LayoutError):
    result = "FAIL_BOOT_ARTIFACTS"

    def __init__(self, message: str, *, step: str, rc: int, stderr: str = "", state: dict | None = None) -> None:
        super().__init__(message, state=state)
        self.step = step
        self.rc = rc
        self.stderr = stderr
