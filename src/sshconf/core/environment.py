"""Environment detection for OS type, architecture and privileges."""

import os
import platform
from enum import Enum
from pathlib import Path


class OSType(Enum):
    """Operating system type."""

    MACOS = "macos"
    LINUX = "linux"
    WSL = "wsl"
    BSD = "bsd"
    UNKNOWN = "unknown"


def detect_os_type() -> OSType:
    """Detect operating system type."""
    system = platform.system().lower()

    # WSL reports Linux, so check for it before the generic mapping
    if system == "linux":
        proc_version = Path("/proc/version")
        try:
            if "microsoft" in proc_version.read_text().lower():
                return OSType.WSL
        except OSError:
            pass
        return OSType.LINUX

    if system.endswith("bsd"):
        return OSType.BSD

    os_map = {
        "darwin": OSType.MACOS,
    }
    return os_map.get(system, OSType.UNKNOWN)


def detect_arch() -> str:
    """Get the machine architecture (e.g. x86_64, arm64)."""
    return platform.machine() or "unknown"


def is_root() -> bool:
    """Check if running with effective UID 0."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return False
    return geteuid() == 0
