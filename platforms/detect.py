from __future__ import annotations
import os
import sys


def detect_platform() -> str:
    """Return a normalized platform key.

    Values: "windows" | "rpi" | "linux" | "macos"
    """
    plat = sys.platform
    if plat.startswith("win"):
        return "windows"
    if plat == "darwin":
        return "macos"
    try:
        if os.path.exists("/proc/device-tree/model"):
            with open("/proc/device-tree/model", "r", encoding="utf-8", errors="ignore") as f:
                if "raspberry pi" in f.read().lower():
                    return "rpi"
    except OSError:
        pass
    return "linux"


def serial_family(platform: str | None = None) -> str:
    """Collapse a platform key onto the serial backend family: "windows" | "posix"."""
    plat = platform or detect_platform()
    return "windows" if plat == "windows" else "posix"
