"""System-wide input idle time.

Windows uses ``GetLastInputInfo``; macOS reads ``HIDIdleTime`` from ``ioreg``;
Linux/X11 uses ``xprintidle`` when installed. Anything else reports 0, which
means "never idle".
"""

from __future__ import annotations

import re
import shutil
import subprocess
import sys
from typing import Any, ClassVar

NS_PER_MS = 1_000_000
_HID_IDLE_RE = re.compile(r'"HIDIdleTime"\s*=\s*(\d+)')

if sys.platform == "win32":
    from ctypes import Structure, byref, sizeof, windll, wintypes

    class LASTINPUTINFO(Structure):
        """Windows LASTINPUTINFO structure."""

        _fields_: ClassVar[Any] = [
            ("cbSize", wintypes.UINT),
            ("dwTime", wintypes.DWORD),
        ]

    def get_idle_ms() -> int:
        """Milliseconds since the last keyboard or mouse input (Windows)."""
        lii = LASTINPUTINFO()
        lii.cbSize = sizeof(LASTINPUTINFO)
        try:
            ok = windll.user32.GetLastInputInfo(byref(lii))
        except OSError:
            return 0
        else:
            if ok:
                current_tick = int(windll.kernel32.GetTickCount())
                # GetTickCount wraps every ~49.7 days
                return max(0, (current_tick - int(lii.dwTime)) & 0xFFFFFFFF)
            return 0

elif sys.platform == "darwin":

    def get_idle_ms() -> int:
        """Milliseconds since the last input, from IOHIDSystem (macOS)."""
        try:
            out = subprocess.run(
                ["ioreg", "-c", "IOHIDSystem", "-d", "4"],  # noqa: S607
                capture_output=True,
                text=True,
                timeout=2,
                check=False,
            ).stdout
        except (OSError, subprocess.SubprocessError):
            return 0
        match = _HID_IDLE_RE.search(out)
        return int(match.group(1)) // NS_PER_MS if match else 0

else:

    def get_idle_ms() -> int:
        """Milliseconds since the last input via xprintidle, else 0."""
        xprintidle = shutil.which("xprintidle")
        if xprintidle is None:
            return 0
        try:
            out = subprocess.run(  # noqa: S603
                [xprintidle],
                capture_output=True,
                text=True,
                timeout=2,
                check=False,
            ).stdout
        except (OSError, subprocess.SubprocessError):
            return 0
        try:
            return max(0, int(out.strip()))
        except ValueError:
            return 0

