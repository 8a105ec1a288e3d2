"""Idle time detection for Shotclock."""

import logging
import subprocess
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from shotclock.runtime.platform import Platform, get_platform

logger = logging.getLogger(__name__)


class IdleSamplerError(Exception):
    """The OS idle-time query is unavailable or failed."""

    pass


def tick_delta(last_input: int, current: int, bits: int = 32) -> int:
    """Forward distance between two readings of a wrapping tick counter.

    The counter is treated as unsigned and `bits` wide, so a reading taken
    after the counter wrapped still yields the elapsed ticks instead of a
    negative number.

    Args:
        last_input: Counter value at the last input event
        current: Counter value now
        bits: Width of the counter

    Returns:
        Ticks elapsed from last_input to current
    """
    modulus = 1 << bits
    return (current - last_input) % modulus


class IdleSampler(ABC):
    """Source of "how long since the last keyboard or mouse input"."""

    @abstractmethod
    def idle_duration(self) -> timedelta:
        """Get the time since the last system-wide user input.

        Raises:
            IdleSamplerError: If the idle time cannot be queried
        """

    def __call__(self) -> timedelta:
        return self.idle_duration()


class WindowsIdleSampler(IdleSampler):
    """GetLastInputInfo against the 32-bit GetTickCount millisecond counter."""

    def idle_duration(self) -> timedelta:
        try:
            import ctypes

            class LASTINPUTINFO(ctypes.Structure):
                _fields_ = [
                    ("cbSize", ctypes.c_uint),
                    ("dwTime", ctypes.c_uint),
                ]

            last_input_info = LASTINPUTINFO()
            last_input_info.cbSize = ctypes.sizeof(last_input_info)
            windll = ctypes.windll  # type: ignore[attr-defined]
            if not windll.user32.GetLastInputInfo(ctypes.byref(last_input_info)):
                raise IdleSamplerError("GetLastInputInfo failed")
            current = windll.kernel32.GetTickCount() & 0xFFFFFFFF
        except (AttributeError, OSError) as e:
            raise IdleSamplerError(f"Windows idle query unavailable: {e}") from e

        millis = tick_delta(last_input_info.dwTime, current)
        return timedelta(milliseconds=millis)


class MacOSIdleSampler(IdleSampler):
    """Quartz event source idle time (requires pyobjc)."""

    def idle_duration(self) -> timedelta:
        try:
            from Quartz import (  # type: ignore[import-not-found]
                CGEventSourceSecondsSinceLastEventType,
                kCGEventSourceStateHIDSystemState,
            )
        except ImportError as e:
            raise IdleSamplerError("pyobjc Quartz bindings are not installed") from e

        # kCGAnyInputEventType
        any_input = 0xFFFFFFFF
        seconds = CGEventSourceSecondsSinceLastEventType(
            kCGEventSourceStateHIDSystemState, any_input
        )
        return timedelta(seconds=float(seconds))


class LinuxIdleSampler(IdleSampler):
    """xprintidle on X11, then the freedesktop ScreenSaver service over D-Bus."""

    def idle_duration(self) -> timedelta:
        millis = self._query_xprintidle()
        if millis is None:
            millis = self._query_dbus()
        if millis is None:
            raise IdleSamplerError("Neither xprintidle nor org.freedesktop.ScreenSaver is available")
        return timedelta(milliseconds=millis)

    def _query_xprintidle(self) -> Optional[int]:
        """Get idle milliseconds from xprintidle.

        Returns:
            Milliseconds of idle time, or None if unavailable
        """
        try:
            result = subprocess.run(["xprintidle"], capture_output=True, text=True, timeout=1)
            if result.returncode == 0:
                return int(result.stdout.strip())
        except (FileNotFoundError, subprocess.TimeoutExpired, ValueError):
            pass
        return None

    def _query_dbus(self) -> Optional[int]:
        """Get idle milliseconds from the session screensaver.

        Returns:
            Milliseconds of idle time, or None if unavailable
        """
        try:
            import dbus  # type: ignore[import-not-found]

            bus = dbus.SessionBus()
            screensaver = bus.get_object("org.freedesktop.ScreenSaver", "/ScreenSaver")
            return int(screensaver.GetSessionIdleTime())
        except Exception as e:
            logger.debug(f"D-Bus idle query failed: {e}")
            return None


class UnsupportedIdleSampler(IdleSampler):
    """Platform without an idle-time query."""

    def idle_duration(self) -> timedelta:
        raise IdleSamplerError("Idle detection is not supported on this platform")


def get_idle_sampler(plat: Optional[Platform] = None) -> IdleSampler:
    """Pick the idle sampler for a platform.

    Args:
        plat: Platform to pick for (default: current platform)

    Returns:
        IdleSampler instance
    """
    plat = plat or get_platform()
    if plat == Platform.WINDOWS:
        return WindowsIdleSampler()
    elif plat == Platform.MACOS:
        return MacOSIdleSampler()
    elif plat == Platform.LINUX:
        return LinuxIdleSampler()
    return UnsupportedIdleSampler()
