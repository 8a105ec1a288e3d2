"""
Shotclock runtime - wiring the clock into a running process.

Provides:
- Platform detection and per-user paths
- Logging setup and signal handling for the foreground session
  (shotclock.runtime.session)
"""

from shotclock.runtime.platform import Platform, get_platform

__all__ = ["Platform", "get_platform"]
