"""OS-facing event sources for Shotclock."""

from shotclock.automation.file_watcher import ChangeEvent, ChangeKind, FileChangeWatch, watch
from shotclock.automation.idle_detector import IdleSampler, IdleSamplerError, get_idle_sampler

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "FileChangeWatch",
    "IdleSampler",
    "IdleSamplerError",
    "get_idle_sampler",
    "watch",
]
