"""Platform-specific utilities."""

import platform
from enum import Enum
from pathlib import Path


class Platform(Enum):
    """Supported platforms."""

    LINUX = "linux"
    MACOS = "darwin"
    WINDOWS = "windows"
    UNKNOWN = "unknown"


def get_platform() -> Platform:
    """Detect the current platform.

    Returns:
        Platform enum value
    """
    system = platform.system().lower()
    if system == "linux":
        return Platform.LINUX
    elif system == "darwin":
        return Platform.MACOS
    elif system == "windows":
        return Platform.WINDOWS
    else:
        return Platform.UNKNOWN


def get_app_dir() -> Path:
    """Get the per-user application directory (~/.shotclock)."""
    return Path.home() / ".shotclock"


def get_config_path() -> Path:
    """Get the default configuration file path.

    Returns:
        Path to config.yml
    """
    return get_app_dir() / "config.yml"


def get_log_file_path() -> Path:
    """Get the log file path.

    Returns:
        Path to log file
    """
    log_dir = get_app_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / "shotclock.log"
