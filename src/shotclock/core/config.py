"""Configuration management for Shotclock.

Settings live in a YAML file (``~/.shotclock/config.yml`` by default). User
values are layered over DEFAULT_CONFIG and checked against CONFIG_SCHEMA
on every load and every change.
"""

import copy
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml  # type: ignore[import-untyped]
from jsonschema import Draft7Validator  # type: ignore[import-untyped]
from jsonschema.exceptions import best_match  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": "1.0",
    "repository": {
        "marker": ".git",
        "refresh_on_start": True,
    },
    "clock": {
        "tick_interval": 1.0,
        "active_threshold": 5,
        "idle_threshold": 30,
    },
    "watch": {
        "enabled": True,
        "debounce": 1.2,
        "poll_interval": 0.5,
        "exclude_dirs": ["objects"],
    },
    "display": {
        "show_seconds": True,
        "refresh_per_second": 4,
    },
    "advanced": {
        "log_level": "INFO",
    },
}

_SECONDS = {"type": "number", "minimum": 0}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["version"],
    "properties": {
        "version": {"type": "string"},
        "repository": {
            "type": "object",
            "properties": {
                "marker": {"type": "string", "minLength": 1},
                "refresh_on_start": {"type": "boolean"},
            },
        },
        "clock": {
            "type": "object",
            "properties": {
                "tick_interval": {"type": "number", "exclusiveMinimum": 0, "maximum": 60},
                "active_threshold": _SECONDS,
                "idle_threshold": _SECONDS,
            },
        },
        "watch": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "debounce": {**_SECONDS, "maximum": 60},
                "poll_interval": {"type": "number", "exclusiveMinimum": 0, "maximum": 60},
                "exclude_dirs": {"type": "array", "items": {"type": "string", "minLength": 1}},
            },
        },
        "display": {
            "type": "object",
            "properties": {
                "show_seconds": {"type": "boolean"},
                "refresh_per_second": {"type": "integer", "minimum": 1, "maximum": 30},
            },
        },
        "advanced": {
            "type": "object",
            "properties": {
                "log_level": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR"]},
            },
        },
    },
}

_validator = Draft7Validator(CONFIG_SCHEMA)
_MISSING = object()


class ConfigError(ValueError):
    """Configuration file or value is invalid."""

    pass


def _layer(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of base with overlay applied section by section."""
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _layer(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _flatten(tree: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    for key, value in tree.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _flatten(value, f"{dotted}.")
        else:
            yield dotted, value


def _check(config: Dict[str, Any]) -> None:
    """Raise ConfigError naming the first schema violation."""
    error = best_match(_validator.iter_errors(config))
    if error is not None:
        where = ".".join(str(part) for part in error.path) or "<root>"
        raise ConfigError(f"Invalid configuration at {where}: {error.message}")


class ConfigManager:
    """Dot-notation access to the Shotclock YAML configuration.

    A file that cannot be parsed or fails validation is moved aside to
    ``config.yml.backup`` and replaced by the defaults; the constructor
    then raises ConfigError so the caller can report it.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to config file. Defaults to ~/.shotclock/config.yml

        Raises:
            ConfigError: If an existing file was invalid and has been replaced
        """
        if config_path is None:
            from shotclock.runtime.platform import get_config_path

            config_path = get_config_path()
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

        if not self.config_path.exists():
            logger.info(f"Creating default configuration at {self.config_path}")
            self.save()
            return

        try:
            self._config = _layer(DEFAULT_CONFIG, self._read())
            _check(self._config)
        except ConfigError as e:
            backup_path = self._quarantine()
            raise ConfigError(f"{e}. Backed up to {backup_path}, using defaults") from e

    @property
    def backup_path(self) -> Path:
        return self.config_path.with_suffix(".yml.backup")

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {self.config_path}: {e}") from e

        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping")
        return loaded

    def _quarantine(self) -> Path:
        """Move the current file to the backup path and write defaults."""
        backup_path = self.backup_path
        self.config_path.replace(backup_path)
        logger.warning(f"Invalid configuration moved to {backup_path}")
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self.save()
        return backup_path

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Example:
            >>> config.get('clock.idle_threshold')
            30
            >>> config.get('nonexistent.key', 'default')
            'default'
        """
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict):
                return default
            node = node.get(part, _MISSING)
            if node is _MISSING or node is None:
                return default
        return node

    def get_seconds(self, key: str, default: float = 0.0) -> timedelta:
        """Get a number of seconds as a timedelta.

        Example:
            >>> config.get_seconds('clock.idle_threshold')
            datetime.timedelta(seconds=30)
        """
        return timedelta(seconds=float(self.get(key, default)))

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation and save.

        The change is discarded if it makes the configuration invalid.

        Raises:
            ConfigError: If configuration is invalid after setting
        """
        *sections, leaf = key.split(".")
        candidate = copy.deepcopy(self._config)
        node = candidate
        for section in sections:
            if not isinstance(node.get(section), dict):
                node[section] = {}
            node = node[section]
        node[leaf] = value

        _check(candidate)
        self._config = candidate
        self.save()
        logger.debug(f"Set {key} = {value!r}")

    def validate(self) -> bool:
        """Validate configuration against schema.

        Returns:
            True if valid

        Raises:
            ConfigError: If configuration is invalid
        """
        _check(self._config)
        return True

    def save(self) -> None:
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)

    def reset(self) -> None:
        """Reset to default configuration."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self.save()

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    def get_all_keys(self) -> List[str]:
        """List every leaf setting in dot notation."""
        return [key for key, _ in _flatten(self._config)]
