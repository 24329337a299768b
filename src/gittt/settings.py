import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    BRANCH_NAME,
    DEFAULT_HOME,
    REMOTE_NAME,
    SETTINGS_FILE,
)

logger = logging.getLogger(APP_NAME)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_level(value: str) -> str:
    """Normalizes a logging level name."""
    level = str(value).strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Invalid log level '{value}'")
    return level


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        home (Path): The store root directory (a git working copy).
        remote_name (str): The git remote the store syncs with.
        branch (str): The single branch the store tracks.
    """

    home: Path = DEFAULT_HOME
    remote_name: str = REMOTE_NAME
    branch: str = BRANCH_NAME


@dataclass
class LoggingConfig:
    """Logging settings.

    Attributes:
        level (str): Minimum level for console output.
        max_log_size (int): Max bytes for the log file before rotation.
        file (bool): Whether to also log to the rotating state-dir file.
    """

    level: str = "WARNING"
    max_log_size: int = 1024 * 1024
    file: bool = True


@dataclass
class Settings:
    """Global settings aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        logging (LoggingConfig): Logging settings.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Cache for the parsed settings file
    _global_cache: "Settings | None" = None

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Loads settings from defaults and the user's settings file.

        Args:
            path (Path | None): An explicit settings file. Bypasses the cache.

        Returns:
            Settings: The merged settings object.
        """
        if path is not None:
            instance = cls()
            if path.exists():
                instance._merge_from_file(path)
            return instance

        if cls._global_cache is None:
            instance = cls()
            if SETTINGS_FILE.exists():
                instance._merge_from_file(SETTINGS_FILE)
            cls._global_cache = instance

        return replace(cls._global_cache)

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "logging" in data:
                self.logging = self._update_dataclass(
                    "logging", self.logging, data["logging"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Settings syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load settings from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing special formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown settings keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "level":
                    filtered_updates[k] = parse_level(v)
                elif k == "home":
                    filtered_updates[k] = Path(v).expanduser()
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Settings error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
