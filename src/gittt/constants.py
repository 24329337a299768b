import os
from pathlib import Path

"""Global constants and filesystem layout definitions for gittt.

This module defines the store root layout, application identifiers, and the
default git values used across the application.
"""

# --- Identity ---
APP_NAME = "gittt"
"""str: The human-readable application name."""

APP_VERSION = "1.0.0"
"""str: The application version reported by the CLI."""

# --- Store Layout ---
_GITTT_HOME = os.environ.get("GITTT_HOME")

DEFAULT_HOME: Path = Path(_GITTT_HOME) if _GITTT_HOME else Path.home() / ".gittt-cli"
"""Path: The default store root (a git working copy)."""

CONFIG_FILE_NAME = "config.json"
"""str: The singleton config file name under the store root."""

TIMER_FILE_NAME = "timer.json"
"""str: The singleton timer file name under the store root."""

PROJECTS_DIR_NAME = "projects"
"""str: The directory holding one sub-directory per domain."""

README_FILE_NAME = "README.md"
"""str: Placeholder written when the remote has no branch yet."""

README_CONTENT = "# gittt\n\nTime records tracked with gittt.\n"
"""str: Content of the placeholder file."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "gittt"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "gittt.log"
"""Path: The file path for the CLI log."""

# --- Configuration Paths ---
SETTINGS_DIR: Path = Path.home() / ".config/gittt"
"""Path: The directory for user settings files."""

SETTINGS_FILE: Path = SETTINGS_DIR / "config.toml"
"""Path: The application settings file path (not the store's config.json)."""

# --- Git / Logic Constants ---
REMOTE_NAME = "origin"
"""str: The only remote the store repository tracks."""

BRANCH_NAME = "master"
"""str: The only branch the store repository tracks."""

DEFAULT_COMMIT_MESSAGE = "Did some changes"
SETUP_COMMIT_MESSAGE = "Setup commit"
INIT_PROJECT_COMMIT_MESSAGE = "Initialized project"
INIT_CONFIG_COMMIT_MESSAGE = "Initialized config file"

MS_PER_HOUR = 3_600_000
"""int: Milliseconds per hour, used to turn timer intervals into amounts."""

JSON_INDENT = 4
