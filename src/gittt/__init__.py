"""gittt: git-backed time tracking.

This package stores time records as JSON files inside a personal git
repository, keeps that repository synchronized with one remote, and tracks a
single running timer whose stop event produces a record.
"""

from . import (
    cli,
    constants,
    errors,
    git_wrapper,
    models,
    prompts,
    registry,
    settings,
    store,
    sync,
    timer,
)

__all__ = [
    "cli",
    "constants",
    "errors",
    "git_wrapper",
    "models",
    "prompts",
    "registry",
    "settings",
    "store",
    "sync",
    "timer",
]
