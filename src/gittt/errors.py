"""Exception hierarchy for gittt.

Every error the core raises derives from `GitttError`, so the CLI can map
them to a single-line message and a non-zero exit code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .git_wrapper import GitResult


class GitttError(Exception):
    """Base class for all gittt failures."""


# --- Store ---


class StoreError(GitttError):
    """Raised for failures of the on-disk record store."""


class ReadError(StoreError):
    """A store file is missing or does not contain valid JSON."""


class WriteError(StoreError):
    """A store file could not be written."""


class InitError(StoreError):
    """A project file could not be initialized."""


class AmbiguousProjectError(StoreError):
    """More than one domain holds a project with the requested name."""

    def __init__(self, name: str, domains: list[str]):
        self.name = name
        self.domains = domains
        super().__init__(
            f'Project "{name}" exists in more than one domain: {", ".join(domains)}'
        )


class AmbiguousLinkError(StoreError):
    """The config file holds several links for one (project, type) key."""


class DuplicateRecordError(StoreError):
    """A record's guid is already used within its project."""


class RecordNotFoundError(StoreError):
    """No record with the requested guid exists in the project."""


# --- Repository ---


class RepoError(GitttError):
    """Raised for failures of the store's git working copy."""


class GitCommandError(RepoError):
    """A git command exited with a non-zero status."""

    def __init__(self, result: GitResult):
        self.result = result
        detail = (result.stderr or result.stdout).strip()
        super().__init__(f"Git error ({' '.join(result.args)}): {detail}")


class RepoInitError(RepoError):
    """Forcing the local state onto the remote failed."""


class UnknownOptionError(RepoError):
    """The divergence decision returned a value outside the known choices."""


# --- Resolution ---


class NoGitRemoteError(GitttError):
    """The working directory has no usable git remote."""


class InvalidGitUrlError(GitttError, ValueError):
    """A remote URL could not be parsed into a project identity."""


class ProjectNotFoundError(GitttError):
    """No project with the requested name exists in the store."""


class InvalidRecordError(GitttError, ValueError):
    """A record has an amount or end time that cannot be stored."""


class MigrationError(GitttError):
    """A migration would overwrite or delete the records it moves."""
