import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME
from .errors import GitCommandError

logger = logging.getLogger(APP_NAME)

_LOG_SEPARATOR = "\x1f"
_LOG_FORMAT = _LOG_SEPARATOR.join(["%H", "%aI", "%s", "%an", "%ae"])


@dataclass(frozen=True)
class GitResult:
    """The structured outcome of one git invocation.

    Attributes:
        args (tuple[str, ...]): The arguments passed after `git`.
        returncode (int): The process exit status.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error.
    """

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Both output streams joined, for matching diagnostics."""
        return f"{self.stdout}\n{self.stderr}".strip()


@dataclass(frozen=True)
class LogEntry:
    """One commit as reported by `git log`."""

    hash: str
    date: str
    message: str
    author_name: str
    author_email: str


class GitRepo:
    """A wrapper around the Git command-line interface for a specific directory.

    Every command runs as a subprocess. `_exec` always returns a `GitResult`
    and never raises on a non-zero exit; `_run` raises `GitCommandError`
    instead, for call sites that treat failure as exceptional.

    Attributes:
        path (Path): The directory git is run in.
    """

    def __init__(self, path: Path, must_exist: bool = True):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the working directory.
            must_exist (bool, optional): Whether to require an existing `.git`
                                         directory. Defaults to True.

        Raises:
            ValueError: If `must_exist` is set and the path is not a repository.
        """
        self.path = path
        if must_exist and not self.is_repo():
            raise ValueError(f"Not a git repository: {self.path}")

    def is_repo(self) -> bool:
        return (self.path / ".git").exists()

    def _exec(self, args: list[str]) -> GitResult:
        """Executes a Git command and returns its structured result.

        Args:
            args (list[str]): A list of arguments to pass to the git command.

        Returns:
            GitResult: Exit status and captured output. A missing git binary
                       is reported as exit status 127.
        """
        logger.debug(f"git {' '.join(args)} (cwd={self.path})")
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            return GitResult(tuple(args), 127, "", str(e))
        return GitResult(tuple(args), res.returncode, res.stdout, res.stderr)

    def _run(self, args: list[str]) -> str:
        """Executes a Git command, raising on failure.

        Returns:
            str: The stripped stdout of the command.

        Raises:
            GitCommandError: If the git command returns a non-zero exit code.
        """
        result = self._exec(args)
        if not result.ok:
            raise GitCommandError(result)
        return result.stdout.strip()

    def init(self, branch: str) -> None:
        """Creates a repository whose first branch is `branch`."""
        self._run(["init", f"--initial-branch={branch}"])

    def add_remote(self, name: str, url: str) -> None:
        self._run(["remote", "add", name, url])

    def remotes(self) -> GitResult:
        """Lists the configured remote names without raising on failure."""
        return self._exec(["remote"])

    def config_get(self, key: str) -> GitResult:
        """Reads a git config value without raising on absence."""
        return self._exec(["config", key])

    def current_branch(self) -> GitResult:
        """Queries the name of the currently checked-out branch."""
        return self._exec(["rev-parse", "--abbrev-ref", "HEAD"])

    def pull(self, remote: str, branch: str) -> GitResult:
        """Pulls `branch` from `remote`. Failures are returned, not raised."""
        return self._exec(["pull", "--no-edit", remote, branch])

    def push(self, remote: str, branch: str, force: bool = False) -> None:
        """Pushes the local branch to the remote.

        Args:
            remote (str): The remote name.
            branch (str): The branch name.
            force (bool, optional): Whether to overwrite the remote history.
                                    Defaults to False.
        """
        cmd = ["push", remote, branch]
        if force:
            cmd.append("--force")
        self._run(cmd)

    def reset_hard(self, target: str) -> None:
        """Discards the working tree and moves HEAD to `target`."""
        self._run(["reset", "--hard", target])

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "--all", "."])

    def has_staged_changes(self) -> bool:
        """Returns True if the index differs from HEAD (or HEAD is unborn)."""
        if not self._exec(["rev-parse", "--verify", "HEAD"]).ok:
            return bool(self._run(["ls-files", "--cached"]))
        return not self._exec(["diff", "--cached", "--quiet"]).ok

    def commit(self, message: str) -> None:
        self._run(["commit", "-m", message])

    def status_porcelain(self) -> list[str]:
        """Returns the lines of `git status --porcelain`."""
        output = self._run(["status", "--porcelain"])
        return output.splitlines() if output else []

    def log_range(self, since: str, until: str) -> list[LogEntry]:
        """Lists the commits reachable from `until` but not from `since`.

        Args:
            since (str): The exclusive lower revision.
            until (str): The inclusive upper revision.

        Returns:
            list[LogEntry]: Newest first. Empty if either revision is unknown.
        """
        result = self._exec(["log", f"--format={_LOG_FORMAT}", f"{since}..{until}"])
        if not result.ok:
            logger.warning(f"Git error listing log {since}..{until}: {result.output}")
            return []

        entries = []
        for line in result.stdout.splitlines():
            parts = line.split(_LOG_SEPARATOR)
            if len(parts) != 5:
                continue
            entries.append(LogEntry(*parts))
        return entries
