import enum
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from . import prompts
from .constants import (
    APP_NAME,
    BRANCH_NAME,
    DEFAULT_COMMIT_MESSAGE,
    README_CONTENT,
    README_FILE_NAME,
    REMOTE_NAME,
    SETUP_COMMIT_MESSAGE,
)
from .errors import GitCommandError, RepoInitError, UnknownOptionError
from .git_wrapper import GitRepo, GitResult, LogEntry
from .store import RecordStore

logger = logging.getLogger(APP_NAME)

NO_REMOTE_REF_MARKER = "couldn't find remote ref"
"""str: Fragment of git's diagnostic when the remote lacks the pulled branch."""


class PullState(enum.Enum):
    """The state a pull left the store repository in."""

    CLEAN = "clean"
    NO_REMOTE_BRANCH = "no-remote-branch"
    DIVERGED = "diverged"


class OverrideChoice(enum.IntEnum):
    """Recovery options offered when a pull fails."""

    HARD_RESET_AND_PULL = 0
    FORCE_PUSH_LOCAL = 1
    ABORT = 2


def is_missing_remote_branch(result: GitResult, branch: str) -> bool:
    """Checks whether a failed pull means the remote has no `branch` yet.

    Caveat: this matches git's human-readable diagnostic ("couldn't find
    remote ref <branch>"), which is not a stable interface and is localized
    when git runs with a non-English locale. It is the only place the
    protocol inspects error text; every other failure is treated as
    divergence.
    """
    text = result.output.lower()
    return f"{NO_REMOTE_REF_MARKER} {branch.lower()}" in text


def classify_pull_failure(result: GitResult, branch: str = BRANCH_NAME) -> PullState:
    if is_missing_remote_branch(result, branch):
        return PullState.NO_REMOTE_BRANCH
    return PullState.DIVERGED


class RepoSync:
    """Keeps the store root synchronized with its single remote branch.

    Attributes:
        store (RecordStore): The store whose cache is invalidated whenever a
                             recovery rewrites the working copy.
        repo (GitRepo): The store root's git working copy.
        remote (str): The remote name.
        branch (str): The tracked branch.
        chooser (Callable[[], int]): Asked for an `OverrideChoice` when a
                                     pull diverges.
    """

    def __init__(
        self,
        store: RecordStore,
        remote: str = REMOTE_NAME,
        branch: str = BRANCH_NAME,
        chooser: Callable[[], int] | None = None,
    ):
        self.store = store
        self.repo = GitRepo(store.root, must_exist=False)
        self.remote = remote
        self.branch = branch
        self.chooser = chooser or prompts.ask_override

    @property
    def upstream(self) -> str:
        return f"{self.remote}/{self.branch}"

    def init_repo(self, remote_url: str) -> None:
        """Initializes the store root as a repository bound to `remote_url`.

        Does nothing if the root already is a repository.
        """
        if self.repo.is_repo():
            logger.debug(f"{self.store.root} is already a git repository")
            return

        logger.debug("Initializing repo")
        self.repo.init(self.branch)
        self.repo.add_remote(self.remote, remote_url)

    def pull_repo(self, reset: bool = False) -> PullState:
        """Pulls the remote branch, recovering from failures.

        1. With `reset`, the working copy is hard-reset to the upstream first.
        2. A clean pull ends here.
        3. If the remote has no branch yet, a placeholder file is written and
           the local state is force-pushed without asking.
        4. Any other failure asks `chooser` for an `OverrideChoice`.

        Args:
            reset (bool, optional): Discard local state before pulling.
                                    Defaults to False.

        Returns:
            PullState: The state the first pull attempt ended in.

        Raises:
            RepoInitError: If forcing the local state onto the remote fails.
            UnknownOptionError: If the chooser returns an unknown value.
            SystemExit: With code 0 if the user chooses to abort.
        """
        result = self._reset_and_pull() if reset else self._pull()

        if result.ok:
            logger.info("Pulled repo successfully")
            return PullState.CLEAN

        state = classify_pull_failure(result, self.branch)
        logger.debug(f"Pull failed ({state.value}): {result.output}")

        if state is PullState.NO_REMOTE_BRANCH:
            logger.info(f"Remote has no '{self.branch}' branch yet, pushing local state")
            option = OverrideChoice.FORCE_PUSH_LOCAL
            self._write_placeholder()
        else:
            option = self._choose()

        if option is OverrideChoice.ABORT:
            logger.warning("Aborted by user")
            sys.exit(0)

        # A recovery may have rewritten the tree even when it fails halfway.
        try:
            self._recover(option)
        finally:
            self.store.invalidate_cache()
        return state

    def _choose(self) -> OverrideChoice:
        choice = self.chooser()
        try:
            return OverrideChoice(choice)
        except ValueError:
            raise UnknownOptionError(f"Unknown override option: {choice!r}") from None

    def _pull(self) -> GitResult:
        return self.repo.pull(self.remote, self.branch)

    def _reset_and_pull(self) -> GitResult:
        logger.debug(f"Resetting to {self.upstream}")
        try:
            self.repo.reset_hard(self.upstream)
        except GitCommandError as e:
            return e.result
        return self._pull()

    def _recover(self, option: OverrideChoice) -> None:
        if option is OverrideChoice.HARD_RESET_AND_PULL:
            self.repo.reset_hard(self.upstream)
            result = self._pull()
            if not result.ok:
                raise GitCommandError(result)
            logger.info("Local files overridden with remote state")
        else:
            self._force_push_local()

    def _write_placeholder(self) -> None:
        readme = self.store.root / README_FILE_NAME
        try:
            readme.write_text(README_CONTENT)
        except OSError as e:
            raise RepoInitError(f"Unable to write {readme}: {e}") from e

    def _force_push_local(self) -> None:
        """Commits everything local and overwrites the remote branch with it."""
        try:
            self.repo.add_all()
            if self.repo.has_staged_changes():
                self.repo.commit(SETUP_COMMIT_MESSAGE)
                logger.info("Committed local state")
            self.repo.push(self.remote, self.branch, force=True)
            logger.info("Pushed to repo")
        except GitCommandError as e:
            logger.error(f"Unable to push local state: {e}")
            raise RepoInitError(f"Unable to set up remote repository: {e}") from e

    def commit_changes(self, message: str | None = None) -> None:
        """Pulls, stages everything and commits.

        Args:
            message (str | None, optional): The commit message. Defaults to
                                            "Did some changes".
        """
        self.pull_repo()
        self.repo.add_all()
        if not self.repo.has_staged_changes():
            logger.info("Nothing to commit")
            return
        self.repo.commit(message or DEFAULT_COMMIT_MESSAGE)
        logger.debug(f"Committed: {message or DEFAULT_COMMIT_MESSAGE}")

    def push_changes(self) -> None:
        """Pulls, then pushes, so a normal push is never rejected as stale."""
        self.pull_repo()
        self.repo.push(self.remote, self.branch)
        logger.info("Pushed changes")

    def log_changes(self) -> list[LogEntry]:
        """Lists the local commits the remote branch does not have yet."""
        return self.repo.log_range(self.upstream, "HEAD")

    def status(self) -> list[str]:
        return self.repo.status_porcelain()

    @staticmethod
    def current_branch(cwd: Path | None = None) -> str | None:
        """Returns the branch checked out in the caller's working directory.

        This inspects `cwd` (default: the process cwd), not the store root.
        Any git failure yields None.
        """
        result = GitRepo(cwd or Path.cwd(), must_exist=False).current_branch()
        if not result.ok:
            logger.debug(f"Unable to read current branch: {result.output}")
            return None
        branch = result.stdout.strip()
        return branch or None
