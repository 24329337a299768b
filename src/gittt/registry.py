import datetime
import logging
import math
import re
import uuid
from collections.abc import Callable
from pathlib import Path

from .constants import APP_NAME, INIT_PROJECT_COMMIT_MESSAGE
from .errors import (
    DuplicateRecordError,
    InvalidGitUrlError,
    InvalidRecordError,
    MigrationError,
    NoGitRemoteError,
    ProjectNotFoundError,
    RecordNotFoundError,
)
from .git_wrapper import GitRepo
from .models import Project, ProjectMeta, Record, RecordType, epoch_ms
from .store import RecordStore
from .sync import RepoSync

logger = logging.getLogger(APP_NAME)

_URL_PATTERN = re.compile(
    r"^(?:[a-z][\w+.-]*://)?"  # scheme
    r"(?:[^@/]+@)?"  # user
    r"(?P<host>[\w.-]+)"
    r"(?::(?P<port>\d+))?"
    r"/+(?P<path>.+?)"
    r"(?:\.git)?/*$",
    re.IGNORECASE,
)

_BRANCH_TICKET_PATTERN = re.compile(r"^(\d+)")
_MESSAGE_TICKET_PATTERN = re.compile(r"[(\[{]#\s*(\d+)[)\]}]")


def parse_project_name_from_url(url: str) -> Project:
    """Derives a project identity from a git remote URL.

    Accepts `scheme://[user@]host:port/path[.git]`. A path with several
    segments is flattened with underscores (`team/proj` -> `team_proj`).

    Args:
        url (str): The remote URL.

    Returns:
        Project: A project skeleton without records.

    Raises:
        InvalidGitUrlError: If host, numeric port or path cannot be found.
    """
    match = _URL_PATTERN.match(url.strip())
    if not match or not match.group("port"):
        raise InvalidGitUrlError(f"Unable to get project information from repo URL: {url}")

    path = match.group("path").strip("/")
    if not path:
        raise InvalidGitUrlError(f"No project path in repo URL: {url}")

    return Project(
        meta=ProjectMeta(
            host=match.group("host"), port=int(match.group("port")), raw=url.strip()
        ),
        name=path.replace("/", "_"),
        records=[],
    )


def find_ticket_number_in_branch(branch: str | None) -> str | None:
    """Returns the ticket number a branch name starts with (`1337-feature`)."""
    if not branch:
        return None
    match = _BRANCH_TICKET_PATTERN.match(branch)
    return match.group(1) if match else None


def find_ticket_number_in_message(message: str | None) -> str | None:
    """Returns a ticket reference like `(#1337)` found in a message."""
    if not message:
        return None
    match = _MESSAGE_TICKET_PATTERN.search(message)
    return match.group(1) if match else None


def append_ticket_number(
    message: str, branch: str | None, confirm: Callable[[str], bool]
) -> str:
    """Appends the branch's ticket number to a message, if confirmed.

    A message that already references a ticket is returned unchanged.
    """
    if find_ticket_number_in_message(message):
        return message
    ticket = find_ticket_number_in_branch(branch)
    if ticket and confirm(ticket):
        return f"{message} [#{ticket}]"
    return message


def format_amount(amount: float) -> str:
    """Formats an amount exactly as stored; whole numbers drop the `.0`."""
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def validate_amount(amount: float) -> float:
    """Checks that an amount is a finite, positive number of hours.

    Raises:
        InvalidRecordError: For NaN, infinite, zero or negative amounts.
    """
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidRecordError(f"Invalid amount: {amount}")
    return amount


def record_commit_message(record: Record, project_name: str) -> str:
    hour_string = "hour" if record.amount == 1 else "hours"
    message = f"Added {format_amount(record.amount)} {hour_string} to {project_name}"
    if record.message:
        message += f': "{record.message}"'
    return message


class ProjectRegistry:
    """Resolves the project of the caller's working directory and appends records.

    Attributes:
        store (RecordStore): Project persistence.
        sync (RepoSync): Commits every mutation.
        cwd (Path | None): Working directory the ambient remote is read from.
                           None means the process cwd at call time.
    """

    def __init__(self, store: RecordStore, sync: RepoSync, cwd: Path | None = None):
        self.store = store
        self.sync = sync
        self.cwd = cwd

    def project_from_ambient_git(self) -> Project:
        """Builds the project identity from the cwd's `origin` remote.

        Raises:
            NoGitRemoteError: If git fails or no plausible URL is configured.
        """
        repo = GitRepo(self.cwd or Path.cwd(), must_exist=False)

        logger.debug("Checking number of remote urls")
        remotes_result = repo.remotes()
        if not remotes_result.ok:
            logger.debug(f"Error executing git remote: {remotes_result.output}")
            raise NoGitRemoteError("Unable to get remotes from git config")

        remotes = remotes_result.stdout.split()
        if len(remotes) > 1 and "origin" not in remotes:
            raise NoGitRemoteError('Unable to find any remote called "origin"')

        logger.debug("Trying to find project name from .git folder")
        url_result = repo.config_get("remote.origin.url")
        url = url_result.stdout.strip()
        if not url_result.ok or len(url) < 4:
            logger.debug(f"Error reading remote.origin.url: {url_result.output}")
            raise NoGitRemoteError("Unable to get URL from git config")

        return parse_project_name_from_url(url)

    def get_project_by_name(self, name: str | None = None) -> Project:
        """Returns the named project, or the ambient one when no name is given.

        An ambient project that is not tracked yet is returned as a skeleton.

        Raises:
            ProjectNotFoundError: If a named project does not exist.
        """
        if name:
            project = self.store.find_project_by_name(name)
            if project is None:
                raise ProjectNotFoundError(f'Project "{name}" not found')
            return project

        ambient = self.project_from_ambient_git()
        found = self.store.find_project_by_name(ambient.name, ambient.domain)
        return found or ambient

    def init_project(self) -> Project:
        """Writes an empty project file for the ambient project and commits it."""
        project = self.store.init_project(self.project_from_ambient_git())
        self.sync.commit_changes(INIT_PROJECT_COMMIT_MESSAGE)
        return project

    def add_record_to_project(
        self, record: Record, project: Project | None = None
    ) -> Project:
        """Appends a record to a project and commits the change.

        The project defaults to the ambient one and is created when missing.

        Args:
            record (Record): The record to add. `guid`, `created` and
                             `updated` are filled in when unset.
            project (Project | None, optional): Target project identity.

        Returns:
            Project: The saved project.

        Raises:
            InvalidRecordError: If the amount is not a positive finite number.
            DuplicateRecordError: If the record's guid is already present.
        """
        validate_amount(record.amount)
        target = project or self.project_from_ambient_git()
        found = self.store.find_project_by_name(target.name)

        if found is None:
            logger.warning(f'Project "{target.name}" not found')
            logger.info(f'Initializing project "{target.name}"')
            found = self.store.init_project(
                Project(meta=target.meta, name=target.name, records=[])
            )

        if record.guid is None:
            record.guid = str(uuid.uuid4())
        elif any(r.guid == record.guid for r in found.records):
            raise DuplicateRecordError(
                f'Record "{record.guid}" already exists in "{found.name}"'
            )

        if record.created is None:
            now = epoch_ms()
            record.created = now
            record.updated = now

        logger.info(
            f"Adding record (amount: {format_amount(record.amount)}, "
            f"type: {record.type.value}) to {found.name}"
        )

        found.records.append(record)
        self.store.save_project(found)
        self.sync.commit_changes(record_commit_message(record, found.name))
        return found

    def remove_record(self, guid: str, project: Project | None = None) -> Record:
        """Deletes one record from a project and commits the change.

        Raises:
            ProjectNotFoundError: If the project is not tracked.
            RecordNotFoundError: If no record carries `guid`.
        """
        target = project or self.project_from_ambient_git()
        found = self.store.find_project_by_name(target.name, target.domain)
        if found is None:
            raise ProjectNotFoundError(f'Unable to find project "{target.name}"')

        removed = next((r for r in found.records if r.guid == guid), None)
        if removed is None:
            raise RecordNotFoundError(f'No records found for guid "{guid}"')

        found.records = [r for r in found.records if r.guid != guid]
        self.store.save_project(found)
        self.sync.commit_changes(f"Removed record {guid} from project {found.name}")
        return removed

    def get_total_hours(self, name: str, domain: str | None = None) -> float:
        """Sums the amounts of all time records of a project.

        Raises:
            ProjectNotFoundError: If the name does not resolve.
        """
        project = self.store.find_project_by_name(name, domain)
        if project is None:
            raise ProjectNotFoundError(f'Project "{name}" not found')

        return sum(r.amount for r in project.records if r.type is RecordType.TIME)

    def find_records_for_day(self, day: datetime.date) -> list[tuple[Project, Record]]:
        """Lists the records of all projects that ended on `day` (local time).

        Returns:
            list[tuple[Project, Record]]: Ordered by end time.
        """
        next_day = day + datetime.timedelta(days=1)
        start = datetime.datetime.combine(day, datetime.time.min).timestamp() * 1000
        end = datetime.datetime.combine(next_day, datetime.time.min).timestamp() * 1000

        matches = [
            (project, record)
            for project in self.store.find_all_projects()
            for record in project.records
            if start <= record.end < end
        ]
        return sorted(matches, key=lambda pair: pair[1].end)

    def migrate(self, from_project: Project, to_project: Project) -> Project:
        """Moves all records and links of one project identity to another.

        The old project file is removed; its domain directory goes with it
        when it held no other project.

        Raises:
            MigrationError: If source and target are the same project, or the
                            target already has a project file.
            ProjectNotFoundError: If the source project is not on disk.
        """
        logger.info(f"Migrating {from_project.name} -> {to_project.name}")

        if (from_project.domain, from_project.name) == (to_project.domain, to_project.name):
            raise MigrationError(f"Cannot migrate {from_project.name} onto itself")

        populated = self.store.find_project_by_name(
            from_project.name, from_project.domain
        )
        if populated is None:
            raise ProjectNotFoundError(f"Unable to get records from {from_project.name}")

        if self.store.find_project_by_name(to_project.name, to_project.domain):
            raise MigrationError(
                f'Project "{to_project.name}" already exists in {to_project.domain}'
            )

        migrated = Project(
            meta=to_project.meta, name=to_project.name, records=populated.records
        )
        self.store.init_project(migrated)

        domain_projects = self.store.find_projects_for_domain(from_project.domain)
        if len(domain_projects) == 1 and domain_projects[0].name == from_project.name:
            self.store.remove_domain_directory(from_project.domain, force=True)
            logger.info("Removed old domain directory")
        else:
            self.store.remove_project_file(populated)
            logger.info("Removed old project file")

        renamed = self.store.rename_project_links(from_project.name, to_project.name)
        if renamed:
            logger.info(f"Updated {renamed} link(s)")

        self.sync.commit_changes(f"Migrated {from_project.name} to {to_project.name}")
        return migrated
