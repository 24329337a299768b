import argparse
import datetime
import logging
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.table import Table

from . import prompts
from .constants import (
    APP_NAME,
    APP_VERSION,
    INIT_CONFIG_COMMIT_MESSAGE,
    LOG_FILE,
)
from .errors import GitttError, InvalidRecordError, ReadError
from .models import Project, Record, RecordType, epoch_ms
from .registry import (
    ProjectRegistry,
    append_ticket_number,
    format_amount,
    validate_amount,
)
from .settings import Settings
from .store import RecordStore
from .sync import RepoSync
from .timer import TimerState, format_duration

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


@dataclass
class App:
    """The wired-up core components for one CLI invocation."""

    settings: Settings
    store: RecordStore
    sync: RepoSync
    registry: ProjectRegistry
    timer: TimerState


def build_app(settings: Settings) -> App:
    store = RecordStore(settings.core.home)
    sync = RepoSync(store, remote=settings.core.remote_name, branch=settings.core.branch)
    registry = ProjectRegistry(store, sync)
    timer = TimerState(settings.core.home, registry)
    return App(settings, store, sync, registry, timer)


def setup_logging(settings: Settings, verbose: bool = False) -> None:
    """Configures the application logger.

    Console output honours the configured level (DEBUG with `verbose`); the
    rotating log file always records INFO and above.
    """
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else settings.logging.level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if settings.logging.file:
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=settings.logging.max_log_size,
                backupCount=3,
            )
        except OSError as e:
            logger.warning(f"Logging to {LOG_FILE} disabled: {e}")
            return
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def exit_with(message: str, code: int) -> None:
    """Prints a single-line message and terminates with `code`."""
    if code == 0:
        console.print(message, style="bold yellow")
    else:
        err_console.print(f"[bold red]ERROR:[/bold red] {message}")
    sys.exit(code)


# --- Setup ---


def initialize_store(app: App, git_url: str | None = None) -> None:
    """Binds the store root to a remote and makes sure a config exists.

    An existing remote config is adopted; otherwise a fresh one is written,
    committed and pushed.
    """
    app.store.ensure_root()
    url = git_url or prompts.ask_git_url()

    console.print("[bold blue]INIT:[/bold blue] Initializing local repo...")
    app.sync.init_repo(url)
    console.print("[bold blue]SYNC:[/bold blue] Pulling repo...")
    app.sync.pull_repo()

    if app.store.is_config_valid():
        app.store.get_config(force_reload=True)
        console.print("Found existing config file in repo.", style="dim")
        return

    console.print("[bold blue]INIT:[/bold blue] Initializing gittt config file...")
    app.store.init_config(url)
    app.sync.commit_changes(INIT_CONFIG_COMMIT_MESSAGE)
    app.sync.push_changes()


def ensure_setup(app: App) -> None:
    """Makes sure the store is initialized, offering setup if it is not.

    Raises:
        ReadError: If a config file exists but is invalid.
    """
    if app.store.is_config_valid():
        return

    if app.store.config_exists():
        raise ReadError(f"Invalid config file: {app.store.config_path}")

    if not prompts.confirm_setup():
        exit_with(f"{APP_NAME} does not work without setup, bye!", 0)

    initialize_store(app)
    console.print(
        "[bold green]SUCCESS:[/bold green] Initialized gittt, you are good to go now."
    )


def setup_command(app: App, git_url: str | None = None) -> None:
    if app.store.is_config_valid():
        app.sync.pull_repo()
        console.print(f"Config directory {app.store.root} already initialized.")
        return
    if app.store.config_exists():
        raise ReadError(f"Invalid config file: {app.store.config_path}")

    initialize_store(app, git_url)
    console.print("[bold green]SUCCESS:[/bold green] Setup complete.")


# --- Records ---


def resolve_message(message: str | None, ask: bool = True) -> str | None:
    """Asks for a missing message and appends the branch ticket number."""
    if message is None and ask:
        message = prompts.ask_commit_message()
    if not message:
        return None
    return append_ticket_number(
        message, RepoSync.current_branch(), prompts.confirm_ticket_number
    )


def compose_end(
    now: datetime.datetime,
    year: int | None = None,
    month: int | None = None,
    day: int | None = None,
    hour: int | None = None,
    minute: int | None = None,
) -> int:
    """Builds a record end time from optional date parts, defaulting to `now`.

    Raises:
        InvalidRecordError: If the parts do not form a valid date.
    """
    try:
        moment = now.replace(
            year=now.year if year is None else year,
            month=now.month if month is None else month,
            day=now.day if day is None else day,
            hour=now.hour if hour is None else hour,
            minute=now.minute if minute is None else minute,
            second=0,
            microsecond=0,
        )
    except ValueError as e:
        raise InvalidRecordError(f"Invalid end date: {e}") from e
    return int(moment.timestamp() * 1000)


def commit_command(
    app: App,
    amount: float,
    message: str | None,
    project_name: str | None,
    end: int | None = None,
) -> None:
    validate_amount(amount)
    project = app.registry.get_project_by_name(project_name)
    message = resolve_message(message, ask=False)

    record = Record(
        amount=amount,
        end=epoch_ms() if end is None else end,
        message=message,
        type=RecordType.TIME,
    )
    saved = app.registry.add_record_to_project(record, project)
    hour_string = "hour" if amount == 1 else "hours"
    console.print(
        f"[bold green]SUCCESS:[/bold green] Committed {format_amount(amount)} "
        f"{hour_string} to {saved.name}"
    )


def remove_command(app: App, guid: str, project_name: str | None) -> None:
    project = app.registry.get_project_by_name(project_name)
    removed = app.registry.remove_record(guid, project)
    console.print(
        f"[bold green]SUCCESS:[/bold green] Removed record "
        f"({_format_end(removed.end)}: {format_amount(removed.amount)} hours) "
        f"from project {project.name}"
    )


def stop_command(
    app: App, kill: bool, message: str | None, project_name: str | None
) -> None:
    if kill:
        app.timer.kill()
        return

    project: Project | None = None
    if project_name:
        project = app.registry.get_project_by_name(project_name)

    if app.timer.is_running(epoch_ms()):
        message = resolve_message(message) or ""
    app.timer.stop(message, project)


def init_command(app: App) -> None:
    if not prompts.confirm_init():
        exit_with("Initialization canceled", 0)
    project = app.registry.init_project()
    console.print(
        f"[bold green]SUCCESS:[/bold green] Initialized project {project.name}"
    )


def migrate_command(app: App, from_name: str, from_domain: str | None) -> None:
    source = app.store.find_project_by_name(from_name, from_domain)
    if source is None:
        exit_with(f'Project "{from_name}" not found', 1)
        return
    target = app.registry.project_from_ambient_git()
    migrated = app.registry.migrate(source, target)
    console.print(
        f"[bold green]SUCCESS:[/bold green] Migrated {source.name} -> {migrated.name}"
    )


# --- Reporting ---


def _format_end(ms: int) -> str:
    return datetime.datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def show_info(app: App, project_name: str | None) -> None:
    """Prints total hours per project (or for one project)."""
    if project_name:
        projects = [app.registry.get_project_by_name(project_name)]
    else:
        projects = app.store.find_all_projects()

    if not projects:
        console.print("No projects tracked yet.", style="dim")
        return

    table = Table(title="Projects")
    table.add_column("Domain", style="dim")
    table.add_column("Project", style="cyan")
    table.add_column("Records", justify="right")
    table.add_column("Hours", justify="right", style="bold")

    for project in projects:
        total = app.registry.get_total_hours(project.name, project.domain)
        table.add_row(
            project.domain,
            project.name,
            str(len(project.records)),
            f"{total:.2f}",
        )

    console.print(table)


def list_records(app: App, project_name: str | None) -> None:
    project = app.registry.get_project_by_name(project_name)
    if not project.records:
        exit_with(f'No records found for "{project.name}"', 1)
        return

    table = Table(title=project.name)
    table.add_column("End")
    table.add_column("Hours", justify="right", style="bold")
    table.add_column("Message")
    table.add_column("GUID", style="dim")

    for record in sorted(project.records, key=lambda r: r.end):
        table.add_row(
            _format_end(record.end),
            f"{record.amount:.2f}",
            record.message or "",
            record.guid or "",
        )

    console.print(table)


def show_today(app: App) -> None:
    """Lists today's records across all projects with their sum."""
    today = datetime.date.today()
    entries = app.registry.find_records_for_day(today)

    table = Table(title=f"{today:%A, %B} {today.day}, {today.year}")
    table.add_column("Type", style="dim")
    table.add_column("Hours", justify="right", style="bold yellow")
    table.add_column("Time")
    table.add_column("Project", style="cyan")
    table.add_column("Message")

    for project, record in entries:
        table.add_row(
            record.type.value,
            f"{record.amount:.2f}",
            datetime.datetime.fromtimestamp(record.end / 1000).strftime("%H:%M:%S"),
            project.name,
            record.message or "",
        )

    console.print(table)
    total = sum(record.amount for _, record in entries)
    console.print(f"[bold]SUM:[/bold] {total:.2f}h")


def show_log(app: App) -> None:
    """Lists local commits not yet pushed to the remote."""
    entries = app.sync.log_changes()
    if not entries:
        console.print("Everything is pushed.", style="dim")
        return

    for entry in entries:
        console.print(f"[yellow]{entry.hash[:8]}[/yellow] {entry.date}  {entry.message}")


def show_status(app: App) -> None:
    """Displays the timer state and the store's pending changes."""
    now = epoch_ms()
    if app.timer.is_running(now):
        console.print(
            f"Timer:   [bold green]Running[/bold green] "
            f"({format_duration(app.timer.elapsed(now))})"
        )
    else:
        console.print("Timer:   [dim]Stopped[/dim]")

    pending = app.sync.log_changes()
    console.print(f"Unpushed commits: {len(pending)}")

    dirty = app.sync.status()
    if dirty:
        console.print(f"[bold yellow]Uncommitted files:[/bold yellow] {len(dirty)}")
        for line in dirty:
            console.print(f"   {line}", style="dim")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Git-backed time tracking",
    )
    parser.add_argument("--version", action="version", version=APP_VERSION)
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Print debug output"
    )

    subparsers = parser.add_subparsers(dest="command")

    setup_parser = subparsers.add_parser(
        "setup", help="Initialize the config directory and its git repository"
    )
    setup_parser.add_argument("--url", help="Git repository URL for the records")

    commit_parser = subparsers.add_parser(
        "commit", help="Commit a number of hours to a project"
    )
    commit_parser.add_argument(
        "--amount", "-a", type=float, required=True, help="Amount of hours spent"
    )
    commit_parser.add_argument("--message", "-m", help="Description of the hours")
    commit_parser.add_argument("--project", "-p", help="Project to commit to")

    add_parser = subparsers.add_parser(
        "add", help="Add hours that ended at a specific date and time"
    )
    add_parser.add_argument(
        "--amount", "-a", type=float, required=True, help="Amount of hours spent"
    )
    add_parser.add_argument("--message", "-m", help="Description of the hours")
    add_parser.add_argument("--project", "-p", help="Project to add to")
    for part in ("year", "month", "day", "hour", "minute"):
        add_parser.add_argument(
            f"--{part}", type=int, help=f"End {part} (defaults to now)"
        )

    remove_parser = subparsers.add_parser("remove", help="Remove a record by guid")
    remove_parser.add_argument("--guid", "-g", required=True, help="Record guid")
    remove_parser.add_argument("--project", "-p", help="Project of the record")

    subparsers.add_parser("push", help="Push changes to the remote repository")
    subparsers.add_parser("log", help="List commits not yet pushed")
    subparsers.add_parser("status", help="Show timer and repository status")
    subparsers.add_parser("start", help="Start the timer")

    stop_parser = subparsers.add_parser(
        "stop", help="Stop the timer and commit to a project"
    )
    stop_parser.add_argument(
        "--kill", "-k", action="store_true", help="Discard the running timer"
    )
    stop_parser.add_argument("--message", "-m", help="Message for the record")
    stop_parser.add_argument("--project", "-p", help="Project to add the time to")

    subparsers.add_parser("init", help="Initialize the project of the current directory")

    info_parser = subparsers.add_parser("info", help="Show hours per project")
    info_parser.add_argument("--project", "-p", help="Limit to one project")

    list_parser = subparsers.add_parser("list", help="List the records of a project")
    list_parser.add_argument("--project", "-p", help="Project to list")

    subparsers.add_parser("today", help="List today's records across all projects")

    migrate_parser = subparsers.add_parser(
        "migrate", help="Move a project's records to the current directory's project"
    )
    migrate_parser.add_argument("--from", dest="from_name", required=True)
    migrate_parser.add_argument("--domain", help="Domain (host:port) of the source")

    subparsers.add_parser("help", help="Show this help message")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the gittt CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return

    settings = Settings.load()
    setup_logging(settings, verbose=args.verbose)
    app = build_app(settings)

    try:
        if args.command == "setup":
            setup_command(app, args.url)
            return

        ensure_setup(app)

        if args.command == "commit":
            commit_command(app, args.amount, args.message, args.project)
        elif args.command == "add":
            end = compose_end(
                datetime.datetime.now(),
                args.year,
                args.month,
                args.day,
                args.hour,
                args.minute,
            )
            commit_command(app, args.amount, args.message, args.project, end)
        elif args.command == "remove":
            remove_command(app, args.guid, args.project)
        elif args.command == "push":
            app.sync.push_changes()
            console.print("[bold green]✔ Pushed.[/bold green]")
        elif args.command == "log":
            show_log(app)
        elif args.command == "status":
            show_status(app)
        elif args.command == "start":
            app.timer.start()
        elif args.command == "stop":
            stop_command(app, args.kill, args.message, args.project)
        elif args.command == "init":
            init_command(app)
        elif args.command == "info":
            show_info(app, args.project)
        elif args.command == "list":
            list_records(app, args.project)
        elif args.command == "today":
            show_today(app)
        elif args.command == "migrate":
            migrate_command(app, args.from_name, args.domain)
    except GitttError as e:
        logger.debug(f"{args.command} failed: {e!r}")
        exit_with(str(e), 1)


if __name__ == "__main__":
    main()
