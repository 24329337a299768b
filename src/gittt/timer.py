import datetime
import logging
from collections.abc import Callable
from pathlib import Path

from rich.console import Console

from . import prompts
from .constants import APP_NAME, MS_PER_HOUR, TIMER_FILE_NAME
from .models import Project, Record, RecordType, TimerFile, epoch_ms
from .registry import ProjectRegistry
from .store import read_json, write_json_atomic

console = Console()
logger = logging.getLogger(APP_NAME)


def format_duration(ms: int) -> str:
    """Formats a duration in milliseconds as `HH:MM:SS`."""
    seconds = max(ms, 0) // 1000
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_timestamp(ms: int) -> str:
    return datetime.datetime.fromtimestamp(ms / 1000).strftime("%d.%m.%Y %H:%M:%S")


def ms_to_hours(ms: int) -> float:
    """Converts an elapsed interval to an amount in hours."""
    return ms / MS_PER_HOUR


class TimerState:
    """A single persisted start/stop timer.

    Attributes:
        path (Path): The timer file.
        registry (ProjectRegistry): Receives the record produced on stop.
        clock (Callable[[], int]): Source of epoch milliseconds.
        ask_message (Callable[[], str]): Asked for a message when stop is
                                         called without one.
    """

    def __init__(
        self,
        root: Path,
        registry: ProjectRegistry,
        clock: Callable[[], int] = epoch_ms,
        ask_message: Callable[[], str] | None = None,
    ):
        self.path = root / TIMER_FILE_NAME
        self.registry = registry
        self.clock = clock
        self.ask_message = ask_message or prompts.ask_commit_message

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> TimerFile:
        return TimerFile.from_dict(read_json(self.path))

    def save(self, timer: TimerFile) -> None:
        write_json_atomic(self.path, timer.to_dict())

    def is_running(self, now: int) -> bool:
        return self.exists() and self.load().is_running(now)

    def elapsed(self, now: int) -> int:
        """Milliseconds since the running timer started, 0 if not running."""
        if not self.is_running(now):
            return 0
        return now - self.load().start

    def start(self) -> TimerFile:
        """Starts the timer unless it is already running."""
        now = self.clock()

        if self.exists() and self.is_running(now):
            timer = self.load()
            console.print(
                f"Timer is already started ({format_duration(now - timer.start)} ago)",
                style="bold yellow",
            )
            return timer

        timer = TimerFile(start=now, stop=0)
        self.save(timer)
        logger.info(f"Started timer at {now}")
        console.print(
            f"Started Timer: {format_timestamp(now)}", style="bold green"
        )
        return timer

    def stop(
        self, message: str | None = None, project: Project | None = None
    ) -> Record | None:
        """Stops the running timer and records the elapsed time.

        Args:
            message (str | None, optional): Record message. Asked for when None;
                                            an empty answer stores no message.
            project (Project | None, optional): Target project, defaults to the
                                                ambient one.

        Returns:
            Record | None: The added record, or None if no timer was running.
        """
        now = self.clock()
        if not self.is_running(now):
            console.print("No timer was started previously", style="bold yellow")
            return None

        timer = self.load()
        diff = now - timer.start

        if message is None:
            message = self.ask_message()

        record = Record(
            amount=ms_to_hours(diff),
            end=now,
            message=message or None,
            type=RecordType.TIME,
        )
        self.registry.add_record_to_project(record, project)

        timer.stop = now
        self.save(timer)

        logger.info(f"Stopped timer after {diff} ms")
        console.print(
            f"Timer stopped and work time is {format_duration(diff)}",
            style="bold green",
        )
        return record

    def kill(self) -> bool:
        """Discards a running timer without recording it.

        Returns:
            bool: True if a running timer was discarded.
        """
        if not self.is_running(self.clock()):
            console.print("No timer was started previously", style="bold yellow")
            return False

        self.save(TimerFile(start=0, stop=0))
        logger.warning("Timer was killed")
        console.print("Timer was killed", style="bold yellow")
        return True
