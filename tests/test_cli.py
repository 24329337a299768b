"""Tests for the Command Line Interface (CLI) module."""

import datetime
import logging
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from gittt import cli
from gittt.errors import (
    AmbiguousProjectError,
    InvalidRecordError,
    NoGitRemoteError,
    UnknownOptionError,
)
from gittt.git_wrapper import LogEntry
from gittt.models import Project, ProjectMeta, Record
from gittt.settings import Settings


@pytest.fixture
def app(mocker: MagicMock) -> MagicMock:
    """Wires `main` to a mocked application with an initialized store."""
    mocker.patch("gittt.cli.setup_logging")
    mocker.patch("gittt.cli.Settings.load", return_value=Settings())
    app = MagicMock()
    app.store.is_config_valid.return_value = True
    mocker.patch("gittt.cli.build_app", return_value=app)
    return app


@pytest.fixture
def restore_logger() -> Any:
    """Undoes `setup_logging`, so later tests still see log records."""
    logger = logging.getLogger("gittt")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_help_prints_usage(capsys: pytest.CaptureFixture, mocker: MagicMock) -> None:
    build = mocker.patch("gittt.cli.build_app")

    cli.main(["help"])
    cli.main([])

    assert "usage: gittt" in capsys.readouterr().out
    build.assert_not_called()


def test_commit_command(app: MagicMock, mocker: MagicMock) -> None:
    """Verifies that `commit` adds a record for the resolved project."""
    mocker.patch("gittt.cli.RepoSync.current_branch", return_value=None)
    project = Project(meta=ProjectMeta("github.com", 443), name="team_proj")
    app.registry.get_project_by_name.return_value = project
    app.registry.add_record_to_project.return_value = project

    cli.main(["commit", "-a", "1.5", "-m", "Reviewed PR"])

    app.registry.get_project_by_name.assert_called_once_with(None)
    record, target = app.registry.add_record_to_project.call_args.args
    assert record.amount == 1.5
    assert record.message == "Reviewed PR"
    assert target is project


def test_commit_appends_ticket_number(app: MagicMock, mocker: MagicMock) -> None:
    mocker.patch("gittt.cli.RepoSync.current_branch", return_value="1337-login")
    mocker.patch("gittt.cli.prompts.confirm_ticket_number", return_value=True)
    app.registry.add_record_to_project.return_value = Project(
        meta=ProjectMeta("github.com", 443), name="p"
    )

    cli.main(["commit", "-a", "1", "-m", "Fixed login", "-p", "p"])

    app.registry.get_project_by_name.assert_called_once_with("p")
    record = app.registry.add_record_to_project.call_args.args[0]
    assert record.message == "Fixed login [#1337]"


def test_domain_errors_exit_with_code_1(
    app: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    app.registry.get_project_by_name.side_effect = NoGitRemoteError(
        "Unable to get URL from git config"
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["commit", "-a", "1", "-m", "x"])

    assert excinfo.value.code == 1
    assert "Unable to get URL from git config" in capsys.readouterr().err


@pytest.mark.parametrize("amount", ["nan", "inf", "0", "-2"])
def test_commit_rejects_invalid_amounts(
    app: MagicMock, capsys: pytest.CaptureFixture, amount: str
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["commit", "-a", amount, "-m", "x"])

    assert excinfo.value.code == 1
    assert "Invalid amount" in capsys.readouterr().err
    app.registry.add_record_to_project.assert_not_called()


@pytest.mark.parametrize(
    ("command", "target", "error"),
    [
        (
            ["commit", "-a", "1", "-m", "x", "-p", "p"],
            "registry.get_project_by_name",
            AmbiguousProjectError("p", ["a_1", "b_2"]),
        ),
        (["push"], "sync.push_changes", UnknownOptionError("Unknown override option: 7")),
    ],
)
def test_store_and_sync_errors_exit_with_code_1(
    app: MagicMock,
    capsys: pytest.CaptureFixture,
    command: list[str],
    target: str,
    error: Exception,
) -> None:
    owner, method = target.split(".")
    getattr(getattr(app, owner), method).side_effect = error

    with pytest.raises(SystemExit) as excinfo:
        cli.main(command)

    assert excinfo.value.code == 1
    assert str(error) in capsys.readouterr().err


def test_compose_end_overrides_given_parts() -> None:
    now = datetime.datetime(2024, 3, 5, 17, 42, 13, 500)

    assert cli.compose_end(now) == int(
        datetime.datetime(2024, 3, 5, 17, 42).timestamp() * 1000
    )
    assert cli.compose_end(now, month=1, day=31, hour=9, minute=0) == int(
        datetime.datetime(2024, 1, 31, 9, 0).timestamp() * 1000
    )

    with pytest.raises(InvalidRecordError):
        cli.compose_end(now, month=2, day=30)


def test_add_uses_explicit_end(app: MagicMock, mocker: MagicMock) -> None:
    mocker.patch("gittt.cli.RepoSync.current_branch", return_value=None)
    project = Project(meta=ProjectMeta("github.com", 443), name="team_proj")
    app.registry.get_project_by_name.return_value = project
    app.registry.add_record_to_project.return_value = project

    cli.main(
        [
            "add",
            "-a",
            "2",
            "-m",
            "Planning",
            "--year",
            "2023",
            "--month",
            "12",
            "--day",
            "24",
            "--hour",
            "18",
            "--minute",
            "30",
        ]
    )

    record, target = app.registry.add_record_to_project.call_args.args
    assert record.end == int(datetime.datetime(2023, 12, 24, 18, 30).timestamp() * 1000)
    assert record.amount == 2
    assert target is project


def test_add_with_invalid_date_exits_with_code_1(app: MagicMock) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["add", "-a", "1", "--month", "13"])

    assert excinfo.value.code == 1
    app.registry.add_record_to_project.assert_not_called()


def test_remove_record_by_guid(app: MagicMock, capsys: pytest.CaptureFixture) -> None:
    project = Project(meta=ProjectMeta("github.com", 443), name="team_proj")
    app.registry.get_project_by_name.return_value = project
    app.registry.remove_record.return_value = Record(amount=1.5, end=0, guid="abc")

    cli.main(["remove", "-g", "abc", "-p", "team_proj"])

    app.registry.get_project_by_name.assert_called_once_with("team_proj")
    app.registry.remove_record.assert_called_once_with("abc", project)
    assert "Removed record" in capsys.readouterr().out


def test_today_sums_records(app: MagicMock, capsys: pytest.CaptureFixture) -> None:
    project = Project(meta=ProjectMeta("github.com", 443), name="team_proj")
    app.registry.find_records_for_day.return_value = [
        (project, Record(amount=1.5, end=0, message="Standup")),
        (project, Record(amount=2.25, end=0)),
    ]

    cli.main(["today"])

    app.registry.find_records_for_day.assert_called_once_with(datetime.date.today())
    out = capsys.readouterr().out
    assert "Standup" in out
    assert "SUM: 3.75h" in out


def test_declining_setup_exits_cleanly(app: MagicMock, mocker: MagicMock) -> None:
    app.store.is_config_valid.return_value = False
    app.store.config_exists.return_value = False
    mocker.patch("gittt.cli.prompts.confirm_setup", return_value=False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["start"])

    assert excinfo.value.code == 0
    app.timer.start.assert_not_called()


def test_invalid_config_is_an_error(app: MagicMock) -> None:
    app.store.is_config_valid.return_value = False
    app.store.config_exists.return_value = True

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["status"])

    assert excinfo.value.code == 1


def test_first_run_setup_initializes_store(app: MagicMock, mocker: MagicMock) -> None:
    """Verifies the first-run flow: init, pull, write config, commit, push."""
    app.store.is_config_valid.side_effect = [False, False, True]
    app.store.config_exists.return_value = False
    mocker.patch("gittt.cli.prompts.confirm_setup", return_value=True)
    mocker.patch(
        "gittt.cli.prompts.ask_git_url",
        return_value="ssh://git@github.com:443/me/records.git",
    )

    cli.main(["start"])

    app.sync.init_repo.assert_called_once_with("ssh://git@github.com:443/me/records.git")
    app.sync.pull_repo.assert_called_once()
    app.store.init_config.assert_called_once_with(
        "ssh://git@github.com:443/me/records.git"
    )
    app.sync.commit_changes.assert_called_once_with("Initialized config file")
    app.sync.push_changes.assert_called_once()
    app.timer.start.assert_called_once()


def test_setup_adopts_existing_remote_config(app: MagicMock) -> None:
    app.store.is_config_valid.side_effect = [False, True]
    app.store.config_exists.return_value = False

    cli.main(["setup", "--url", "ssh://git@github.com:443/me/records.git"])

    app.store.init_config.assert_not_called()
    app.store.get_config.assert_called_once_with(force_reload=True)


def test_stop_kill(app: MagicMock) -> None:
    cli.main(["stop", "-k"])

    app.timer.kill.assert_called_once()
    app.timer.stop.assert_not_called()


def test_stop_with_message(app: MagicMock, mocker: MagicMock) -> None:
    mocker.patch("gittt.cli.RepoSync.current_branch", return_value="main")
    app.timer.is_running.return_value = True

    cli.main(["stop", "-m", "Wrote docs"])

    app.timer.stop.assert_called_once_with("Wrote docs", None)


def test_init_canceled(app: MagicMock, mocker: MagicMock) -> None:
    mocker.patch("gittt.cli.prompts.confirm_init", return_value=False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["init"])

    assert excinfo.value.code == 0
    app.registry.init_project.assert_not_called()


def test_migrate_unknown_project(app: MagicMock) -> None:
    app.store.find_project_by_name.return_value = None

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["migrate", "--from", "legacy"])

    assert excinfo.value.code == 1
    app.registry.migrate.assert_not_called()


def test_info_table(app: MagicMock, capsys: pytest.CaptureFixture) -> None:
    app.store.find_all_projects.return_value = [
        Project(
            meta=ProjectMeta("github.com", 443),
            name="team_proj",
            records=[Record(amount=1.5, end=0), Record(amount=2, end=0)],
        )
    ]
    app.registry.get_total_hours.return_value = 3.5

    cli.main(["info"])

    out = capsys.readouterr().out
    assert "team_proj" in out
    assert "3.50" in out


def test_log_lists_unpushed_commits(app: MagicMock, capsys: pytest.CaptureFixture) -> None:
    app.sync.log_changes.return_value = [
        LogEntry("abcdef123456", "2024-01-02", "Added 1 hour to p", "Jane", "j@x.io")
    ]

    cli.main(["log"])

    out = capsys.readouterr().out
    assert "abcdef12" in out
    assert "Added 1 hour to p" in out


def test_status_shows_timer_and_changes(
    app: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    app.timer.is_running.return_value = True
    app.timer.elapsed.return_value = 3_723_000
    app.sync.log_changes.return_value = []
    app.sync.status.return_value = [" M config.json"]

    cli.main(["status"])

    out = capsys.readouterr().out
    assert "Running" in out
    assert "01:02:03" in out
    assert "config.json" in out


def test_setup_logging_writes_log_file(
    tmp_path: Path, mocker: MagicMock, restore_logger: logging.Logger
) -> None:
    log_file = tmp_path / "state" / "gittt.log"
    mocker.patch("gittt.cli.LOG_FILE", log_file)

    cli.setup_logging(Settings())
    restore_logger.info("hello from the test")

    assert log_file.parent.is_dir()
    for handler in restore_logger.handlers:
        handler.flush()
    assert "hello from the test" in log_file.read_text()
