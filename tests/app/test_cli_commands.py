from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from intelli_fetcher.app import app
from intelli_fetcher.config import ConfigRepository, JobConfig, TriggerConfig

RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Example</title>
<item><title>Only post</title><link>https://example.com/1</link><description>Hello</description></item>
</channel></rss>
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def repository(temp_config_repository: ConfigRepository) -> ConfigRepository:
    temp_config_repository.save_job(
        JobConfig.model_validate(
            {
                "name": "feed",
                "trigger": {"every": "1h"},
                "error_handling": "forward",
                "tasks": [
                    {
                        "name": "rss",
                        "source": {"type": "string", "value": RSS},
                        "read_filter": "not_present",
                        "actions": [{"type": "feed"}],
                        "sink": {"type": "discard"},
                    }
                ],
            }
        )
    )
    return temp_config_repository


def never_job(repository: ConfigRepository) -> None:
    job = repository.load_job("feed")
    repository.save_job(job.model_copy(update={"trigger": TriggerConfig(never=True)}))


def test_cli_job_list_empty(runner, temp_config_repository) -> None:
    result = runner.invoke(app, ["job", "list"])
    assert result.exit_code == 0, result.stdout
    assert "No jobs configured yet." in result.stdout


def test_cli_job_list(runner, repository) -> None:
    result = runner.invoke(app, ["job", "list"])
    assert result.exit_code == 0, result.stdout
    assert "feed" in result.stdout
    assert "forward" in result.stdout


def test_cli_job_check(runner, repository) -> None:
    result = runner.invoke(app, ["job", "check", "feed"])
    assert result.exit_code == 0, result.stdout
    assert "rss" in result.stdout


def test_cli_job_check_missing(runner, temp_config_repository) -> None:
    result = runner.invoke(app, ["job", "check", "ghost"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_cli_run_dry_run_prints_messages(runner, repository) -> None:
    never_job(repository)
    result = runner.invoke(app, ["run", "feed", "--dry-run"])
    assert result.exit_code == 0, result.stdout
    assert "Only post" in result.stdout
    assert "feed: ok" in result.stdout

    state = runner.invoke(app, ["state", "show", "feed"])
    assert state.exit_code == 0, state.stdout
    assert "feed/rss" in state.stdout
    assert "example.com/1" not in state.stdout


def test_cli_run_then_reset_state(runner, repository) -> None:
    never_job(repository)
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 0, result.stdout

    shown = runner.invoke(app, ["state", "show", "feed"])
    assert "not_present" in shown.stdout

    reset = runner.invoke(app, ["state", "reset", "feed", "--yes"])
    assert reset.exit_code == 0, reset.stdout
    assert "Reset state of 1 task(s)." in reset.stdout


def test_cli_run_unknown_job(runner, temp_config_repository) -> None:
    result = runner.invoke(app, ["run", "ghost"])
    assert result.exit_code == 1
    assert "Cannot start jobs" in result.stdout


def test_cli_run_failing_job_exits_non_zero(runner, temp_config_repository, tmp_path: Path) -> None:
    temp_config_repository.save_job(
        JobConfig.model_validate(
            {
                "name": "broken",
                "error_handling": "forward",
                "tasks": [{"name": "file", "source": {"type": "file", "path": str(tmp_path / "nope.txt")}}],
            }
        )
    )
    result = runner.invoke(app, ["run", "broken"])
    assert result.exit_code == 1
    assert "broken: err" in result.stdout


def test_cli_state_reset_requires_confirmation(runner, repository) -> None:
    result = runner.invoke(app, ["state", "reset", "feed"], input="n\n")
    assert result.exit_code != 0
    assert "Reset state" not in result.stdout


def test_cli_log_show_missing_job_log(runner, temp_config_repository) -> None:
    result = runner.invoke(app, ["log", "show", "--job", "ghost"])
    assert result.exit_code == 0, result.stdout
    assert "No log lines yet." in result.stdout


def test_cli_state_list_and_purge(runner, repository) -> None:
    empty = runner.invoke(app, ["state", "list"])
    assert empty.exit_code == 0, empty.stdout
    assert "No saved state." in empty.stdout

    never_job(repository)
    assert runner.invoke(app, ["run"]).exit_code == 0

    listed = runner.invoke(app, ["state", "list"])
    assert listed.exit_code == 0, listed.stdout
    assert "feed/rss" in listed.stdout
    assert "ok" in listed.stdout

    repository.delete_job("feed")
    orphaned = runner.invoke(app, ["state", "list"])
    assert "feed/rss" in orphaned.stdout
    assert "missing" in orphaned.stdout

    purged = runner.invoke(app, ["state", "purge", "--yes"])
    assert purged.exit_code == 0, purged.stdout
    assert "Deleted" in purged.stdout
    assert not repository.state_db_path().exists()
    assert "No saved state." in runner.invoke(app, ["state", "list"]).stdout
