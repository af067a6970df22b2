from __future__ import annotations

import io
from datetime import timedelta
from pathlib import Path

import pytest
from rich.console import Console

from intelli_fetcher.config import ConfigRepository, ErrorHandlingConfig, JobConfig, TriggerConfig
from intelli_fetcher.config.models import FileSourceConfig
from intelli_fetcher.engine import ThreadPoolManager
from intelli_fetcher.engine.actions import Feed, ReadFilterAction, TransformField
from intelli_fetcher.engine.sinks import Stdout
from intelli_fetcher.engine.sources import FileSource, SourceWithReadFilter
from intelli_fetcher.infra import SQLiteManager
from intelli_fetcher.orchestrator import Orchestrator, build_trigger
from intelli_fetcher.scheduler import (
    Every,
    ExponentialBackoff,
    Forward,
    JobStatus,
    LogAndIgnore,
    Never,
    OnceADayAt,
)

pytestmark = pytest.mark.anyio

RSS = """<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>Example</title>
    <item>
      <title>Second post</title>
      <link>https://example.com/2</link>
      <guid>post-2</guid>
      <description>Body two</description>
    </item>
    <item>
      <title>First post</title>
      <link>https://example.com/1</link>
      <description>Body one</description>
    </item>
  </channel>
</rss>
"""


def feed_job(name: str = "feed", **overrides) -> JobConfig:
    data = {
        "name": name,
        "error_handling": "forward",
        "tasks": [
            {
                "name": "rss",
                "tag": "news",
                "source": {"type": "string", "value": RSS},
                "read_filter": "not_present",
                "actions": [{"type": "feed"}, {"type": "remove_html"}, {"type": "trim"}],
                "sink": {"type": "stdout"},
            }
        ],
    }
    data.update(overrides)
    return JobConfig.model_validate(data)


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=120, color_system=None)


@pytest.fixture
def orchestrator(temp_config_repository: ConfigRepository, console: Console):
    pool = ThreadPoolManager(default_workers=2)
    storage = SQLiteManager()
    orchestrator = Orchestrator(temp_config_repository, pool, storage, console=console)
    yield orchestrator
    pool.shutdown(wait=True)
    storage.close_all()


def output(console: Console) -> str:
    return console.file.getvalue()


async def test_run_delivers_and_remembers_entries(orchestrator, temp_config_repository, console) -> None:
    temp_config_repository.save_job(feed_job())
    seen = []

    results = await orchestrator.run(on_result=lambda job_id, result: seen.append(str(job_id)))

    assert [(str(job_id), result.status) for job_id, result in results] == [("feed", JobStatus.OK)]
    assert seen == ["feed"]
    text = output(console)
    # oldest first
    assert text.index("First post") < text.index("Second post")

    state = orchestrator.job_state("feed")
    assert state["feed/rss"]["read_filter"] == {
        "kind": "not_present",
        "read_list": ["https://example.com/1", "post-2"],
    }

    console.file.truncate(0)
    console.file.seek(0)
    await orchestrator.run(["feed"])
    assert "post" not in output(console)


async def test_dry_run_does_not_persist(orchestrator, temp_config_repository, console) -> None:
    temp_config_repository.save_job(feed_job())

    await orchestrator.run(["feed"], dry_run=True)
    await orchestrator.run(["feed"], dry_run=True)

    assert output(console).count("First post") == 2
    assert orchestrator.job_state("feed")["feed/rss"]["read_filter"] is None


async def test_parallel_run(orchestrator, temp_config_repository, console) -> None:
    temp_config_repository.save_job(feed_job("one"))
    temp_config_repository.save_job(feed_job("two"))

    results = await orchestrator.run(parallel=True)

    assert sorted(str(job_id) for job_id, _ in results) == ["one", "two"]
    assert all(result.status is JobStatus.OK for _, result in results)
    assert output(console).count("Second post") == 2


async def test_disabled_jobs_do_not_run(orchestrator, temp_config_repository, console) -> None:
    temp_config_repository.save_job(feed_job(enabled=False))
    assert await orchestrator.run() == []
    assert output(console) == ""


async def test_failing_source_is_reported(orchestrator, temp_config_repository, tmp_path: Path) -> None:
    job = feed_job(
        tasks=[{"name": "file", "source": {"type": "file", "path": str(tmp_path / "missing.xml")}, "sink": {"type": "discard"}}]
    )
    temp_config_repository.save_job(job)
    [(job_id, result)] = await orchestrator.run(["feed"])
    assert result.status is JobStatus.ERR
    assert "missing.xml" in str(result.errors[0])


def test_build_task_wires_read_filter(orchestrator) -> None:
    job_cfg = feed_job()
    task = orchestrator.build_task(job_cfg, job_cfg.tasks[0])

    assert isinstance(task.source, SourceWithReadFilter)
    actions = task.pipeline.actions
    assert isinstance(actions[0], Feed)
    assert all(isinstance(action, TransformField) for action in actions[1:3])
    # an unplaced read filter runs after the parsers
    assert isinstance(actions[-1], ReadFilterAction)
    assert actions[-1].read_filter is task.source.read_filter
    assert isinstance(task.sink, Stdout)
    assert task.tag == "news"


def test_placed_read_filter_is_not_duplicated(orchestrator) -> None:
    placed =JobConfig.model_validate(
        {
            "name": "placed",
            "tasks": [
                {
                    "name": "rss",
                    "source": {"type": "string", "value": RSS},
                    "read_filter": "newer",
                    "actions": [{"type": "feed"}, {"type": "read_filter"}, {"type": "caps"}],
                }
            ],
        }
    )
    task = orchestrator.build_task(placed, placed.tasks[0])
    kinds = [type(action) for action in task.pipeline.actions]
    assert kinds == [Feed, ReadFilterAction, TransformField]


def test_read_filter_without_source_is_rejected(orchestrator) -> None:
    job_cfg = JobConfig.model_validate({"name": "bad", "tasks": [{"name": "t", "read_filter": "newer"}]})
    with pytest.raises(ValueError):
        orchestrator.build_task(job_cfg, job_cfg.tasks[0])


def test_dry_run_replaces_sink(orchestrator) -> None:
    job_cfg = feed_job(tasks=[{"name": "t", "source": {"type": "string", "value": "x"}, "sink": {"type": "exec", "cmd": "cat"}}])
    task = orchestrator.build_task(job_cfg, job_cfg.tasks[0], dry_run=True)
    assert isinstance(task.sink, Stdout)


def test_relative_file_source_resolves_against_project_root(orchestrator) -> None:
    source = orchestrator.build_source(FileSourceConfig(type="file", path="feeds/news.xml"), client=None)
    assert isinstance(source, FileSource)
    assert source.path == orchestrator.project_root / "feeds/news.xml"


def test_error_handlers_follow_configuration(orchestrator) -> None:
    assert isinstance(orchestrator.build_error_handler(ErrorHandlingConfig(type="forward")), Forward)
    assert isinstance(orchestrator.build_error_handler(ErrorHandlingConfig(type="log_and_ignore")), LogAndIgnore)

    default = orchestrator.build_error_handler(None)
    assert isinstance(default, ExponentialBackoff)
    assert default.unit == timedelta(seconds=60)
    assert default.network_error_pause == timedelta(minutes=5)

    custom = orchestrator.build_error_handler(
        ErrorHandlingConfig(type="exponential_backoff", max_retries=3, unit_seconds=2)
    )
    assert custom.max_retries == 3
    assert custom.unit == timedelta(seconds=2)


def test_build_trigger() -> None:
    assert isinstance(build_trigger(TriggerConfig(every="5m")), Every)
    assert isinstance(build_trigger(TriggerConfig(at="07:00")), OnceADayAt)
    assert isinstance(build_trigger(TriggerConfig(never=True)), Never)


def test_reset_job_state(orchestrator, temp_config_repository) -> None:
    temp_config_repository.save_job(feed_job())
    assert orchestrator.reset_job_state("feed") == ["feed/rss"]
    assert orchestrator.job_state("feed")["feed/rss"] == {"read_filter": None, "entry_to_msg_map": {}}
