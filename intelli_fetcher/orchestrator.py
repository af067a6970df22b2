"""Orchestrator turning job configuration into running jobs."""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import structlog
from rich.console import Console

from .cancellation import CancellationToken
from .config import ConfigRepository, GlobalConfig, JobConfig, TaskConfig
from .config import models as cfg
from .config.models import ErrorHandlingConfig, ErrorHandlingType, TriggerConfig
from .engine import EntryToMsgMap, Task, ThreadPoolManager
from .engine.actions import (
    Action,
    Caps,
    Contains,
    DebugPrint,
    DecodeHtml,
    Extract,
    Feed,
    Html,
    HtmlQuery,
    Http,
    Json,
    JsonQuery,
    ReadFilterAction,
    Replace,
    Set,
    Shorten,
    Take,
    TransformField,
    Trim,
    Use,
    UseRawContents,
)
from .engine.read_filter import SharedReadFilter
from .engine.sinks import DiscardSink, Exec, Sink, Stdout
from .engine.sources import ExecSource, FileSource, HttpSource, Source, SourceWithReadFilter, StringSource
from .infra import SQLiteExternalSave, SQLiteManager, stored_task_keys
from .logging_conf import configure_logging, job_logger
from .scheduler import (
    CombinedJobGroup,
    ErrorHandler,
    Every,
    ExponentialBackoff,
    Forward,
    Job,
    JobGroup,
    JobId,
    JobResult,
    LogAndIgnore,
    Never,
    OnceADayAt,
    Trigger,
)

ResultCallback = Callable[[JobId, JobResult], None]


class Orchestrator:
    """Central coordinator building jobs from configuration and running them."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        thread_pool: ThreadPoolManager,
        storage: SQLiteManager,
        console: Console | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.thread_pool = thread_pool
        self.storage = storage
        self.console = console or Console()
        self.logger = configure_logging().bind(component="orchestrator")

    @property
    def state_db(self) -> Path:
        return self.config_repository.state_db_path()

    @property
    def project_root(self) -> Path:
        return self.config_repository.locator.project_root

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------
    async def run(
        self,
        names: Iterable[str] | None = None,
        *,
        parallel: bool = False,
        dry_run: bool = False,
        cancel_token: CancellationToken | None = None,
        on_result: ResultCallback | None = None,
    ) -> list[tuple[JobId, JobResult]]:
        """Run the selected jobs (all of them by default) until every job stops."""

        token = cancel_token or CancellationToken()
        configs = self.select_jobs(names)
        results: list[tuple[JobId, JobResult]] = []
        self.logger.info(
            "jobs_starting",
            jobs=[job.name for job in configs],
            parallel=parallel,
            dry_run=dry_run,
        )

        if parallel:
            # an AsyncClient is bound to one event loop, so every request opens its own
            group = self.build_group(configs, cancel_token=token, client=None, dry_run=dry_run)
            outcomes, _ = await group.run_in_parallel(self.thread_pool)
            for job_id, result in outcomes:
                results.append((job_id, result))
                if on_result is not None:
                    on_result(job_id, result)
            return results

        async with self.http_client() as client:
            group = self.build_group(configs, cancel_token=token, client=client, dry_run=dry_run)
            async for job_id, result in group.run_concurrently():
                results.append((job_id, result))
                if on_result is not None:
                    on_result(job_id, result)
        return results

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.global_config.http_timeout,
            headers={"User-Agent": self.global_config.user_agent},
        )

    def select_jobs(self, names: Iterable[str] | None = None) -> list[JobConfig]:
        if not names:
            return self.config_repository.list_jobs()
        return [self.config_repository.load_job(name) for name in names]

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------
    def build_group(
        self,
        configs: Iterable[JobConfig],
        *,
        cancel_token: CancellationToken | None = None,
        client: httpx.AsyncClient | None = None,
        dry_run: bool = False,
    ) -> JobGroup:
        groups: list[JobGroup] = []
        for job_cfg in configs:
            job = self.build_job(job_cfg, cancel_token=cancel_token, client=client, dry_run=dry_run)
            if not job_cfg.enabled:
                self.logger.info("job_disabled", job=job_cfg.name)
                groups.append(job.disable())
            else:
                groups.append(job)
        return CombinedJobGroup(groups)

    def build_job(
        self,
        job_cfg: JobConfig,
        *,
        cancel_token: CancellationToken | None = None,
        client: httpx.AsyncClient | None = None,
        dry_run: bool = False,
    ) -> Job:
        logger = job_logger(job_cfg.name)
        tasks = [
            self.build_task(job_cfg, task_cfg, client=client, dry_run=dry_run, logger=logger)
            for task_cfg in job_cfg.tasks
        ]
        return Job(
            job_cfg.name,
            tasks,
            trigger=build_trigger(job_cfg.trigger),
            error_handler=self.build_error_handler(job_cfg.error_handling),
            cancel_token=cancel_token,
            logger=logger,
        )

    def build_error_handler(self, handling: ErrorHandlingConfig | None) -> ErrorHandler:
        handling = handling or ErrorHandlingConfig(type=self.global_config.default_error_handling)
        if handling.type is ErrorHandlingType.FORWARD:
            return Forward()
        if handling.type is ErrorHandlingType.LOG_AND_IGNORE:
            return LogAndIgnore()
        unit = timedelta(seconds=handling.unit_seconds or self.global_config.backoff_unit_seconds)
        return ExponentialBackoff(
            max_retries=handling.max_retries,
            unit=unit,
            network_error_pause=unit * 5,
        )

    def build_task(
        self,
        job_cfg: JobConfig,
        task_cfg: TaskConfig,
        *,
        client: httpx.AsyncClient | None = None,
        dry_run: bool = False,
        logger: structlog.BoundLogger | None = None,
    ) -> Task:
        task_key = job_cfg.task_key(task_cfg)
        external_save = SQLiteExternalSave(self.storage, self.state_db, task_key)
        source = self.build_source(task_cfg.source, client) if task_cfg.source is not None else None

        shared: SharedReadFilter | None = None
        if task_cfg.read_filter is not None:
            if source is None:
                raise ValueError(f"Task {task_key!r} has a read filter but no source")
            read_filter = external_save.load_read_filter(task_cfg.read_filter)
            if dry_run:
                read_filter.set_read_only()
            shared = SharedReadFilter(read_filter)
            source = SourceWithReadFilter(source, shared)

        actions = [self.build_action(action_cfg, client, shared) for action_cfg in task_cfg.actions]
        if shared is not None and not any(isinstance(action, ReadFilterAction) for action in actions):
            # parsers assign the ids, so an unplaced filter runs last
            actions.append(ReadFilterAction(shared))

        entry_to_msg_map = None
        if task_cfg.entry_to_msg_map:
            entry_to_msg_map = EntryToMsgMap(
                external_save.load_entry_to_msg_map(),
                external_save=None if dry_run else external_save,
            )

        sink = self.build_sink(task_cfg.sink) if task_cfg.sink is not None else None
        if dry_run and sink is not None:
            sink = Stdout(self.console)

        return Task(
            task_cfg.name,
            tag=task_cfg.tag,
            source=source,
            actions=actions,
            sink=sink,
            entry_to_msg_map=entry_to_msg_map,
            logger=logger,
        )

    def build_source(self, source_cfg: Any, client: httpx.AsyncClient | None) -> Source:
        if isinstance(source_cfg, cfg.HttpSourceConfig):
            headers = {"User-Agent": self.global_config.user_agent, **source_cfg.headers}
            return HttpSource(
                source_cfg.url,
                client=client,
                timeout=self.global_config.http_timeout,
                headers=headers,
            )
        if isinstance(source_cfg, cfg.FileSourceConfig):
            path = source_cfg.path
            if not path.is_absolute():
                path = self.project_root / path
            return FileSource(path)
        if isinstance(source_cfg, cfg.StringSourceConfig):
            return StringSource(source_cfg.value)
        if isinstance(source_cfg, cfg.ExecSourceConfig):
            return ExecSource(source_cfg.cmd, timeout=source_cfg.timeout)
        raise ValueError(f"Unsupported source configuration: {source_cfg!r}")

    def build_sink(self, sink_cfg: Any) -> Sink:
        if isinstance(sink_cfg, cfg.StdoutSinkConfig):
            return Stdout(self.console)
        if isinstance(sink_cfg, cfg.ExecSinkConfig):
            return Exec(sink_cfg.cmd, timeout=sink_cfg.timeout)
        if isinstance(sink_cfg, cfg.DiscardSinkConfig):
            return DiscardSink()
        raise ValueError(f"Unsupported sink configuration: {sink_cfg!r}")

    def build_action(
        self,
        action_cfg: Any,
        client: httpx.AsyncClient | None,
        shared: SharedReadFilter | None,
    ) -> Action:
        if isinstance(action_cfg, cfg.ReadFilterActionConfig):
            if shared is None:
                raise ValueError("read_filter action used without a read filter")
            return ReadFilterAction(shared)
        if isinstance(action_cfg, cfg.TakeConfig):
            return Take(action_cfg.from_, action_cfg.num)
        if isinstance(action_cfg, cfg.ContainsConfig):
            return Contains(action_cfg.field, action_cfg.re)
        if isinstance(action_cfg, cfg.FeedConfig):
            return Feed()
        if isinstance(action_cfg, cfg.HtmlConfig):
            return Html(
                item=action_cfg.item,
                title=_html_query(action_cfg.title),
                text=[_html_query(query) for query in action_cfg.text],
                id=_html_query(action_cfg.id),
                link=_html_query(action_cfg.link),
                img=_html_query(action_cfg.img),
            )
        if isinstance(action_cfg, cfg.JsonConfig):
            return Json(
                item=action_cfg.item,
                title=_json_query(action_cfg.title),
                text=[_json_query(query) for query in action_cfg.text],
                id=_json_query(action_cfg.id),
                link=_json_query(action_cfg.link),
                img=_json_query(action_cfg.img),
            )
        if isinstance(action_cfg, cfg.HttpActionConfig):
            return Http(action_cfg.from_field, client=client, timeout=self.global_config.http_timeout)
        if isinstance(action_cfg, cfg.UseRawContentsConfig):
            return UseRawContents()
        if isinstance(action_cfg, cfg.UseConfig):
            return Use(action_cfg.field, action_cfg.as_field)
        if isinstance(action_cfg, cfg.DebugPrintConfig):
            return DebugPrint(self.console)
        if isinstance(action_cfg, cfg.CapsConfig):
            return TransformField(action_cfg.field, Caps())
        if isinstance(action_cfg, cfg.TrimConfig):
            return TransformField(action_cfg.field, Trim())
        if isinstance(action_cfg, cfg.ShortenConfig):
            return TransformField(action_cfg.field, Shorten(action_cfg.len))
        if isinstance(action_cfg, cfg.SetConfig):
            return TransformField(action_cfg.field, Set(action_cfg.values))
        if isinstance(action_cfg, cfg.ReplaceConfig):
            return TransformField(action_cfg.field, Replace(action_cfg.re, action_cfg.with_))
        if isinstance(action_cfg, cfg.RemoveHtmlConfig):
            return TransformField(action_cfg.field, Replace.html_tags())
        if isinstance(action_cfg, cfg.ExtractConfig):
            return TransformField(
                action_cfg.field,
                Extract(action_cfg.re, passthrough_if_not_found=action_cfg.passthrough_if_not_found),
            )
        if isinstance(action_cfg, cfg.DecodeHtmlConfig):
            return TransformField(action_cfg.field, DecodeHtml())
        raise ValueError(f"Unsupported action configuration: {action_cfg!r}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def job_state(self, job_name: str) -> dict[str, dict[str, Any]]:
        """Saved read filter state and entry map size per task of ``job_name``."""

        job_cfg = self.config_repository.load_job(job_name)
        state: dict[str, dict[str, Any]] = {}
        for task_cfg in job_cfg.tasks:
            task_key = job_cfg.task_key(task_cfg)
            external_save = SQLiteExternalSave(self.storage, self.state_db, task_key)
            state[task_key] = {
                "read_filter": external_save.load_state(),
                "entry_to_msg_map": external_save.load_entry_to_msg_map(),
            }
        return state

    def reset_job_state(self, job_name: str) -> list[str]:
        job_cfg = self.config_repository.load_job(job_name)
        keys = []
        for task_cfg in job_cfg.tasks:
            task_key = job_cfg.task_key(task_cfg)
            SQLiteExternalSave(self.storage, self.state_db, task_key).reset()
            keys.append(task_key)
        self.logger.info("job_state_reset", job=job_name, tasks=keys)
        return keys

    def saved_task_keys(self) -> list[str]:
        """Every task key with saved state, including tasks no job declares anymore."""

        return stored_task_keys(self.storage, self.state_db)

    def purge_state(self) -> None:
        """Delete the whole state database."""

        self.storage.reset(self.state_db)
        self.logger.warning("state_purged", path=str(self.state_db))


def build_trigger(trigger_cfg: TriggerConfig) -> Trigger:
    if trigger_cfg.every is not None:
        return Every(trigger_cfg.every)
    if trigger_cfg.at is not None:
        return OnceADayAt(trigger_cfg.at)
    return Never()


def install_signal_handlers(token: CancellationToken) -> None:
    """Cancel ``token`` on SIGINT/SIGTERM for the running loop."""

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel)
        except (NotImplementedError, RuntimeError):
            # not supported on this platform or outside the main thread
            signal.signal(sig, lambda *_: token.cancel())


def _html_query(query: cfg.HtmlQueryConfig | None) -> HtmlQuery | None:
    if query is None:
        return None
    return HtmlQuery(
        selector=query.selector,
        attr=query.attr,
        regex=query.re,
        replacement=query.replace_with,
        optional=query.optional,
    )


def _json_query(query: cfg.JsonQueryConfig | None) -> JsonQuery | None:
    if query is None:
        return None
    return JsonQuery(path=list(query.key), prepend=query.prepend, append=query.append)


__all__ = ["Orchestrator", "build_trigger", "install_signal_handlers"]
