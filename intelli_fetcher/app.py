"""Typer CLI entrypoint for Intelli-Fetcher."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .cancellation import CancellationToken
from .config import ConfigRepository, JobConfig, TriggerConfig
from .engine import ThreadPoolManager
from .infra import SQLiteManager
from .logging_conf import (
    ERROR_LOG,
    MAIN_LOG,
    available_job_logs,
    configure_logging,
    job_log_path,
    log_dir,
    tail_log,
)
from .orchestrator import Orchestrator, install_signal_handlers
from .scheduler import JobId, JobResult

app = typer.Typer(
    help="Intelli-Fetcher: fetch, transform and forward new entries on a schedule",
    no_args_is_help=True,
    rich_markup_mode=None,
)
job_app = typer.Typer(name="job", help="Job configuration commands", no_args_is_help=True)
state_app = typer.Typer(name="state", help="Saved read state commands", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Log viewer commands", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    orchestrator: Orchestrator
    thread_pool: ThreadPoolManager
    storage: SQLiteManager


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    configure_logging(verbose=verbose, log_dir=repository.locator.logs_dir)
    global_config = repository.load_global_config()
    thread_pool = ThreadPoolManager(global_config.thread_pool_workers)
    storage = SQLiteManager()
    orchestrator = Orchestrator(
        config_repository=repository,
        thread_pool=thread_pool,
        storage=storage,
        console=console,
    )
    return AppState(
        repository=repository,
        orchestrator=orchestrator,
        thread_pool=thread_pool,
        storage=storage,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _format_trigger(trigger: TriggerConfig) -> str:
    if trigger.every is not None:
        return f"every {trigger.every}"
    if trigger.at is not None:
        return f"daily at {trigger.at.strftime('%H:%M')}"
    return "never"


def _render_jobs_table(jobs: Sequence[JobConfig], default_handling: str) -> Table:
    table = Table(title=f"Jobs · {len(jobs)} configured", box=box.SIMPLE_HEAD, show_lines=False)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Enabled", style="green")
    table.add_column("Trigger", style="yellow")
    table.add_column("Error handling", style="magenta")
    table.add_column("Tasks", overflow="fold")
    for job in jobs:
        handling = job.error_handling.type.value if job.error_handling else f"{default_handling} (default)"
        table.add_row(
            job.name,
            "yes" if job.enabled else "no",
            _format_trigger(job.trigger),
            handling,
            ", ".join(task.name for task in job.tasks),
        )
    return table


def _render_results_table(results: Sequence[tuple[JobId, JobResult]]) -> Table:
    table = Table(title="Job results", box=box.SIMPLE_HEAD)
    table.add_column("Job", style="cyan", no_wrap=True)
    table.add_column("Status", style="magenta")
    table.add_column("Errors", overflow="fold")
    for job_id, result in results:
        errors = "; ".join(str(error) for error in result.errors)
        if not errors and result.payload is not None:
            errors = str(result.payload)
        table.add_row(str(job_id), result.status.value, errors or "-")
    return table


app.add_typer(job_app, name="job", help="List and validate job configurations")
app.add_typer(state_app, name="state", help="Inspect or reset saved read state")
app.add_typer(log_app, name="log", help="Show log files")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logs", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="Run jobs until they stop or Ctrl-C is pressed.")
def run(
    ctx: typer.Context,
    jobs: Optional[List[str]] = typer.Argument(None, help="Job names; all jobs when omitted."),
    parallel: bool = typer.Option(False, "--parallel", help="Run every job on its own thread."),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print messages to stdout and leave read state untouched."
    ),
) -> None:
    state = _get_state(ctx)

    def _report(job_id: JobId, result: JobResult) -> None:
        style = "green" if result.is_ok else "red"
        console.print(f"{job_id}: {result.status.value}", style=style)

    async def _main() -> list[tuple[JobId, JobResult]]:
        token = CancellationToken()
        install_signal_handlers(token)
        return await state.orchestrator.run(
            jobs or None,
            parallel=parallel,
            dry_run=dry_run,
            cancel_token=token,
            on_result=_report,
        )

    try:
        results = asyncio.run(_main())
    except (FileNotFoundError, ValidationError, ValueError) as exc:
        console.print(f"Cannot start jobs: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    finally:
        state.thread_pool.shutdown(wait=False)
        state.storage.close_all()

    if not results:
        console.print("No jobs ran. Add job files under data/jobs/.", style="yellow")
        return
    console.print(_render_results_table(results))
    if any(not result.is_ok for _, result in results):
        raise typer.Exit(code=1)


@job_app.command("list", help="List configured jobs.")
def job_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        jobs = state.repository.list_jobs()
    except (ValidationError, ValueError) as exc:
        console.print(f"Invalid job configuration: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    if not jobs:
        console.print("No jobs configured yet.", style="yellow")
        return
    default_handling = state.repository.load_global_config().default_error_handling.value
    console.print(_render_jobs_table(jobs, default_handling))


@job_app.command("check", help="Validate a job file and build its tasks.")
def job_check(ctx: typer.Context, name: str = typer.Argument(..., help="Job name.")) -> None:
    state = _get_state(ctx)
    try:
        job_cfg = state.repository.load_job(name)
        job = state.orchestrator.build_job(job_cfg, dry_run=True)
    except FileNotFoundError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc
    except (ValidationError, ValueError) as exc:
        console.print(f"Job {name!r} is invalid:\n{exc}", style="red")
        raise typer.Exit(code=1) from exc
    table = Table(title=f"Job {job.name}", box=box.SIMPLE_HEAD)
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Source", style="green", overflow="fold")
    table.add_column("Actions", overflow="fold")
    table.add_column("Sink", style="magenta")
    for task in job.tasks:
        table.add_row(
            task.name or "-",
            repr(task.source) if task.source is not None else "-",
            ", ".join(repr(action) for action in task.pipeline.actions) or "-",
            repr(task.sink) if task.sink is not None else "-",
        )
    console.print(table)
    console.print(f"trigger={job.trigger!r} error_handler={job.error_handler!r}", style="dim")


@state_app.command("show", help="Show the saved read state of a job.")
def state_show(ctx: typer.Context, name: str = typer.Argument(..., help="Job name.")) -> None:
    state = _get_state(ctx)
    try:
        saved = state.orchestrator.job_state(name)
    except FileNotFoundError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc
    table = Table(title=f"Saved state · {name}", box=box.SIMPLE_HEAD)
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Read filter", overflow="fold")
    table.add_column("Mapped messages", style="green")
    for task_key, task_state in saved.items():
        read_filter = task_state["read_filter"]
        table.add_row(
            task_key,
            json.dumps(read_filter, ensure_ascii=False) if read_filter else "-",
            str(len(task_state["entry_to_msg_map"])),
        )
    console.print(table)


@state_app.command("reset", help="Forget everything a job has marked as read.")
def state_reset(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Job name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    state = _get_state(ctx)
    if not yes and not typer.confirm(f"Reset read state of {name!r}? Every entry will be sent again"):
        raise typer.Abort()
    try:
        keys = state.orchestrator.reset_job_state(name)
    except FileNotFoundError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc
    console.print(f"Reset state of {len(keys)} task(s).", style="green")


@state_app.command("list", help="List every task with saved state.")
def state_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    keys = state.orchestrator.saved_task_keys()
    if not keys:
        console.print("No saved state.", style="dim")
        return
    job_names = {job.name for job in state.repository.list_jobs()}
    table = Table(title="Saved state", box=box.SIMPLE_HEAD)
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Job config")
    for task_key in keys:
        job_name = task_key.split("/", 1)[0]
        table.add_row(task_key, "ok" if job_name in job_names else "missing")
    console.print(table)


@state_app.command("purge", help="Delete the saved state of every job.")
def state_purge(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    state = _get_state(ctx)
    if not yes and not typer.confirm("Delete all saved state? Every entry of every job will be sent again"):
        raise typer.Abort()
    state.orchestrator.purge_state()
    console.print(f"Deleted {state.orchestrator.state_db}.", style="green")


@log_app.command("list", help="List available log files.")
def log_list() -> None:
    logs = list(available_job_logs())
    console.print("Log files:", style="cyan")
    if not logs:
        console.print("No job logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the last lines of a log file.")
def log_show(
    name: Optional[str] = typer.Option(None, "--job", help="Job name; the main log when omitted."),
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
    errors: bool = typer.Option(False, "--errors", help="Only show records at ERROR level or above."),
) -> None:
    if name:
        path = job_log_path(name)
        lines = tail_log(path, tail, min_level=logging.ERROR if errors else None)
    else:
        path = log_dir() / (ERROR_LOG if errors else MAIN_LOG)
        lines = tail_log(path, tail)
    if not lines:
        console.print("No log lines yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
