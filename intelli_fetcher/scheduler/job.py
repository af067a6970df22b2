"""Job: a set of tasks re-run by a trigger and guarded by an error handler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

import structlog

from ..cancellation import CancellationToken, race_cancel
from ..engine.errors import FetcherError
from ..engine.task import Task
from ..logging_conf import configure_logging
from .error_handling import ErrorHandler, Forward, HandleAction, HandleErrorContext
from .group import JobGroup, JobId
from .trigger import Never, Trigger


class JobStatus(str, Enum):
    OK = "ok"
    ERR = "err"
    PANICKED = "panicked"
    TRIGGER_FAILED = "trigger_failed"


@dataclass(slots=True)
class JobResult:
    status: JobStatus
    errors: list[FetcherError] = field(default_factory=list)
    payload: Any = None

    @classmethod
    def ok(cls) -> "JobResult":
        return cls(JobStatus.OK)

    @classmethod
    def err(cls, errors: Iterable[FetcherError], payload: Any = None) -> "JobResult":
        return cls(JobStatus.ERR, list(errors), payload)

    @classmethod
    def panicked(cls, exc: BaseException) -> "JobResult":
        return cls(JobStatus.PANICKED, payload=exc)

    @classmethod
    def trigger_failed(cls, exc: BaseException) -> "JobResult":
        return cls(JobStatus.TRIGGER_FAILED, payload=exc)

    @property
    def is_ok(self) -> bool:
        return self.status is JobStatus.OK


class Job(JobGroup):
    """Runs all of its tasks concurrently every cycle until stopped.

    A cycle waits for every task. Its errors go to the error handler, which
    either resumes (the job then waits for its trigger) or stops the job. The
    cancellation token is checked before each cycle and raced against every
    wait; in-flight tasks finish their current step before stopping.
    """

    def __init__(
        self,
        name: str,
        tasks: Iterable[Task],
        trigger: Trigger | None = None,
        error_handler: ErrorHandler | None = None,
        cancel_token: CancellationToken | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.name = name
        self.tasks = list(tasks)
        if not self.tasks:
            raise ValueError(f"Job {name!r} needs at least one task")
        self.trigger = trigger or Never()
        self.error_handler = error_handler or Forward()
        self.logger = (logger or configure_logging()).bind(component="job", job=name)
        self.cancel_token: CancellationToken | None = None
        self.cycles = 0
        if cancel_token is not None:
            self.with_cancellation(cancel_token)

    def with_cancellation(self, token: CancellationToken) -> "Job":
        self.cancel_token = token
        for task in self.tasks:
            if task.cancel_token is None:
                task.cancel_token = token
        return self

    def leaves(self) -> list[tuple[JobId, "Job"]]:
        return [(JobId(self.name), self)]

    def _cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.is_cancelled()

    # ------------------------------------------------------------------
    async def run(self) -> JobResult:
        try:
            return await self._run()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("job_panicked", error=str(exc))
            return JobResult.panicked(exc)

    async def _run(self) -> JobResult:
        ctx = HandleErrorContext(
            job_name=self.name,
            trigger=self.trigger,
            cancel_token=self.cancel_token,
            logger=self.logger,
        )

        try:
            finished, go_on = await race_cancel(self.trigger.wait_start(), self.cancel_token)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("trigger_failed", trigger=repr(self.trigger), error=str(exc))
            return JobResult.trigger_failed(exc)
        if not finished or not go_on:
            return JobResult.ok()

        while True:
            if self._cancelled():
                self.logger.info("job_cancelled", cycles=self.cycles)
                return JobResult.ok()

            errors = await self.run_cycle()
            if errors:
                try:
                    handled = await self.error_handler.handle_errors(errors, ctx)
                except Exception as exc:  # noqa: BLE001
                    self.logger.exception("error_handler_failed", handler=repr(self.error_handler))
                    return JobResult.err(errors, payload=exc)
                if handled.action is HandleAction.ERR_WHILE_HANDLING:
                    self.logger.error("error_handler_failed", error=str(handled.handler_error))
                    return JobResult.err(errors, payload=handled.handler_error)
                if handled.action is HandleAction.STOP:
                    self.logger.warning("job_stopped_on_errors", errors=len(handled.errors))
                    return JobResult.err(handled.errors)
            else:
                self.error_handler.on_success()

            try:
                finished, go_on = await race_cancel(self.trigger.wait(), self.cancel_token)
            except Exception as exc:  # noqa: BLE001
                self.logger.error("trigger_failed", trigger=repr(self.trigger), error=str(exc))
                return JobResult.trigger_failed(exc)
            if not finished:
                self.logger.info("job_cancelled", cycles=self.cycles)
                return JobResult.ok()
            if not go_on:
                self.logger.info("job_trigger_done", cycles=self.cycles)
                return JobResult.ok()

    async def run_cycle(self) -> list[FetcherError]:
        """Run every task once, concurrently, and collect their errors."""

        self.cycles += 1
        self.logger.debug("job_cycle_started", cycle=self.cycles, tasks=len(self.tasks))
        outcomes = await asyncio.gather(*(task.run() for task in self.tasks), return_exceptions=True)

        errors: list[FetcherError] = []
        for task, outcome in zip(self.tasks, outcomes):
            if isinstance(outcome, FetcherError):
                self.logger.warning("task_failed", task=task.name, error=str(outcome))
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                errors.extend(outcome)
        self.logger.debug("job_cycle_finished", cycle=self.cycles, errors=len(errors))
        return errors

    async def set_read_only(self) -> None:
        for task in self.tasks:
            await task.set_read_only()

    def __repr__(self) -> str:
        return (
            f"Job(name={self.name!r}, tasks={len(self.tasks)}, trigger={self.trigger!r}, "
            f"error_handler={self.error_handler!r})"
        )


__all__ = ["Job", "JobResult", "JobStatus"]
