"""Job groups: compose jobs, run them together and stream their results."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator, Iterable

import structlog

from ..engine.thread_pool import ThreadPoolManager

if TYPE_CHECKING:
    from .job import Job, JobResult

logger = structlog.get_logger("intelli_fetcher.scheduler")

PARALLEL_POOL = "jobs"


@dataclass(frozen=True, slots=True)
class JobId:
    job_name: str
    group_hierarchy: tuple[str, ...] = ()

    def nested_in(self, group_name: str) -> "JobId":
        return JobId(self.job_name, (group_name, *self.group_hierarchy))

    def __str__(self) -> str:
        return "/".join((*self.group_hierarchy, self.job_name))


JobOutcome = tuple[JobId, "JobResult"]


class JobGroup(ABC):
    """A set of jobs run under one cancellation scope.

    Groups combine into bigger groups; ``disable`` keeps a group's names but
    runs none of its jobs, ``with_name`` prefixes the ids of every job inside.
    """

    @abstractmethod
    def leaves(self) -> list[tuple[JobId, "Job"]]:
        """Every job that would run, with its full id."""

    def names(self) -> list[JobId]:
        return [job_id for job_id, _ in self.leaves()]

    # ------------------------------------------------------------------
    async def run_concurrently(self) -> AsyncIterator[JobOutcome]:
        """Yield ``(job_id, result)`` as each job stops, in completion order."""

        leaves = self.leaves()
        if not leaves:
            return
        pending = [asyncio.ensure_future(_run_leaf(job_id, job)) for job_id, job in leaves]
        try:
            for finished in asyncio.as_completed(pending):
                job_id, result = await finished
                logger.info("job_finished", job=str(job_id), status=result.status.value)
                yield job_id, result
        finally:
            for future in pending:
                if not future.done():
                    future.cancel()

    async def run_in_parallel(
        self, pool: ThreadPoolManager, group_name: str | None = None
    ) -> tuple[list[JobOutcome], "JobGroup"]:
        """Run every job on its own thread and event loop.

        Each job holds a thread of a pool sized to the number of jobs until it
        stops. Returns every result together with this group so it can be run
        again.
        """

        leaves = self.leaves()
        if not leaves:
            return [], self
        executor = pool.dedicated(group_name or PARALLEL_POOL, len(leaves))
        runs = [_await_leaf(job_id, pool.run_on_new_loop(job.run, executor=executor)) for job_id, job in leaves]
        results: list[JobOutcome] = []
        for finished in asyncio.as_completed(runs):
            job_id, result = await finished
            logger.info("job_finished", job=str(job_id), status=result.status.value, mode="parallel")
            results.append((job_id, result))
        return results, self

    # ------------------------------------------------------------------
    def combine_with(self, other: "JobGroup") -> "CombinedJobGroup":
        return CombinedJobGroup([self, other])

    def disable(self) -> "DisabledJobGroup":
        return DisabledJobGroup(self)

    def with_name(self, name: str) -> "NamedJobGroup":
        return NamedJobGroup(name, self)


class CombinedJobGroup(JobGroup):
    def __init__(self, groups: Iterable[JobGroup]) -> None:
        self.groups: list[JobGroup] = []
        for group in groups:
            # flatten so combining stays associative
            if isinstance(group, CombinedJobGroup):
                self.groups.extend(group.groups)
            else:
                self.groups.append(group)

    def leaves(self) -> list[tuple[JobId, "Job"]]:
        return [leaf for group in self.groups for leaf in group.leaves()]

    def names(self) -> list[JobId]:
        return [name for group in self.groups for name in group.names()]

    def __repr__(self) -> str:
        return f"CombinedJobGroup({self.groups!r})"


class DisabledJobGroup(JobGroup):
    def __init__(self, inner: JobGroup) -> None:
        self.inner = inner

    def leaves(self) -> list[tuple[JobId, "Job"]]:
        return []

    def names(self) -> list[JobId]:
        return self.inner.names()

    def __repr__(self) -> str:
        return f"DisabledJobGroup({self.inner!r})"


class NamedJobGroup(JobGroup):
    def __init__(self, name: str, inner: JobGroup) -> None:
        self.name = name
        self.inner = inner

    def leaves(self) -> list[tuple[JobId, "Job"]]:
        return [(job_id.nested_in(self.name), job) for job_id, job in self.inner.leaves()]

    def names(self) -> list[JobId]:
        return [job_id.nested_in(self.name) for job_id in self.inner.names()]

    def __repr__(self) -> str:
        return f"NamedJobGroup({self.name!r}, {self.inner!r})"


async def _run_leaf(job_id: JobId, job: "Job") -> JobOutcome:
    return job_id, await job.run()


async def _await_leaf(job_id: JobId, run: "asyncio.Future[JobResult]") -> JobOutcome:
    return job_id, await run


__all__ = [
    "CombinedJobGroup",
    "DisabledJobGroup",
    "JobGroup",
    "JobId",
    "JobOutcome",
    "NamedJobGroup",
]
