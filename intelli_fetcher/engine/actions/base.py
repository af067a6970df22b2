"""Action contract and the ordered pipeline running a task's actions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

import structlog

from ...cancellation import CancellationToken
from ..entry import Entry
from ..errors import FetcherError, TransformError, TransformFailure
from .result import TransformedEntry


@dataclass(slots=True)
class ActionContext:
    """Per-run state handed to every action."""

    cancel_token: CancellationToken | None = None
    errors: list[FetcherError] = field(default_factory=list)
    logger: structlog.BoundLogger = field(
        default_factory=lambda: structlog.get_logger("intelli_fetcher.actions")
    )

    def is_cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.is_cancelled()

    def report(self, error: FetcherError) -> None:
        self.errors.append(error)


class Action(ABC):
    """A pipeline step: takes the whole batch, returns the next batch."""

    @abstractmethod
    async def apply(self, entries: list[Entry], ctx: ActionContext) -> list[Entry]:
        """Process ``entries`` and return the entries for the next step."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Filter(Action):
    """Removes entries. Never changes their content."""

    @abstractmethod
    async def filter(self, entries: list[Entry]) -> list[Entry]:
        """Return the entries to keep, in their original order."""

    async def apply(self, entries: list[Entry], ctx: ActionContext) -> list[Entry]:
        kept = await self.filter(entries)
        ctx.logger.debug("filter_applied", action=repr(self), before=len(entries), after=len(kept))
        return kept


class TransformEntry(Action):
    """Transforms entries one at a time; one entry may become zero or many.

    A failure only drops the entry it happened on: the error is reported to
    the context together with the entry as it looked before the transform.
    """

    @abstractmethod
    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        """Return the per-field results for ``entry``."""

    async def apply(self, entries: list[Entry], ctx: ActionContext) -> list[Entry]:
        transformed: list[Entry] = []
        for entry in entries:
            try:
                results = await self.transform_entry(entry.copy())
            except TransformFailure as exc:
                error = TransformError(exc, entry)
                ctx.logger.warning(
                    "transform_failed",
                    action=repr(self),
                    entry_id=entry.id,
                    kind=exc.kind.value,
                    error=str(exc),
                )
                ctx.report(error)
                continue
            transformed.extend(result.into_entry(entry) for result in results)
        return transformed


class PipelineStatus(str, Enum):
    OK = "ok"
    TERMINATED = "terminated"


@dataclass(slots=True)
class PipelineResult:
    entries: list[Entry]
    status: PipelineStatus = PipelineStatus.OK

    @property
    def terminated(self) -> bool:
        return self.status is PipelineStatus.TERMINATED


class Pipeline:
    """Ordered, fixed sequence of actions run batch-at-a-time."""

    def __init__(self, actions: Iterable[Action] = ()) -> None:
        self.actions: tuple[Action, ...] = tuple(actions)

    async def run(self, entries: Sequence[Entry], ctx: ActionContext | None = None) -> PipelineResult:
        ctx = ctx or ActionContext()
        current = list(entries)
        for action in self.actions:
            if ctx.is_cancelled():
                ctx.logger.info("pipeline_terminated", next_action=repr(action))
                return PipelineResult(current, PipelineStatus.TERMINATED)
            if not current:
                break
            current = await action.apply(current, ctx)
        return PipelineResult(current)

    def __len__(self) -> int:
        return len(self.actions)

    def __repr__(self) -> str:
        return f"Pipeline({list(self.actions)!r})"


__all__ = [
    "Action",
    "ActionContext",
    "Filter",
    "Pipeline",
    "PipelineResult",
    "PipelineStatus",
    "TransformEntry",
]
