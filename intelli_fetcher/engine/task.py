"""Task: one source, one action pipeline, one sink, run to completion once per cycle."""

from __future__ import annotations

from typing import Iterable

import structlog

from ..cancellation import CancellationToken
from ..logging_conf import configure_logging
from .actions import Action, ActionContext, Pipeline
from .entry import Entry, Message, MessageId
from .entry_to_msg_map import EntryToMsgMap
from .errors import ExternalSaveError, FetcherError
from .sinks import Sink
from .sources import Source


class Task:
    """Fetch → pipeline → send → mark-as-read.

    ``run`` returns the recoverable errors of the run (bad entries, failed
    state saves) and raises ``FetcherError`` when the run as a whole failed
    (source fetch, sink delivery). An entry is marked as read only after it
    was handed to the sink, so a crash in between redelivers it.
    """

    def __init__(
        self,
        name: str | None = None,
        *,
        tag: str | None = None,
        source: Source | None = None,
        actions: Pipeline | Iterable[Action] | None = None,
        sink: Sink | None = None,
        entry_to_msg_map: EntryToMsgMap | None = None,
        cancel_token: CancellationToken | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.name = name
        self.tag = tag
        self.source = source
        if actions is None:
            self.pipeline = Pipeline()
        elif isinstance(actions, Pipeline):
            self.pipeline = actions
        else:
            self.pipeline = Pipeline(actions)
        self.sink = sink
        self.entry_to_msg_map = entry_to_msg_map
        self.cancel_token = cancel_token
        self.logger = (logger or configure_logging()).bind(component="task", task=name)

    async def run(self) -> list[FetcherError]:
        if self.source is None:
            self.logger.debug("task_without_source")
            return []

        entries = await self.source.fetch()
        self.logger.debug("task_fetched", count=len(entries))

        ctx = ActionContext(cancel_token=self.cancel_token, logger=self.logger)
        result = await self.pipeline.run(entries, ctx)
        if result.terminated:
            self.logger.info("task_terminated", pending=len(result.entries))
            return ctx.errors

        if self.sink is None:
            self.logger.debug("task_without_sink", count=len(result.entries))
            return ctx.errors

        await self._send_all(result.entries, ctx)
        return ctx.errors

    async def set_read_only(self) -> None:
        if self.source is not None:
            await self.source.set_read_only()

    # ------------------------------------------------------------------
    async def _send_all(self, entries: list[Entry], ctx: ActionContext) -> None:
        unique = remove_duplicates(entries)
        if len(unique) != len(entries):
            self.logger.info("duplicates_removed", removed=len(entries) - len(unique))

        # entries are newest-first, deliver oldest first
        for entry in reversed(unique):
            msg_id = await self._send_entry(entry)
            if entry.id is None:
                continue
            try:
                await self._mark_as_read(entry, msg_id)
            except ExternalSaveError as exc:
                self.logger.error("state_save_failed", entry_id=entry.id, error=str(exc))
                ctx.report(exc)

    async def _send_entry(self, entry: Entry) -> MessageId | None:
        message = _message_to_send(entry)
        if message is None:
            self.logger.debug("entry_empty_skipped", entry_id=entry.id)
            return None
        reply_to = None
        if self.entry_to_msg_map is not None:
            reply_to = self.entry_to_msg_map.get_if_exists(entry.reply_to)
        self.logger.debug("entry_sending", entry_id=entry.id, reply_to=reply_to, tag=self.tag)
        return await self.sink.send(message, reply_to, self.tag)

    async def _mark_as_read(self, entry: Entry, msg_id: MessageId | None) -> None:
        if self.source is not None:
            await self.source.mark_as_read(entry.id)
        if msg_id is not None and self.entry_to_msg_map is not None:
            await self.entry_to_msg_map.insert(entry.id, msg_id)

    def __repr__(self) -> str:
        return f"Task(name={self.name!r}, source={self.source!r}, pipeline={self.pipeline!r}, sink={self.sink!r})"


def _message_to_send(entry: Entry) -> Message | None:
    if not entry.msg.is_empty():
        return entry.msg
    if entry.raw_contents is not None:
        return entry.msg.copy(body=entry.raw_contents)
    return None


def remove_duplicates(entries: Iterable[Entry]) -> list[Entry]:
    """Drop later entries sharing an id with an earlier one. Id-less entries are kept."""

    seen: set[str] = set()
    unique: list[Entry] = []
    for entry in entries:
        if entry.id is None:
            unique.append(entry)
            continue
        if entry.id in seen:
            continue
        seen.add(entry.id)
        unique.append(entry)
    return unique


__all__ = ["Task", "remove_duplicates"]
