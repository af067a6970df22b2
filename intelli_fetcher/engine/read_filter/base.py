"""Read filter contract: decide which entries are new and remember what was sent."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable

import structlog

from ..entry import Entry, EntryId
from ..external_save import ExternalSave


class ReadFilterKind(str, Enum):
    NEWER = "newer"
    NOT_PRESENT = "not_present"


class ReadFilter(ABC):
    """Persisted dedup state shared by a source and the read filter action."""

    kind: ReadFilterKind

    def __init__(self, external_save: ExternalSave | None = None) -> None:
        self.external_save = external_save
        self.read_only = False
        self.logger = structlog.get_logger("intelli_fetcher.read_filter")

    @abstractmethod
    def filter(self, entries: Iterable[Entry]) -> list[Entry]:
        """Return the unread entries, preserving their order."""

    @abstractmethod
    def last_read(self) -> EntryId | None:
        """Return the most recently marked id, if any."""

    @abstractmethod
    def to_state(self) -> dict[str, Any]:
        """Return a JSON-serialisable snapshot of the filter."""

    @abstractmethod
    def _remember(self, entry_id: EntryId) -> None:
        """Record ``entry_id`` in memory."""

    async def mark_as_read(self, entry_id: EntryId) -> None:
        """Record ``entry_id`` as read and persist the new state.

        The in-memory state is updated before saving, so a failed save still
        leaves the entry marked as read for the lifetime of the process.
        """

        if self.read_only:
            self.logger.debug("read_filter_read_only_skip", entry_id=entry_id)
            return
        self._remember(entry_id)
        if self.external_save is not None:
            await self.external_save.save_read_filter(self)

    def set_read_only(self) -> None:
        self.read_only = True


__all__ = ["ReadFilter", "ReadFilterKind"]
