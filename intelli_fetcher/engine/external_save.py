"""External save contract used by read filters and the entry-to-message map."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Mapping

from .entry import EntryId, MessageId

if TYPE_CHECKING:
    from .read_filter.base import ReadFilter


class ExternalSave(ABC):
    """Persist dedup and reply-threading state after every mutation.

    Implementations raise ``ExternalSaveError`` on failure. Callers never roll
    back their in-memory state when a save fails.
    """

    @abstractmethod
    async def save_read_filter(self, read_filter: "ReadFilter") -> None:
        """Persist the current state of a read filter."""

    @abstractmethod
    async def save_entry_to_msg_map(self, mapping: Mapping[EntryId, MessageId]) -> None:
        """Persist the entry id to message id map."""


__all__ = ["ExternalSave"]
