"""Source Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..entry import Entry, EntryId
from ..read_filter import SharedReadFilter


class Source(ABC):
    """Uniform fetch contract.

    ``fetch`` returns an empty list when there is nothing new and raises
    ``SourceError`` only on real failures. Sources feeding a
    ``NewerThanLastRead`` filter must return entries newest-first.
    """

    @abstractmethod
    async def fetch(self) -> list[Entry]:
        """Fetch the current entries."""

    async def mark_as_read(self, entry_id: EntryId) -> None:
        """Remember ``entry_id`` as delivered. No-op for sources without state."""

    async def set_read_only(self) -> None:
        """Stop persisting read state from now on."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SourceWithReadFilter(Source):
    """Pair a fetching source with the read filter it marks entries in."""

    def __init__(self, inner: Source, read_filter: SharedReadFilter) -> None:
        self.inner = inner
        self.read_filter = read_filter

    async def fetch(self) -> list[Entry]:
        return await self.inner.fetch()

    async def mark_as_read(self, entry_id: EntryId) -> None:
        await self.inner.mark_as_read(entry_id)
        await self.read_filter.mark_as_read(entry_id)

    async def set_read_only(self) -> None:
        await self.inner.set_read_only()
        await self.read_filter.set_read_only()

    def __repr__(self) -> str:
        return f"SourceWithReadFilter({self.inner!r}, {self.read_filter.inner.kind.value})"


__all__ = ["Source", "SourceWithReadFilter"]
