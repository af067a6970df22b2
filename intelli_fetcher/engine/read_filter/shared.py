"""Shared ownership wrapper around a read filter."""

from __future__ import annotations

import asyncio
from typing import Iterable

from ..entry import Entry, EntryId
from .base import ReadFilter


class SharedReadFilter:
    """Serialise access to one read filter used by several consumers.

    A task's source (for mark-as-read) and its read filter action (for hiding
    already read entries) hold the same instance.
    """

    def __init__(self, inner: ReadFilter) -> None:
        self.inner = inner
        self._lock = asyncio.Lock()

    async def filter(self, entries: Iterable[Entry]) -> list[Entry]:
        async with self._lock:
            return self.inner.filter(entries)

    async def mark_as_read(self, entry_id: EntryId) -> None:
        async with self._lock:
            await self.inner.mark_as_read(entry_id)

    async def set_read_only(self) -> None:
        async with self._lock:
            self.inner.set_read_only()

    async def last_read(self) -> EntryId | None:
        async with self._lock:
            return self.inner.last_read()

    @property
    def read_only(self) -> bool:
        return self.inner.read_only


__all__ = ["SharedReadFilter"]
