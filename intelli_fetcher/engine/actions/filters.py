"""Built-in filters."""

from __future__ import annotations

import re
from enum import Enum

from ..entry import Entry
from ..read_filter import SharedReadFilter
from .base import Filter
from .field import Field


class TakeFrom(str, Enum):
    BEGINNING = "beginning"
    END = "end"


class Take(Filter):
    """Keep the first or the last ``num`` entries, in their original order."""

    def __init__(self, from_: TakeFrom | str, num: int) -> None:
        if num < 0:
            raise ValueError("Take num must be >= 0")
        self.from_ = TakeFrom(from_)
        self.num = num

    async def filter(self, entries: list[Entry]) -> list[Entry]:
        if self.from_ is TakeFrom.BEGINNING:
            return entries[: self.num]
        if self.num == 0:
            return []
        return entries[-self.num :]

    def __repr__(self) -> str:
        return f"Take(from={self.from_.value}, num={self.num})"


class Contains(Filter):
    """Keep entries whose ``field`` matches ``regex``. Entries without the field are dropped."""

    def __init__(self, field: Field | str, regex: str | re.Pattern[str]) -> None:
        self.field = Field(field)
        self.regex = re.compile(regex)

    async def filter(self, entries: list[Entry]) -> list[Entry]:
        kept = []
        for entry in entries:
            value = self.field.get(entry)
            if value is not None and self.regex.search(value):
                kept.append(entry)
        return kept

    def __repr__(self) -> str:
        return f"Contains({self.field.display}, {self.regex.pattern!r})"


class ReadFilterAction(Filter):
    """Hide entries the task's read filter already saw."""

    def __init__(self, read_filter: SharedReadFilter) -> None:
        self.read_filter = read_filter

    async def filter(self, entries: list[Entry]) -> list[Entry]:
        return await self.read_filter.filter(entries)

    def __repr__(self) -> str:
        return f"ReadFilterAction({self.read_filter.inner.kind.value})"


__all__ = ["Contains", "ReadFilterAction", "Take", "TakeFrom"]
