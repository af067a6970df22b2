"""Read filter keeping every id that was ever sent."""

from __future__ import annotations

from typing import Any, Iterable

from ..entry import Entry, EntryId
from ..external_save import ExternalSave
from .base import ReadFilter, ReadFilterKind


class NotPresentInReadList(ReadFilter):
    """Keep entries whose id has never been marked as read.

    The read list grows without bound; ids are kept in insertion order next to
    a set used for membership checks.
    """

    kind = ReadFilterKind.NOT_PRESENT

    def __init__(
        self,
        read_list: Iterable[EntryId] = (),
        external_save: ExternalSave | None = None,
    ) -> None:
        super().__init__(external_save)
        self.read_list: list[EntryId] = []
        self._seen: set[EntryId] = set()
        for entry_id in read_list:
            self._remember(entry_id)

    @classmethod
    def from_state(
        cls, state: dict[str, Any], external_save: ExternalSave | None = None
    ) -> "NotPresentInReadList":
        return cls(state.get("read_list") or (), external_save=external_save)

    def filter(self, entries: Iterable[Entry]) -> list[Entry]:
        return [entry for entry in entries if entry.id is None or entry.id not in self._seen]

    def last_read(self) -> EntryId | None:
        return self.read_list[-1] if self.read_list else None

    def to_state(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "read_list": list(self.read_list)}

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._seen

    def __len__(self) -> int:
        return len(self.read_list)

    def _remember(self, entry_id: EntryId) -> None:
        if entry_id in self._seen:
            return
        self._seen.add(entry_id)
        self.read_list.append(entry_id)


__all__ = ["NotPresentInReadList"]
