"""Read filter keeping only the id of the newest sent entry."""

from __future__ import annotations

from typing import Any, Iterable

from ..entry import Entry, EntryId
from ..external_save import ExternalSave
from .base import ReadFilter, ReadFilterKind


class NewerThanLastRead(ReadFilter):
    """Keep entries newer than the last read one.

    Sources feeding this filter must yield entries newest-first: the batch is
    cut at the first entry whose id equals the stored id. Order is not checked.
    """

    kind = ReadFilterKind.NEWER

    def __init__(
        self,
        last_read_id: EntryId | None = None,
        external_save: ExternalSave | None = None,
    ) -> None:
        super().__init__(external_save)
        self.last_read_id = last_read_id or None

    @classmethod
    def from_state(
        cls, state: dict[str, Any], external_save: ExternalSave | None = None
    ) -> "NewerThanLastRead":
        return cls(state.get("last_read_id"), external_save=external_save)

    def filter(self, entries: Iterable[Entry]) -> list[Entry]:
        entries = list(entries)
        if self.last_read_id is None:
            return entries
        for pos, entry in enumerate(entries):
            if entry.id is not None and entry.id == self.last_read_id:
                return entries[:pos]
        # all new, or the stored id dropped off the source's window
        self.logger.debug(
            "last_read_id_not_in_batch", last_read_id=self.last_read_id, batch_size=len(entries)
        )
        return entries

    def last_read(self) -> EntryId | None:
        return self.last_read_id

    def to_state(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "last_read_id": self.last_read_id}

    def _remember(self, entry_id: EntryId) -> None:
        self.last_read_id = entry_id


__all__ = ["NewerThanLastRead"]
