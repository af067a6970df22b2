"""Entry id to sink message id map used to resolve ``reply_to``."""

from __future__ import annotations

from typing import Iterator, Mapping

import structlog

from .entry import EntryId, MessageId
from .external_save import ExternalSave


class EntryToMsgMap:
    """Grow-only map persisted on every insert. No eviction."""

    def __init__(
        self,
        mapping: Mapping[EntryId, MessageId] | None = None,
        external_save: ExternalSave | None = None,
    ) -> None:
        self._map: dict[EntryId, MessageId] = dict(mapping or {})
        self.external_save = external_save
        self.logger = structlog.get_logger("intelli_fetcher.entry_to_msg_map")

    def get(self, entry_id: EntryId) -> MessageId | None:
        return self._map.get(entry_id)

    def get_if_exists(self, entry_id: EntryId | None) -> MessageId | None:
        if entry_id is None:
            return None
        msg_id = self._map.get(entry_id)
        if msg_id is None:
            self.logger.debug("reply_to_target_unknown", entry_id=entry_id)
        return msg_id

    async def insert(self, entry_id: EntryId, msg_id: MessageId) -> None:
        self._map[entry_id] = msg_id
        if self.external_save is not None:
            await self.external_save.save_entry_to_msg_map(dict(self._map))

    def as_dict(self) -> dict[EntryId, MessageId]:
        return dict(self._map)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._map

    def __len__(self) -> int:
        return len(self._map)

    def __iter__(self) -> Iterator[EntryId]:
        return iter(self._map)


__all__ = ["EntryToMsgMap"]
