"""Read filters: persisted "is this entry new?" state."""

from __future__ import annotations

from typing import Any

from ..external_save import ExternalSave
from .base import ReadFilter, ReadFilterKind
from .newer import NewerThanLastRead
from .not_present import NotPresentInReadList
from .shared import SharedReadFilter


def build_read_filter(
    kind: ReadFilterKind | str,
    state: dict[str, Any] | None = None,
    external_save: ExternalSave | None = None,
) -> ReadFilter:
    """Create a read filter of ``kind``, restoring ``state`` when given."""

    kind = ReadFilterKind(kind)
    state = state or {}
    if state.get("kind") not in (None, kind.value):
        raise ValueError(f"Persisted read filter is {state['kind']!r}, expected {kind.value!r}")
    if kind is ReadFilterKind.NEWER:
        return NewerThanLastRead.from_state(state, external_save=external_save)
    return NotPresentInReadList.from_state(state, external_save=external_save)


__all__ = [
    "NewerThanLastRead",
    "NotPresentInReadList",
    "ReadFilter",
    "ReadFilterKind",
    "SharedReadFilter",
    "build_read_filter",
]
