"""Entry and message data model flowing through the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

MessageId = int
EntryId = str

_DEBUG_PREVIEW_LEN = 250


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"


@dataclass(frozen=True, slots=True)
class Media:
    """A single attachment referenced by URL."""

    kind: MediaKind
    url: str

    @classmethod
    def photo(cls, url: str) -> "Media":
        return cls(MediaKind.PHOTO, url)

    @classmethod
    def video(cls, url: str) -> "Media":
        return cls(MediaKind.VIDEO, url)


@dataclass(slots=True)
class Message:
    """Sink-facing payload. Only these fields ever reach a sink."""

    title: str | None = None
    body: str | None = None
    link: str | None = None
    media: list[Media] | None = None

    def __post_init__(self) -> None:
        # media is either absent or a non-empty list
        if self.media is not None and not self.media:
            self.media = None

    def is_empty(self) -> bool:
        return self.title is None and self.body is None and self.link is None and self.media is None

    def copy(self, **changes) -> "Message":
        changes.setdefault("media", list(self.media) if self.media is not None else None)
        return replace(self, **changes)

    def __repr__(self) -> str:
        return (
            f"Message(title={_preview(self.title)!r}, body={_preview(self.body)!r}, "
            f"link={_preview(self.link)!r}, media={self.media!r})"
        )


@dataclass(slots=True)
class Entry:
    """One unit of fetched content.

    ``id`` and ``reply_to`` are optional; an empty string means "no id" and is
    normalised to ``None`` so that dedup code only ever sees real identifiers.
    """

    id: EntryId | None = None
    reply_to: EntryId | None = None
    raw_contents: str | None = None
    msg: Message = field(default_factory=Message)

    def __post_init__(self) -> None:
        if self.id == "":
            self.id = None
        if self.reply_to == "":
            self.reply_to = None

    def copy(self, **changes) -> "Entry":
        """Return a copy; the message is copied too so stages never share state."""

        if "msg" not in changes:
            changes["msg"] = self.msg.copy()
        return replace(self, **changes)

    def is_empty(self) -> bool:
        return self.msg.is_empty() and self.raw_contents is None


def _preview(value: str | None) -> str | None:
    if value is None or len(value) <= _DEBUG_PREVIEW_LEN:
        return value
    return value[:_DEBUG_PREVIEW_LEN] + "..."


__all__ = ["Entry", "EntryId", "Media", "MediaKind", "Message", "MessageId"]
