"""Transform results and how they merge back onto the original entry."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar
from urllib.parse import urlparse

from ..entry import Entry, Media, Message
from ..errors import InvalidUrlError

T = TypeVar("T")


class ResultKind(str, Enum):
    PREVIOUS = "previous"
    EMPTY = "empty"
    NEW = "new"


@dataclass(frozen=True, slots=True)
class TransformResult(Generic[T]):
    """What a transform decided for one field.

    ``PREVIOUS`` keeps the value the entry had, ``EMPTY`` clears it and
    ``NEW`` replaces it with ``value``.
    """

    kind: ResultKind = ResultKind.PREVIOUS
    value: T | None = None

    @classmethod
    def previous(cls) -> "TransformResult[Any]":
        return cls(ResultKind.PREVIOUS)

    @classmethod
    def empty(cls) -> "TransformResult[Any]":
        return cls(ResultKind.EMPTY)

    @classmethod
    def new(cls, value: T) -> "TransformResult[T]":
        return cls(ResultKind.NEW, value)

    @classmethod
    def or_previous(cls, value: T | None) -> "TransformResult[T]":
        """``NEW`` when a value is given, otherwise keep the old one."""

        return cls.previous() if value is None else cls.new(value)

    @classmethod
    def or_empty(cls, value: T | None) -> "TransformResult[T]":
        """``NEW`` when a value is given, otherwise clear the field."""

        return cls.empty() if value is None else cls.new(value)

    def apply(self, old: T | None) -> T | None:
        if self.kind is ResultKind.PREVIOUS:
            return old
        if self.kind is ResultKind.EMPTY:
            return None
        return self.value


def _previous() -> TransformResult[Any]:
    return TransformResult.previous()


@dataclass(slots=True)
class TransformedEntry:
    """Per-field outcome of an entry transform. Unset fields keep their old value."""

    id: TransformResult[str] = field(default_factory=_previous)
    reply_to: TransformResult[str] = field(default_factory=_previous)
    raw_contents: TransformResult[str] = field(default_factory=_previous)
    title: TransformResult[str] = field(default_factory=_previous)
    body: TransformResult[str] = field(default_factory=_previous)
    link: TransformResult[str] = field(default_factory=_previous)
    media: TransformResult[list[Media]] = field(default_factory=_previous)

    def into_entry(self, old: Entry) -> Entry:
        return Entry(
            id=self.id.apply(old.id),
            reply_to=self.reply_to.apply(old.reply_to),
            raw_contents=self.raw_contents.apply(old.raw_contents),
            msg=Message(
                title=self.title.apply(old.msg.title),
                body=self.body.apply(old.msg.body),
                link=self.link.apply(old.msg.link),
                media=self.media.apply(old.msg.media),
            ),
        )


def validate_url(value: str) -> str:
    """Return ``value`` if it is an absolute URL, raise ``InvalidUrlError`` otherwise."""

    text = value.strip()
    parsed = urlparse(text)
    if not parsed.scheme or not parsed.netloc:
        raise InvalidUrlError(value)
    return text


__all__ = ["ResultKind", "TransformResult", "TransformedEntry", "validate_url"]
