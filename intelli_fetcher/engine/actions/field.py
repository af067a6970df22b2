"""Field-level transforms applied to one named field of an entry."""

from __future__ import annotations

import random
import re
from abc import ABC, abstractmethod
from enum import Enum
from html import unescape
from typing import Sequence

from ..entry import Entry
from ..errors import ExtractError
from .base import TransformEntry
from .result import TransformResult, TransformedEntry, validate_url

HTML_TAG_RE = r"<[^>]*>"


class Field(str, Enum):
    """Entry fields a field transform can target."""

    TITLE = "title"
    BODY = "body"
    LINK = "link"
    ID = "id"
    REPLY_TO = "reply_to"
    RAW_CONTENTS = "raw_contents"

    @property
    def display(self) -> str:
        if self in (Field.TITLE, Field.BODY, Field.LINK):
            return f"Message::{self.value}"
        return f"Entry::{self.value}"

    def get(self, entry: Entry) -> str | None:
        if self is Field.TITLE:
            return entry.msg.title
        if self is Field.BODY:
            return entry.msg.body
        if self is Field.LINK:
            return entry.msg.link
        if self is Field.ID:
            return entry.id
        if self is Field.REPLY_TO:
            return entry.reply_to
        return entry.raw_contents

    def set(self, transformed: TransformedEntry, result: TransformResult[str]) -> None:
        # TransformedEntry attribute names match the enum values
        setattr(transformed, self.value, result)


# ----------------------------------------------------------------------
# Field transforms
# ----------------------------------------------------------------------
class FieldTransform(ABC):
    """``Option<str> -> TransformResult`` on a single field value."""

    @abstractmethod
    def transform_field(self, value: str | None) -> TransformResult[str]:
        """Return what should happen to the field."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Caps(FieldTransform):
    """Uppercase. Missing value is kept missing."""

    def transform_field(self, value: str | None) -> TransformResult[str]:
        return TransformResult.or_previous(value.upper() if value is not None else None)


class Trim(FieldTransform):
    """Strip the value and every line in it. Missing value clears the field."""

    def transform_field(self, value: str | None) -> TransformResult[str]:
        if value is None:
            return TransformResult.empty()
        lines = (line.strip() for line in value.strip().splitlines())
        return TransformResult.new("\n".join(lines))


class Shorten(FieldTransform):
    """Cut to ``length`` characters and append ``...``; length 0 or None clears the field."""

    def __init__(self, length: int | None) -> None:
        if length is not None and length < 0:
            raise ValueError("Shorten length must be >= 0")
        self.length = length

    def transform_field(self, value: str | None) -> TransformResult[str]:
        if not self.length or value is None:
            return TransformResult.empty()
        if len(value) < self.length:
            return TransformResult.new(value)
        return TransformResult.new(value[: self.length] + "...")

    def __repr__(self) -> str:
        return f"Shorten(length={self.length})"


class Set(FieldTransform):
    """Set the field to a constant, or to a random pick out of several values.

    With no values at all the field is cleared.
    """

    def __init__(self, values: Sequence[str] | str | None = None, rng: random.Random | None = None) -> None:
        if values is None:
            self.values: tuple[str, ...] = ()
        elif isinstance(values, str):
            self.values = (values,)
        else:
            self.values = tuple(values)
        self._rng = rng or random.Random()

    def transform_field(self, value: str | None) -> TransformResult[str]:
        if not self.values:
            return TransformResult.empty()
        if len(self.values) == 1:
            return TransformResult.new(self.values[0])
        return TransformResult.new(self._rng.choice(self.values))

    def __repr__(self) -> str:
        return f"Set(values={list(self.values)!r})"


class Replace(FieldTransform):
    """Replace every regex match. Missing value is kept missing."""

    def __init__(self, pattern: str | re.Pattern[str], replacement: str) -> None:
        self.regex = re.compile(pattern)
        self.replacement = replacement

    @classmethod
    def html_tags(cls) -> "Replace":
        """Remove every HTML tag."""

        return cls(HTML_TAG_RE, "")

    def transform_field(self, value: str | None) -> TransformResult[str]:
        if value is None:
            return TransformResult.previous()
        return TransformResult.new(self.regex.sub(self.replacement, value))

    def __repr__(self) -> str:
        return f"Replace(pattern={self.regex.pattern!r}, replacement={self.replacement!r})"


class Extract(FieldTransform):
    """Keep only what the regex capture groups matched, concatenated.

    When nothing matches, either keep the value untouched
    (``passthrough_if_not_found``) or fail with ``ExtractError``.
    """

    def __init__(self, pattern: str | re.Pattern[str], passthrough_if_not_found: bool = False) -> None:
        self.regex = re.compile(pattern)
        self.passthrough_if_not_found = passthrough_if_not_found

    def transform_field(self, value: str | None) -> TransformResult[str]:
        if value is None:
            return TransformResult.previous()
        match = self.regex.search(value)
        if match is None:
            if self.passthrough_if_not_found:
                return TransformResult.previous()
            raise ExtractError(f"Regex {self.regex.pattern!r} didn't match anything")
        groups = [group for group in match.groups() if group is not None]
        if not groups:
            if self.passthrough_if_not_found:
                return TransformResult.previous()
            raise ExtractError(f"Regex {self.regex.pattern!r} has no capture group that matched")
        return TransformResult.new("".join(groups))

    def __repr__(self) -> str:
        return f"Extract(pattern={self.regex.pattern!r})"


class DecodeHtml(FieldTransform):
    """Decode HTML entities (``&amp;`` -> ``&``). Missing value is kept missing."""

    def transform_field(self, value: str | None) -> TransformResult[str]:
        if value is None:
            return TransformResult.previous()
        return TransformResult.new(unescape(value))


# ----------------------------------------------------------------------
class TransformField(TransformEntry):
    """Run a field transform on ``field`` and write the result back."""

    def __init__(self, field: Field | str, transform: FieldTransform) -> None:
        self.field = Field(field)
        self.transform = transform

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        result = self.transform.transform_field(self.field.get(entry))
        if self.field is Field.LINK and result.value is not None:
            result = TransformResult.new(validate_url(result.value))
        transformed = TransformedEntry()
        self.field.set(transformed, result)
        return [transformed]

    def __repr__(self) -> str:
        return f"TransformField({self.field.display}, {self.transform!r})"


__all__ = [
    "Caps",
    "DecodeHtml",
    "Extract",
    "Field",
    "FieldTransform",
    "HTML_TAG_RE",
    "Replace",
    "Set",
    "Shorten",
    "TransformField",
    "Trim",
]
