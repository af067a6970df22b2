"""Entry transforms parsing raw contents (feeds, HTML, JSON) into many entries."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Sequence
from urllib.parse import urljoin

import feedparser
from selectolax.parser import HTMLParser, Node

from ..entry import Entry, Media
from ..errors import FeedError, HtmlError, InvalidUrlError, JsonError, RawContentsNotSetError
from .base import TransformEntry
from .result import TransformResult, TransformedEntry, validate_url


def _raw_contents(entry: Entry) -> str:
    if entry.raw_contents is None:
        raise RawContentsNotSetError()
    return entry.raw_contents


def _absolute(url: str, base: str | None) -> str:
    if base:
        url = urljoin(base, url)
    return validate_url(url)


class Feed(TransformEntry):
    """Parse an RSS/Atom document into one entry per feed item."""

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        parsed = feedparser.parse(_raw_contents(entry))
        if parsed.bozo and not parsed.entries:
            raise FeedError(f"Not a valid RSS/Atom feed: {parsed.get('bozo_exception')}")

        # relative item links resolve against the fetched url, then the channel link
        base = entry.msg.link or parsed.feed.get("link")
        results: list[TransformedEntry] = []
        for item in parsed.entries:
            link = item.get("link")
            body = item.get("summary")
            results.append(
                TransformedEntry(
                    id=TransformResult.or_previous(item.get("id") or link),
                    raw_contents=TransformResult.or_previous(body),
                    title=TransformResult.or_previous(item.get("title")),
                    body=TransformResult.or_previous(body),
                    link=TransformResult.or_previous(_absolute(link, base) if link else None),
                )
            )
        return results


# ----------------------------------------------------------------------
# HTML
# ----------------------------------------------------------------------
@dataclass(slots=True)
class HtmlQuery:
    """Where to find one piece of data: a CSS selector plus text or an attribute.

    ``regex``/``replacement`` post-process every value found; an ``optional``
    query yields nothing instead of failing when the data is missing.
    """

    selector: str
    attr: str | None = None
    regex: str | None = None
    replacement: str = ""
    optional: bool = False

    def _postprocess(self, value: str) -> str:
        if self.regex is None:
            return value
        return re.sub(self.regex, self.replacement, value)


class Html(TransformEntry):
    """Extract entries from an HTML page with CSS selectors."""

    def __init__(
        self,
        item: str | None = None,
        title: HtmlQuery | None = None,
        text: Sequence[HtmlQuery] = (),
        id: HtmlQuery | None = None,  # noqa: A002
        link: HtmlQuery | None = None,
        img: HtmlQuery | None = None,
    ) -> None:
        self.item = item
        self.title = title
        self.text = tuple(text)
        self.id = id
        self.link = link
        self.img = img

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        tree = HTMLParser(_raw_contents(entry))
        root = tree.body or tree.root
        if root is None or not root.text(strip=True):
            return []

        if self.item is not None:
            items = root.css(self.item)
            if not items:
                raise HtmlError(f"No HTML element matches item selector {self.item!r}")
        else:
            items = [root]
        return [self._extract(node, base=entry.msg.link) for node in items]

    def _extract(self, node: Node, base: str | None) -> TransformedEntry:
        title = self._data(node, self.title)
        body_parts: list[str] = []
        for query in self.text:
            body_parts.extend(self._data(node, query) or [])
        entry_id = self._data(node, self.id)
        links = self._data(node, self.link)
        imgs = self._data(node, self.img)

        body = "\n\n".join(body_parts) if self.text else None
        return TransformedEntry(
            id=TransformResult.or_previous("".join(entry_id) if entry_id else None),
            raw_contents=TransformResult.or_previous(body),
            title=TransformResult.or_previous("\n\n".join(title) if title else None),
            body=TransformResult.or_previous(body),
            link=TransformResult.or_previous(_absolute(links[0], base) if links else None),
            media=TransformResult.or_previous(
                [Media.photo(_absolute(url, base)) for url in imgs] if imgs else None
            ),
        )

    @staticmethod
    def _data(node: Node, query: HtmlQuery | None) -> list[str] | None:
        if query is None:
            return None
        found = node.css(query.selector)
        if not found:
            if query.optional:
                return None
            raise HtmlError(f"HTML element {query.selector!r} not found")
        values: list[str] = []
        for element in found:
            raw = element.text(strip=True) if query.attr is None else element.attributes.get(query.attr)
            if raw is None:
                if query.optional:
                    return None
                raise HtmlError(f"Attribute {query.attr!r} not found in {query.selector!r}")
            values.append(raw.strip())
        if all(not value for value in values):
            if query.optional:
                return None
            raise HtmlError(f"HTML element {query.selector!r} is empty")
        return [query._postprocess(value) for value in values]


# ----------------------------------------------------------------------
# JSON
# ----------------------------------------------------------------------
@dataclass(slots=True)
class JsonQuery:
    """Key path into a JSON value, with optional text around the result."""

    path: list[str] = field(default_factory=list)
    prepend: str = ""
    append: str = ""

    def resolve(self, value: Any) -> Any:
        return _walk(value, self.path)


def _walk(value: Any, path: Sequence[str]) -> Any:
    current = value
    for key in path:
        if isinstance(current, dict) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.lstrip("-").isdigit() and -len(current) <= int(key) < len(current):
            current = current[int(key)]
        else:
            raise JsonError(f"JSON key {key!r} not found (path {'.'.join(path)})")
    return current


def _as_text(value: Any, query: JsonQuery, expected: str = "string") -> str:
    if isinstance(value, str):
        text = value.strip()
    elif expected == "id" and isinstance(value, int) and not isinstance(value, bool):
        text = str(value)
    else:
        raise JsonError(
            f"JSON key {'.'.join(query.path)!r} has wrong type: expected {expected}, found {type(value).__name__}"
        )
    if query.prepend or query.append:
        text = f"{query.prepend}{text}{query.append}"
    return text


class Json(TransformEntry):
    """Extract entries from a JSON document with key paths."""

    def __init__(
        self,
        item: Sequence[str] = (),
        title: JsonQuery | None = None,
        text: Sequence[JsonQuery] = (),
        id: JsonQuery | None = None,  # noqa: A002
        link: JsonQuery | None = None,
        img: JsonQuery | None = None,
    ) -> None:
        self.item = list(item)
        self.title = title
        self.text = tuple(text)
        self.id = id
        self.link = link
        self.img = img

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        try:
            document = json.loads(_raw_contents(entry))
        except json.JSONDecodeError as exc:
            raise JsonError(f"Invalid JSON: {exc}") from exc

        items = _walk(document, self.item)
        if isinstance(items, list):
            values = items
        elif isinstance(items, dict):
            values = list(items.values()) if self.item else [items]
        else:
            raise JsonError(
                f"JSON key {'.'.join(self.item)!r} has wrong type: expected array or object, "
                f"found {type(items).__name__}"
            )
        return [self._extract(value) for value in values]

    def _extract(self, item: Any) -> TransformedEntry:
        title = _as_text(self.title.resolve(item), self.title) if self.title else None
        body = (
            "\n\n".join(_as_text(query.resolve(item), query) for query in self.text)
            if self.text
            else None
        )
        entry_id = _as_text(self.id.resolve(item), self.id, expected="id") if self.id else None
        try:
            link = validate_url(_as_text(self.link.resolve(item), self.link)) if self.link else None
            img = validate_url(_as_text(self.img.resolve(item), self.img)) if self.img else None
        except InvalidUrlError as exc:
            raise JsonError(str(exc)) from exc

        return TransformedEntry(
            id=TransformResult.or_previous(entry_id),
            raw_contents=TransformResult.or_previous(body),
            title=TransformResult.or_previous(title),
            body=TransformResult.or_previous(body),
            link=TransformResult.or_previous(link),
            media=TransformResult.or_previous([Media.photo(img)] if img else None),
        )


__all__ = ["Feed", "Html", "HtmlQuery", "Json", "JsonQuery"]
