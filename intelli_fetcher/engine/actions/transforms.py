"""Entry-level transforms that do not parse a document format."""

from __future__ import annotations

import httpx
from rich.console import Console

from ..entry import Entry
from ..errors import HttpTransformError
from .base import TransformEntry
from .field import Field
from .result import TransformResult, TransformedEntry, validate_url

DEFAULT_TIMEOUT = 30.0


class UseRawContents(TransformEntry):
    """Use the raw contents as the message body; no raw contents clears the body."""

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        return [TransformedEntry(body=TransformResult.or_empty(entry.raw_contents))]


class Use(TransformEntry):
    """Copy the value of one field into another."""

    def __init__(self, field: Field | str, as_field: Field | str) -> None:
        self.field = Field(field)
        self.as_field = Field(as_field)

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        value = self.field.get(entry)
        if self.as_field is Field.LINK and value is not None:
            value = validate_url(value)
        transformed = TransformedEntry()
        self.as_field.set(transformed, TransformResult.or_empty(value))
        return [transformed]

    def __repr__(self) -> str:
        return f"Use({self.field.display} -> {self.as_field.display})"


class DebugPrint(TransformEntry):
    """Print every entry and drop it."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        self.console.print(repr(entry))
        return []


class Http(TransformEntry):
    """Fetch the URL held in ``from_field`` and make the page the raw contents.

    The client is passed in by whoever builds the task; without one a
    short-lived client is opened per request.
    """

    def __init__(
        self,
        from_field: Field | str = Field.LINK,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.from_field = Field(from_field)
        self.client = client
        self.timeout = timeout

    async def transform_entry(self, entry: Entry) -> list[TransformedEntry]:
        value = self.from_field.get(entry)
        if value is None:
            raise HttpTransformError(f"{self.from_field.display} is not set, no URL to fetch")
        url = validate_url(value)
        page = await self._get(url)
        return [
            TransformedEntry(
                raw_contents=TransformResult.new(page),
                link=TransformResult.new(url),
            )
        ]

    async def _get(self, url: str) -> str:
        try:
            if self.client is not None:
                response = await self.client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise HttpTransformError(
                f"GET {url} returned {exc.response.status_code}", network=False
            ) from exc
        except httpx.HTTPError as exc:
            raise HttpTransformError(f"GET {url} failed: {exc}", network=True) from exc
        return response.text

    def __repr__(self) -> str:
        return f"Http(from={self.from_field.display})"


__all__ = ["DebugPrint", "Http", "Use", "UseRawContents"]
