"""Thin sources wrapping HTTP, files, literal strings and shell commands."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import structlog

from ..entry import Entry, Message
from ..errors import SourceError
from .base import Source

DEFAULT_TIMEOUT = 30.0


class HttpSource(Source):
    """GET one URL; the page becomes the raw contents of a single entry."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.url = url
        self.client = client
        self.timeout = timeout
        self.headers = headers or {}
        self.logger = structlog.get_logger("intelli_fetcher.source.http")

    async def fetch(self) -> list[Entry]:
        try:
            if self.client is not None:
                response = await self.client.get(self.url, headers=self.headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
                    response = await client.get(self.url, headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceError(f"GET {self.url} returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SourceError(f"GET {self.url} failed: {exc}", network=True) from exc
        self.logger.debug("http_fetched", url=self.url, status=response.status_code, size=len(response.text))
        return [Entry(raw_contents=response.text, msg=Message(link=self.url))]

    def __repr__(self) -> str:
        return f"HttpSource({self.url!r})"


class FileSource(Source):
    """Read a local file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def fetch(self) -> list[Entry]:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except OSError as exc:
            raise SourceError(f"Can't read {self.path}: {exc}") from exc
        return [Entry(raw_contents=text)]

    def __repr__(self) -> str:
        return f"FileSource({str(self.path)!r})"


class StringSource(Source):
    """Always return the same string as raw contents."""

    def __init__(self, value: str) -> None:
        self.value = value

    async def fetch(self) -> list[Entry]:
        return [Entry(raw_contents=self.value)]


class ExecSource(Source):
    """Run a shell command; its stdout becomes the raw contents."""

    def __init__(self, cmd: str, timeout: float | None = None) -> None:
        self.cmd = cmd
        self.timeout = timeout

    async def fetch(self) -> list[Entry]:
        try:
            process = await asyncio.create_subprocess_shell(
                self.cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SourceError(f"Command {self.cmd!r} failed to start: {exc}") from exc
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            raise SourceError(f"Command {self.cmd!r} timed out after {self.timeout}s") from exc
        if process.returncode != 0:
            raise SourceError(
                f"Command {self.cmd!r} exited with {process.returncode}: "
                f"{stderr.decode('utf-8', errors='replace').strip()}"
            )
        output = stdout.decode("utf-8", errors="replace")
        if not output.strip():
            return []
        return [Entry(raw_contents=output)]

    def __repr__(self) -> str:
        return f"ExecSource({self.cmd!r})"


__all__ = ["ExecSource", "FileSource", "HttpSource", "StringSource"]
