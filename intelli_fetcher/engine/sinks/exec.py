"""Sink piping each message into a shell command."""

from __future__ import annotations

import asyncio
import os

from ..entry import Message, MessageId
from ..errors import SinkError
from .base import Sink


class Exec(Sink):
    """Run ``cmd`` once per message with the message text on stdin.

    The tag is exported as ``FETCHER_TAG`` and the link as ``FETCHER_LINK``.
    """

    def __init__(self, cmd: str, timeout: float | None = None) -> None:
        self.cmd = cmd
        self.timeout = timeout

    async def send(
        self,
        message: Message,
        reply_to: MessageId | None = None,
        tag: str | None = None,
    ) -> MessageId | None:
        payload = "\n\n".join(part for part in (message.title, message.body, message.link) if part)
        env = dict(os.environ)
        if tag:
            env["FETCHER_TAG"] = tag
        if message.link:
            env["FETCHER_LINK"] = message.link
        try:
            process = await asyncio.create_subprocess_shell(
                self.cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise SinkError(f"Command {self.cmd!r} failed to start: {exc}") from exc
        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(payload.encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            raise SinkError(f"Command {self.cmd!r} timed out after {self.timeout}s") from exc
        if process.returncode != 0:
            raise SinkError(
                f"Command {self.cmd!r} exited with {process.returncode}: "
                f"{stderr.decode('utf-8', errors='replace').strip()}"
            )
        return None

    def __repr__(self) -> str:
        return f"Exec({self.cmd!r})"


__all__ = ["Exec"]
