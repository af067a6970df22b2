"""Sink Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..entry import Message, MessageId


class Sink(ABC):
    """Uniform delivery contract enabling plug-and-play outputs."""

    @abstractmethod
    async def send(
        self,
        message: Message,
        reply_to: MessageId | None = None,
        tag: str | None = None,
    ) -> MessageId | None:
        """Deliver ``message``; return its id when the sink supports replies."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DiscardSink(Sink):
    """Accept and drop every message."""

    async def send(
        self,
        message: Message,
        reply_to: MessageId | None = None,
        tag: str | None = None,
    ) -> MessageId | None:
        return None


__all__ = ["DiscardSink", "Sink"]
