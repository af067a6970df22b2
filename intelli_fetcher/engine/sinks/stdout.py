"""Console sink rendering messages with rich."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

from ..entry import Message, MessageId
from .base import Sink


class Stdout(Sink):
    """Print messages to the terminal. Replies are not addressable, so no ids."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def send(
        self,
        message: Message,
        reply_to: MessageId | None = None,
        tag: str | None = None,
    ) -> MessageId | None:
        self.console.print(Rule(escape(f"#{tag}") if tag else ""))
        self.console.print(self.format(message), highlight=False)
        return None

    @staticmethod
    def format(message: Message) -> str:
        lines: list[str] = []
        if message.title:
            lines.append(f"[bold]{escape(message.title)}[/bold]")
        if message.body:
            lines.append(escape(message.body))
        if message.link:
            lines.append(f"[cyan]{escape(message.link)}[/cyan]")
        if message.media:
            lines.extend(f"[dim]{media.kind.value}: {escape(media.url)}[/dim]" for media in message.media)
        return "\n\n".join(lines)


__all__ = ["Stdout"]
