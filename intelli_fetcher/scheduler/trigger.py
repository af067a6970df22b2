"""Triggers deciding when, and whether, a job runs again."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta
from typing import Callable

Clock = Callable[[], datetime]

TWO_DAYS = timedelta(days=2)


class Trigger(ABC):
    """``wait`` returns True to run the next cycle, False to stop the job."""

    async def wait_start(self) -> bool:
        """Wait before the very first cycle."""

        return True

    @abstractmethod
    async def wait(self) -> bool:
        """Wait between two cycles."""

    @abstractmethod
    def twice_as_duration(self) -> timedelta:
        """A generous upper bound for two trigger periods."""


class Every(Trigger):
    """Run immediately, then every ``interval``."""

    def __init__(self, interval: timedelta) -> None:
        if interval <= timedelta(0):
            raise ValueError("Trigger interval must be positive")
        self.interval = interval

    async def wait(self) -> bool:
        await asyncio.sleep(self.interval.total_seconds())
        return True

    def twice_as_duration(self) -> timedelta:
        return self.interval * 2

    def __repr__(self) -> str:
        return f"Every({self.interval})"


class OnceADayAt(Trigger):
    """Run every day at a fixed local time of day."""

    def __init__(self, at: time, clock: Clock | None = None) -> None:
        self.at = at
        self._clock = clock or datetime.now

    def remaining(self, now: datetime | None = None) -> timedelta:
        """Time left until the next ``at``; a time already passed today rolls to tomorrow."""

        now = now or self._clock()
        target = datetime.combine(now.date(), self.at, tzinfo=now.tzinfo)
        remaining = target - now
        if remaining <= timedelta(0):
            remaining += timedelta(days=1)
        return remaining

    async def wait_start(self) -> bool:
        await asyncio.sleep(self.remaining().total_seconds())
        return True

    async def wait(self) -> bool:
        await asyncio.sleep(self.remaining().total_seconds())
        return True

    def twice_as_duration(self) -> timedelta:
        return TWO_DAYS

    def __repr__(self) -> str:
        return f"OnceADayAt({self.at.isoformat(timespec='minutes')})"


class Never(Trigger):
    """Run once and stop."""

    async def wait(self) -> bool:
        return False

    def twice_as_duration(self) -> timedelta:
        return timedelta(0)

    def __repr__(self) -> str:
        return "Never()"


__all__ = ["Every", "Never", "OnceADayAt", "Trigger"]
