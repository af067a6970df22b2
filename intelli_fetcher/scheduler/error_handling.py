"""Error-handling strategies applied to a job's failed cycles."""

from __future__ import annotations

import asyncio
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Callable, Sequence

import structlog

from ..cancellation import CancellationToken, race_cancel
from ..engine.errors import FetcherError
from .trigger import Trigger


class HandleAction(str, Enum):
    RESUME = "resume"
    STOP = "stop"
    ERR_WHILE_HANDLING = "err_while_handling"


@dataclass(slots=True)
class HandleResult:
    action: HandleAction
    errors: list[FetcherError] = field(default_factory=list)
    handler_error: BaseException | None = None

    @classmethod
    def resume(cls) -> "HandleResult":
        return cls(HandleAction.RESUME)

    @classmethod
    def stop(cls, errors: Sequence[FetcherError]) -> "HandleResult":
        return cls(HandleAction.STOP, list(errors))

    @classmethod
    def err_while_handling(cls, exc: BaseException, errors: Sequence[FetcherError]) -> "HandleResult":
        return cls(HandleAction.ERR_WHILE_HANDLING, list(errors), exc)


@dataclass(slots=True)
class HandleErrorContext:
    job_name: str
    trigger: Trigger
    cancel_token: CancellationToken | None = None
    logger: structlog.BoundLogger = field(
        default_factory=lambda: structlog.get_logger("intelli_fetcher.error_handling")
    )


class ErrorHandler(ABC):
    """Decide what a job does after a cycle that produced errors."""

    @abstractmethod
    async def handle_errors(self, errors: Sequence[FetcherError], ctx: HandleErrorContext) -> HandleResult:
        """Resume the job, or stop it and hand back the errors."""

    def on_success(self) -> None:
        """Called after every cycle without errors."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Forward(ErrorHandler):
    """Stop the job and return its errors to the caller."""

    async def handle_errors(self, errors: Sequence[FetcherError], ctx: HandleErrorContext) -> HandleResult:
        return HandleResult.stop(errors)


class LogAndIgnore(ErrorHandler):
    """Log every error and keep going."""

    async def handle_errors(self, errors: Sequence[FetcherError], ctx: HandleErrorContext) -> HandleResult:
        for index, error in enumerate(errors, start=1):
            ctx.logger.error(
                "job_error_ignored",
                job=ctx.job_name,
                error_num=index,
                error_type=type(error).__name__,
                error=str(error),
            )
        return HandleResult.resume()


class ExponentialBackoff(ErrorHandler):
    """Sleep exponentially longer after each consecutive failed cycle.

    The n-th consecutive failure sleeps ``2 ** (n - 1)`` units; failure
    number ``max_retries`` stops the job. Cycles whose errors are all network
    related pause for ``network_error_pause`` without counting. A clean cycle
    resets the count, and so does a failure that comes more than the last
    pause plus ``trigger.twice_as_duration()`` after the previous one (for
    triggers that have a period).
    """

    DEFAULT_MAX_RETRIES = 13
    DEFAULT_UNIT = timedelta(minutes=1)
    DEFAULT_NETWORK_ERROR_PAUSE = timedelta(minutes=5)

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        unit: timedelta = DEFAULT_UNIT,
        network_error_pause: timedelta = DEFAULT_NETWORK_ERROR_PAUSE,
        use_jitter: bool = False,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.max_retries = max_retries
        self.unit = unit
        self.network_error_pause = network_error_pause
        self.use_jitter = use_jitter
        self._rng = rng or random.Random()
        self.err_count = 0
        self._clock = clock
        self._last_error_at: float | None = None
        self._last_pause = timedelta(0)

    async def handle_errors(self, errors: Sequence[FetcherError], ctx: HandleErrorContext) -> HandleResult:
        self._forget_stale_errors(ctx.trigger)
        fatal = []
        for error in errors:
            if error.is_network_related:
                ctx.logger.warning("network_error", job=ctx.job_name, error=str(error))
            else:
                fatal.append(error)

        if not fatal:
            pause = self.network_error_pause
        else:
            self.err_count += 1
            if self.err_count >= self.max_retries:
                ctx.logger.warning(
                    "error_limit_reached", job=ctx.job_name, max_retries=self.max_retries
                )
                return HandleResult.stop(errors)
            for index, error in enumerate(fatal, start=1):
                ctx.logger.error(
                    "job_cycle_failed",
                    job=ctx.job_name,
                    attempt=self.err_count,
                    max_retries=self.max_retries,
                    error_num=index,
                    error_type=type(error).__name__,
                    error=str(error),
                )
            pause = self.sleep_duration(self.err_count)
            self._last_error_at = self._clock()
            self._last_pause = pause

        ctx.logger.info("job_paused", job=ctx.job_name, seconds=pause.total_seconds())
        finished, _ = await race_cancel(asyncio.sleep(pause.total_seconds()), ctx.cancel_token)
        if not finished:
            ctx.logger.debug("job_pause_cancelled", job=ctx.job_name)
            return HandleResult.stop(errors)
        return HandleResult.resume()

    def _forget_stale_errors(self, trigger: Trigger) -> None:
        window = trigger.twice_as_duration()
        # a trigger without a period retries back to back; only success resets it
        if self._last_error_at is None or window <= timedelta(0):
            return
        elapsed = timedelta(seconds=self._clock() - self._last_error_at)
        if elapsed > self._last_pause + window:
            self.reset()

    def sleep_duration(self, attempt: int) -> timedelta:
        base = self.unit * (2 ** max(attempt - 1, 0))
        if self.use_jitter:
            return base * (self._rng.random() + 0.5)
        return base

    def reset(self) -> None:
        self.err_count = 0
        self._last_error_at = None
        self._last_pause = timedelta(0)

    def on_success(self) -> None:
        if self.err_count:
            self.reset()

    def __repr__(self) -> str:
        return f"ExponentialBackoff(max_retries={self.max_retries}, unit={self.unit})"


__all__ = [
    "ErrorHandler",
    "ExponentialBackoff",
    "Forward",
    "HandleAction",
    "HandleErrorContext",
    "HandleResult",
    "LogAndIgnore",
]
