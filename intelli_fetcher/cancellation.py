"""Cooperative cancellation shared by jobs, tasks and their threads."""

from __future__ import annotations

import asyncio
import threading


class CancellationToken:
    """Idempotent broadcast signal.

    Any number of waiters, on any thread's event loop, observe the same
    signal without consuming it.
    """

    def __init__(self) -> None:
        self._flag = threading.Event()
        self._lock = threading.Lock()
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []

    def cancel(self) -> None:
        with self._lock:
            if self._flag.is_set():
                return
            self._flag.set()
            waiters, self._waiters = self._waiters, []
        for loop, event in waiters:
            if loop.is_closed():
                continue
            try:
                loop.call_soon_threadsafe(event.set)
            except RuntimeError:
                # loop closed between the check and the call
                continue

    def is_cancelled(self) -> bool:
        return self._flag.is_set()

    async def wait(self) -> None:
        """Return once the token is cancelled."""

        if self._flag.is_set():
            return
        loop = asyncio.get_running_loop()
        event = asyncio.Event()
        with self._lock:
            if self._flag.is_set():
                return
            self._waiters.append((loop, event))
        try:
            await event.wait()
        finally:
            with self._lock:
                if (loop, event) in self._waiters:
                    self._waiters.remove((loop, event))

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled()})"


async def cancel_wait(token: CancellationToken | None) -> None:
    """Wait for ``token``; without a token, wait forever."""

    if token is None:
        await asyncio.Event().wait()
        return
    await token.wait()


async def race_cancel(awaitable, token: CancellationToken | None):
    """Await ``awaitable`` unless ``token`` fires first.

    Returns ``(True, result)`` when the awaitable finished, ``(False, None)``
    when cancellation won; the awaitable is then cancelled.
    """

    work = asyncio.ensure_future(awaitable)
    if token is None:
        return True, await work
    stopper = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        work.cancel()
        stopper.cancel()
        raise
    if work in done:
        stopper.cancel()
        return True, work.result()
    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    return False, None


__all__ = ["CancellationToken", "cancel_wait", "race_cancel"]
