"""Worker threads for jobs that run on an event loop of their own."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Any, Callable, Coroutine, Dict, TypeVar

T = TypeVar("T")


class ThreadPoolManager:
    """Executors for parallel job runs.

    Ungrouped work shares the default executor. A named group gets an executor
    of its own, sized on first use, so a busy group cannot starve the others.
    """

    def __init__(self, default_workers: int = 8) -> None:
        if default_workers < 1:
            raise ValueError("default_workers must be >= 1")
        self.default_workers = default_workers
        self._default_executor: ThreadPoolExecutor | None = None
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._sizes: Dict[str, int] = {}
        self._lock = Lock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Thread pool manager has been shut down")

    def _create(self, group_name: str, workers: int) -> ThreadPoolExecutor:
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"fetcher-{group_name}")
        self._executors[group_name] = executor
        self._sizes[group_name] = workers
        return executor

    def get(self, group_name: str | None = None, max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            self._check_open()
            if group_name is None:
                if self._default_executor is None:
                    self._default_executor = ThreadPoolExecutor(
                        max_workers=self.default_workers, thread_name_prefix="fetcher"
                    )
                return self._default_executor
            executor = self._executors.get(group_name)
            if executor is None:
                executor = self._create(group_name, max_workers or self.default_workers)
            return executor

    def dedicated(self, group_name: str, workers: int) -> ThreadPoolExecutor:
        """Executor of ``group_name`` with at least ``workers`` threads.

        A smaller executor left by an earlier run is retired; work already
        submitted to it still finishes.
        """

        if workers < 1:
            raise ValueError("workers must be >= 1")
        with self._lock:
            self._check_open()
            executor = self._executors.get(group_name)
            if executor is not None and self._sizes[group_name] >= workers:
                return executor
            if executor is not None:
                executor.shutdown(wait=False)
            return self._create(group_name, workers)

    def run_on_new_loop(
        self,
        coro_factory: Callable[[], Coroutine[Any, Any, T]],
        group_name: str | None = None,
        max_workers: int | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> "asyncio.Future[T]":
        """Run ``coro_factory()`` to completion on a fresh loop in a worker thread.

        Call from a running loop; the returned future belongs to that loop.
        """

        loop = asyncio.get_running_loop()
        if executor is None:
            executor = self.get(group_name, max_workers)
        return loop.run_in_executor(executor, _run_coroutine, coro_factory)

    def groups(self) -> list[str]:
        with self._lock:
            return sorted(self._executors)

    def workers(self, group_name: str) -> int:
        with self._lock:
            return self._sizes[group_name]

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            self._closed = True
            executors = list(self._executors.values())
            if self._default_executor is not None:
                executors.append(self._default_executor)
            self._default_executor = None
            self._executors.clear()
            self._sizes.clear()
        for executor in executors:
            executor.shutdown(wait=wait)


def _run_coroutine(coro_factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
    return asyncio.run(coro_factory())


__all__ = ["ThreadPoolManager"]
