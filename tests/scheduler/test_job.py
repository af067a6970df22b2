from __future__ import annotations

import asyncio
from datetime import datetime, time, timedelta

import pytest

from intelli_fetcher.cancellation import CancellationToken
from intelli_fetcher.engine import Entry, Message, SourceError, Task
from intelli_fetcher.engine.errors import FetcherError
from intelli_fetcher.scheduler import (
    ErrorHandler,
    Every,
    ExponentialBackoff,
    Forward,
    HandleAction,
    HandleErrorContext,
    Job,
    JobStatus,
    LogAndIgnore,
    Never,
    OnceADayAt,
    Trigger,
)

pytestmark = pytest.mark.anyio

TICK = timedelta(milliseconds=20)


def ok_task(static_source, sink) -> Task:
    return Task("ok", source=static_source([Entry(id="1", msg=Message(body="x"))]), sink=sink)


def failing_task(static_source, network: bool = False) -> Task:
    return Task("fails", source=static_source(error=SourceError("boom", network=network)))


async def test_never_runs_exactly_once(static_source, recording_sink) -> None:
    job = Job("once", [ok_task(static_source, recording_sink)], trigger=Never())
    result = await job.run()
    assert result.status is JobStatus.OK
    assert job.cycles == 1
    assert len(recording_sink.sent) == 1


async def test_every_retriggers_until_cancelled(static_source, recording_sink) -> None:
    token = CancellationToken()
    job = Job("loop", [ok_task(static_source, recording_sink)], trigger=Every(TICK), cancel_token=token)
    asyncio.get_running_loop().call_later(0.25, token.cancel)
    result = await asyncio.wait_for(job.run(), timeout=5)
    assert result.status is JobStatus.OK
    assert job.cycles >= 2


async def test_tasks_of_a_job_run_concurrently() -> None:
    started: list[str] = []
    gate = asyncio.Event()

    class Gated(Task):
        async def run(self):
            started.append(self.name)
            if len(started) == 2:
                gate.set()
            await asyncio.wait_for(gate.wait(), timeout=2)
            return []

    job = Job("pair", [Gated("a"), Gated("b")])
    assert (await job.run()).status is JobStatus.OK
    assert sorted(started) == ["a", "b"]


async def test_forward_stops_with_errors(static_source) -> None:
    job = Job("fwd", [failing_task(static_source)], trigger=Every(TICK), error_handler=Forward())
    result = await job.run()
    assert result.status is JobStatus.ERR
    assert [str(error) for error in result.errors] == ["boom"]
    assert job.cycles == 1


async def test_log_and_ignore_keeps_running(static_source) -> None:
    token = CancellationToken()
    job = Job(
        "ignore",
        [failing_task(static_source)],
        trigger=Every(TICK),
        error_handler=LogAndIgnore(),
        cancel_token=token,
    )
    asyncio.get_running_loop().call_later(0.2, token.cancel)
    result = await asyncio.wait_for(job.run(), timeout=5)
    assert result.status is JobStatus.OK
    assert job.cycles >= 2


async def test_backoff_stops_on_thirteenth_failure(static_source) -> None:
    backoff = ExponentialBackoff(max_retries=13, unit=timedelta(microseconds=10))
    job = Job(
        "backoff",
        [failing_task(static_source)],
        trigger=Every(timedelta(milliseconds=50)),
        error_handler=backoff,
    )
    result = await asyncio.wait_for(job.run(), timeout=10)
    assert result.status is JobStatus.ERR
    assert job.cycles == 13
    assert backoff.err_count == 13


def test_backoff_sleep_doubles() -> None:
    backoff = ExponentialBackoff(unit=timedelta(minutes=1))
    assert [backoff.sleep_duration(n) for n in (1, 2, 3, 4)] == [
        timedelta(minutes=1),
        timedelta(minutes=2),
        timedelta(minutes=4),
        timedelta(minutes=8),
    ]


async def test_backoff_network_errors_do_not_count_and_success_resets() -> None:
    backoff = ExponentialBackoff(
        max_retries=2,
        unit=timedelta(microseconds=1),
        network_error_pause=timedelta(microseconds=1),
    )
    ctx = HandleErrorContext(job_name="net", trigger=Never())
    network = [SourceError("offline", network=True)]
    for _ in range(5):
        assert (await backoff.handle_errors(network, ctx)).action is HandleAction.RESUME
    assert backoff.err_count == 0

    assert (await backoff.handle_errors([SourceError("bad")], ctx)).action is HandleAction.RESUME
    backoff.on_success()
    assert backoff.err_count == 0
    assert (await backoff.handle_errors([SourceError("bad")], ctx)).action is HandleAction.RESUME
    stopped = await backoff.handle_errors([SourceError("bad")], ctx)
    assert stopped.action is HandleAction.STOP
    assert [str(error) for error in stopped.errors] == ["bad"]


async def test_backoff_forgets_errors_older_than_pause_plus_two_periods() -> None:
    now = [1000.0]
    backoff = ExponentialBackoff(unit=timedelta(microseconds=1), clock=lambda: now[0])
    ctx = HandleErrorContext(job_name="stale", trigger=Every(timedelta(seconds=30)))
    failure = [SourceError("bad")]

    await backoff.handle_errors(failure, ctx)
    now[0] += 60.0  # still within pause + two periods
    await backoff.handle_errors(failure, ctx)
    assert backoff.err_count == 2

    now[0] += 61.0
    await backoff.handle_errors(failure, ctx)
    assert backoff.err_count == 1

    once = HandleErrorContext(job_name="once", trigger=Never())
    await backoff.handle_errors(failure, once)
    now[0] += 3600.0
    await backoff.handle_errors(failure, once)
    assert backoff.err_count == 3


async def test_backoff_pause_is_cancellable() -> None:
    token = CancellationToken()
    backoff = ExponentialBackoff(unit=timedelta(hours=1))
    ctx = HandleErrorContext(job_name="slow", trigger=Never(), cancel_token=token)
    asyncio.get_running_loop().call_later(0.01, token.cancel)
    handled = await asyncio.wait_for(backoff.handle_errors([SourceError("bad")], ctx), timeout=2)
    assert handled.action is HandleAction.STOP


async def test_error_handler_failure_returns_original_errors(static_source) -> None:
    class Broken(ErrorHandler):
        async def handle_errors(self, errors, ctx):
            raise RuntimeError("handler bug")

    job = Job("broken", [failing_task(static_source)], error_handler=Broken())
    result = await job.run()
    assert result.status is JobStatus.ERR
    assert [str(error) for error in result.errors] == ["boom"]
    assert isinstance(result.payload, RuntimeError)


async def test_unexpected_exception_panics(static_source) -> None:
    job = Job("panic", [Task("bug", source=static_source(error=RuntimeError("bug")))])
    result = await job.run()
    assert result.status is JobStatus.PANICKED
    assert isinstance(result.payload, RuntimeError)


async def test_failing_trigger(static_source, recording_sink) -> None:
    class Exploding(Trigger):
        async def wait(self) -> bool:
            raise OSError("clock gone")

        def twice_as_duration(self) -> timedelta:
            return timedelta(0)

    job = Job("trig", [ok_task(static_source, recording_sink)], trigger=Exploding())
    result = await job.run()
    assert result.status is JobStatus.TRIGGER_FAILED
    assert job.cycles == 1


async def test_cancel_while_waiting_for_start(static_source, recording_sink) -> None:
    token = CancellationToken()
    job = Job(
        "daily",
        [ok_task(static_source, recording_sink)],
        trigger=OnceADayAt(time(0, 0), clock=lambda: datetime(2024, 1, 1, 0, 0, 1)),
        cancel_token=token,
    )
    asyncio.get_running_loop().call_later(0.01, token.cancel)
    result = await asyncio.wait_for(job.run(), timeout=2)
    assert result.status is JobStatus.OK
    assert job.cycles == 0
    assert recording_sink.sent == []


def test_job_propagates_token_to_tasks(static_source, recording_sink) -> None:
    token = CancellationToken()
    own = CancellationToken()
    first = ok_task(static_source, recording_sink)
    second = Task("own", cancel_token=own)
    Job("tokens", [first, second], cancel_token=token)
    assert first.cancel_token is token
    assert second.cancel_token is own


def test_job_needs_tasks() -> None:
    with pytest.raises(ValueError):
        Job("empty", [])


def test_fetcher_errors_are_exceptions() -> None:
    assert issubclass(SourceError, FetcherError)
