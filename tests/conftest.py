"""Shared fixtures: in-memory sources, sinks and external saves for pipeline tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Mapping

import pytest

from intelli_fetcher import logging_conf
from intelli_fetcher.config import ConfigLocator, ConfigRepository
from intelli_fetcher.engine import Entry, ExternalSaveError, Message, SinkError, SourceError
from intelli_fetcher.engine.external_save import ExternalSave
from intelli_fetcher.engine.sinks import Sink
from intelli_fetcher.engine.sources import Source


@pytest.fixture(scope="session", autouse=True)
def _isolated_log_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    path = tmp_path_factory.mktemp("logs")
    logging_conf._LOG_DIR = path
    # install handlers before any CliRunner swaps the standard streams
    logging_conf.configure_logging(log_dir=path)
    return path


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class StaticSource(Source):
    """Return the same entries on every fetch, or fail."""

    def __init__(self, entries: Iterable[Entry] = (), error: SourceError | None = None) -> None:
        self.entries = list(entries)
        self.error = error
        self.fetches = 0

    async def fetch(self) -> list[Entry]:
        self.fetches += 1
        if self.error is not None:
            raise self.error
        return [entry.copy() for entry in self.entries]


class RecordingSink(Sink):
    """Collect sent messages and hand out increasing message ids."""

    def __init__(self, fail: bool = False, network: bool = False) -> None:
        self.fail = fail
        self.network = network
        self.sent: list[tuple[Message, int | None, str | None]] = []
        self._next_id = 100

    async def send(self, message: Message, reply_to: int | None = None, tag: str | None = None) -> int | None:
        if self.fail:
            raise SinkError("sink is down", network=self.network)
        self.sent.append((message, reply_to, tag))
        self._next_id += 1
        return self._next_id

    @property
    def bodies(self) -> list[str | None]:
        return [message.body for message, _, _ in self.sent]


class MemorySave(ExternalSave):
    """Keep every saved snapshot in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.read_filter_states: list[dict] = []
        self.maps: list[dict] = []

    async def save_read_filter(self, read_filter) -> None:
        if self.fail:
            raise ExternalSaveError("disk full", "memory")
        self.read_filter_states.append(read_filter.to_state())

    async def save_entry_to_msg_map(self, mapping: Mapping[str, int]) -> None:
        if self.fail:
            raise ExternalSaveError("disk full", "memory")
        self.maps.append(dict(mapping))


@pytest.fixture
def static_source() -> Callable[..., StaticSource]:
    return StaticSource


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(fail=True)


@pytest.fixture
def memory_save() -> MemorySave:
    return MemorySave()


@pytest.fixture
def make_entries() -> Callable[..., list[Entry]]:
    def _builder(*ids: str, body: str | None = None) -> list[Entry]:
        return [Entry(id=entry_id, msg=Message(body=body or f"body {entry_id}")) for entry_id in ids]

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigRepository:
    monkeypatch.setenv("INTELLI_FETCHER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    return ConfigRepository(locator)


@pytest.fixture
def failing_save() -> MemorySave:
    return MemorySave(fail=True)
