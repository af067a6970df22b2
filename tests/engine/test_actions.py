from __future__ import annotations

import io

import httpx
import pytest
from rich.console import Console

from intelli_fetcher.cancellation import CancellationToken
from intelli_fetcher.engine import Entry, Message
from intelli_fetcher.engine.actions import (
    Action,
    ActionContext,
    Contains,
    DebugPrint,
    Field,
    Http,
    Pipeline,
    ReadFilterAction,
    Replace,
    Take,
    TakeFrom,
    TransformField,
    Trim,
    Use,
    UseRawContents,
)
from intelli_fetcher.engine.errors import TransformErrorKind
from intelli_fetcher.engine.read_filter import NotPresentInReadList, SharedReadFilter

pytestmark = pytest.mark.anyio


def ids(entries: list[Entry]) -> list[str | None]:
    return [entry.id for entry in entries]


class CountingAction(Action):
    def __init__(self) -> None:
        self.calls = 0

    async def apply(self, entries: list[Entry], ctx: ActionContext) -> list[Entry]:
        self.calls += 1
        return entries


async def test_take_from_beginning_and_end(make_entries) -> None:
    entries = make_entries("1", "2", "3", "4", "5")
    ctx = ActionContext()
    assert ids(await Take(TakeFrom.BEGINNING, 2).apply(entries, ctx)) == ["1", "2"]
    assert ids(await Take("end", 2).apply(entries, ctx)) == ["4", "5"]
    assert ids(await Take("end", 0).apply(entries, ctx)) == []
    assert ids(await Take("beginning", 10).apply(entries, ctx)) == ["1", "2", "3", "4", "5"]


async def test_contains_drops_entries_without_the_field() -> None:
    entries = [
        Entry(id="1", msg=Message(title="Python release")),
        Entry(id="2", msg=Message(title="Rust release")),
        Entry(id="3"),
    ]
    kept = await Contains(Field.TITLE, r"(?i)python").apply(entries, ActionContext())
    assert ids(kept) == ["1"]


async def test_read_filter_action_hides_read_entries(make_entries) -> None:
    shared = SharedReadFilter(NotPresentInReadList(["2"]))
    kept = await ReadFilterAction(shared).apply(make_entries("1", "2", "3"), ActionContext())
    assert ids(kept) == ["1", "3"]


async def test_use_raw_contents_and_use() -> None:
    entry = Entry(id="1", raw_contents="raw text", msg=Message(title="https://example.com/a"))
    ctx = ActionContext()
    [with_body] = await UseRawContents().apply([entry], ctx)
    assert with_body.msg.body == "raw text"

    [no_raw] = await UseRawContents().apply([Entry(id="2", msg=Message(body="old"))], ctx)
    assert no_raw.msg.body is None

    [linked] = await Use(Field.TITLE, Field.LINK).apply([entry], ctx)
    assert linked.msg.link == "https://example.com/a"
    assert ctx.errors == []


async def test_debug_print_emits_nothing() -> None:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200)
    result = await DebugPrint(console).apply([Entry(id="dbg", msg=Message(body="hello"))], ActionContext())
    assert result == []
    assert "dbg" in buffer.getvalue()


async def test_pipeline_stops_on_empty_batch(make_entries) -> None:
    counter = CountingAction()
    pipeline = Pipeline([Take("beginning", 0), counter])
    result = await pipeline.run(make_entries("1"))
    assert result.entries == []
    assert not result.terminated
    assert counter.calls == 0


async def test_pipeline_terminates_on_cancellation(make_entries) -> None:
    token = CancellationToken()
    token.cancel()
    counter = CountingAction()
    result = await Pipeline([counter]).run(make_entries("1"), ActionContext(cancel_token=token))
    assert result.terminated
    assert counter.calls == 0
    assert ids(result.entries) == ["1"]


async def test_strip_html_then_trim() -> None:
    entry = Entry(id="1", msg=Message(body="<p>  Hello  </p>"))
    pipeline = Pipeline(
        [
            TransformField(Field.BODY, Replace.html_tags()),
            TransformField(Field.BODY, Trim()),
        ]
    )
    result = await pipeline.run([entry])
    assert [e.msg.body for e in result.entries] == ["Hello"]


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_http_transform_fetches_link() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=f"page of {request.url.path}")

    async with _mock_client(handler) as client:
        entry = Entry(id="1", msg=Message(link="https://example.com/post"))
        [fetched] = await Http(client=client).apply([entry], ActionContext())
    assert fetched.raw_contents == "page of /post"
    assert fetched.msg.link == "https://example.com/post"


async def test_http_transform_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with _mock_client(handler) as client:
        ctx = ActionContext()
        entries = [
            Entry(id="missing"),
            Entry(id="bad", msg=Message(link="not-a-url")),
            Entry(id="404", msg=Message(link="https://example.com/gone")),
        ]
        assert await Http(client=client).apply(entries, ctx) == []
    kinds = {error.original_entry.id: error for error in ctx.errors}
    assert kinds["missing"].kind is TransformErrorKind.HTTP
    assert kinds["bad"].kind is TransformErrorKind.FIELD_LINK_INVALID_URL
    assert kinds["404"].kind is TransformErrorKind.HTTP
    assert not kinds["404"].is_network_related


async def test_http_transform_network_error_is_tagged() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _mock_client(handler) as client:
        ctx = ActionContext()
        entry = Entry(id="1", msg=Message(link="https://example.com"))
        await Http(client=client).apply([entry], ctx)
    assert ctx.errors[0].is_network_related
