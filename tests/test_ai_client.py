"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Iterable, cast

import httpx
import pytest

from openai import APIConnectionError, AsyncOpenAI

from kestrel.ai.client import AIClient, AIStreamEvent, ClientSettings, StreamInterruptedError


@dataclass
class _FakeEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None
    content: str | None = None
    name: str | None = None
    index: int | None = None
    arguments: str | None = None
    id: str | None = None
    chunk: Any | None = None


class _FakeStream:
    def __init__(self, events: Iterable[Any]):
        self._iterator = iter(list(events))

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> _FakeEvent:
        try:
            item = next(self._iterator)
        except StopIteration as exc:
            raise StopAsyncIteration from exc
        if isinstance(item, Exception):
            raise item
        return item


class _FakeStreamContext:
    def __init__(self, script: Any):
        self._script = script

    async def __aenter__(self) -> _FakeStream:
        if isinstance(self._script, Exception):
            raise self._script
        return _FakeStream(self._script)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeCompletions:
    """Each ``stream`` call consumes the next script: an exception or a list of events."""

    def __init__(self, *scripts: Any):
        self._scripts = list(scripts)
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> _FakeStreamContext:
        self.calls.append(kwargs)
        script = self._scripts.pop(0) if len(self._scripts) > 1 else self._scripts[0]
        return _FakeStreamContext(script)


def _make_client(*scripts: Any, **settings: Any) -> tuple[AIClient, _FakeCompletions]:
    completions = _FakeCompletions(*scripts)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    options = {"retry_min_seconds": 0.0, "retry_max_seconds": 0.0, **settings}
    client = AIClient(
        ClientSettings(base_url="http://local", api_key="test", model="stub", **options),
        client=cast(AsyncOpenAI, fake),
    )
    return client, completions


def _connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", "http://local/chat/completions"))


def _finish_chunk(reason: str) -> _FakeEvent:
    return _FakeEvent(type="chunk", chunk=SimpleNamespace(choices=[SimpleNamespace(finish_reason=reason)]))


@pytest.mark.asyncio
async def test_stream_chat_normalizes_delta_and_tool_events() -> None:
    client, completions = _make_client(
        [
            _FakeEvent(type="chunk", chunk=SimpleNamespace(choices=[SimpleNamespace(finish_reason=None)])),
            _FakeEvent(type="content.delta", delta="Hello"),
            _FakeEvent(type="content.delta", delta=""),
            _FakeEvent(type="tool_calls.function.arguments.delta", name="getWeather", index=0, arguments="{"),
            _FakeEvent(
                type="tool_calls.function.arguments.done",
                name="getWeather",
                index=0,
                arguments='{"location": "Pune"}',
                id="call_abc",
            ),
            _FakeEvent(type="content.done", content="Hello"),
            _finish_chunk("tool_calls"),
        ]
    )

    events = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}])]

    assert events == [
        AIStreamEvent(type="content.delta", content="Hello"),
        AIStreamEvent(
            type="tool_calls.function.arguments.done",
            tool_name="getWeather",
            tool_index=0,
            tool_arguments='{"location": "Pune"}',
            tool_call_id="call_abc",
        ),
        AIStreamEvent(type="finish", finish_reason="tool_calls"),
    ]
    assert completions.calls[0]["model"] == "stub"
    assert completions.calls[0]["messages"] == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_stream_chat_passes_tools_and_temperature() -> None:
    client, completions = _make_client([], temperature=0.7)
    tools = [{"type": "function", "function": {"name": "getWeather", "parameters": {}}}]

    _ = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}], tools=tools)]
    _ = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}], temperature=0.1)]

    assert completions.calls[0]["tools"] == tools
    assert completions.calls[0]["temperature"] == 0.7
    assert "tools" not in completions.calls[1]
    assert completions.calls[1]["temperature"] == 0.1


@pytest.mark.asyncio
async def test_stream_chat_requires_messages() -> None:
    client, _ = _make_client([])

    with pytest.raises(ValueError):
        _ = [event async for event in client.stream_chat([])]


@pytest.mark.asyncio
async def test_transient_failure_opening_stream_is_retried() -> None:
    client, completions = _make_client(
        _connection_error(),
        [_FakeEvent(type="content.delta", delta="ok")],
        max_retries=3,
    )

    events = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}])]

    assert [event.content for event in events] == ["ok"]
    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_retries_stop_after_max_attempts() -> None:
    client, completions = _make_client(_connection_error(), max_retries=2)

    with pytest.raises(APIConnectionError):
        _ = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}])]

    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_non_transient_failure_is_not_retried() -> None:
    client, completions = _make_client(ValueError("bad payload"), max_retries=3)

    with pytest.raises(ValueError):
        _ = [event async for event in client.stream_chat([{"role": "user", "content": "hi"}])]

    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_failure_after_delivery_is_not_retried() -> None:
    client, completions = _make_client(
        [_FakeEvent(type="content.delta", delta="partial"), _connection_error()],
        max_retries=3,
    )
    received: list[AIStreamEvent] = []

    with pytest.raises(StreamInterruptedError):
        async for event in client.stream_chat([{"role": "user", "content": "hi"}]):
            received.append(event)

    assert [event.content for event in received] == ["partial"]
    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    closed: list[bool] = []

    async def close() -> None:
        closed.append(True)

    fake = SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions([])), close=close)
    client = AIClient(
        ClientSettings(base_url="http://local", api_key="test", model="stub"),
        client=cast(AsyncOpenAI, fake),
    )

    await client.aclose()

    assert closed == [True]
