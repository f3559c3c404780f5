"""Shared pytest fixtures and fakes."""

from __future__ import annotations

from typing import Any, AsyncIterator, Iterable, Mapping, Sequence

import pytest

from kestrel.ai.orchestration.types import RuntimeEvent
from kestrel.ai.tools.registry import ToolRegistry
from kestrel.ai.tools.types import OutputCategory, ToolSpec


class ManualClock:
    """Millisecond clock advanced explicitly by tests."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, delta_ms: int) -> None:
        self.now += delta_ms


class ScriptedRuntime:
    """Model runtime that replays scripted events, optionally invoking tools first."""

    def __init__(
        self,
        events: Iterable[RuntimeEvent] = (),
        *,
        tool_calls: Sequence[tuple[str, Any]] = (),
        fail_on_open: BaseException | None = None,
        fail_after: BaseException | None = None,
    ) -> None:
        self._events = list(events)
        self._tool_calls = list(tool_calls)
        self._fail_on_open = fail_on_open
        self._fail_after = fail_after
        self.calls: list[list[Mapping[str, Any]]] = []
        self.closed = False

    async def stream(self, messages: Sequence[Mapping[str, Any]], registry: ToolRegistry) -> AsyncIterator[RuntimeEvent]:
        self.calls.append([dict(message) for message in messages])
        try:
            if self._fail_on_open is not None:
                raise self._fail_on_open
            for index, (name, arguments) in enumerate(self._tool_calls):
                call_id = f"call_{index}"
                yield RuntimeEvent.tool_call(name, call_id, arguments)
                result = await registry.invoke(name, arguments, call_id=call_id)
                yield RuntimeEvent.tool_result(name, call_id, result.to_output())
            for event in self._events:
                yield event
            if self._fail_after is not None:
                raise self._fail_after
        finally:
            self.closed = True


def weather_spec(name: str = "getWeather") -> ToolSpec:
    return ToolSpec(
        name=name,
        description="Current weather for a location",
        category=OutputCategory.WEATHER,
        parameters={
            "type": "object",
            "properties": {"location": {"type": "string"}},
            "required": ["location"],
            "additionalProperties": False,
        },
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry(tool_timeout=1.0)

    async def weather(args: Mapping[str, Any]) -> dict[str, Any]:
        if args["location"] == "Atlantis":
            raise RuntimeError("network timeout")
        return {"location": args["location"], "tempC": 24, "description": "clear sky"}

    def quote(args: Mapping[str, Any]) -> dict[str, Any]:
        return {"symbol": args["symbol"], "price": 187.5}

    registry.declare(weather_spec(), weather)
    registry.declare(
        ToolSpec(
            name="getStockPrice",
            description="Latest quote",
            category=OutputCategory.FINANCIAL,
            parameters={
                "type": "object",
                "properties": {"symbol": {"type": "string"}},
                "required": ["symbol"],
            },
        ),
        quote,
    )
    return registry
