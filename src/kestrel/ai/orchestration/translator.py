"""Translation of the runtime event stream into the client wire protocol.

A :class:`StreamTranslator` consumes :class:`RuntimeEvent` objects and emits
wire events in upstream order, ending with exactly one terminal ``done`` or
``error`` event:

* ``text-delta`` passes through (empty fragments are dropped);
* ``tool-call`` is logged only, the runtime executes it;
* ``tool-result`` is classified by the declared category of the tool that
  produced it, forwarded, and collected for the ``done`` summary; results from
  tools without a category are skipped;
* ``finish`` or upstream exhaustion emits ``done`` with the collected results;
* any fault emits ``error`` with a generic message; details go to the log.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, ClassVar, Union

from ...errors import StreamFault
from ..tools.types import OutputCategory
from .types import RuntimeEvent

__all__ = [
    "GENERIC_STREAM_ERROR",
    "TranslatorState",
    "TextDeltaEvent",
    "ToolResultEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "StreamTranslator",
    "encode_sse",
    "aclose_iterator",
]

LOGGER = logging.getLogger(__name__)

GENERIC_STREAM_ERROR = "Something went wrong processing your request"

CategoryLookup = Callable[[str], Union[OutputCategory, None]]


# -----------------------------------------------------------------------------
# Wire Events
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TextDeltaEvent:
    delta: str

    terminal: ClassVar[bool] = False

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text-delta", "delta": self.delta}


@dataclass(slots=True, frozen=True)
class ToolResultEvent:
    tool_type: OutputCategory
    data: Any

    terminal: ClassVar[bool] = False

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool-result", "toolType": self.tool_type.value, "data": self.data}


@dataclass(slots=True, frozen=True)
class DoneEvent:
    tool_results: list[dict[str, Any]] = field(default_factory=list)

    terminal: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {"type": "done", "toolResults": list(self.tool_results)}


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    error: str = GENERIC_STREAM_ERROR

    terminal: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {"type": "error", "error": self.error}


StreamEvent = Union[TextDeltaEvent, ToolResultEvent, DoneEvent, ErrorEvent]


def encode_sse(event: StreamEvent) -> bytes:
    """Frame ``event`` as a server-sent event: ``data: <json>\\n\\n``."""
    body = json.dumps(event.to_dict(), ensure_ascii=False, separators=(",", ":"), default=str)
    return f"data: {body}\n\n".encode("utf-8")


# -----------------------------------------------------------------------------
# State Machine
# -----------------------------------------------------------------------------


class TranslatorState(enum.Enum):
    STREAMING = "streaming"
    TERMINATING = "terminating"
    CLOSED = "closed"


class StreamTranslator:
    """Single-use translator from runtime events to wire events."""

    def __init__(self, category_for: CategoryLookup) -> None:
        self._category_for = category_for
        self._state = TranslatorState.STREAMING
        self._started = False
        self._finished = False
        self._results: list[dict[str, Any]] = []

    @property
    def state(self) -> TranslatorState:
        return self._state

    @property
    def results(self) -> list[dict[str, Any]]:
        """Classified tool results observed so far, in arrival order."""
        return list(self._results)

    async def translate(self, events: AsyncIterator[RuntimeEvent]) -> AsyncIterator[StreamEvent]:
        if self._started:
            raise RuntimeError("StreamTranslator instances are single-use")
        self._started = True
        try:
            try:
                async for event in events:
                    emitted = self._handle(event)
                    if emitted is not None:
                        yield emitted
                    if self._finished:
                        break
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._state = TranslatorState.TERMINATING
                LOGGER.error("Stream translation failed: %s", exc, exc_info=True)
                yield ErrorEvent()
                self._state = TranslatorState.CLOSED
                return
            self._state = TranslatorState.TERMINATING
            LOGGER.debug("Stream complete with %d tool result(s)", len(self._results))
            yield DoneEvent(self.results)
            self._state = TranslatorState.CLOSED
        finally:
            self._state = TranslatorState.CLOSED
            await aclose_iterator(events)

    def _handle(self, event: RuntimeEvent) -> StreamEvent | None:
        event_type = getattr(event, "type", None)
        if event_type == "text-delta":
            return TextDeltaEvent(event.text) if event.text else None
        if event_type == "tool-call":
            LOGGER.info("Tool call requested: %s (call_id=%s)", event.tool_name, event.call_id)
            return None
        if event_type == "tool-result":
            return self._handle_tool_result(event)
        if event_type == "finish":
            LOGGER.debug("Runtime finished: %s", event.reason)
            self._finished = True
            return None
        raise StreamFault(f"Unexpected runtime event type: {event_type!r}")

    def _handle_tool_result(self, event: RuntimeEvent) -> StreamEvent | None:
        category = self._category_for(event.tool_name or "")
        if category is None:
            LOGGER.warning("Skipping result from uncategorized tool %s", event.tool_name)
            return None
        self._results.append({"type": category.value, "data": event.output})
        return ToolResultEvent(category, event.output)


async def aclose_iterator(events: Any) -> None:
    """Close an async iterator if it supports ``aclose``."""
    close = getattr(events, "aclose", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result
