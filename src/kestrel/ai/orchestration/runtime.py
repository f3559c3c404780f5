"""Model runtime: drives the chat-completion tool loop and yields RuntimeEvents.

Each round streams one completion. Text deltas are forwarded as they arrive;
when the round ends with tool calls, those calls are announced, executed
concurrently through the :class:`~kestrel.ai.tools.registry.ToolRegistry`,
their results yielded in request order and appended to the history before the
next round starts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Mapping, Protocol, Sequence, runtime_checkable

from ..tools.registry import ToolRegistry
from .conversation import canonical_json
from .types import RuntimeEvent

__all__ = ["ModelClient", "ModelRuntime", "PendingToolCall", "ToolLoopRuntime"]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 8


# -----------------------------------------------------------------------------
# Protocols
# -----------------------------------------------------------------------------


@runtime_checkable
class ModelClient(Protocol):
    """Anything that streams normalized completion events; ``AIClient`` conforms."""

    def stream_chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        **kwargs: Any,
    ) -> AsyncGenerator[Any, None]:
        ...


@runtime_checkable
class ModelRuntime(Protocol):
    """Produces the RuntimeEvent stream for one conversation."""

    def stream(self, messages: Sequence[Mapping[str, Any]], registry: ToolRegistry) -> AsyncIterator[RuntimeEvent]:
        ...


# -----------------------------------------------------------------------------
# Tool Loop
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class PendingToolCall:
    """A tool call requested by the model during the current round."""

    call_id: str
    name: str
    arguments: str

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.call_id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class ToolLoopRuntime:
    """Streams model output and services tool calls until the model stops asking.

    Example:
        runtime = ToolLoopRuntime(AIClient(settings))
        async for event in runtime.stream(messages, registry):
            ...
    """

    def __init__(self, client: ModelClient, *, max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS) -> None:
        self._client = client
        self.max_tool_iterations = max(1, int(max_tool_iterations))

    @property
    def client(self) -> ModelClient:
        return self._client

    async def stream(
        self,
        messages: Sequence[Mapping[str, Any]],
        registry: ToolRegistry,
    ) -> AsyncIterator[RuntimeEvent]:
        history: list[dict[str, Any]] = [dict(message) for message in messages]
        tools = registry.get_openai_tools() or None

        for iteration in range(1, self.max_tool_iterations + 1):
            LOGGER.debug("Tool loop round %d with %d message(s)", iteration, len(history))
            text_parts: list[str] = []
            calls: list[PendingToolCall] = []
            finish_reason: str | None = None

            async with contextlib.aclosing(self._client.stream_chat(history, tools=tools)) as model_events:
                async for event in model_events:
                    event_type = getattr(event, "type", None)
                    if event_type == "content.delta":
                        content = getattr(event, "content", None)
                        if content:
                            text_parts.append(content)
                            yield RuntimeEvent.text_delta(content)
                    elif event_type == "tool_calls.function.arguments.done":
                        calls.append(self._pending_call(event, len(calls)))
                    elif event_type == "finish":
                        finish_reason = getattr(event, "finish_reason", None)

            if not calls:
                yield RuntimeEvent.finish(finish_reason or "stop")
                return

            for call in calls:
                yield RuntimeEvent.tool_call(call.name, call.call_id, call.arguments)

            results = await asyncio.gather(
                *(registry.invoke(call.name, call.arguments, call_id=call.call_id) for call in calls)
            )

            history.append(
                {
                    "role": "assistant",
                    "content": "".join(text_parts) or None,
                    "tool_calls": [call.to_message() for call in calls],
                }
            )
            for call, result in zip(calls, results):
                output = result.to_output()
                yield RuntimeEvent.tool_result(call.name, call.call_id, output)
                history.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.call_id,
                        "content": canonical_json(output),
                    }
                )

        LOGGER.warning("Tool loop reached max iterations (%d)", self.max_tool_iterations)
        yield RuntimeEvent.finish("max_iterations")

    @staticmethod
    def _pending_call(event: Any, position: int) -> PendingToolCall:
        index = getattr(event, "tool_index", None)
        index = position if index is None else int(index)
        call_id = getattr(event, "tool_call_id", None) or f"call_{index}_{uuid.uuid4().hex[:8]}"
        return PendingToolCall(
            call_id=call_id,
            name=getattr(event, "tool_name", None) or "unknown",
            arguments=getattr(event, "tool_arguments", None) or "{}",
        )
