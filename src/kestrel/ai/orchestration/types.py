"""Event contract between the model runtime and the stream translator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

__all__ = ["RuntimeEventType", "RuntimeEvent"]

RuntimeEventType = Literal["text-delta", "tool-call", "tool-result", "finish"]


@dataclass(slots=True, frozen=True)
class RuntimeEvent:
    """One event yielded by the model runtime.

    Only the fields relevant to ``type`` are populated:

    * ``text-delta``: ``text``
    * ``tool-call``: ``tool_name``, ``call_id``, ``arguments``
    * ``tool-result``: ``tool_name``, ``call_id``, ``output``
    * ``finish``: ``reason``
    """

    type: RuntimeEventType
    text: str = ""
    tool_name: str | None = None
    call_id: str | None = None
    arguments: Mapping[str, Any] | str | None = None
    output: Any = None
    reason: str | None = None

    @classmethod
    def text_delta(cls, text: str) -> "RuntimeEvent":
        return cls(type="text-delta", text=text)

    @classmethod
    def tool_call(cls, tool_name: str, call_id: str, arguments: Mapping[str, Any] | str | None) -> "RuntimeEvent":
        return cls(type="tool-call", tool_name=tool_name, call_id=call_id, arguments=arguments)

    @classmethod
    def tool_result(cls, tool_name: str, call_id: str, output: Any) -> "RuntimeEvent":
        return cls(type="tool-result", tool_name=tool_name, call_id=call_id, output=output)

    @classmethod
    def finish(cls, reason: str = "stop") -> "RuntimeEvent":
        return cls(type="finish", reason=reason)
