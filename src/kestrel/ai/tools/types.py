"""Tool system types: declarations, output categories and invocation results."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine, Mapping, Protocol, runtime_checkable

__all__ = [
    "OutputCategory",
    "ToolSpec",
    "ToolExecutor",
    "Tool",
    "SimpleTool",
    "ToolInvocationResult",
]


# -----------------------------------------------------------------------------
# Output Categories
# -----------------------------------------------------------------------------


class OutputCategory(str, Enum):
    """Kind of data a tool produces; the value is the wire ``toolType``."""

    WEATHER = "weather"
    MOTORSPORT = "f1"
    FINANCIAL = "stock"


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool.
        description: Description advertised to the model.
        parameters: JSON Schema for the tool's arguments.
        category: Output category used to classify results.
    """

    name: str
    description: str
    category: OutputCategory
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def input_schema(self) -> dict[str, Any]:
        if self.parameters:
            return dict(self.parameters)
        return {"type": "object", "properties": {}}

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_schema(),
            "category": self.category.value,
        }


# -----------------------------------------------------------------------------
# Executors
# -----------------------------------------------------------------------------

ToolExecutor = Callable[[Mapping[str, Any]], Coroutine[Any, Any, Any]]


@runtime_checkable
class Tool(Protocol):
    """Protocol for registrable tool implementations."""

    @property
    def name(self) -> str:
        ...

    @property
    def spec(self) -> ToolSpec:
        ...

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        ...


@dataclass
class SimpleTool:
    """Tool wrapping a plain callable (sync or async).

    Example:
        async def weather(args):
            return await fetch_weather(args["location"])

        tool = SimpleTool(spec=ToolSpec("getWeather", "...", OutputCategory.WEATHER), handler=weather)
    """

    spec: ToolSpec
    handler: Callable[[Mapping[str, Any]], Any]
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = inspect.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        if self._is_async:
            return await self.handler(arguments)
        return self.handler(arguments)


# -----------------------------------------------------------------------------
# Invocation Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolInvocationResult:
    """Outcome of one tool invocation: exactly one of payload or error is meaningful."""

    tool_name: str
    ok: bool
    payload: Any = None
    error: str | None = None
    error_code: str | None = None
    duration_ms: float = 0.0

    @classmethod
    def success(cls, tool_name: str, payload: Any, *, duration_ms: float = 0.0) -> "ToolInvocationResult":
        return cls(tool_name=tool_name, ok=True, payload=payload, duration_ms=duration_ms)

    @classmethod
    def failure(
        cls,
        tool_name: str,
        message: str,
        *,
        error_code: str | None = None,
        duration_ms: float = 0.0,
    ) -> "ToolInvocationResult":
        return cls(
            tool_name=tool_name,
            ok=False,
            error=message,
            error_code=error_code,
            duration_ms=duration_ms,
        )

    def to_output(self) -> Any:
        """Value surfaced to the model and the client."""
        if self.ok:
            return self.payload
        return {"error": self.error}
