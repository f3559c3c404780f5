"""Tool registry and dispatcher.

The registry owns every declared tool, advertises them to the model runtime
and executes invocations. ``invoke`` never raises for tool-level problems:
unknown names, malformed or schema-violating arguments, executor exceptions
and deadline expiry all come back as a failed :class:`ToolInvocationResult`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from jsonschema import Draft202012Validator

from .errors import (
    DuplicateToolError,
    ToolError,
    ToolExecutionFailure,
    ToolNotDeclaredError,
    ToolTimeoutError,
    ToolValidationError,
)
from .types import OutputCategory, SimpleTool, Tool, ToolInvocationResult, ToolSpec

__all__ = ["ToolRegistration", "ToolRegistry"]

LOGGER = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0


@dataclass(slots=True)
class ToolRegistration:
    """Record of a declared tool and its compiled argument validator."""

    name: str
    tool: Tool
    spec: ToolSpec
    validator: Draft202012Validator


class ToolRegistry:
    """Registry for declaring and invoking tools.

    Example:
        registry = ToolRegistry(tool_timeout=10)
        registry.declare(
            ToolSpec(name="getWeather", description="...", category=OutputCategory.WEATHER,
                     parameters={"type": "object", "properties": {"location": {"type": "string"}}}),
            weather_executor,
        )
        result = await registry.invoke("getWeather", '{"location": "Paris"}')
    """

    def __init__(self, *, tool_timeout: float | None = DEFAULT_TOOL_TIMEOUT, log_payloads: bool = False) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        self.tool_timeout = tool_timeout
        self.log_payloads = log_payloads

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------
    def register(self, tool: Tool) -> ToolRegistration:
        """Declare a tool implementation.

        Raises:
            DuplicateToolError: If the name is already declared.
            jsonschema.exceptions.SchemaError: If the declared schema is itself invalid.
        """
        spec = tool.spec
        if spec.name in self._tools:
            raise DuplicateToolError(tool_name=spec.name)
        schema = spec.input_schema()
        Draft202012Validator.check_schema(schema)
        registration = ToolRegistration(
            name=spec.name,
            tool=tool,
            spec=spec,
            validator=Draft202012Validator(schema),
        )
        self._tools[spec.name] = registration
        LOGGER.debug("Declared tool: %s (%s)", spec.name, spec.category.value)
        return registration

    def declare(self, spec: ToolSpec, executor: Callable[[Mapping[str, Any]], Any]) -> ToolRegistration:
        """Declare a tool from a spec and a plain (sync or async) executor."""
        return self.register(SimpleTool(spec=spec, handler=executor))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def category_for(self, name: str) -> OutputCategory | None:
        registration = self._tools.get(name)
        return registration.spec.category if registration else None

    def list_names(self) -> list[str]:
        return list(self._tools)

    def list_declarations(self) -> list[ToolSpec]:
        return [registration.spec for registration in self._tools.values()]

    def get_openai_tools(self) -> list[dict[str, Any]]:
        """Tool definitions in the OpenAI ``tools`` parameter format."""
        return [registration.spec.to_openai_tool() for registration in self._tools.values()]

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------
    async def invoke(self, name: str, raw_input: Any, *, call_id: str = "") -> ToolInvocationResult:
        """Validate ``raw_input`` and run the named tool under its deadline."""

        start = time.perf_counter()
        try:
            registration = self._tools.get(name)
            if registration is None:
                raise ToolNotDeclaredError(tool_name=name)
            arguments = self._parse_arguments(name, raw_input)
            self._validate(registration, arguments)
            if self.log_payloads:
                LOGGER.debug("Invoking tool %s (call_id=%s) with arguments: %s", name, call_id, arguments)
            else:
                LOGGER.debug("Invoking tool %s (call_id=%s)", name, call_id)
            payload = await self._execute(registration, arguments)
        except ToolError as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            LOGGER.warning("Tool %s failed after %.1fms: %s", name, duration_ms, exc.message)
            return ToolInvocationResult.failure(
                name, exc.message, error_code=exc.error_code, duration_ms=duration_ms
            )

        duration_ms = (time.perf_counter() - start) * 1000
        if self.log_payloads:
            LOGGER.debug("Tool %s completed in %.1fms with result: %s", name, duration_ms, payload)
        else:
            LOGGER.debug("Tool %s completed in %.1fms", name, duration_ms)
        return ToolInvocationResult.success(name, payload, duration_ms=duration_ms)

    async def _execute(self, registration: ToolRegistration, arguments: dict[str, Any]) -> Any:
        timeout = self.tool_timeout
        try:
            if timeout is not None and timeout > 0:
                return await asyncio.wait_for(registration.tool.execute(arguments), timeout=timeout)
            return await registration.tool.execute(arguments)
        except asyncio.TimeoutError as exc:
            raise ToolTimeoutError(tool_name=registration.name, timeout_seconds=float(timeout or 0)) from exc
        except ToolError:
            raise
        except Exception as exc:
            raise ToolExecutionFailure.from_exception(registration.name, exc) from exc

    @staticmethod
    def _parse_arguments(name: str, raw_input: Any) -> dict[str, Any]:
        if raw_input is None or raw_input == "":
            return {}
        if isinstance(raw_input, (str, bytes, bytearray)):
            try:
                parsed = json.loads(raw_input)
            except ValueError as exc:
                raise ToolValidationError(
                    message=f"Invalid JSON arguments for tool '{name}': {exc}",
                    tool_name=name,
                ) from exc
        else:
            parsed = raw_input
        if not isinstance(parsed, Mapping):
            raise ToolValidationError(
                message=f"Arguments for tool '{name}' must be a JSON object, got {type(parsed).__name__}",
                tool_name=name,
            )
        return dict(parsed)

    @staticmethod
    def _validate(registration: ToolRegistration, arguments: dict[str, Any]) -> None:
        errors = sorted(
            registration.validator.iter_errors(arguments),
            key=lambda err: [str(part) for part in err.absolute_path],
        )
        if not errors:
            return
        first = errors[0]
        path = "/".join(str(part) for part in first.absolute_path) or "<root>"
        raise ToolValidationError(
            message=f"Invalid arguments for tool '{registration.name}' at {path}: {first.message}",
            tool_name=registration.name,
            path=path,
            details={"violations": len(errors), "validator": first.validator},
        )
