"""Standardized error types for tool invocations.

Every error here is converted into a tagged failure at the registry boundary;
none of them propagates into the response stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "ErrorCode",
    "ToolError",
    "ToolNotDeclaredError",
    "ToolValidationError",
    "ToolTimeoutError",
    "ToolExecutionFailure",
    "DuplicateToolError",
]


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------


class ErrorCode:
    """Constants for error codes used in tool failures."""

    TOOL_NOT_DECLARED = "tool_not_declared"
    INVALID_ARGUMENTS = "invalid_arguments"
    TIMEOUT = "timeout"
    EXECUTION_FAILED = "execution_failed"
    DUPLICATE_TOOL = "duplicate_tool"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------


@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        tool_name: Tool the error relates to, when known.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    tool_name: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message


# -----------------------------------------------------------------------------
# Concrete Errors
# -----------------------------------------------------------------------------


@dataclass
class ToolNotDeclaredError(ToolError):
    """The model asked for a tool that was never declared."""

    error_code: str = field(default=ErrorCode.TOOL_NOT_DECLARED)
    message: str = field(default="")

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Tool '{self.tool_name}' is not declared"
        ToolError.__post_init__(self)


@dataclass
class ToolValidationError(ToolError):
    """Arguments were malformed or violated the declared input schema."""

    error_code: str = field(default=ErrorCode.INVALID_ARGUMENTS)
    message: str = field(default="Invalid tool arguments")
    path: str = field(default="")


@dataclass
class ToolTimeoutError(ToolError):
    """The executor did not finish before its deadline."""

    error_code: str = field(default=ErrorCode.TIMEOUT)
    message: str = field(default="")
    timeout_seconds: float = field(default=0.0)

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Tool '{self.tool_name}' timed out after {self.timeout_seconds:g}s"
        ToolError.__post_init__(self)


@dataclass
class ToolExecutionFailure(ToolError):
    """The executor raised."""

    error_code: str = field(default=ErrorCode.EXECUTION_FAILED)
    message: str = field(default="Tool execution failed")

    @classmethod
    def from_exception(cls, tool_name: str, exc: BaseException) -> "ToolExecutionFailure":
        message = str(exc) or type(exc).__name__
        return cls(message=message, tool_name=tool_name, details={"exception": type(exc).__name__})


@dataclass
class DuplicateToolError(ToolError):
    """A tool name was declared twice."""

    error_code: str = field(default=ErrorCode.DUPLICATE_TOOL)
    message: str = field(default="")

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Tool '{self.tool_name}' is already declared"
        ToolError.__post_init__(self)
