"""Tool declarations, registry and built-in catalog."""

from .catalog import BUILTIN_SPECS, register_builtin_tools
from .errors import (
    DuplicateToolError,
    ErrorCode,
    ToolError,
    ToolExecutionFailure,
    ToolNotDeclaredError,
    ToolTimeoutError,
    ToolValidationError,
)
from .registry import ToolRegistration, ToolRegistry
from .types import OutputCategory, SimpleTool, Tool, ToolInvocationResult, ToolSpec

__all__ = [
    "BUILTIN_SPECS",
    "register_builtin_tools",
    "DuplicateToolError",
    "ErrorCode",
    "ToolError",
    "ToolExecutionFailure",
    "ToolNotDeclaredError",
    "ToolTimeoutError",
    "ToolValidationError",
    "ToolRegistration",
    "ToolRegistry",
    "OutputCategory",
    "SimpleTool",
    "Tool",
    "ToolInvocationResult",
    "ToolSpec",
]
