"""Request-level error taxonomy for the chat gateway.

Each error knows the HTTP status it maps to and how to render its JSON body.
Tool-level failures live in :mod:`kestrel.ai.tools.errors` and never reach
this layer; they are absorbed by the tool registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, TYPE_CHECKING

if TYPE_CHECKING:
    from .services.rate_limit import RateLimitDecision

__all__ = [
    "GatewayErrorCode",
    "GatewayError",
    "AuthError",
    "RateLimitError",
    "ValidationError",
    "ConversationError",
    "InternalError",
    "StreamFault",
]


class GatewayErrorCode:
    """Machine-readable codes for gateway failures."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    INVALID_REQUEST = "invalid_request"
    INVALID_CONVERSATION = "invalid_conversation"
    INTERNAL_ERROR = "internal_error"
    STREAM_FAULT = "stream_fault"


@dataclass
class GatewayError(Exception):
    """Base class for failures that abort a request before streaming starts.

    Attributes:
        message: Client-safe description placed in the ``error`` field.
        details: Additional client-safe structured information.
    """

    message: str
    details: list[Any] = field(default_factory=list)

    status_code: ClassVar[int] = 500
    error_code: ClassVar[str] = GatewayErrorCode.INTERNAL_ERROR

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = list(self.details)
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class AuthError(GatewayError):
    """No identity could be established for the caller."""

    message: str = "Unauthorized"

    status_code: ClassVar[int] = 401
    error_code: ClassVar[str] = GatewayErrorCode.UNAUTHORIZED


@dataclass
class RateLimitError(GatewayError):
    """The caller's admission window is exhausted."""

    message: str = "Rate limit exceeded"
    decision: "RateLimitDecision | None" = None
    now_ms: int | None = None

    status_code: ClassVar[int] = 429
    error_code: ClassVar[str] = GatewayErrorCode.RATE_LIMITED

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.decision is not None:
            body.update(
                {
                    "limit": self.decision.limit,
                    "remaining": self.decision.remaining,
                    "resetTime": self.decision.reset_time_iso,
                    "retryAfter": self.decision.retry_after(self.now_ms),
                }
            )
        return body

    def headers(self) -> dict[str, str]:
        if self.decision is None:
            return {}
        headers = self.decision.headers()
        headers["Retry-After"] = str(self.decision.retry_after(self.now_ms))
        return headers


@dataclass
class ValidationError(GatewayError):
    """The request body is malformed or violates the request schema."""

    message: str = "Invalid request"

    status_code: ClassVar[int] = 400
    error_code: ClassVar[str] = GatewayErrorCode.INVALID_REQUEST


@dataclass
class ConversationError(GatewayError):
    """The conversation cannot be submitted (empty or not ending with a user turn).

    Rendered as a plain-text body.
    """

    message: str = "Last message must be from user"

    status_code: ClassVar[int] = 400
    error_code: ClassVar[str] = GatewayErrorCode.INVALID_CONVERSATION


@dataclass
class InternalError(GatewayError):
    """Unexpected failure; detail stays in the server log."""

    message: str = "Internal server error"

    status_code: ClassVar[int] = 500
    error_code: ClassVar[str] = GatewayErrorCode.INTERNAL_ERROR


class StreamFault(RuntimeError):
    """Raised when the model runtime stream breaks its event contract."""

    error_code = GatewayErrorCode.STREAM_FAULT
