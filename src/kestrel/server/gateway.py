"""Chat request orchestration.

``ChatGateway.handle`` runs the request through a fixed sequence and maps each
failure to its HTTP response:

1. authorization (401)
2. admission control (429)
3. body parsing and schema validation (400, JSON)
4. conversation check (400, plain text)
5. opening the model runtime (500)
6. streaming the translated events as SSE frames

Anything unexpected becomes a generic 500 with the detail kept in the log.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Sequence

from jsonschema import Draft202012Validator
from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse

from ..ai.orchestration.conversation import ConversationAdapter
from ..ai.orchestration.runtime import ModelRuntime
from ..ai.orchestration.translator import StreamTranslator, aclose_iterator, encode_sse
from ..ai.orchestration.types import RuntimeEvent
from ..ai.tools.registry import ToolRegistry
from ..errors import (
    AuthError,
    ConversationError,
    GatewayError,
    InternalError,
    RateLimitError,
    ValidationError,
)
from ..services.auth import Authorizer
from ..services.rate_limit import RateLimiter, epoch_ms
from ..utils.logging import bind_request_id

__all__ = ["CHAT_REQUEST_SCHEMA", "ChatGateway"]

LOGGER = logging.getLogger(__name__)

CHAT_REQUEST_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "required": ["messages"],
    "properties": {
        "messages": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["role", "content"],
                "properties": {
                    "id": {"type": "string"},
                    "role": {"enum": ["user", "assistant", "system", "tool"]},
                    "content": {"anyOf": [{"type": "string"}, {"type": "object"}]},
                },
            },
        }
    },
}

_REQUEST_VALIDATOR = Draft202012Validator(CHAT_REQUEST_SCHEMA)
_ALLOWED_METHODS = "POST, OPTIONS"
_ALLOWED_HEADERS = "Content-Type, Authorization"
_REQUEST_ID_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")
_MAX_REQUEST_ID_LENGTH = 64


class ChatGateway:
    """HTTP handler for ``/api/chat``."""

    def __init__(
        self,
        *,
        authorizer: Authorizer,
        limiter: RateLimiter,
        registry: ToolRegistry,
        adapter: ConversationAdapter,
        runtime: ModelRuntime,
        allowed_origin: str = "*",
        clock: Callable[[], int] | None = None,
        closers: Sequence[Callable[[], Awaitable[None]]] = (),
    ) -> None:
        self.authorizer = authorizer
        self.limiter = limiter
        self.registry = registry
        self.adapter = adapter
        self.runtime = runtime
        self.allowed_origin = allowed_origin or "*"
        self._clock = clock or epoch_ms
        self._closers = list(closers)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def handle(self, request: Request) -> Response:
        request_id = request_id_for(request)
        with bind_request_id(request_id):
            try:
                return await self._handle(request, request_id)
            except GatewayError as exc:
                LOGGER.info("Chat request rejected: %s", exc)
                return self._error_response(exc)
            except Exception:
                LOGGER.exception("Unhandled error while handling chat request")
                return self._error_response(InternalError())

    async def preflight(self, request: Request) -> Response:
        return Response(status_code=200, headers=self.cors_headers())

    async def aclose(self) -> None:
        """Release resources owned by the gateway (HTTP clients)."""
        closers, self._closers = self._closers, []
        for close in closers:
            await close()

    def cors_headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.allowed_origin,
            "Access-Control-Allow-Methods": _ALLOWED_METHODS,
            "Access-Control-Allow-Headers": _ALLOWED_HEADERS,
        }

    # ------------------------------------------------------------------
    # Sequence
    # ------------------------------------------------------------------
    async def _handle(self, request: Request, request_id: str) -> Response:
        identity = await self.authorizer.authorize(request)
        if not identity:
            raise AuthError()

        decision = await self.limiter.check_limit(identity)
        if not decision.allowed:
            raise RateLimitError(decision=decision, now_ms=self._clock())

        payload = await self._parse_body(request)
        messages = self.adapter.build(payload["messages"])
        LOGGER.info("Chat request from %s with %d message(s)", identity, len(messages) - 1)

        events = await self._open_runtime(messages)
        translator = StreamTranslator(self.registry.category_for)

        async def body() -> AsyncIterator[bytes]:
            with bind_request_id(request_id):
                async for event in translator.translate(events):
                    yield encode_sse(event)

        headers = {
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
        }
        headers.update(self.cors_headers())
        return StreamingResponse(body(), media_type="text/event-stream", headers=headers)

    async def _parse_body(self, request: Request) -> dict[str, Any]:
        raw = await request.body()
        try:
            payload = json.loads(raw or b"null")
        except ValueError as exc:
            raise ValidationError(details=[{"path": "", "message": f"Malformed JSON body: {exc}"}]) from exc
        errors = sorted(_REQUEST_VALIDATOR.iter_errors(payload), key=lambda err: [str(p) for p in err.absolute_path])
        if errors:
            raise ValidationError(
                details=[
                    {"path": ".".join(str(part) for part in err.absolute_path), "message": err.message}
                    for err in errors
                ]
            )
        return payload

    async def _open_runtime(self, messages: list[dict[str, str]]) -> AsyncIterator[RuntimeEvent]:
        """Start the runtime and wait for its first event so open failures surface as 500."""
        stream = self.runtime.stream(messages, self.registry)
        try:
            first = await stream.__anext__()
        except StopAsyncIteration:
            return _replay(None, stream)
        except Exception as exc:
            await aclose_iterator(stream)
            LOGGER.error("Model runtime failed to start: %s", exc, exc_info=True)
            raise InternalError() from exc
        return _replay(first, stream)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------
    @staticmethod
    def _error_response(exc: GatewayError) -> Response:
        if isinstance(exc, ConversationError):
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        headers = exc.headers() if isinstance(exc, RateLimitError) else None
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


async def _replay(first: RuntimeEvent | None, rest: AsyncIterator[RuntimeEvent]) -> AsyncIterator[RuntimeEvent]:
    try:
        if first is not None:
            yield first
        async for event in rest:
            yield event
    finally:
        await aclose_iterator(rest)


def request_id_for(request: Request) -> str:
    """Caller-supplied ``X-Request-Id`` restricted to a safe charset, or a fresh id."""
    supplied = _REQUEST_ID_UNSAFE.sub("", request.headers.get("x-request-id", ""))
    return supplied[:_MAX_REQUEST_ID_LENGTH] or uuid.uuid4().hex[:12]
