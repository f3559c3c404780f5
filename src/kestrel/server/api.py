"""FastAPI application wiring."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.responses import Response

from .. import __version__
from ..ai.client import AIClient, ClientSettings
from ..ai.orchestration.conversation import ConversationAdapter
from ..ai.orchestration.runtime import ModelRuntime, ToolLoopRuntime
from ..ai.tools.catalog import register_builtin_tools
from ..ai.tools.registry import ToolRegistry
from ..services.auth import Authorizer, build_authorizer
from ..services.providers import DataProviders
from ..services.rate_limit import RateLimiter
from ..services.settings import Settings
from .gateway import ChatGateway

__all__ = ["create_app", "build_gateway", "client_settings_from"]

LOGGER = logging.getLogger(__name__)


def client_settings_from(settings: Settings) -> ClientSettings:
    return ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        request_timeout=settings.request_timeout,
        temperature=settings.temperature,
        max_retries=settings.max_retries,
        debug_logging=settings.debug_logging,
    )


def build_gateway(
    settings: Settings,
    *,
    runtime: ModelRuntime | None = None,
    registry: ToolRegistry | None = None,
    authorizer: Authorizer | None = None,
    limiter: RateLimiter | None = None,
    providers: DataProviders | None = None,
) -> ChatGateway:
    """Assemble a gateway from settings; any collaborator may be supplied directly."""

    closers: list[Callable[[], Awaitable[None]]] = []
    if registry is None:
        registry = ToolRegistry(tool_timeout=settings.tool_timeout, log_payloads=settings.log_tool_payloads)
        if providers is None:
            providers = DataProviders(
                openweather_api_key=settings.openweather_api_key,
                alphavantage_api_key=settings.alphavantage_api_key,
            )
            closers.append(providers.aclose)
        register_builtin_tools(registry, providers)
    if runtime is None:
        client = AIClient(client_settings_from(settings))
        closers.append(client.aclose)
        runtime = ToolLoopRuntime(client, max_tool_iterations=settings.max_tool_iterations)
    return ChatGateway(
        authorizer=authorizer or build_authorizer(settings.auth_tokens, settings.identity_header),
        limiter=limiter
        or RateLimiter(
            settings.rate_limit,
            settings.rate_window_ms,
            max_identities=settings.rate_max_identities,
        ),
        registry=registry,
        adapter=ConversationAdapter(registry.list_declarations()),
        runtime=runtime,
        allowed_origin=settings.allowed_origin,
        closers=closers,
    )


def create_app(settings: Settings | None = None, *, gateway: ChatGateway | None = None) -> FastAPI:
    """Create the ASGI application serving ``/api/chat``."""

    settings = settings or Settings()
    gateway = gateway or build_gateway(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        LOGGER.info("Kestrel gateway %s ready (%d tool(s))", __version__, len(gateway.registry))
        yield
        await gateway.aclose()
        LOGGER.info("Kestrel gateway stopped")

    app = FastAPI(title="Kestrel Chat Gateway", version=__version__, lifespan=lifespan)
    app.state.gateway = gateway
    app.state.settings = settings

    @app.post("/api/chat")
    async def chat(request: Request) -> Response:
        return await gateway.handle(request)

    @app.options("/api/chat")
    async def chat_preflight(request: Request) -> Response:
        return await gateway.preflight(request)

    @app.get("/healthz")
    def healthz() -> dict[str, bool]:
        return {"ok": True}

    return app

