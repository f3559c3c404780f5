"""HTTP surface: the chat gateway and its ASGI application."""

from .api import build_gateway, create_app
from .gateway import ChatGateway

__all__ = ["ChatGateway", "build_gateway", "create_app"]
