"""Caller identity resolution for inbound requests."""

from __future__ import annotations

import hmac
import logging
from typing import Mapping, Protocol, Sequence, runtime_checkable

from fastapi import Request

__all__ = [
    "Authorizer",
    "BearerTokenAuthorizer",
    "HeaderIdentityAuthorizer",
    "ChainAuthorizer",
    "build_authorizer",
]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class Authorizer(Protocol):
    """Resolves the identity behind a request, or ``None`` when unauthenticated."""

    async def authorize(self, request: Request) -> str | None:
        ...


class BearerTokenAuthorizer:
    """Maps ``Authorization: Bearer <token>`` to a configured identity."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    async def authorize(self, request: Request) -> str | None:
        auth_header = request.headers.get("authorization", "")
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        token = token.strip()
        for known, identity in self._tokens.items():
            if hmac.compare_digest(known.encode(), token.encode()):
                return identity
        LOGGER.info("Rejected unknown bearer token")
        return None


class HeaderIdentityAuthorizer:
    """Trusts an identity header set by an upstream proxy."""

    def __init__(self, header_name: str) -> None:
        if not header_name:
            raise ValueError("header_name is required")
        self.header_name = header_name

    async def authorize(self, request: Request) -> str | None:
        value = request.headers.get(self.header_name, "").strip()
        return value or None


class ChainAuthorizer:
    """Tries each authorizer in order; the first identity found wins."""

    def __init__(self, authorizers: Sequence[Authorizer]) -> None:
        self._authorizers = list(authorizers)

    async def authorize(self, request: Request) -> str | None:
        for authorizer in self._authorizers:
            identity = await authorizer.authorize(request)
            if identity:
                return identity
        return None


def build_authorizer(tokens: Mapping[str, str], identity_header: str = "") -> Authorizer:
    """Authorizer from settings; with nothing configured every request is rejected."""

    authorizers: list[Authorizer] = []
    if tokens:
        authorizers.append(BearerTokenAuthorizer(tokens))
    if identity_header:
        authorizers.append(HeaderIdentityAuthorizer(identity_header))
    if not authorizers:
        LOGGER.warning("No bearer tokens or identity header configured; all chat requests will be rejected")
    return ChainAuthorizer(authorizers)
