"""Gateway services: settings, admission control, identity and data providers."""

from .auth import Authorizer, BearerTokenAuthorizer, HeaderIdentityAuthorizer, build_authorizer
from .providers import DataProviders, ProviderError, ResponseCache
from .rate_limit import RateLimitDecision, RateLimiter
from .settings import Settings, SettingsStore

__all__ = [
    "Authorizer",
    "BearerTokenAuthorizer",
    "HeaderIdentityAuthorizer",
    "build_authorizer",
    "DataProviders",
    "ProviderError",
    "ResponseCache",
    "RateLimitDecision",
    "RateLimiter",
    "Settings",
    "SettingsStore",
]
