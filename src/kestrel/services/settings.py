"""Gateway settings and their loading rules (file, CLI overrides, environment)."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

__all__ = [
    "Settings",
    "SettingsStore",
    "parse_auth_tokens",
    "redact_secret",
    "redacted_settings",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".kestrel"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_PATH_ENV = "KESTREL_SETTINGS_PATH"
_ENV_OVERRIDES: Mapping[str, str] = {
    "KESTREL_API_KEY": "api_key",
    "KESTREL_BASE_URL": "base_url",
    "KESTREL_MODEL": "model",
    "OPENWEATHER_API_KEY": "openweather_api_key",
    "ALPHAVANTAGE_API_KEY": "alphavantage_api_key",
    "KESTREL_IDENTITY_HEADER": "identity_header",
    "KESTREL_ALLOWED_ORIGIN": "allowed_origin",
    "KESTREL_HOST": "host",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "KESTREL_DEBUG_LOGGING": "debug_logging",
    "KESTREL_LOG_TOOL_PAYLOADS": "log_tool_payloads",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "KESTREL_TOOL_TIMEOUT": "tool_timeout",
    "KESTREL_REQUEST_TIMEOUT": "request_timeout",
    "KESTREL_TEMPERATURE": "temperature",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "KESTREL_RATE_LIMIT": "rate_limit",
    "KESTREL_RATE_WINDOW_MS": "rate_window_ms",
    "KESTREL_RATE_MAX_IDENTITIES": "rate_max_identities",
    "KESTREL_MAX_TOOL_ITERATIONS": "max_tool_iterations",
    "KESTREL_PORT": "port",
}
_AUTH_TOKENS_ENV = "KESTREL_AUTH_TOKENS"
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_SECRET_FIELDS = ("api_key", "openweather_api_key", "alphavantage_api_key")


@dataclass(slots=True)
class Settings:
    """User-configurable gateway settings."""

    # Model runtime
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    request_timeout: float = 90.0
    max_retries: int = 3
    max_tool_iterations: int = 8

    # Data providers
    openweather_api_key: str = ""
    alphavantage_api_key: str = ""

    # Admission control
    rate_limit: int = 10
    rate_window_ms: int = 60_000
    rate_max_identities: int = 10_000

    # Tools
    tool_timeout: float = 30.0
    log_tool_payloads: bool = False

    # HTTP surface
    auth_tokens: dict[str, str] = field(default_factory=dict)
    identity_header: str = ""
    allowed_origin: str = "*"
    host: str = "127.0.0.1"
    port: int = 8000

    debug_logging: bool = False


class SettingsStore:
    """Loads :class:`Settings` from an optional JSON file plus overrides."""

    def __init__(self, path: Path | None = None) -> None:
        env_path = os.environ.get(_SETTINGS_PATH_ENV)
        self._path = Path(path or env_path or _DEFAULT_SETTINGS_PATH).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides.

        Environment variables win over CLI overrides, which win over the file.
        """

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            if "auth_tokens" in data:
                data["auth_tokens"] = parse_auth_tokens(data["auth_tokens"])
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            LOGGER.debug("Settings loaded from %s", self._path)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        settings = self._apply_env_overrides(settings)
        return settings

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with an atomic replace."""

        body = json.dumps(asdict(settings), indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain a JSON object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if "auth_tokens" in filtered:
            filtered["auth_tokens"] = parse_auth_tokens(filtered["auth_tokens"])
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        tokens = os.environ.get(_AUTH_TOKENS_ENV)
        if tokens is not None:
            overrides["auth_tokens"] = tokens
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def parse_auth_tokens(value: Any) -> dict[str, str]:
    """Accept ``{"token": "identity"}`` or ``"token=identity,token2=identity2"``."""

    if isinstance(value, Mapping):
        return {str(token): str(identity) for token, identity in value.items() if token and identity}
    result: dict[str, str] = {}
    for chunk in str(value or "").split(","):
        token, sep, identity = chunk.strip().partition("=")
        if not sep or not token.strip() or not identity.strip():
            if chunk.strip():
                LOGGER.warning("Ignoring malformed auth token entry (expected token=identity)")
            continue
        result[token.strip()] = identity.strip()
    return result


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"


def redacted_settings(settings: Settings) -> dict[str, Any]:
    """Settings as a dict with every secret masked."""

    payload = asdict(settings)
    for name in _SECRET_FIELDS:
        payload[name] = redact_secret(payload.get(name) or "")
    payload["auth_tokens"] = {
        redact_secret(token): identity for token, identity in (settings.auth_tokens or {}).items()
    }
    return payload
