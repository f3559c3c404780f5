"""HTTP adapters for the third-party data sources backing the built-in tools."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, Mapping

import httpx

__all__ = [
    "ProviderError",
    "ResponseCache",
    "DataProviders",
    "OPENWEATHER_URL",
    "OPENF1_BASE_URL",
    "ALPHAVANTAGE_URL",
]

LOGGER = logging.getLogger(__name__)

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
OPENF1_BASE_URL = "https://api.openf1.org/v1"
ALPHAVANTAGE_URL = "https://www.alphavantage.co/query"
DEFAULT_CACHE_TTL = 300.0


class ProviderError(RuntimeError):
    """A data provider request failed; the message is safe to show to the model."""


# ---------------------------------------------------------------------------
# Response cache
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _CacheEntry:
    payload: Any
    created_at: float


class ResponseCache:
    """In-memory TTL cache of decoded provider responses keyed by request."""

    def __init__(
        self,
        *,
        ttl_seconds: float | None = DEFAULT_CACHE_TTL,
        max_entries: int = 256,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._ttl_seconds = None if ttl_seconds is None else max(0.0, float(ttl_seconds))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock or time.monotonic
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = RLock()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key_for(url: str, params: Mapping[str, Any] | None = None) -> str:
        if not params:
            return url
        query = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return f"{url}?{query}"

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._ttl_seconds is not None and now - entry.created_at >= self._ttl_seconds:
                self._entries.pop(key, None)
                return None
            return entry.payload

    def store(self, key: str, payload: Any) -> None:
        with self._lock:
            self._entries[key] = _CacheEntry(payload=payload, created_at=self._clock())
            while len(self._entries) > self._max_entries:
                oldest = min(self._entries, key=lambda item: self._entries[item].created_at)
                self._entries.pop(oldest, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class DataProviders:
    """Weather, Formula 1 and stock-quote lookups over a shared ``httpx`` client."""

    def __init__(
        self,
        *,
        openweather_api_key: str = "",
        alphavantage_api_key: str = "",
        client: httpx.AsyncClient | None = None,
        cache: ResponseCache | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.openweather_api_key = openweather_api_key
        self.alphavantage_api_key = alphavantage_api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self.cache = cache or ResponseCache()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Weather
    # ------------------------------------------------------------------
    async def fetch_weather(self, location: str) -> dict[str, Any]:
        """Current conditions for ``location`` in metric units."""

        if not self.openweather_api_key:
            raise ProviderError("OpenWeather API key not configured")
        params = {"q": location, "appid": self.openweather_api_key, "units": "metric"}
        key = self.cache.key_for(OPENWEATHER_URL, params)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        response = await self._get(OPENWEATHER_URL, params)
        if response.status_code == 404:
            raise ProviderError(f'Location "{location}" not found')
        if response.status_code == 401:
            raise ProviderError("Invalid OpenWeather API key")
        if response.is_error:
            raise ProviderError(f"Weather API error: {response.status_code}")

        data = self._decode(response)
        main = data.get("main") or {}
        conditions = (data.get("weather") or [{}])[0] or {}
        wind = data.get("wind") or {}
        payload = {
            "location": data.get("name", location),
            "tempC": _round_half_up(float(main.get("temp", 0.0))),
            "description": conditions.get("description") or "Unknown",
            "icon": conditions.get("icon") or "unknown",
            "humidity": main.get("humidity"),
            "windKph": _round_half_up(float(wind.get("speed", 0.0)) * 3.6),
        }
        self.cache.store(key, payload)
        return payload

    # ------------------------------------------------------------------
    # Formula 1 (OpenF1)
    # ------------------------------------------------------------------
    async def fetch_openf1(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        """Raw OpenF1 query; ``None`` parameters are dropped."""

        url = f"{OPENF1_BASE_URL}/{endpoint}"
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}
        key = self.cache.key_for(url, query)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        response = await self._get(url, query)
        if response.is_error:
            LOGGER.warning("OpenF1 request to %s failed with status %s", endpoint, response.status_code)
            raise ProviderError(f"OpenF1 API error: {response.status_code} - {response.reason_phrase}")
        data = self._decode(response)
        self.cache.store(key, data)
        return data

    async def fetch_f1_drivers(self, params: Mapping[str, Any] | None = None) -> Any:
        return await self.fetch_openf1("drivers", params)

    async def fetch_f1_sessions(self, params: Mapping[str, Any] | None = None) -> Any:
        return await self.fetch_openf1("sessions", params)

    async def fetch_f1_session_results(self, params: Mapping[str, Any]) -> Any:
        return await self.fetch_openf1("session_result", params)

    async def fetch_next_f1(self, *, year: int | None = None) -> dict[str, Any]:
        """Summarize the first listed session of ``year`` (default: current year)."""

        season = year or datetime.now(timezone.utc).year
        sessions = await self.fetch_f1_sessions({"year": season})
        if not sessions:
            raise ProviderError("No F1 sessions found for current year")
        session = sessions[0]
        return {
            "season": str(season),
            "round": 1,
            "raceName": session.get("session_name") or "Unknown Session",
            "circuit": session.get("circuit_short_name") or "Unknown Circuit",
            "country": session.get("country_code") or "Unknown Country",
            "date": session.get("date_start") or "Unknown Date",
            "time": session.get("date_start"),
            "location": session.get("location") or "Unknown Location",
            "driverStandings": None,
            "constructorStandings": None,
            "raceDetails": {"session": session},
        }

    # ------------------------------------------------------------------
    # Stocks (Alpha Vantage)
    # ------------------------------------------------------------------
    async def fetch_stock(self, symbol: str) -> dict[str, Any]:
        """Latest GLOBAL_QUOTE for ``symbol``."""

        if not self.alphavantage_api_key:
            raise ProviderError("Alpha Vantage API key not configured")
        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.alphavantage_api_key}
        key = self.cache.key_for(ALPHAVANTAGE_URL, params)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        response = await self._get(ALPHAVANTAGE_URL, params)
        if response.is_error:
            raise ProviderError(f"Stock API error: {response.status_code}")

        quote = self._decode(response).get("Global Quote") or {}
        if not quote:
            raise ProviderError(f'Stock symbol "{symbol}" not found or no data available')
        price = _parse_number(quote.get("05. price"))
        if price is None:
            raise ProviderError("Invalid stock price data received")
        payload = {
            "symbol": quote.get("01. symbol", symbol),
            "price": price,
            "change": _parse_number(quote.get("09. change")),
            "changePercent": _parse_number(str(quote.get("10. change percent") or "").replace("%", "")),
        }
        self.cache.store(key, payload)
        return payload

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _get(self, url: str, params: Mapping[str, Any]) -> httpx.Response:
        try:
            return await self._client.get(url, params=dict(params))
        except httpx.HTTPError as exc:
            raise ProviderError(f"Request to {httpx.URL(url).host} failed: {exc}") from exc

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"Malformed response from {response.url.host}") from exc


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _parse_number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number
