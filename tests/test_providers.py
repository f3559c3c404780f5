"""Tests for the weather, OpenF1 and Alpha Vantage adapters."""

from __future__ import annotations

import httpx
import pytest

from kestrel.services.providers import DataProviders, ProviderError, ResponseCache


class _Recorder:
    """MockTransport handler that records requests and replies from a callable."""

    def __init__(self, reply):
        self._reply = reply
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._reply(request)


def _providers(reply, **kwargs) -> tuple[DataProviders, _Recorder]:
    recorder = _Recorder(reply)
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    options = {"openweather_api_key": "ow-key", "alphavantage_api_key": "av-key", **kwargs}
    return DataProviders(client=client, **options), recorder


_WEATHER_BODY = {
    "name": "Pune",
    "main": {"temp": 24.4, "humidity": 61},
    "weather": [{"description": "clear sky", "icon": "01d"}],
    "wind": {"speed": 2.5},
}


class TestWeather:
    """OpenWeather current conditions."""

    @pytest.mark.asyncio
    async def test_maps_response_to_metric_summary(self):
        providers, recorder = _providers(lambda request: httpx.Response(200, json=_WEATHER_BODY))

        payload = await providers.fetch_weather("Pune")

        assert payload == {
            "location": "Pune",
            "tempC": 24,
            "description": "clear sky",
            "icon": "01d",
            "humidity": 61,
            "windKph": 9,
        }
        params = recorder.requests[0].url.params
        assert params["q"] == "Pune"
        assert params["units"] == "metric"
        assert params["appid"] == "ow-key"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("temp", "expected"), [(22.5, 23), (-0.5, 0), (21.49, 21)])
    async def test_temperature_halves_round_up(self, temp, expected):
        body = {**_WEATHER_BODY, "main": {"temp": temp, "humidity": 50}}
        providers, _ = _providers(lambda request: httpx.Response(200, json=body))

        payload = await providers.fetch_weather("Pune")

        assert payload["tempC"] == expected

    @pytest.mark.asyncio
    async def test_repeat_lookup_is_served_from_cache(self):
        providers, recorder = _providers(lambda request: httpx.Response(200, json=_WEATHER_BODY))

        await providers.fetch_weather("Pune")
        await providers.fetch_weather("Pune")

        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "message"),
        [
            (404, 'Location "Nowhere" not found'),
            (401, "Invalid OpenWeather API key"),
            (503, "Weather API error: 503"),
        ],
    )
    async def test_error_statuses(self, status, message):
        providers, _ = _providers(lambda request: httpx.Response(status, json={}))

        with pytest.raises(ProviderError) as excinfo:
            await providers.fetch_weather("Nowhere")

        assert str(excinfo.value) == message

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_request(self):
        providers, recorder = _providers(lambda request: httpx.Response(200, json={}), openweather_api_key="")

        with pytest.raises(ProviderError, match="OpenWeather API key not configured"):
            await providers.fetch_weather("Pune")

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_provider_error(self):
        def reply(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        providers, _ = _providers(reply)

        with pytest.raises(ProviderError, match="Request to api.openweathermap.org failed"):
            await providers.fetch_weather("Pune")


class TestOpenF1:
    """OpenF1 queries."""

    @pytest.mark.asyncio
    async def test_none_parameters_are_dropped(self):
        providers, recorder = _providers(lambda request: httpx.Response(200, json=[{"driver_number": 44}]))

        data = await providers.fetch_f1_drivers({"driver_number": 44, "session_key": None})

        assert data == [{"driver_number": 44}]
        url = recorder.requests[0].url
        assert url.path == "/v1/drivers"
        assert dict(url.params) == {"driver_number": "44"}

    @pytest.mark.asyncio
    async def test_session_results_endpoint(self):
        providers, recorder = _providers(lambda request: httpx.Response(200, json=[]))

        await providers.fetch_f1_session_results({"session_key": "9158"})

        assert recorder.requests[0].url.path == "/v1/session_result"

    @pytest.mark.asyncio
    async def test_error_includes_status_and_reason(self):
        providers, _ = _providers(lambda request: httpx.Response(503))

        with pytest.raises(ProviderError) as excinfo:
            await providers.fetch_f1_sessions({"year": 2025})

        assert str(excinfo.value) == "OpenF1 API error: 503 - Service Unavailable"

    @pytest.mark.asyncio
    async def test_next_race_summarizes_first_session(self):
        session = {
            "session_name": "Practice 1",
            "circuit_short_name": "Sakhir",
            "country_code": "BRN",
            "date_start": "2025-02-26T07:00:00+00:00",
            "location": "Sakhir",
        }
        providers, recorder = _providers(lambda request: httpx.Response(200, json=[session]))

        summary = await providers.fetch_next_f1(year=2025)

        assert recorder.requests[0].url.params["year"] == "2025"
        assert summary["season"] == "2025"
        assert summary["raceName"] == "Practice 1"
        assert summary["circuit"] == "Sakhir"
        assert summary["country"] == "BRN"
        assert summary["raceDetails"] == {"session": session}

    @pytest.mark.asyncio
    async def test_next_race_without_sessions(self):
        providers, _ = _providers(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(ProviderError, match="No F1 sessions found for current year"):
            await providers.fetch_next_f1(year=2031)


class TestStocks:
    """Alpha Vantage GLOBAL_QUOTE lookups."""

    @pytest.mark.asyncio
    async def test_parses_global_quote(self):
        body = {
            "Global Quote": {
                "01. symbol": "AAPL",
                "05. price": "187.5000",
                "09. change": "-1.2500",
                "10. change percent": "-0.6623%",
            }
        }
        providers, recorder = _providers(lambda request: httpx.Response(200, json=body))

        quote = await providers.fetch_stock("AAPL")

        assert quote == {"symbol": "AAPL", "price": 187.5, "change": -1.25, "changePercent": -0.6623}
        assert recorder.requests[0].url.params["function"] == "GLOBAL_QUOTE"

    @pytest.mark.asyncio
    async def test_unparseable_change_is_none(self):
        body = {"Global Quote": {"01. symbol": "X", "05. price": "1.0", "09. change": "n/a"}}
        providers, _ = _providers(lambda request: httpx.Response(200, json=body))

        quote = await providers.fetch_stock("X")

        assert quote["change"] is None
        assert quote["changePercent"] is None

    @pytest.mark.asyncio
    async def test_unknown_symbol(self):
        providers, _ = _providers(lambda request: httpx.Response(200, json={"Global Quote": {}}))

        with pytest.raises(ProviderError, match='Stock symbol "ZZZZ" not found or no data available'):
            await providers.fetch_stock("ZZZZ")

    @pytest.mark.asyncio
    async def test_invalid_price(self):
        body = {"Global Quote": {"01. symbol": "X", "05. price": "NaN"}}
        providers, _ = _providers(lambda request: httpx.Response(200, json=body))

        with pytest.raises(ProviderError, match="Invalid stock price data received"):
            await providers.fetch_stock("X")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        providers, _ = _providers(lambda request: httpx.Response(500))

        with pytest.raises(ProviderError, match="Stock API error: 500"):
            await providers.fetch_stock("AAPL")

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        providers, _ = _providers(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(ProviderError, match="Malformed response from www.alphavantage.co"):
            await providers.fetch_stock("AAPL")


class TestResponseCache:
    """TTL and size bounds."""

    def test_entries_expire_after_ttl(self):
        now = [100.0]
        cache = ResponseCache(ttl_seconds=10, clock=lambda: now[0])
        cache.store("k", {"v": 1})

        assert cache.get("k") == {"v": 1}
        now[0] += 10
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_oldest_entry_is_evicted_when_full(self):
        now = [0.0]
        cache = ResponseCache(max_entries=2, clock=lambda: now[0])
        for key in ("a", "b", "c"):
            cache.store(key, key)
            now[0] += 1

        assert cache.get("a") is None
        assert cache.get("b") == "b" and cache.get("c") == "c"

    def test_key_is_independent_of_parameter_order(self):
        assert ResponseCache.key_for("u", {"b": 2, "a": 1}) == ResponseCache.key_for("u", {"a": 1, "b": 2}) == "u?a=1&b=2"
