"""Built-in tool declarations backed by :class:`~kestrel.services.providers.DataProviders`."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ...services.providers import DataProviders
from .registry import ToolRegistry
from .types import OutputCategory, ToolSpec

__all__ = [
    "WEATHER_SPEC",
    "F1_MATCHES_SPEC",
    "F1_DRIVERS_SPEC",
    "F1_SESSIONS_SPEC",
    "F1_SESSION_RESULTS_SPEC",
    "STOCK_PRICE_SPEC",
    "BUILTIN_SPECS",
    "register_builtin_tools",
]

LOGGER = logging.getLogger(__name__)


def _string(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def _integer(description: str) -> dict[str, Any]:
    return {"type": "integer", "description": description}


def _object(properties: Mapping[str, Any], required: tuple[str, ...] = ()) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": "object",
        "properties": dict(properties),
        "additionalProperties": False,
    }
    if required:
        schema["required"] = list(required)
    return schema


WEATHER_SPEC = ToolSpec(
    name="getWeather",
    description=(
        "CRITICAL: You MUST use this tool for ANY weather-related questions, including temperature, "
        "humidity, wind, conditions or any location-specific weather information. "
        "NEVER respond about weather without using this tool first."
    ),
    category=OutputCategory.WEATHER,
    parameters=_object(
        {"location": _string('City name, coordinates, or location identifier (e.g., "Pune", "London", "New York")')},
        required=("location",),
    ),
)

F1_MATCHES_SPEC = ToolSpec(
    name="getF1Matches",
    description=(
        "CRITICAL: You MUST use this tool for ANY general Formula 1 question (races, Grand Prix, schedule). "
        "Provides basic F1 data including upcoming races and current season information."
    ),
    category=OutputCategory.MOTORSPORT,
    parameters=_object(
        {
            "type": {
                "type": "string",
                "enum": ["races", "season", "all"],
                "description": 'Type of F1 data to fetch. Defaults to "all".',
            }
        }
    ),
)

F1_DRIVERS_SPEC = ToolSpec(
    name="getF1Drivers",
    description=(
        "Fetch F1 driver information including driver number, team, country and personal details, "
        "for specific drivers or all drivers in a session."
    ),
    category=OutputCategory.MOTORSPORT,
    parameters=_object(
        {
            "driver_number": _integer("Driver number (e.g., 44 for Hamilton, 1 for Verstappen)"),
            "session_key": _string("Session key to get drivers for a specific session"),
            "meeting_key": _string("Meeting key to get drivers for a specific race weekend"),
            "team_name": _string('Team name to filter drivers (e.g., "Red Bull Racing", "Mercedes")'),
            "country_code": _string('Country code to filter drivers (e.g., "GBR", "NED")'),
        }
    ),
)

F1_SESSIONS_SPEC = ToolSpec(
    name="getF1Sessions",
    description=(
        "Fetch F1 session information including practice, qualifying and race sessions. "
        "Use it for race schedules, session details and calendar information."
    ),
    category=OutputCategory.MOTORSPORT,
    parameters=_object(
        {
            "year": _integer("Year to filter sessions (e.g., 2025, 2024, 2023)"),
            "meeting_key": _string("Meeting key to filter sessions for a specific race weekend"),
            "session_name": _string('Session name (e.g., "Practice 1", "Qualifying", "Race", "Sprint")'),
            "session_type": _string('Session type (e.g., "Practice", "Qualifying", "Race")'),
            "country_name": _string('Country name to filter sessions (e.g., "Belgium", "China")'),
            "country_code": _string('Country code to filter sessions (e.g., "BEL", "CHN")'),
            "date_start": _string("Start date for time range filtering (YYYY-MM-DD)"),
            "date_end": _string("End date for time range filtering (YYYY-MM-DD)"),
        }
    ),
)

F1_SESSION_RESULTS_SPEC = ToolSpec(
    name="getF1SessionResults",
    description=(
        "Fetch F1 session results including race positions and driver performance. "
        "Requires a session_key; resolve it with getF1Sessions first."
    ),
    category=OutputCategory.MOTORSPORT,
    parameters=_object(
        {
            "session_key": _string("Session key (required); get this from getF1Sessions first"),
            "position": _integer("Filter by finishing position (e.g., 1 for the winner)"),
            "driver_number": _integer("Driver number to filter results for a specific driver"),
            "meeting_key": _string("Meeting key to filter results for a specific race weekend"),
        },
        required=("session_key",),
    ),
)

STOCK_PRICE_SPEC = ToolSpec(
    name="getStockPrice",
    description=(
        "CRITICAL: You MUST use this tool for ANY stock-related question, including prices, market data "
        "or company stocks. NEVER respond about stocks without using this tool first."
    ),
    category=OutputCategory.FINANCIAL,
    parameters=_object(
        {"symbol": _string("Stock symbol (e.g., AAPL, GOOGL, MSFT, TSLA)")},
        required=("symbol",),
    ),
)

BUILTIN_SPECS: tuple[ToolSpec, ...] = (
    WEATHER_SPEC,
    F1_MATCHES_SPEC,
    F1_DRIVERS_SPEC,
    F1_SESSIONS_SPEC,
    F1_SESSION_RESULTS_SPEC,
    STOCK_PRICE_SPEC,
)


def register_builtin_tools(registry: ToolRegistry, providers: DataProviders) -> ToolRegistry:
    """Declare the six built-in tools on ``registry`` and return it."""

    async def get_weather(args: Mapping[str, Any]) -> Any:
        return await providers.fetch_weather(args["location"])

    async def get_f1_matches(args: Mapping[str, Any]) -> Any:
        return await providers.fetch_next_f1()

    async def get_f1_drivers(args: Mapping[str, Any]) -> Any:
        params = dict(args)
        return {"type": "drivers", "data": await providers.fetch_f1_drivers(params), "params": params}

    async def get_f1_sessions(args: Mapping[str, Any]) -> Any:
        params = dict(args)
        return {"type": "sessions", "data": await providers.fetch_f1_sessions(params), "params": params}

    async def get_f1_session_results(args: Mapping[str, Any]) -> Any:
        params = dict(args)
        data = await providers.fetch_f1_session_results(params)
        return {"type": "session_results", "data": data, "params": params}

    async def get_stock_price(args: Mapping[str, Any]) -> Any:
        return await providers.fetch_stock(args["symbol"])

    registry.declare(WEATHER_SPEC, get_weather)
    registry.declare(F1_MATCHES_SPEC, get_f1_matches)
    registry.declare(F1_DRIVERS_SPEC, get_f1_drivers)
    registry.declare(F1_SESSIONS_SPEC, get_f1_sessions)
    registry.declare(F1_SESSION_RESULTS_SPEC, get_f1_session_results)
    registry.declare(STOCK_PRICE_SPEC, get_stock_price)
    LOGGER.debug("Registered %s built-in tools", len(BUILTIN_SPECS))
    return registry
