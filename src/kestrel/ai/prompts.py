"""System instruction prepended to every conversation.

The instruction is assembled from sections so the tool list stays in step
with whatever is actually declared in the registry.
"""

from __future__ import annotations

from typing import Iterable

from .tools.types import ToolSpec

_SUMMARIES = {
    "getWeather": "For weather information (temperature, humidity, wind, conditions)",
    "getF1Matches": "For general Formula 1 information and upcoming races",
    "getF1Drivers": "For F1 driver information (driver number, team, country, etc.)",
    "getF1Sessions": "For F1 session information (practice, qualifying, race sessions)",
    "getF1SessionResults": "For F1 session results and race positions",
    "getStockPrice": "For current stock prices and market data",
}


def system_instruction(specs: Iterable[ToolSpec] | None = None) -> str:
    """Build the fixed system instruction for the given tool declarations."""
    return f"""{_rules_section()}

Available tools:
{_tools_section(specs)}

**Core F1 Tools:**
{_core_motorsport_section()}

**Tool Chaining Examples:**
{_chaining_section()}

For F1 questions:
{_motorsport_section()}

{_closing_section()}"""


def _rules_section() -> str:
    return """You are a helpful AI assistant with access to real-time tools. You MUST follow these rules:

1. ALWAYS use tools when asked about weather, F1 races, or stock prices
2. NEVER respond to these topics without using the appropriate tool first
3. After using a tool, provide a helpful, conversational response based on the tool results
4. Ask follow-up questions to engage the user and provide more value
5. Be conversational, friendly, and helpful"""


def _tools_section(specs: Iterable[ToolSpec] | None) -> str:
    if specs is None:
        names = list(_SUMMARIES)
        return "\n".join(f"- {name}: {_SUMMARIES[name]}" for name in names)
    lines = []
    for spec in specs:
        summary = _SUMMARIES.get(spec.name) or spec.description.split(". ")[0]
        lines.append(f"- {spec.name}: {summary}")
    return "\n".join(lines)


def _core_motorsport_section() -> str:
    return """- getF1Drivers: Get driver information by driver number, session key, team, or country
- getF1Sessions: Get session information by year, country, session type, or date range
- getF1SessionResults: Get race/qualifying results by session key, position, or driver number"""


def _chaining_section() -> str:
    return """- To get driver info and then their results: Use getF1Drivers first, then getF1SessionResults with the session_key
- To get session info and then results: Use getF1Sessions first, then getF1SessionResults with the session_key
- To get results and then driver details: Use getF1SessionResults first, then getF1Drivers with the driver_number

Example: If someone asks "What happened during the sprint race in China?", you should:
1. Use getF1Sessions to find the China sprint session
2. Use getF1SessionResults with the session_key to get the race results
3. Provide a comprehensive answer about the race"""


def _motorsport_section() -> str:
    return """- Use getF1Drivers for driver-specific queries
- Use getF1Sessions for session and calendar queries
- Use getF1SessionResults for race results and positions
- Chain tools together when you need multiple pieces of information
- Always provide engaging responses with the data and ask follow-up questions"""


def _closing_section() -> str:
    return (
        "The OpenF1 API provides real-time and historical F1 data! You can chain these tools together "
        "to get comprehensive information about any aspect of Formula 1 racing."
    )
