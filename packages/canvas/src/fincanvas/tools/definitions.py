"""Tool definitions for LLM function calling.

These schemas define the analysis tools available to the assistant. Each tool
maps to one metrics endpoint and, with ``show_canvas``, to one or more canvas
artifacts.
"""

from typing import Any

from fincanvas.tools.analysis import ANALYSIS_DEFINITIONS, BREAKDOWN_TOOL_NAME

_PERIOD_PROPERTIES: dict[str, Any] = {
    "from_date": {
        "type": "string",
        "format": "date",
        "description": "Start date (YYYY-MM-DD). Defaults to the start of the fiscal year.",
    },
    "to_date": {
        "type": "string",
        "format": "date",
        "description": "End date (YYYY-MM-DD). Defaults to today.",
    },
    "currency": {
        "type": "string",
        "description": "Currency code (ISO 4217, e.g. 'USD'). Defaults to the team's base currency.",
    },
}


def _analysis_tool(name: str, description: str) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "input_schema": {
            "type": "object",
            "properties": {
                **_PERIOD_PROPERTIES,
                "show_canvas": {
                    "type": "boolean",
                    "description": "Show visual analytics on the canvas",
                    "default": False,
                },
            },
            "required": [],
        },
    }


# === Analysis Tools ===

ANALYSIS_TOOLS: list[dict[str, Any]] = [
    _analysis_tool(definition.tool_name, definition.description)
    for definition in ANALYSIS_DEFINITIONS
]

# === Breakdown ===

GET_METRICS_BREAKDOWN_TOOL: dict[str, Any] = {
    "name": BREAKDOWN_TOOL_NAME,
    "description": (
        "Get a comprehensive breakdown of financial metrics for a period: revenue, "
        "expenses, profit, transactions, invoices, categories and top vendors and "
        "customers. Always use this tool when the user asks for a 'breakdown'."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            **_PERIOD_PROPERTIES,
            "chart_type": {
                "type": "string",
                "description": "Type of chart that triggered this breakdown",
            },
            "show_canvas": {
                "type": "boolean",
                "description": "Show visual analytics on the canvas",
                "default": True,
            },
        },
        "required": [],
    },
}

# All available tools
ALL_TOOLS: list[dict[str, Any]] = [*ANALYSIS_TOOLS, GET_METRICS_BREAKDOWN_TOOL]
