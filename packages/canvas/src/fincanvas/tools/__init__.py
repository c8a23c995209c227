"""Tools module: metrics client, staged analysis tools and their executor."""

from fincanvas.tools.analysis import (
    ANALYSIS_DEFINITIONS,
    BREAKDOWN_TOOL_NAME,
    AnalysisDefinition,
    AnalysisTools,
    ToolContext,
    describe_period,
    get_tool_date_defaults,
)
from fincanvas.tools.definitions import (
    ALL_TOOLS,
    ANALYSIS_TOOLS,
    GET_METRICS_BREAKDOWN_TOOL,
)
from fincanvas.tools.executor import ToolExecutionError, ToolExecutor
from fincanvas.tools.metrics_api import (
    AuthenticationError,
    MetricsAPIClient,
    MetricsAPIError,
    MetricsProvider,
    RateLimitError,
)
from fincanvas.tools.writer import ArtifactStream

__all__ = [
    # API Client
    "MetricsAPIClient",
    "MetricsAPIError",
    "MetricsProvider",
    "AuthenticationError",
    "RateLimitError",
    # Analysis
    "ANALYSIS_DEFINITIONS",
    "BREAKDOWN_TOOL_NAME",
    "AnalysisDefinition",
    "AnalysisTools",
    "ToolContext",
    "describe_period",
    "get_tool_date_defaults",
    "ArtifactStream",
    # Tool Definitions
    "ANALYSIS_TOOLS",
    "GET_METRICS_BREAKDOWN_TOOL",
    "ALL_TOOLS",
    # Tool Executor
    "ToolExecutor",
    "ToolExecutionError",
]
