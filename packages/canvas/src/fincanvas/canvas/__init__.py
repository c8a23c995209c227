"""Canvas presentation: skeleton policy, renderers, router and tabs."""

from fincanvas.canvas.renderers import (
    AnalysisRenderer,
    BreakdownTableRenderer,
    CanvasRenderer,
    CanvasView,
    EmptyCanvas,
    ErrorPanel,
    MonthlyBreakdownRenderer,
    NoDataPanel,
    Region,
    RenderOutput,
)
from fincanvas.canvas.router import RendererRegistry, RendererRouter, build_default_registry
from fincanvas.canvas.skeleton import (
    ready_regions,
    should_show_chart,
    should_show_metrics,
    should_show_summary,
)
from fincanvas.canvas.tabs import CanvasTabs, TabView, VersionOption, artifact_label, sort_types

__all__ = [
    # Skeleton policy
    "should_show_chart",
    "should_show_metrics",
    "should_show_summary",
    "ready_regions",
    # Renderers
    "CanvasRenderer",
    "AnalysisRenderer",
    "BreakdownTableRenderer",
    "MonthlyBreakdownRenderer",
    "CanvasView",
    "Region",
    "NoDataPanel",
    "ErrorPanel",
    "EmptyCanvas",
    "RenderOutput",
    # Router
    "RendererRegistry",
    "RendererRouter",
    "build_default_registry",
    # Tabs
    "CanvasTabs",
    "TabView",
    "VersionOption",
    "artifact_label",
    "sort_types",
]
