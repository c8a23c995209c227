"""Canvas renderers.

A renderer turns an artifact's stage and payload into a view model the
frontend paints. Charts are described as data; drawing them is the
frontend's job. Renderers decide per region whether to show data or a
placeholder, and fall back to a NoDataPanel when the payload does not have
the shape its stage promises.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog

from fincanvas.artifacts.payloads import (
    AnalysisReadyPayload,
    ChartReadyPayload,
    MalformedPayloadError,
    MetricsReadyPayload,
    payload_for_stage,
)
from fincanvas.artifacts.stages import Stage
from fincanvas.artifacts.types import month_of
from fincanvas.canvas.skeleton import (
    should_show_chart,
    should_show_metrics,
    should_show_summary,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Region:
    """One area of the canvas. ``data`` is None while it is a placeholder."""

    name: str
    ready: bool
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "ready": self.ready, "data": self.data}


@dataclass(frozen=True)
class CanvasView:
    artifact_type: str
    title: str
    stage: Stage
    regions: tuple[Region, ...]
    description: str | None = None
    stalled: bool = False
    kind: str = field(default="canvas", init=False)

    def region(self, name: str) -> Region | None:
        for region in self.regions:
            if region.name == name:
                return region
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "artifact_type": self.artifact_type,
            "title": self.title,
            "stage": self.stage.value,
            "description": self.description,
            "stalled": self.stalled,
            "regions": [region.to_dict() for region in self.regions],
        }


@dataclass(frozen=True)
class NoDataPanel:
    """The renderer could not interpret the payload."""

    artifact_type: str
    message: str = "No data available for this period."
    kind: str = field(default="no_data", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "artifact_type": self.artifact_type, "message": self.message}


@dataclass(frozen=True)
class ErrorPanel:
    """Generic failure panel shown in place of a renderer that raised."""

    artifact_type: str
    message: str = "Something went wrong while displaying this analysis."
    action: str = "go_back"
    kind: str = field(default="error", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "artifact_type": self.artifact_type,
            "message": self.message,
            "action": self.action,
        }


@dataclass(frozen=True)
class EmptyCanvas:
    """Nothing to show, e.g. an artifact type this UI does not know yet."""

    artifact_type: str | None = None
    kind: str = field(default="empty", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "artifact_type": self.artifact_type}


RenderOutput = CanvasView | NoDataPanel | ErrorPanel | EmptyCanvas


class CanvasRenderer(ABC):
    """Base class for canvas renderers."""

    def __init__(self, title: str):
        self.title = title

    @abstractmethod
    def render(
        self, artifact_type: str, stage: Stage, payload: Mapping[str, Any]
    ) -> RenderOutput:
        """Build the view model for one artifact snapshot."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(title={self.title!r})"


class AnalysisRenderer(CanvasRenderer):
    """Chart, metrics grid and summary text, filled in stage by stage."""

    def __init__(self, title: str, has_chart: bool = True):
        super().__init__(title)
        self.has_chart = has_chart

    def render(
        self, artifact_type: str, stage: Stage, payload: Mapping[str, Any]
    ) -> RenderOutput:
        try:
            typed = payload_for_stage(stage, payload, has_chart=self.has_chart)
        except MalformedPayloadError as e:
            logger.info("malformed_payload", artifact_type=artifact_type, error=str(e))
            return NoDataPanel(artifact_type=artifact_type)

        regions: list[Region] = []
        if self.has_chart:
            show = should_show_chart(stage) and isinstance(typed, ChartReadyPayload)
            regions.append(
                Region("chart", show, self._chart_data(typed) if show else None)
            )

        show_metrics = should_show_metrics(stage) and isinstance(typed, MetricsReadyPayload)
        regions.append(
            Region(
                "metrics",
                show_metrics,
                dict(typed.metrics) if isinstance(typed, MetricsReadyPayload) and show_metrics else None,
            )
        )

        show_summary = should_show_summary(stage) and isinstance(typed, AnalysisReadyPayload)
        regions.append(
            Region(
                "summary",
                show_summary,
                typed.summary if isinstance(typed, AnalysisReadyPayload) and show_summary else None,
            )
        )

        return CanvasView(
            artifact_type=artifact_type,
            title=self.title_for(artifact_type, typed.display_date),
            stage=stage,
            regions=tuple(regions),
            description=typed.description,
        )

    def title_for(self, artifact_type: str, display_date: str | None) -> str:
        return self.title

    def _chart_data(self, typed: Any) -> dict[str, Any]:
        return dict(typed.chart)


class BreakdownTableRenderer(CanvasRenderer):
    """Metrics-only breakdowns (transactions, vendors, ...) shown as a table.

    These types skip chart_ready and finish at metrics_ready.
    """

    def render(
        self, artifact_type: str, stage: Stage, payload: Mapping[str, Any]
    ) -> RenderOutput:
        try:
            typed = payload_for_stage(stage, payload, has_chart=False)
        except MalformedPayloadError as e:
            logger.info("malformed_payload", artifact_type=artifact_type, error=str(e))
            return NoDataPanel(artifact_type=artifact_type)

        rows: list[Any] | None = None
        if should_show_metrics(stage) and isinstance(typed, MetricsReadyPayload):
            raw_rows = typed.metrics.get("rows", [])
            if not isinstance(raw_rows, list):
                return NoDataPanel(artifact_type=artifact_type)
            rows = raw_rows

        return CanvasView(
            artifact_type=artifact_type,
            title=self.title,
            stage=stage,
            regions=(Region("table", rows is not None, rows),),
            description=typed.description,
        )


class MonthlyBreakdownRenderer(AnalysisRenderer):
    """Shared renderer for the ``breakdown-summary-canvas-YYYY-MM`` family."""

    def title_for(self, artifact_type: str, display_date: str | None) -> str:
        label = format_month_label(artifact_type, display_date)
        return f"{self.title} - {label}" if label else self.title


def format_month_label(artifact_type: str, display_date: str | None = None) -> str | None:
    """Format "Mar 2024" from a display date or the month embedded in the type."""
    if display_date:
        try:
            return date.fromisoformat(display_date[:10]).strftime("%b %Y")
        except ValueError:
            pass
    parsed = month_of(artifact_type)
    if parsed is None:
        return None
    year, month = parsed
    return date(year, month, 1).strftime("%b %Y")
