"""Staged analysis tools.

Each tool fetches a payload fragment from the metrics provider and, when the
caller asked for a canvas, streams it into the artifact store one stage at a
time: loading, chart_ready, metrics_ready, analysis_ready. Tools never touch
the conversation; the executor records their call and result.
"""

from calendar import monthrange
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog

from fincanvas.artifacts.stages import Stage
from fincanvas.artifacts.store import ArtifactStore
from fincanvas.artifacts.types import ArtifactType, monthly_breakdown_type
from fincanvas.config import get_settings
from fincanvas.tools.metrics_api import MetricsProvider
from fincanvas.tools.writer import ArtifactStream

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ToolContext:
    """Per-session values every tool reads."""

    team_id: str | None
    base_currency: str = "USD"
    fiscal_year_start_month: int = 1
    today: date | None = None

    @classmethod
    def from_settings(cls, team_id: str | None, today: date | None = None) -> "ToolContext":
        settings = get_settings()
        return cls(
            team_id=team_id,
            base_currency=settings.base_currency,
            fiscal_year_start_month=settings.fiscal_year_start_month,
            today=today,
        )


@dataclass(frozen=True)
class AnalysisDefinition:
    """Binds a tool name to its artifact type and metrics endpoint."""

    tool_name: str
    artifact_type: ArtifactType
    metric_kind: str
    title: str
    description: str = ""


ANALYSIS_DEFINITIONS: tuple[AnalysisDefinition, ...] = (
    AnalysisDefinition(
        "get_burn_rate",
        ArtifactType.BURN_RATE,
        "burn-rate",
        "burn rate",
        "Monthly cash burn over a period, with trend and average.",
    ),
    AnalysisDefinition(
        "get_cash_flow",
        ArtifactType.CASH_FLOW,
        "cash-flow",
        "cash flow",
        "Net cash flow over a period, split into inflows and outflows.",
    ),
    AnalysisDefinition(
        "get_revenue_summary",
        ArtifactType.REVENUE,
        "revenue",
        "revenue summary",
        "Revenue totals and monthly trend for a period.",
    ),
    AnalysisDefinition(
        "get_profit_analysis",
        ArtifactType.PROFIT_ANALYSIS,
        "profit-analysis",
        "profit analysis",
        "Profit, margins and the revenue/expense split for a period.",
    ),
    AnalysisDefinition(
        "get_tax_summary",
        ArtifactType.TAX_SUMMARY,
        "tax-summary",
        "tax summary",
        "Tax collected and paid for a period, grouped by tax type.",
    ),
    AnalysisDefinition(
        "get_growth_rate",
        ArtifactType.GROWTH_RATE,
        "growth-rate",
        "growth rate",
        "Period-over-period growth of revenue or profit.",
    ),
    AnalysisDefinition(
        "get_business_health_score",
        ArtifactType.HEALTH_REPORT,
        "business-health",
        "business health score",
        "Composite health score built from liquidity, profitability and growth.",
    ),
    AnalysisDefinition(
        "get_cash_flow_stress_test",
        ArtifactType.STRESS_TEST,
        "cash-flow-stress-test",
        "cash flow stress test",
        "Runway under base, pessimistic and optimistic revenue scenarios.",
    ),
    AnalysisDefinition(
        "get_runway",
        ArtifactType.RUNWAY,
        "runway",
        "runway",
        "Months of runway left at the current burn rate.",
    ),
    AnalysisDefinition(
        "get_spending",
        ArtifactType.SPENDING,
        "spending",
        "spending",
        "Spending by category and merchant for a period.",
    ),
)

BREAKDOWN_TOOL_NAME = "get_metrics_breakdown"

# Fragment key -> detail artifact type
BREAKDOWN_DETAILS: tuple[tuple[str, ArtifactType], ...] = (
    ("transactions", ArtifactType.BREAKDOWN_TRANSACTIONS),
    ("invoices", ArtifactType.BREAKDOWN_INVOICES),
    ("categories", ArtifactType.BREAKDOWN_CATEGORIES),
    ("vendors", ArtifactType.BREAKDOWN_VENDORS),
    ("customers", ArtifactType.BREAKDOWN_CUSTOMERS),
)


def get_tool_date_defaults(
    fiscal_year_start_month: int = 1, today: date | None = None
) -> tuple[str, str]:
    """Fiscal year to date, as ISO strings."""
    today = today or date.today()
    year = today.year if today.month >= fiscal_year_start_month else today.year - 1
    start = date(year, fiscal_year_start_month, 1)
    return start.isoformat(), today.isoformat()


def describe_period(from_date: str, to_date: str) -> str:
    """Human label for a period, e.g. "Jan 2024 - Mar 2024"."""
    start = date.fromisoformat(from_date[:10])
    end = date.fromisoformat(to_date[:10])
    start_label = start.strftime("%b %Y")
    end_label = end.strftime("%b %Y")
    if start_label == end_label:
        return start_label
    return f"{start_label} - {end_label}"


def month_bounds(year: int, month: int) -> tuple[str, str]:
    last_day = monthrange(year, month)[1]
    return date(year, month, 1).isoformat(), date(year, month, last_day).isoformat()


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list | tuple) else []


class AnalysisTools:
    """Tool implementations bound to one session's store and provider."""

    def __init__(
        self,
        store: ArtifactStore,
        provider: MetricsProvider,
        context: ToolContext,
    ):
        self._store = store
        self._provider = provider
        self._context = context
        self._logger = logger.bind(component="analysis_tools", team_id=context.team_id)

    @property
    def context(self) -> ToolContext:
        return self._context

    def _resolve_period(
        self, from_date: str | None, to_date: str | None
    ) -> tuple[str, str, str]:
        default_from, default_to = get_tool_date_defaults(
            self._context.fiscal_year_start_month, self._context.today
        )
        final_from = from_date or default_from
        final_to = to_date or default_to
        return final_from, final_to, describe_period(final_from, final_to)

    def _params(self, from_date: str, to_date: str, currency: str) -> dict[str, Any]:
        return {
            "team_id": self._context.team_id,
            "from": from_date,
            "to": to_date,
            "currency": currency,
        }

    async def run_analysis(
        self,
        definition: AnalysisDefinition,
        *,
        from_date: str | None = None,
        to_date: str | None = None,
        currency: str | None = None,
        show_canvas: bool = False,
        tool_call_id: str | None = None,
    ) -> dict[str, Any]:
        """Run one single-artifact analysis tool."""
        currency = currency or self._context.base_currency
        if not self._context.team_id:
            return {
                "text": f"Unable to retrieve {definition.title}: team not found in context.",
                "currency": currency,
                "empty": True,
            }

        final_from, final_to, description = self._resolve_period(from_date, to_date)
        stream = None
        if show_canvas:
            stream = ArtifactStream.start(
                self._store,
                definition.artifact_type,
                {
                    "currency": currency,
                    "from_date": final_from,
                    "to_date": final_to,
                    "description": description,
                },
                tool_call_id=tool_call_id,
            )

        fragment = await self._provider.fetch_metrics(
            definition.metric_kind, self._params(final_from, final_to, currency)
        )
        chart = _as_dict(fragment.get("chart"))
        metrics = _as_dict(fragment.get("metrics"))
        summary = fragment.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = f"{definition.title.capitalize()} for {description}."

        if stream is not None:
            await stream.update(Stage.CHART_READY, {"chart": chart})
            await stream.update(Stage.METRICS_READY, {"metrics": metrics})
            analysis = _as_dict(fragment.get("analysis"))
            analysis["summary"] = summary
            analysis.setdefault("recommendations", [])
            await stream.update(Stage.ANALYSIS_READY, {"analysis": analysis})

        self._logger.info(
            "analysis_completed",
            tool=definition.tool_name,
            show_canvas=show_canvas,
            description=description,
        )
        result: dict[str, Any] = {
            "text": summary,
            "currency": currency,
            "from_date": final_from,
            "to_date": final_to,
            "metrics": metrics,
        }
        if stream is not None:
            result["artifact"] = stream.reference()
        return result

    async def metrics_breakdown(
        self,
        *,
        from_date: str | None = None,
        to_date: str | None = None,
        currency: str | None = None,
        chart_type: str | None = None,
        show_canvas: bool = True,
        tool_call_id: str | None = None,
    ) -> dict[str, Any]:
        """Summary artifact plus one table artifact per detail section.

        Detail artifacts stop at metrics_ready. Months listed in the
        fragment's ``months`` section get their own summary artifacts in the
        monthly breakdown family.
        """
        currency = currency or self._context.base_currency
        if not self._context.team_id:
            return {
                "text": "Unable to retrieve metrics breakdown: team not found in context.",
                "currency": currency,
                "empty": True,
                **{key: [] for key, _ in BREAKDOWN_DETAILS},
            }

        final_from, final_to, description = self._resolve_period(from_date, to_date)
        base = {
            "currency": currency,
            "from_date": final_from,
            "to_date": final_to,
            "description": description,
            "chart_type": chart_type,
        }

        summary_stream = None
        detail_streams: dict[str, ArtifactStream] = {}
        if show_canvas:
            summary_stream = ArtifactStream.start(
                self._store, ArtifactType.BREAKDOWN_SUMMARY, base, tool_call_id=tool_call_id
            )
            for key, artifact_type in BREAKDOWN_DETAILS:
                detail_streams[key] = ArtifactStream.start(
                    self._store, artifact_type, base, tool_call_id=tool_call_id
                )

        fragment = await self._provider.fetch_metrics(
            "breakdown", self._params(final_from, final_to, currency)
        )
        chart = _as_dict(fragment.get("chart"))
        metrics = _as_dict(fragment.get("metrics"))
        summary = fragment.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = f"Financial breakdown for {description}."

        if summary_stream is not None:
            await summary_stream.update(Stage.CHART_READY, {"chart": chart})
            await summary_stream.update(Stage.METRICS_READY, {"metrics": metrics})
        for key, stream in detail_streams.items():
            await stream.update(
                Stage.METRICS_READY,
                {"metrics": {"rows": _as_list(fragment.get(key)), "summary": metrics}},
            )
        if summary_stream is not None:
            await summary_stream.update(
                Stage.ANALYSIS_READY,
                {"analysis": {"summary": summary, "recommendations": []}},
            )

        monthly = []
        if show_canvas:
            monthly = await self._stream_months(
                _as_list(fragment.get("months")), currency, chart_type, tool_call_id
            )

        self._logger.info(
            "breakdown_completed",
            show_canvas=show_canvas,
            description=description,
            months=len(monthly),
        )
        result: dict[str, Any] = {
            "text": summary,
            "currency": currency,
            "from_date": final_from,
            "to_date": final_to,
            "metrics": metrics,
            **{key: _as_list(fragment.get(key)) for key, _ in BREAKDOWN_DETAILS},
        }
        if summary_stream is not None:
            result["artifacts"] = [summary_stream.reference()] + [
                s.reference() for s in detail_streams.values()
            ] + monthly
        return result

    async def _stream_months(
        self,
        months: list[Any],
        currency: str,
        chart_type: str | None,
        tool_call_id: str | None,
    ) -> list[dict[str, Any]]:
        references = []
        for entry in months:
            if not isinstance(entry, Mapping):
                continue
            try:
                year_text, month_text = str(entry.get("month", "")).split("-", 1)
                year, month = int(year_text), int(month_text)
                artifact_type = monthly_breakdown_type(year, month)
            except ValueError:
                self._logger.warning("invalid_breakdown_month", month=entry.get("month"))
                continue

            month_from, month_to = month_bounds(year, month)
            stream = ArtifactStream.start(
                self._store,
                artifact_type,
                {
                    "currency": currency,
                    "from_date": month_from,
                    "to_date": month_to,
                    "display_date": month_from,
                    "description": describe_period(month_from, month_to),
                    "chart_type": chart_type,
                },
                tool_call_id=tool_call_id,
            )
            await stream.update(Stage.CHART_READY, {"chart": _as_dict(entry.get("chart"))})
            await stream.update(
                Stage.METRICS_READY, {"metrics": _as_dict(entry.get("metrics"))}
            )
            text = entry.get("summary")
            if not isinstance(text, str) or not text.strip():
                text = f"Financial breakdown for {describe_period(month_from, month_to)}."
            await stream.update(
                Stage.ANALYSIS_READY,
                {"analysis": {"summary": text, "recommendations": []}},
            )
            references.append(stream.reference())
        return references
