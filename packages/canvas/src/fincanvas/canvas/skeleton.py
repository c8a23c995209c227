"""Partial-render policy: which canvas regions are ready at a given stage.

Unknown or missing stages count as loading, so a region never shows default
or stale values as if they were real.
"""

from fincanvas.artifacts.stages import Stage

StageLike = Stage | str | None


def should_show_chart(stage: StageLike) -> bool:
    return Stage.coerce(stage) >= Stage.CHART_READY


def should_show_metrics(stage: StageLike) -> bool:
    return Stage.coerce(stage) >= Stage.METRICS_READY


def should_show_summary(stage: StageLike) -> bool:
    return Stage.coerce(stage) == Stage.ANALYSIS_READY


def ready_regions(stage: StageLike) -> dict[str, bool]:
    """Readiness of every region, keyed by region name."""
    return {
        "chart": should_show_chart(stage),
        "metrics": should_show_metrics(stage),
        "summary": should_show_summary(stage),
    }
