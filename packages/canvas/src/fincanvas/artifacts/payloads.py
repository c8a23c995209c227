"""Typed payload views for each stage.

The store keeps payloads as plain mappings because updates arrive as partial
fragments. Renderers read them through these views, which widen with the
stage::

    LoadingPayload < ChartReadyPayload < MetricsReadyPayload < AnalysisReadyPayload

A renderer that receives a ``MetricsReadyPayload`` can rely on ``metrics``
being present.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from fincanvas.artifacts.stages import Stage


class MalformedPayloadError(ValueError):
    """Payload does not have the shape its stage promises."""

    def __init__(self, stage: Stage, message: str):
        super().__init__(f"{stage.value}: {message}")
        self.stage = stage


@dataclass(frozen=True)
class LoadingPayload:
    """Header fields known as soon as a tool starts."""

    currency: str | None = None
    from_date: str | None = None
    to_date: str | None = None
    description: str | None = None
    display_date: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChartReadyPayload(LoadingPayload):
    chart: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricsReadyPayload(ChartReadyPayload):
    metrics: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisReadyPayload(MetricsReadyPayload):
    summary: str = ""
    analysis: dict[str, Any] = field(default_factory=dict)


StagePayload = LoadingPayload | ChartReadyPayload | MetricsReadyPayload | AnalysisReadyPayload

_HEADER_FIELDS = ("currency", "from_date", "to_date", "description", "display_date")
_KNOWN_FIELDS = frozenset(_HEADER_FIELDS) | {"chart", "metrics", "analysis"}


def _optional_str(raw: Mapping[str, Any], key: str, stage: Stage) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedPayloadError(stage, f"'{key}' must be a string")
    return value


def _section(
    raw: Mapping[str, Any], key: str, stage: Stage, required: bool
) -> dict[str, Any]:
    value = raw.get(key)
    if value is None:
        if required:
            raise MalformedPayloadError(stage, f"missing '{key}'")
        return {}
    if not isinstance(value, Mapping):
        raise MalformedPayloadError(stage, f"'{key}' must be a mapping")
    return dict(value)


def payload_for_stage(
    stage: Stage,
    raw: Mapping[str, Any],
    *,
    has_chart: bool = True,
) -> StagePayload:
    """Build the typed view of a raw payload for the given stage.

    Args:
        stage: Stage the artifact has reached.
        raw: Merged payload mapping from the store.
        has_chart: False for types whose ladder skips chart_ready; their
            chart section is never required.

    Raises:
        MalformedPayloadError: If a section the stage guarantees is missing
            or has the wrong shape.
    """
    if not isinstance(raw, Mapping):
        raise MalformedPayloadError(stage, "payload must be a mapping")

    header: dict[str, Any] = {key: _optional_str(raw, key, stage) for key in _HEADER_FIELDS}
    header["extra"] = {k: v for k, v in raw.items() if k not in _KNOWN_FIELDS}

    if stage == Stage.LOADING:
        return LoadingPayload(**header)

    chart = _section(raw, "chart", stage, required=has_chart)
    if stage == Stage.CHART_READY:
        return ChartReadyPayload(**header, chart=chart)

    metrics = _section(raw, "metrics", stage, required=True)
    if stage == Stage.METRICS_READY:
        return MetricsReadyPayload(**header, chart=chart, metrics=metrics)

    analysis = _section(raw, "analysis", stage, required=True)
    summary = analysis.get("summary")
    if not isinstance(summary, str):
        raise MalformedPayloadError(stage, "'analysis.summary' must be a string")
    return AnalysisReadyPayload(
        **header, chart=chart, metrics=metrics, summary=summary, analysis=analysis
    )
