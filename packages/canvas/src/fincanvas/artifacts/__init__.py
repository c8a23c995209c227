"""Artifact model: types, stages, payload views and the session store."""

from fincanvas.artifacts.catalog import ArtifactCatalog, CatalogEntry, load_catalog
from fincanvas.artifacts.payloads import (
    AnalysisReadyPayload,
    ChartReadyPayload,
    LoadingPayload,
    MalformedPayloadError,
    MetricsReadyPayload,
    payload_for_stage,
)
from fincanvas.artifacts.selection import Selection
from fincanvas.artifacts.stages import Stage, advance, fill_missing, merge
from fincanvas.artifacts.store import (
    Artifact,
    ArtifactChange,
    ArtifactLookup,
    ArtifactStore,
    ChangeKind,
)
from fincanvas.artifacts.types import (
    ArtifactType,
    get_base_breakdown_type,
    is_monthly_breakdown_type,
    monthly_breakdown_type,
    parse_artifact_type,
)

__all__ = [
    # Types
    "ArtifactType",
    "is_monthly_breakdown_type",
    "monthly_breakdown_type",
    "get_base_breakdown_type",
    "parse_artifact_type",
    # Catalog
    "ArtifactCatalog",
    "CatalogEntry",
    "load_catalog",
    # Stages
    "Stage",
    "advance",
    "merge",
    "fill_missing",
    # Payloads
    "LoadingPayload",
    "ChartReadyPayload",
    "MetricsReadyPayload",
    "AnalysisReadyPayload",
    "MalformedPayloadError",
    "payload_for_stage",
    # Store
    "Artifact",
    "ArtifactChange",
    "ArtifactLookup",
    "ArtifactStore",
    "ChangeKind",
    "Selection",
]
