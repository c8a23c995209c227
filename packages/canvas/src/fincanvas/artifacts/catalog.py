"""Artifact catalog loader.

Labels, tab ordering, stage ladders and the excluded synthetic types live in
``catalog.yaml`` so that adding a canvas is a configuration change.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from fincanvas.artifacts.stages import FULL_LADDER, METRICS_LADDER, Stage
from fincanvas.artifacts.types import ArtifactType, get_base_breakdown_type, type_key

CATALOG_PATH = Path(__file__).resolve().parent / "catalog.yaml"

LADDERS: dict[str, tuple[Stage, ...]] = {
    "full": FULL_LADDER,
    "metrics": METRICS_LADDER,
}


@dataclass(frozen=True)
class CatalogEntry:
    """Catalog entry for one artifact type."""

    artifact_type: str
    label: str
    order: int
    ladder: tuple[Stage, ...] = FULL_LADDER

    @property
    def terminal_stage(self) -> Stage:
        return self.ladder[-1]

    @property
    def has_chart(self) -> bool:
        return Stage.CHART_READY in self.ladder


@dataclass(frozen=True)
class ArtifactCatalog:
    """Lookup table over catalog entries."""

    entries: dict[str, CatalogEntry]
    excluded: frozenset[str]
    default_order: int = 999

    def entry_for(self, artifact_type: ArtifactType | str) -> CatalogEntry:
        """Return the entry for a type, resolving monthly breakdowns to their base.

        Unknown types get a synthesized entry labelled with the raw type.
        """
        key = type_key(artifact_type)
        entry = self.entries.get(key) or self.entries.get(get_base_breakdown_type(key))
        if entry is None:
            return CatalogEntry(artifact_type=key, label=key, order=self.default_order)
        return entry

    def label_for(self, artifact_type: ArtifactType | str) -> str:
        return self.entry_for(artifact_type).label

    def order_for(self, artifact_type: ArtifactType | str) -> int:
        return self.entry_for(artifact_type).order

    def ladder_for(self, artifact_type: ArtifactType | str) -> tuple[Stage, ...]:
        return self.entry_for(artifact_type).ladder

    def terminal_stage(self, artifact_type: ArtifactType | str) -> Stage:
        return self.entry_for(artifact_type).terminal_stage

    def is_excluded(self, artifact_type: ArtifactType | str) -> bool:
        return type_key(artifact_type) in self.excluded


def _parse_ladder(value: Any, artifact_type: str) -> tuple[Stage, ...]:
    if value is None:
        return FULL_LADDER
    if not isinstance(value, str) or value not in LADDERS:
        raise ValueError(f"Invalid ladder {value!r} for {artifact_type}")
    return LADDERS[value]


def parse_catalog(data: dict[str, Any]) -> ArtifactCatalog:
    """Build a catalog from already-parsed YAML data."""
    default_order = int(data.get("default_order", 999))

    excluded_raw = data.get("excluded") or []
    if not isinstance(excluded_raw, list):
        raise ValueError("catalog 'excluded' must be a list")

    artifacts_raw = data.get("artifacts") or {}
    if not isinstance(artifacts_raw, dict):
        raise ValueError("catalog 'artifacts' must be a mapping")

    entries: dict[str, CatalogEntry] = {}
    for artifact_type, item in artifacts_raw.items():
        item = item or {}
        if not isinstance(item, dict):
            raise ValueError(f"catalog entry for {artifact_type} must be a mapping")
        entries[artifact_type] = CatalogEntry(
            artifact_type=artifact_type,
            label=str(item.get("label") or artifact_type),
            order=int(item.get("order", default_order)),
            ladder=_parse_ladder(item.get("ladder"), artifact_type),
        )

    return ArtifactCatalog(
        entries=entries,
        excluded=frozenset(str(t) for t in excluded_raw),
        default_order=default_order,
    )


@lru_cache
def load_catalog(path: Path = CATALOG_PATH) -> ArtifactCatalog:
    """Load the artifact catalog from YAML."""
    if not path.exists():
        return ArtifactCatalog(entries={}, excluded=frozenset())

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return ArtifactCatalog(entries={}, excluded=frozenset())
    if not isinstance(data, dict):
        raise ValueError("artifact catalog must be a mapping")
    return parse_catalog(data)
