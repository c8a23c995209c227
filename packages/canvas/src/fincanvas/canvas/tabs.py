"""Canvas tab strip: ordering, labels, navigation and dismissal.

All operations return the next ``Selection``; writing it back to the URL is
the hosting application's job.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from fincanvas.artifacts.catalog import ArtifactCatalog
from fincanvas.artifacts.selection import Selection
from fincanvas.artifacts.store import ArtifactStore
from fincanvas.artifacts.types import is_monthly_breakdown_type
from fincanvas.canvas.renderers import format_month_label


@dataclass(frozen=True)
class VersionOption:
    index: int
    version: int
    description: str
    selected: bool


@dataclass(frozen=True)
class TabView:
    artifact_type: str
    label: str
    active: bool
    versions: tuple[VersionOption, ...] = ()

    @property
    def has_multiple_versions(self) -> bool:
        return len(self.versions) > 1


def sort_types(types: Iterable[str], catalog: ArtifactCatalog) -> list[str]:
    """Sort by catalog order; monthly breakdowns sort chronologically."""

    def key(artifact_type: str) -> tuple[int, str]:
        order = catalog.order_for(artifact_type)
        return order, artifact_type if is_monthly_breakdown_type(artifact_type) else ""

    return sorted(types, key=key)


def artifact_label(
    artifact_type: str,
    catalog: ArtifactCatalog,
    payload: Mapping[str, Any] | None = None,
) -> str:
    """Tab label; monthly breakdowns read "Mar 2024"."""
    if is_monthly_breakdown_type(artifact_type):
        payload = payload or {}
        for key in ("display_date", "from_date"):
            value = payload.get(key)
            if isinstance(value, str):
                label = format_month_label(artifact_type, value)
                if label:
                    return label
        return format_month_label(artifact_type) or artifact_type
    return catalog.label_for(artifact_type)


class CanvasTabs:
    """Tab model over an artifact store."""

    def __init__(self, store: ArtifactStore):
        self._store = store

    def available(self) -> list[str]:
        return sort_types(self._store.available_types(), self._store.catalog)

    def active_type(self, selection: Selection) -> str | None:
        if selection.artifact_type:
            return selection.artifact_type
        lookup = self._store.get_active(selection)
        return lookup.artifact.type if lookup.artifact else None

    def tabs(self, selection: Selection) -> list[TabView]:
        """Build the tab strip for the current selection."""
        active = self.active_type(selection)
        views: list[TabView] = []
        for artifact_type in self.available():
            instances = self._store.instances(artifact_type)
            selected_index = min(selection.version_index, len(instances) - 1)
            versions = tuple(
                VersionOption(
                    index=index,
                    version=artifact.version,
                    description=str(
                        artifact.payload.get("description") or f"Version {index + 1}"
                    ),
                    selected=index == selected_index,
                )
                for index, artifact in enumerate(instances)
            )
            first_payload = instances[0].payload if instances else None
            views.append(
                TabView(
                    artifact_type=artifact_type,
                    label=artifact_label(artifact_type, self._store.catalog, first_payload),
                    active=artifact_type == active,
                    versions=versions,
                )
            )
        return views

    def select(self, artifact_type: str) -> Selection:
        return Selection(artifact_type=artifact_type)

    def select_version(self, selection: Selection, index: int) -> Selection:
        return selection.with_version(max(index, 0))

    def next(self, selection: Selection) -> Selection:
        """Move one tab right, wrapping around."""
        return self._step(selection, 1)

    def previous(self, selection: Selection) -> Selection:
        """Move one tab left, wrapping around."""
        return self._step(selection, -1)

    def dismiss(self, artifact_type: str, selection: Selection) -> Selection:
        """Close one tab and return the selection to show next.

        Dismissing the last tab closes the canvas. Dismissing the active tab
        switches to the first remaining one.
        """
        available = self.available()
        active = self.active_type(selection)
        next_selection = selection

        if len(available) <= 1:
            next_selection = Selection()
        elif artifact_type == active:
            others = [t for t in available if t != artifact_type]
            next_selection = Selection(artifact_type=others[0]) if others else Selection()

        self._store.dismiss(artifact_type)
        return next_selection

    def close(self) -> Selection:
        return Selection()

    def _step(self, selection: Selection, offset: int) -> Selection:
        available = self.available()
        if len(available) <= 1:
            return selection
        active = self.active_type(selection)
        if active not in available:
            return selection
        index = (available.index(active) + offset) % len(available)
        return self.select(available[index])
