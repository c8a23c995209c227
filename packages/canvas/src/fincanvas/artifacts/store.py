"""Session-scoped artifact store.

The store is the single source of truth for every artifact instance the UI
can show in one session. Tool executors push staged, versioned partial
updates into it; the canvas resolves the selected artifact from it.

Updates are applied regardless of what the user is currently looking at, so
an artifact the user navigated away from keeps filling in and is complete
when they come back.
"""

import bisect
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import uuid4

import structlog

from fincanvas.artifacts.catalog import ArtifactCatalog, load_catalog
from fincanvas.artifacts.selection import Selection
from fincanvas.artifacts.stages import Stage, advance, fill_missing, merge
from fincanvas.artifacts.types import (
    ArtifactType,
    get_base_breakdown_type,
    is_monthly_breakdown_type,
    type_key,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Artifact:
    """One versioned snapshot of an AI-generated analysis."""

    id: str
    type: str
    version: int
    stage: Stage
    payload: Mapping[str, Any]
    sequence: int
    created_at: datetime
    updated_at: datetime
    tool_call_id: str | None = None
    stalled: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON transmission."""
        return {
            "id": self.id,
            "type": self.type,
            "version": self.version,
            "stage": self.stage.value,
            "payload": dict(self.payload),
            "sequence": self.sequence,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "tool_call_id": self.tool_call_id,
            "stalled": self.stalled,
        }


@dataclass(frozen=True)
class ArtifactLookup:
    """Result of resolving the active artifact.

    Absence is a normal state: ``found`` is False and ``stage`` reads as
    LOADING so renderers show placeholders.
    """

    artifact_type: str | None = None
    artifact: Artifact | None = None

    @property
    def found(self) -> bool:
        return self.artifact is not None

    @property
    def stage(self) -> Stage:
        return self.artifact.stage if self.artifact else Stage.LOADING

    @property
    def payload(self) -> Mapping[str, Any]:
        return self.artifact.payload if self.artifact else MappingProxyType({})


class ChangeKind(str, Enum):
    """Kinds of store mutation reported to subscribers."""

    CREATED = "created"
    UPDATED = "updated"
    STALLED = "stalled"
    DISMISSED = "dismissed"
    CLEARED = "cleared"


@dataclass(frozen=True)
class ArtifactChange:
    kind: ChangeKind
    artifact_type: str | None = None
    artifact: Artifact | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


ArtifactListener = Callable[[ArtifactChange], None]


class ArtifactStore:
    """Registry of artifact instances keyed by (type, version).

    Usage:
        store = ArtifactStore()
        store.create_or_update("burn-rate-canvas", 0, Stage.CHART_READY, {"chart": {...}})
        lookup = store.get_active(Selection("burn-rate-canvas"))
    """

    def __init__(
        self,
        catalog: ArtifactCatalog | None = None,
        excluded: Iterable[ArtifactType | str] = (),
    ):
        self._catalog = catalog or load_catalog()
        self._by_type: dict[str, list[Artifact]] = {}
        self._version_counters: dict[str, int] = {}
        self._excluded: set[str] = set(self._catalog.excluded)
        self._excluded.update(type_key(t) for t in excluded)
        self._hidden_ids: set[str] = set()
        self._active_id: str | None = None
        self._sequence = 0
        self._listeners: list[ArtifactListener] = []
        self._logger = logger.bind(component="artifact_store")

    @property
    def catalog(self) -> ArtifactCatalog:
        return self._catalog

    @property
    def excluded_types(self) -> frozenset[str]:
        return frozenset(self._excluded)

    # === Subscriptions ===

    def subscribe(self, listener: ArtifactListener) -> Callable[[], None]:
        """Register a listener for every store change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: ArtifactChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                self._logger.error(
                    "artifact_listener_error",
                    kind=change.kind.value,
                    artifact_type=change.artifact_type,
                    error=str(e),
                )

    # === Writes ===

    def next_version(self, artifact_type: ArtifactType | str) -> int:
        """Reserve the next unused version number for a type."""
        key = type_key(artifact_type)
        version = self._version_counters.get(key, 0)
        self._version_counters[key] = version + 1
        return version

    def create_or_update(
        self,
        artifact_type: ArtifactType | str,
        version: int,
        stage: Stage | str | None = None,
        payload: Mapping[str, Any] | None = None,
        *,
        tool_call_id: str | None = None,
    ) -> Artifact:
        """Apply a staged partial update to the (type, version) instance.

        Missing instances are created at LOADING with an empty payload first.
        Stage regressions are ignored and payload fields are merged, never
        cleared. Applying the same update twice leaves the store unchanged
        and notifies nobody the second time.

        Raises:
            ValueError: If the type is empty or the version is negative.
        """
        key = type_key(artifact_type)
        if not key:
            raise ValueError("artifact type must be a non-empty string")
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise ValueError(f"artifact version must be a non-negative int, got {version!r}")

        now = datetime.now(UTC)
        existing = self._find(key, version)
        created = existing is None

        if existing is None:
            self._sequence += 1
            base = Artifact(
                id=uuid4().hex,
                type=key,
                version=version,
                stage=Stage.LOADING,
                payload=MappingProxyType({}),
                sequence=self._sequence,
                created_at=now,
                updated_at=now,
                tool_call_id=tool_call_id,
            )
            self._insert(base)
            self._version_counters[key] = max(self._version_counters.get(key, 0), version + 1)
            if key not in self._excluded:
                self._active_id = base.id
        else:
            base = existing

        requested = base.stage if stage is None else stage
        new_stage = advance(base.stage, requested)
        stale = new_stage != Stage.coerce(requested)
        if stale:
            self._logger.debug(
                "stage_regression_ignored",
                artifact_type=key,
                version=version,
                current=base.stage.value,
                requested=Stage.coerce(requested).value,
            )
            new_payload = fill_missing(base.payload, payload)
        else:
            new_payload = merge(base.payload, payload)
        unchanged = (
            new_stage == base.stage
            and new_payload == dict(base.payload)
            and not base.stalled
        )
        if unchanged and not created:
            return base

        artifact = replace(
            base,
            stage=new_stage,
            payload=MappingProxyType(new_payload),
            updated_at=now,
            stalled=False,
            tool_call_id=base.tool_call_id or tool_call_id,
        )
        self._replace(artifact)

        self._logger.debug(
            "artifact_created" if created else "artifact_updated",
            artifact_type=key,
            version=version,
            stage=new_stage.value,
        )
        self._notify(
            ArtifactChange(
                kind=ChangeKind.CREATED if created else ChangeKind.UPDATED,
                artifact_type=key,
                artifact=artifact,
            )
        )
        return artifact

    def mark_stalled(self, artifact_id: str) -> Artifact | None:
        """Flag an artifact whose producer went quiet before its terminal stage.

        A later update clears the flag. Returns None for unknown ids or
        artifacts that already completed.
        """
        artifact = self._find_by_id(artifact_id)
        if artifact is None or artifact.stalled or self.is_complete(artifact):
            return None

        stalled = replace(artifact, stalled=True)
        self._replace(stalled)
        self._logger.warning(
            "artifact_stalled",
            artifact_type=artifact.type,
            version=artifact.version,
            stage=artifact.stage.value,
        )
        self._notify(
            ArtifactChange(kind=ChangeKind.STALLED, artifact_type=artifact.type, artifact=stalled)
        )
        return stalled

    def exclude(self, types: Iterable[ArtifactType | str]) -> None:
        """Hide types from every read. Stored instances are kept."""
        self._excluded.update(type_key(t) for t in types)
        active = self._find_by_id(self._active_id) if self._active_id else None
        if active is not None and not self._is_visible(active):
            self._active_id = self._most_recent_id()

    def dismiss(self, artifact_type: ArtifactType | str) -> int:
        """Hide the current instances of a type from the canvas.

        Updates to dismissed instances are still applied; versions created
        afterwards are visible again.

        Returns:
            Number of instances hidden.
        """
        key = type_key(artifact_type)
        instances = self.instances(key)
        for artifact in instances:
            self._hidden_ids.add(artifact.id)

        if self._active_id in self._hidden_ids:
            self._active_id = self._most_recent_id()

        if instances:
            self._logger.info("artifact_dismissed", artifact_type=key, count=len(instances))
            self._notify(ArtifactChange(kind=ChangeKind.DISMISSED, artifact_type=key))
        return len(instances)

    def clear(self) -> None:
        """Tear down all session state."""
        self._by_type.clear()
        self._version_counters.clear()
        self._hidden_ids.clear()
        self._active_id = None
        self._notify(ArtifactChange(kind=ChangeKind.CLEARED))
        self._listeners.clear()

    # === Reads ===

    def get(self, artifact_type: ArtifactType | str, version: int) -> Artifact | None:
        """Return the visible (type, version) instance, if any."""
        artifact = self._find(type_key(artifact_type), version)
        if artifact is None or not self._is_visible(artifact):
            return None
        return artifact

    def peek(self, artifact_type: ArtifactType | str, version: int) -> Artifact | None:
        """Return the (type, version) instance even if excluded or dismissed."""
        return self._find(type_key(artifact_type), version)

    def instances(self, artifact_type: ArtifactType | str) -> list[Artifact]:
        """Visible instances of one type, ordered by version."""
        key = type_key(artifact_type)
        return [a for a in self._by_type.get(key, []) if self._is_visible(a)]

    def by_type(self) -> dict[str, list[Artifact]]:
        """Visible instances grouped by type."""
        grouped: dict[str, list[Artifact]] = {}
        for key in self._by_type:
            visible = self.instances(key)
            if visible:
                grouped[key] = visible
        return grouped

    def available_types(self) -> list[str]:
        """Types with at least one visible instance, in first-creation order."""
        grouped = self.by_type()
        return sorted(grouped, key=lambda t: min(a.sequence for a in grouped[t]))

    def all_artifacts(self) -> list[Artifact]:
        """Every visible instance in creation order."""
        visible = [a for items in self._by_type.values() for a in items if self._is_visible(a)]
        return sorted(visible, key=lambda a: a.sequence)

    def get_active(self, selection: Selection | None = None) -> ArtifactLookup:
        """Resolve the artifact to display for a selection pointer.

        With a selected type: the instance whose version equals the version
        pointer, else the instance at that index (clamped), else the most
        recently created instance of the type, else of its monthly family.
        Without one: the most recently created visible artifact.
        Excluded types never resolve.
        """
        selection = selection or Selection()
        selected = selection.artifact_type

        if not selected:
            artifact = self._find_by_id(self._active_id) if self._active_id else None
            if artifact is None or not self._is_visible(artifact):
                recent_id = self._most_recent_id()
                artifact = self._find_by_id(recent_id) if recent_id else None
            return ArtifactLookup(
                artifact_type=artifact.type if artifact else None,
                artifact=artifact,
            )

        if selected in self._excluded:
            return ArtifactLookup(artifact_type=selected)

        exact = self.instances(selected)
        if exact and selection.version is not None:
            for artifact in exact:
                if artifact.version == selection.version:
                    return ArtifactLookup(artifact_type=selected, artifact=artifact)
            index = min(selection.version, len(exact) - 1)
            return ArtifactLookup(artifact_type=selected, artifact=exact[index])

        candidates = exact or self._family_instances(selected)
        if candidates:
            latest = max(candidates, key=lambda a: a.sequence)
            return ArtifactLookup(artifact_type=selected, artifact=latest)

        return ArtifactLookup(artifact_type=selected)

    def is_complete(self, artifact: Artifact) -> bool:
        """True once the artifact reached the last stage of its ladder."""
        return artifact.stage >= self._catalog.terminal_stage(artifact.type)

    def non_terminal_artifacts(self) -> list[Artifact]:
        """Visible artifacts still waiting for their final stage."""
        return [a for a in self.all_artifacts() if not self.is_complete(a)]

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the visible collection."""
        active = self.get_active()
        return {
            "active": active.artifact.to_dict() if active.artifact else None,
            "by_type": {
                key: [a.to_dict() for a in items] for key, items in self.by_type().items()
            },
        }

    # === Internals ===

    def _is_visible(self, artifact: Artifact) -> bool:
        return artifact.type not in self._excluded and artifact.id not in self._hidden_ids

    def _find(self, key: str, version: int) -> Artifact | None:
        for artifact in self._by_type.get(key, []):
            if artifact.version == version:
                return artifact
        return None

    def _find_by_id(self, artifact_id: str | None) -> Artifact | None:
        if artifact_id is None:
            return None
        for items in self._by_type.values():
            for artifact in items:
                if artifact.id == artifact_id:
                    return artifact
        return None

    def _insert(self, artifact: Artifact) -> None:
        items = self._by_type.setdefault(artifact.type, [])
        versions = [a.version for a in items]
        items.insert(bisect.bisect_left(versions, artifact.version), artifact)

    def _replace(self, artifact: Artifact) -> None:
        items = self._by_type[artifact.type]
        for index, current in enumerate(items):
            if current.id == artifact.id:
                items[index] = artifact
                return

    def _most_recent_id(self) -> str | None:
        visible = self.all_artifacts()
        return visible[-1].id if visible else None

    def _family_instances(self, selected: str) -> list[Artifact]:
        base = get_base_breakdown_type(selected)
        if not is_monthly_breakdown_type(selected) and selected != ArtifactType.BREAKDOWN_SUMMARY.value:
            return []
        return [
            a
            for key, items in self._by_type.items()
            if get_base_breakdown_type(key) == base
            for a in items
            if self._is_visible(a)
        ]
