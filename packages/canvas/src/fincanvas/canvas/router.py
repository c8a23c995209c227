"""Renderer router.

Dispatch order for an artifact type:

1. The monthly breakdown family, matched by predicate, goes to its shared
   renderer.
2. Known ``ArtifactType`` members go to their registered renderer.
3. Anything else renders nothing. The assistant may introduce types before
   the UI supports them, so this is not an error.

Renderer exceptions are contained here: the failing artifact is replaced by
an ErrorPanel and the rest of the canvas keeps working.
"""

from collections.abc import Callable, Iterable
from dataclasses import replace

import structlog

from fincanvas.artifacts.catalog import ArtifactCatalog, load_catalog
from fincanvas.artifacts.stages import Stage
from fincanvas.artifacts.store import Artifact, ArtifactLookup
from fincanvas.artifacts.types import (
    DISPLAYABLE_TYPES,
    ArtifactType,
    is_monthly_breakdown_type,
    parse_artifact_type,
)
from fincanvas.canvas.renderers import (
    AnalysisRenderer,
    BreakdownTableRenderer,
    CanvasRenderer,
    CanvasView,
    EmptyCanvas,
    ErrorPanel,
    MonthlyBreakdownRenderer,
    RenderOutput,
)

logger = structlog.get_logger(__name__)

FamilyPredicate = Callable[[str], bool]
RenderErrorHook = Callable[[str, Exception], None]


class RendererRegistry:
    """Static renderer table plus predicate-matched families."""

    def __init__(self) -> None:
        self._static: dict[ArtifactType, CanvasRenderer] = {}
        self._families: list[tuple[FamilyPredicate, CanvasRenderer]] = []

    def register(self, artifact_type: ArtifactType, renderer: CanvasRenderer) -> None:
        self._static[artifact_type] = renderer

    def register_family(self, predicate: FamilyPredicate, renderer: CanvasRenderer) -> None:
        self._families.append((predicate, renderer))

    def resolve(self, artifact_type: str) -> CanvasRenderer | None:
        """Find the renderer for a raw type string, or None."""
        for predicate, renderer in self._families:
            if predicate(artifact_type):
                return renderer

        parsed = parse_artifact_type(artifact_type)
        if isinstance(parsed, ArtifactType):
            return self._static.get(parsed)
        return None

    def missing_types(self) -> list[ArtifactType]:
        """Displayable types with no registered renderer."""
        return [t for t in DISPLAYABLE_TYPES if t not in self._static]


def build_default_registry(catalog: ArtifactCatalog | None = None) -> RendererRegistry:
    """Register a renderer for every displayable type and the monthly family."""
    catalog = catalog or load_catalog()
    registry = RendererRegistry()

    for artifact_type in DISPLAYABLE_TYPES:
        entry = catalog.entry_for(artifact_type)
        renderer: CanvasRenderer
        if entry.has_chart:
            renderer = AnalysisRenderer(title=entry.label)
        else:
            renderer = BreakdownTableRenderer(title=entry.label)
        registry.register(artifact_type, renderer)

    registry.register_family(
        is_monthly_breakdown_type,
        MonthlyBreakdownRenderer(title=catalog.label_for(ArtifactType.BREAKDOWN_SUMMARY)),
    )
    return registry


class RendererRouter:
    """Routes artifacts to renderers and isolates rendering failures."""

    def __init__(
        self,
        registry: RendererRegistry | None = None,
        on_error: RenderErrorHook | None = None,
    ):
        self._registry = registry or build_default_registry()
        self._on_error = on_error
        self._logger = logger.bind(component="renderer_router")

    @property
    def registry(self) -> RendererRegistry:
        return self._registry

    def render(self, target: Artifact | ArtifactLookup | None) -> RenderOutput:
        """Render an artifact or the result of an active-artifact lookup.

        A lookup that found nothing renders as LOADING with an empty payload,
        so the canvas shows its skeleton.
        """
        if target is None:
            return EmptyCanvas()

        if isinstance(target, ArtifactLookup):
            artifact_type = target.artifact_type
            artifact = target.artifact
        else:
            artifact_type = target.type
            artifact = target

        if artifact is not None:
            artifact_type = artifact.type
        if not artifact_type:
            return EmptyCanvas()

        renderer = self._registry.resolve(artifact_type)
        if renderer is None:
            self._logger.debug("unknown_artifact_type", artifact_type=artifact_type)
            return EmptyCanvas(artifact_type=artifact_type)

        stage = artifact.stage if artifact else Stage.LOADING
        payload = artifact.payload if artifact else {}

        try:
            output = renderer.render(artifact_type, stage, payload)
        except Exception as e:
            self._logger.exception(
                "render_failed",
                artifact_type=artifact_type,
                renderer=repr(renderer),
            )
            if self._on_error is not None:
                try:
                    self._on_error(artifact_type, e)
                except Exception as hook_error:
                    self._logger.error("render_error_hook_failed", error=str(hook_error))
            return ErrorPanel(artifact_type=artifact_type)

        if isinstance(output, CanvasView) and artifact is not None and artifact.stalled:
            output = replace(output, stalled=True)
        return output

    def render_many(self, artifacts: Iterable[Artifact]) -> list[RenderOutput]:
        """Render several artifacts; one failure never affects the others."""
        return [self.render(artifact) for artifact in artifacts]
