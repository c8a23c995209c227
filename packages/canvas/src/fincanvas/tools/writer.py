"""Artifact stream: how a tool pushes one artifact through its stages."""

import asyncio
from collections.abc import Mapping
from typing import Any

from fincanvas.artifacts.stages import Stage
from fincanvas.artifacts.store import Artifact, ArtifactStore
from fincanvas.artifacts.types import ArtifactType, type_key


class ArtifactStream:
    """Writes staged updates for a single (type, version) instance.

    Usage:
        stream = ArtifactStream.start(store, ArtifactType.BURN_RATE, {"currency": "USD"})
        await stream.update(Stage.CHART_READY, {"chart": {...}})
    """

    def __init__(
        self,
        store: ArtifactStore,
        artifact_type: ArtifactType | str,
        version: int,
        tool_call_id: str | None = None,
    ):
        self._store = store
        self.artifact_type = type_key(artifact_type)
        self.version = version
        self.tool_call_id = tool_call_id

    @classmethod
    def start(
        cls,
        store: ArtifactStore,
        artifact_type: ArtifactType | str,
        payload: Mapping[str, Any] | None = None,
        tool_call_id: str | None = None,
    ) -> "ArtifactStream":
        """Allocate a fresh version and publish it at the loading stage."""
        version = store.next_version(artifact_type)
        stream = cls(store, artifact_type, version, tool_call_id)
        store.create_or_update(
            artifact_type, version, Stage.LOADING, payload, tool_call_id=tool_call_id
        )
        return stream

    async def update(
        self, stage: Stage, payload: Mapping[str, Any] | None = None
    ) -> Artifact:
        """Advance the artifact and merge a payload fragment.

        Yields to the event loop afterwards so subscribers can flush the
        update before the tool continues.
        """
        artifact = self._store.create_or_update(
            self.artifact_type,
            self.version,
            stage,
            payload,
            tool_call_id=self.tool_call_id,
        )
        await asyncio.sleep(0)
        return artifact

    @property
    def artifact(self) -> Artifact | None:
        return self._store.get(self.artifact_type, self.version)

    def reference(self) -> dict[str, Any]:
        return {"type": self.artifact_type, "version": self.version}
