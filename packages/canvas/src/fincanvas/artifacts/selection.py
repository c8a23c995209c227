"""Selection pointer owned by the hosting application (URL query state)."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

TYPE_PARAM = "artifact-type"
VERSION_PARAM = "version"


@dataclass(frozen=True)
class Selection:
    """Which artifact the user is looking at.

    ``version`` is None when the URL carries no version; resolution then
    prefers the most recently created instance.
    """

    artifact_type: str | None = None
    version: int | None = None

    def __post_init__(self) -> None:
        if self.version is not None and self.version < 0:
            object.__setattr__(self, "version", None)

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "Selection":
        """Parse ``artifact-type`` and ``version`` query parameters.

        Malformed or negative versions are ignored rather than rejected.
        """
        raw_type = params.get(TYPE_PARAM)
        artifact_type = raw_type.strip() if isinstance(raw_type, str) else None

        version: int | None = None
        raw_version = params.get(VERSION_PARAM)
        if isinstance(raw_version, int) and not isinstance(raw_version, bool):
            version = raw_version
        elif isinstance(raw_version, str) and raw_version.strip().isdecimal():
            version = int(raw_version.strip())

        return cls(artifact_type=artifact_type or None, version=version)

    def to_query(self) -> dict[str, str]:
        """Serialize back into query parameters, omitting unset values."""
        query: dict[str, str] = {}
        if self.artifact_type:
            query[TYPE_PARAM] = self.artifact_type
        if self.version is not None:
            query[VERSION_PARAM] = str(self.version)
        return query

    @property
    def version_index(self) -> int:
        """Version pointer with the URL default of 0 applied."""
        return self.version if self.version is not None else 0

    def with_type(self, artifact_type: str | None) -> "Selection":
        """Select another type; the version pointer is reset."""
        return Selection(artifact_type=artifact_type, version=None)

    def with_version(self, version: int | None) -> "Selection":
        return Selection(artifact_type=self.artifact_type, version=version)
