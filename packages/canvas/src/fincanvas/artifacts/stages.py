"""Stage state machine for streamed artifacts.

Stages are totally ordered::

    loading < chart_ready < metrics_ready < analysis_ready

``advance`` never moves an artifact backwards and ``merge`` never drops a
field that an earlier update populated. Both are pure.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any


class Stage(str, Enum):
    """Readiness milestones of an artifact."""

    LOADING = "loading"
    CHART_READY = "chart_ready"
    METRICS_READY = "metrics_ready"
    ANALYSIS_READY = "analysis_ready"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @classmethod
    def coerce(cls, value: "Stage | str | None") -> "Stage":
        """Return a Stage, treating unknown or missing values as LOADING."""
        if isinstance(value, Stage):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return cls.LOADING
        return cls.LOADING

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Stage):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Stage):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Stage):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Stage):
            return NotImplemented
        return self.rank >= other.rank


_RANK: dict[Stage, int] = {stage: index for index, stage in enumerate(Stage)}

FULL_LADDER: tuple[Stage, ...] = tuple(Stage)
METRICS_LADDER: tuple[Stage, ...] = (Stage.LOADING, Stage.METRICS_READY)


def advance(current: Stage, requested: Stage | str | None) -> Stage:
    """Apply a requested stage transition.

    Returns ``requested`` when it is not behind ``current``; otherwise the
    current stage is kept. Late, out-of-order updates therefore cannot roll
    a further-along artifact back.
    """
    target = Stage.coerce(requested)
    if target >= current:
        return target
    return current


def merge(payload: Mapping[str, Any], update: Mapping[str, Any] | None) -> dict[str, Any]:
    """Shallow, field-wise merge of a payload update.

    Fields present in ``update`` overwrite; absent fields are kept. A value of
    None counts as absent. Lists are replaced wholesale because producers
    always send the full current series.
    """
    merged = dict(payload)
    if not update:
        return merged
    for key, value in update.items():
        if value is None:
            continue
        merged[key] = list(value) if isinstance(value, list) else value
    return merged


def fill_missing(payload: Mapping[str, Any], update: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge a stale update: only fields the payload does not hold yet are taken.

    Used for updates whose stage is behind the artifact's, so a late message
    can never replace data from a further-along stage.
    """
    merged = dict(payload)
    if not update:
        return merged
    for key, value in update.items():
        if value is None or merged.get(key) is not None:
            continue
        merged[key] = list(value) if isinstance(value, list) else value
    return merged
