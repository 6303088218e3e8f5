"""Task node model for the Gantt task tree.

A tree is a forest of :class:`TaskNode` objects indexed by integer id.  Each
node stores only the id of its parent (a weak back-reference) and the ordered
ids of the children it owns, so traversal always goes through the store's
table and never through live object references.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from ..constants import PROGRESS_MAX, PROGRESS_MIN, SECONDS_PER_DAY


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskKind(str, Enum):
    """Aggregation role of a node.  Values match the chart widget's ``type``."""

    LEAF = "task"
    SUMMARY = "summary"
    MILESTONE = "milestone"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def clamp_progress(value: Any) -> int:
    """Round *value* and clamp it to ``[0, 100]``.  Non-numbers become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return PROGRESS_MIN
    if math.isnan(number):
        return PROGRESS_MIN
    return int(max(PROGRESS_MIN, min(PROGRESS_MAX, math.floor(number + 0.5))))


def day_diff(end: datetime, start: datetime) -> int:
    """Whole days between two instants, rounded up."""
    seconds = abs((end - start).total_seconds())
    return math.ceil(seconds / SECONDS_PER_DAY)


def coerce_datetime(value: Any) -> datetime:
    """Coerce ISO strings, dates and datetimes to an aware ``datetime``.

    Naive values are taken as UTC.

    Raises:
        ValueError: If *value* cannot be interpreted as an instant.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Cannot interpret {value!r} as a date")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# TaskNode
# ---------------------------------------------------------------------------

@dataclass
class TaskNode:
    """One row of the Gantt chart.

    ``progress`` on a summary node is owned by the aggregation router; any
    value written to it from outside is replaced on the next recompute.
    """

    id: int = 0
    kind: TaskKind = TaskKind.LEAF
    text: str = ""
    start: datetime = field(default_factory=_now)
    end: Optional[datetime] = None
    duration: Optional[float] = None
    progress: int = 0
    parent: Optional[int] = None
    children: list[int] = field(default_factory=list)
    details: str = ""
    open: bool = True
    external_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, TaskKind):
            self.kind = TaskKind(self.kind)
        self.start = coerce_datetime(self.start)
        if self.end is not None:
            self.end = coerce_datetime(self.end)
        elif self.duration is not None:
            self.end = self.start + timedelta(days=max(0.0, float(self.duration)))
        else:
            self.end = self.start
        self.progress = clamp_progress(self.progress)
        self.normalize()

    def normalize(self) -> None:
        """Re-establish the per-kind invariants after a field change."""
        if self.kind == TaskKind.MILESTONE:
            self.end = self.start
            self.duration = 0
            return
        if self.end < self.start:
            self.start, self.end = self.end, self.start
        if self.duration is not None:
            self.duration = max(0.0, float(self.duration))
            if self.duration.is_integer():
                self.duration = int(self.duration)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def weight(self) -> float:
        """Aggregation weight in days; milestones weigh nothing."""
        if self.kind == TaskKind.MILESTONE:
            return 0
        if self.duration is not None:
            return self.duration
        return day_diff(self.end, self.start)

    @property
    def is_summary(self) -> bool:
        return self.kind == TaskKind.SUMMARY

    @property
    def is_milestone(self) -> bool:
        return self.kind == TaskKind.MILESTONE

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the plain dict shape the chart widget consumes."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "text": self.text,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration": self.duration if self.duration is not None else self.weight,
            "progress": self.progress,
            "parent": self.parent,
            "children": list(self.children),
            "details": self.details,
            "open": self.open,
        }
        if self.external_id is not None:
            data["external_id"] = self.external_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskNode":
        """Deserialize from a plain dict, coercing the kind gracefully."""
        d = dict(data)
        raw_kind = d.pop("type", d.pop("kind", None))
        try:
            kind = TaskKind(raw_kind) if raw_kind is not None else TaskKind.LEAF
        except ValueError:
            kind = TaskKind.LEAF
        duration = d.get("duration")
        return cls(
            id=int(d.get("id", 0) or 0),
            kind=kind,
            text=str(d.get("text", "") or ""),
            start=d.get("start") or _now(),
            end=d.get("end"),
            duration=float(duration) if duration is not None else None,
            progress=d.get("progress", 0),
            parent=d.get("parent"),
            children=[int(c) for c in d.get("children", []) or []],
            details=str(d.get("details", "") or ""),
            open=bool(d.get("open", True)),
            external_id=d.get("external_id"),
        )


# Fields the store lets callers change through ``update``
EDITABLE_FIELDS = frozenset(
    f.name for f in fields(TaskNode) if f.name not in {"id", "parent", "children"}
)
