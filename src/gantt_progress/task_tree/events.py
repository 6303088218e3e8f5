"""Mutation events the router reacts to.

Each event carries exactly the fields the recompute policy needs.  The chart
widget reports mutations as loosely-typed payload dicts; ``event_from_payload``
turns those into one of the dataclasses below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from ..constants import (
    EVENT_ADD_TASK,
    EVENT_COPY_TASK,
    EVENT_DELETE_TASK,
    EVENT_MOVE_TASK,
    EVENT_UPDATE_TASK,
)


@dataclass(frozen=True)
class InitialLoad:
    id: int


@dataclass(frozen=True)
class Insert:
    id: int


@dataclass(frozen=True)
class Update:
    id: int


@dataclass(frozen=True)
class Delete:
    former_parent: Optional[int]


@dataclass(frozen=True)
class Copy:
    id: int


@dataclass(frozen=True)
class Move:
    id: int
    former_parent: Optional[int]
    in_progress: bool = False


MutationEvent = Union[InitialLoad, Insert, Update, Delete, Copy, Move]


def _optional_id(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def event_from_payload(kind: str, payload: dict[str, Any]) -> MutationEvent:
    """Build a typed event from a widget event name and payload.

    ``source`` is the former parent for delete and move events and
    ``inProgress`` flags an intermediate drag position.

    Raises:
        ValueError: If *kind* is unknown or a required field is missing.
    """
    try:
        if kind == EVENT_ADD_TASK:
            return Insert(id=int(payload["id"]))
        if kind == EVENT_UPDATE_TASK:
            return Update(id=int(payload["id"]))
        if kind == EVENT_DELETE_TASK:
            return Delete(former_parent=_optional_id(payload.get("source")))
        if kind == EVENT_COPY_TASK:
            return Copy(id=int(payload["id"]))
        if kind == EVENT_MOVE_TASK:
            return Move(
                id=int(payload["id"]),
                former_parent=_optional_id(payload.get("source")),
                in_progress=bool(payload.get("inProgress", False)),
            )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed {kind} payload: {payload!r}") from exc
    raise ValueError(f"Unknown mutation event: {kind}")
