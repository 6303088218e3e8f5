"""Mutation event router: keeps summary progress in step with the tree.

The router subscribes to a :class:`GanttSession`, turns every mutation
notification into a typed event, decides which summary must be re-aggregated
and writes the result straight into the store.  The write-back never goes
through the session, so it cannot trigger another ``update-task`` cycle.

Only the nearest summary is recomputed per event unless ``propagate`` is set,
in which case every further summary ancestor is refreshed as well.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from loguru import logger

from ..constants import (
    DEFAULT_NEW_CHILD_DURATION,
    DEFAULT_NEW_CHILD_TEXT,
    EVENT_ADD_TASK,
    MUTATION_EVENTS,
    PLACEMENT_CHILD,
)
from .aggregate import aggregate
from .events import (
    Copy,
    Delete,
    InitialLoad,
    Insert,
    Move,
    MutationEvent,
    Update,
    event_from_payload,
)
from .model import TaskKind
from .session import GanttSession
from .store import NotFound, TaskTreeError, TaskTreeStore

AddChildHook = Callable[[int, dict[str, Any]], int]


class MutationEventRouter:
    """Recompute summary progress in response to tree mutations.

    Parameters
    ----------
    session:
        The chart session to subscribe to.
    add_child:
        Callable ``(parent_id, fields) -> new_id`` backing :meth:`add_child`.
        Defaults to the session's ``add-task`` command in ``child`` mode.
    propagate:
        Also refresh every summary above the recomputed one.
    child_defaults:
        Field defaults for tasks created through :meth:`add_child`.
    """

    def __init__(
        self,
        session: GanttSession,
        add_child: Optional[AddChildHook] = None,
        propagate: bool = False,
        child_defaults: Optional[dict[str, Any]] = None,
    ) -> None:
        self.session = session
        self.propagate = propagate
        self.child_defaults = dict(
            child_defaults or {"text": DEFAULT_NEW_CHILD_TEXT, "duration": DEFAULT_NEW_CHILD_DURATION}
        )
        self._add_child: Optional[AddChildHook] = add_child or self._session_add_child
        self._attached = False
        self._listeners: dict[str, Callable[[dict[str, Any]], None]] = {
            kind: self._listener(kind) for kind in MUTATION_EVENTS
        }

    @property
    def store(self) -> TaskTreeStore:
        return self.session.store

    @property
    def attached(self) -> bool:
        return self._attached

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self) -> list[int]:
        """Subscribe to the session and run the initial-load pass."""
        if self._attached:
            return []
        if self._add_child is None:
            raise RuntimeError("Router was detached; create a new router")
        for kind, listener in self._listeners.items():
            self.session.on(kind, listener)
        self._attached = True
        return self.initial_load()

    def detach(self) -> None:
        """Unsubscribe and release the add-child hook."""
        for kind, listener in self._listeners.items():
            self.session.off(kind, listener)
        self._attached = False
        self._add_child = None

    def __enter__(self) -> "MutationEventRouter":
        self.attach()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.detach()

    # ------------------------------------------------------------------
    # Add-child capability
    # ------------------------------------------------------------------

    def _session_add_child(self, parent_id: int, fields: dict[str, Any]) -> int:
        result = self.session.exec(
            EVENT_ADD_TASK,
            {"task": fields, "target": parent_id, "mode": PLACEMENT_CHILD},
        )
        return int(result["id"])

    def add_child(self, parent_id: int, **fields: Any) -> int:
        """Create a child task under *parent_id* and return its id.

        Raises:
            RuntimeError: If the router has been detached.
        """
        if self._add_child is None:
            raise RuntimeError("add-child hook has been released")
        merged = {**self.child_defaults, **fields}
        if "end" in fields and "duration" not in fields:
            merged.pop("duration", None)
        if "start" not in merged:
            parent = self.store.find(parent_id)
            if parent is not None:
                merged["start"] = parent.start
        return self._add_child(parent_id, merged)

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def _listener(self, kind: str) -> Callable[[dict[str, Any]], None]:
        def _on_event(payload: dict[str, Any]) -> None:
            self._dispatch(kind, payload)

        return _on_event

    def _dispatch(self, kind: str, payload: dict[str, Any]) -> None:
        try:
            self.handle(event_from_payload(kind, payload))
        except Exception:
            logger.exception("Progress recompute failed for {} {}", kind, payload)

    def handle(self, event: MutationEvent) -> list[int]:
        """Apply the recompute policy for *event*; return rewritten summary ids."""
        if isinstance(event, InitialLoad):
            return self.recompute(event.id, include_self=True)
        if isinstance(event, (Insert, Update, Copy)):
            return self.recompute(event.id)
        if isinstance(event, Delete):
            if event.former_parent is None:
                return []
            return self.recompute(event.former_parent, include_self=True)
        if isinstance(event, Move):
            if event.in_progress:
                logger.debug("Skipping recompute for in-progress move of {}", event.id)
                return []
            written: list[int] = []
            moved = self.store.find(event.id)
            if moved is not None and moved.parent != event.former_parent and event.former_parent is not None:
                written.extend(self.recompute(event.former_parent, include_self=True))
            written.extend(self.recompute(event.id))
            return written
        raise TypeError(f"Unsupported event: {event!r}")

    def initial_load(self) -> list[int]:
        """Recompute the nearest summary (self included) of every node."""
        written: list[int] = []
        for task_id in [node.id for node in self.store]:
            for summary_id in self.handle(InitialLoad(task_id)):
                if summary_id not in written:
                    written.append(summary_id)
        return written

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def recompute(self, task_id: int, include_self: bool = False) -> list[int]:
        """Re-aggregate the summary responsible for *task_id*.

        Missing ids are skipped.  The target is always a summary, so an event
        on a milestone still refreshes the summary above it.  Returns the ids
        whose progress was written.
        """
        try:
            target = self.store.nearest_ancestor_of_kind(task_id, TaskKind.SUMMARY, include_self=include_self)
            if target is None:
                return []
            written = [self._write_progress(target)]
            if self.propagate:
                for ancestor_id in self.store.ancestors(target):
                    if self.store.get(ancestor_id).kind == TaskKind.SUMMARY:
                        written.append(self._write_progress(ancestor_id))
            return written
        except NotFound as exc:
            logger.debug("Skipping recompute: {}", exc)
            return []
        except TaskTreeError as exc:
            logger.warning("Recompute of {} failed: {}", task_id, exc)
            return []

    def _write_progress(self, summary_id: int) -> int:
        progress = aggregate(self.store, summary_id)
        self.store.update(summary_id, {"progress": progress})
        logger.debug("Summary {} progress -> {}", summary_id, progress)
        return summary_id
