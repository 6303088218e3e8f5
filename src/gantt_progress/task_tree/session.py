"""In-process Gantt session: the command/event surface of the chart widget.

The session owns a :class:`TaskTreeStore`, executes the widget's mutation
commands against it and notifies subscribers afterwards, one event at a time
and in subscription order.  Handlers receive the same payload dicts the
browser widget sends (``id``, ``source`` for the former parent, ``inProgress``
for drags).
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Optional

from loguru import logger

from ..constants import (
    COMMAND_CLOSE_TASK,
    COMMAND_OPEN_TASK,
    EVENT_ADD_TASK,
    EVENT_COPY_TASK,
    EVENT_DELETE_TASK,
    EVENT_MOVE_TASK,
    EVENT_UPDATE_TASK,
    MUTATION_EVENTS,
    PLACEMENT_AFTER,
    PLACEMENT_CHILD,
    VALID_PLACEMENTS,
)
from .model import TaskNode
from .store import TaskTreeStore

EventHandler = Callable[[dict[str, Any]], None]

# Widget field names that differ from TaskNode attribute names
_FIELD_ALIASES = {"type": "kind"}


def _translate_fields(task: dict[str, Any]) -> dict[str, Any]:
    return {_FIELD_ALIASES.get(key, key): value for key, value in task.items()}


class GanttSession:
    """Execute chart commands and broadcast the resulting mutation events."""

    def __init__(self, store: Optional[TaskTreeStore] = None) -> None:
        self.store = store if store is not None else TaskTreeStore()
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        # Parent each task had before its current drag started
        self._drag_origin: dict[int, Optional[int]] = {}

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(self, kind: str, handler: EventHandler) -> None:
        if kind not in MUTATION_EVENTS:
            raise ValueError(f"Unknown event kind: {kind}")
        self._handlers[kind].append(handler)

    def off(self, kind: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(kind, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, kind: Optional[str] = None) -> int:
        if kind is not None:
            return len(self._handlers.get(kind, []))
        return sum(len(h) for h in self._handlers.values())

    def _emit(self, kind: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(kind, [])):
            handler(payload)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: int) -> Optional[TaskNode]:
        return self.store.find(task_id)

    def get_state(self) -> dict[str, Any]:
        return {"tasks": [node.to_dict() for node in self.store]}

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def exec(self, command: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Run *command* and emit its mutation event.

        Raises:
            ValueError: For unknown commands or placements.
            NotFound: When a referenced task does not exist.
            CycleError: When a move would nest a task under itself.
        """
        logger.debug("Gantt command {} {}", command, payload)
        if command == EVENT_ADD_TASK:
            return self._add_task(payload)
        if command == EVENT_UPDATE_TASK:
            return self._update_task(payload)
        if command == EVENT_DELETE_TASK:
            return self._delete_task(payload)
        if command == EVENT_MOVE_TASK:
            return self._move_task(payload)
        if command == EVENT_COPY_TASK:
            return self._copy_task(payload)
        if command in (COMMAND_OPEN_TASK, COMMAND_CLOSE_TASK):
            task_id = int(payload["id"])
            self.store.update(task_id, {"open": command == COMMAND_OPEN_TASK})
            return {"id": task_id}
        raise ValueError(f"Unsupported command: {command}")

    def _placement(
        self,
        target: Optional[int],
        mode: str,
        moving: Optional[int] = None,
    ) -> tuple[Optional[int], Optional[int]]:
        """Resolve ``(parent, index)`` for a target/mode pair.

        *moving* is left out of the sibling list so the index is valid once the
        moving node has been detached.
        """
        if mode not in VALID_PLACEMENTS:
            raise ValueError(f"Unknown placement mode: {mode}")
        if target is None:
            return None, None
        if mode == PLACEMENT_CHILD:
            self.store.get(target)
            return target, None
        parent = self.store.parent_of(target)
        siblings = self.store.children(parent) if parent is not None else self.store.roots()
        siblings = [s for s in siblings if s != moving]
        index = siblings.index(target)
        if mode == PLACEMENT_AFTER:
            index += 1
        return parent, index

    def _add_task(self, payload: dict[str, Any]) -> dict[str, Any]:
        fields = _translate_fields(dict(payload.get("task") or {}))
        target = payload.get("target")
        mode = payload.get("mode") or PLACEMENT_CHILD
        if target is None and fields.get("parent") is not None:
            target, mode = fields["parent"], PLACEMENT_CHILD
        fields.pop("parent", None)
        fields.pop("children", None)
        fields.pop("id", None)
        node = TaskNode.from_dict(fields)
        parent, index = self._placement(int(target) if target is not None else None, mode)
        task_id = self.store.insert(node, parent=parent, index=index)
        self._emit(EVENT_ADD_TASK, {"id": task_id, "task": node.to_dict()})
        return {"id": task_id}

    def _update_task(self, payload: dict[str, Any]) -> dict[str, Any]:
        task_id = int(payload["id"])
        changes = _translate_fields(dict(payload.get("task") or {}))
        self.store.update(task_id, changes)
        self._emit(EVENT_UPDATE_TASK, {"id": task_id, "task": changes})
        return {"id": task_id}

    def _delete_task(self, payload: dict[str, Any]) -> dict[str, Any]:
        task_id = int(payload["id"])
        source = self.store.parent_of(task_id)
        removed = self.store.remove(task_id)
        for removed_id in removed:
            self._drag_origin.pop(removed_id, None)
        self._emit(EVENT_DELETE_TASK, {"id": task_id, "source": source})
        return {"id": task_id, "removed": removed}

    def _move_task(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Reparent a task.

        Intermediate drag positions (``inProgress``) report the parent they
        left.  The finalizing move reports the parent the task had before the
        drag began.
        """
        task_id = int(payload["id"])
        target = payload.get("target")
        mode = payload.get("mode") or PLACEMENT_CHILD
        in_progress = bool(payload.get("inProgress", False))
        self.store.get(task_id)
        parent, index = self._placement(int(target) if target is not None else None, mode, moving=task_id)
        former, _ = self.store.reparent(task_id, parent, index)
        if in_progress:
            self._drag_origin.setdefault(task_id, former)
            source = former
        else:
            source = self._drag_origin.pop(task_id, former)
        self._emit(EVENT_MOVE_TASK, {"id": task_id, "source": source, "inProgress": in_progress})
        return {"id": task_id, "source": source}

    def _copy_task(self, payload: dict[str, Any]) -> dict[str, Any]:
        source_id = int(payload["id"])
        self.store.get(source_id)
        target = payload.get("target")
        mode = payload.get("mode") or PLACEMENT_AFTER
        if target is None:
            target, mode = source_id, PLACEMENT_AFTER
        parent, index = self._placement(int(target), mode)
        new_id = self.store.copy_subtree(source_id, parent=parent, index=index)
        self._emit(EVENT_COPY_TASK, {"id": new_id, "source": source_id})
        return {"id": new_id}
