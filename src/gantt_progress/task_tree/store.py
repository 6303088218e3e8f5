"""In-memory, id-indexed store for a Gantt task forest.

The store owns every :class:`TaskNode` in a flat ``dict`` keyed by id, plus
the ordered list of root ids.  Parent/child links are kept consistent by the
mutation primitives; each primitive returns the affected id(s) so the router
knows which summaries to re-aggregate.

The store performs no locking.  Callers serialise their own access.
"""

from __future__ import annotations

import copy
from typing import Any, Iterator, Optional

from .model import EDITABLE_FIELDS, TaskKind, TaskNode, clamp_progress, coerce_datetime


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TaskTreeError(Exception):
    """Base class for task tree failures."""


class NotFound(TaskTreeError, KeyError):
    """Raised when a task id is not present in the store."""

    def __init__(self, task_id: Any) -> None:
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Task {self.task_id} not found"


class DuplicateTask(TaskTreeError, ValueError):
    """Raised when inserting a node whose id is already taken."""


class CycleError(TaskTreeError, ValueError):
    """Raised when a reparent would make a node its own ancestor."""


# ---------------------------------------------------------------------------
# TaskTreeStore
# ---------------------------------------------------------------------------

class TaskTreeStore:
    """Table of task nodes forming a forest."""

    def __init__(self, nodes: Optional[list[TaskNode]] = None) -> None:
        self._nodes: dict[int, TaskNode] = {}
        self._roots: list[int] = []
        for node in nodes or []:
            self.insert(node, parent=node.parent)

    # -- lookups ------------------------------------------------------------

    def get(self, task_id: int) -> TaskNode:
        try:
            return self._nodes[task_id]
        except KeyError:
            raise NotFound(task_id) from None

    def find(self, task_id: Optional[int]) -> Optional[TaskNode]:
        if task_id is None:
            return None
        return self._nodes.get(task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[TaskNode]:
        """Yield nodes depth-first in display order."""
        stack = list(reversed(self._roots))
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def roots(self) -> list[int]:
        return list(self._roots)

    def children(self, task_id: int) -> list[int]:
        return list(self.get(task_id).children)

    def parent_of(self, task_id: int) -> Optional[int]:
        return self.get(task_id).parent

    def descendants(self, task_id: int) -> list[int]:
        """All ids below *task_id*, depth-first, excluding *task_id* itself."""
        out: list[int] = []
        stack = list(reversed(self.get(task_id).children))
        while stack:
            current = stack.pop()
            out.append(current)
            stack.extend(reversed(self._nodes[current].children))
        return out

    def ancestors(self, task_id: int) -> list[int]:
        """Parent chain of *task_id*, nearest first."""
        out: list[int] = []
        current = self.get(task_id).parent
        while current is not None:
            out.append(current)
            current = self._nodes[current].parent
        return out

    def nearest_ancestor_of_kind(
        self,
        task_id: int,
        kind: TaskKind,
        include_self: bool = False,
    ) -> Optional[int]:
        """Walk parent links upward until a node of *kind* is found.

        The walk starts at *task_id* itself when *include_self* is set,
        otherwise at its parent.  Returns ``None`` when the root is passed
        without a match.
        """
        node = self.get(task_id)
        if include_self and node.kind == kind:
            return node.id
        for ancestor_id in self.ancestors(task_id):
            if self._nodes[ancestor_id].kind == kind:
                return ancestor_id
        return None

    def next_id(self) -> int:
        return max(self._nodes, default=0) + 1

    # -- mutations ----------------------------------------------------------

    def _siblings(self, parent: Optional[int]) -> list[int]:
        return self._roots if parent is None else self._nodes[parent].children

    def _attach(self, task_id: int, parent: Optional[int], index: Optional[int]) -> None:
        siblings = self._siblings(parent)
        if index is None or index >= len(siblings):
            siblings.append(task_id)
        else:
            siblings.insert(max(0, index), task_id)
        self._nodes[task_id].parent = parent

    def _detach(self, task_id: int) -> Optional[int]:
        parent = self._nodes[task_id].parent
        siblings = self._siblings(parent)
        if task_id in siblings:
            siblings.remove(task_id)
        return parent

    def insert(self, node: TaskNode, parent: Optional[int] = None, index: Optional[int] = None) -> int:
        """Add *node* under *parent* (root when ``None``) at *index*.

        A node with ``id == 0`` is given the next free id.  Children listed on
        *node* are ignored; descendants are inserted one by one.
        """
        if parent is not None and parent not in self._nodes:
            raise NotFound(parent)
        if not node.id:
            node.id = self.next_id()
        if node.id in self._nodes:
            raise DuplicateTask(f"Task {node.id} already exists")
        node.children = []
        self._nodes[node.id] = node
        self._attach(node.id, parent, index)
        return node.id

    def update(self, task_id: int, changes: dict[str, Any]) -> int:
        """Apply field *changes* to a node in place.

        Raises:
            NotFound: If the task is missing.
            ValueError: If a field is unknown, structural or has an invalid
                value.  Nothing is written in that case.
        """
        node = self.get(task_id)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s) {sorted(unknown)} on task {task_id}")
        coerced: dict[str, Any] = {}
        for key, value in changes.items():
            if key == "kind" and not isinstance(value, TaskKind):
                value = TaskKind(value)
            elif key == "progress":
                value = clamp_progress(value)
            elif key == "start":
                if value is None:
                    raise ValueError(f"Task {task_id} start cannot be empty")
                value = coerce_datetime(value)
            elif key == "end" and value is not None:
                value = coerce_datetime(value)
            elif key == "duration" and value is not None:
                try:
                    value = float(value)
                except (TypeError, ValueError):
                    raise ValueError(f"Invalid duration {value!r} for task {task_id}") from None
            coerced[key] = value
        for key, value in coerced.items():
            setattr(node, key, value)
        if node.end is None:
            node.end = node.start
        node.normalize()
        return task_id

    def remove(self, task_id: int) -> list[int]:
        """Delete *task_id* and its whole subtree; return the removed ids."""
        removed = [task_id, *self.descendants(task_id)]
        self._detach(task_id)
        for rid in removed:
            del self._nodes[rid]
        return removed

    def reparent(
        self,
        task_id: int,
        new_parent: Optional[int],
        index: Optional[int] = None,
    ) -> tuple[Optional[int], Optional[int]]:
        """Move *task_id* under *new_parent* at *index*.

        Returns:
            ``(former_parent, new_parent)``.

        Raises:
            NotFound: If either id is missing.
            CycleError: If *new_parent* is the node or one of its descendants.
        """
        self.get(task_id)
        if new_parent is not None:
            self.get(new_parent)
            if new_parent == task_id or new_parent in self.descendants(task_id):
                raise CycleError(f"Cannot move task {task_id} under its own subtree ({new_parent})")
        former = self._detach(task_id)
        self._attach(task_id, new_parent, index)
        return former, new_parent

    def copy_subtree(self, task_id: int, parent: Optional[int] = None, index: Optional[int] = None) -> int:
        """Deep-copy *task_id* and its descendants with fresh ids.

        Returns:
            The id of the new subtree root.
        """
        source = self.get(task_id)
        originals = self.descendants(task_id)
        mapping: dict[int, int] = {}
        mapping[task_id] = self.insert(self._clone(source), parent=parent, index=index)
        for old_id in originals:
            old = self._nodes[old_id]
            mapping[old_id] = self.insert(self._clone(old), parent=mapping[old.parent])
        return mapping[task_id]

    def _clone(self, node: TaskNode) -> TaskNode:
        clone = copy.deepcopy(node)
        clone.id = self.next_id()
        clone.children = []
        clone.external_id = None
        return clone

    def clear(self) -> None:
        self._nodes.clear()
        self._roots.clear()
