"""Duration-weighted progress aggregation over a task subtree."""

from __future__ import annotations

import math

from ..constants import PROGRESS_MAX, PROGRESS_MIN
from .model import TaskKind
from .store import TaskTreeStore


def collect_progress(store: TaskTreeStore, task_id: int) -> tuple[float, float]:
    """Sum ``weight * progress`` and ``weight`` over the leaves below *task_id*.

    Summary descendants add nothing themselves; their stored progress is never
    read, only their own descendants are.  Milestones add nothing.
    """
    total_progress = 0.0
    total_weight = 0.0
    for child_id in store.children(task_id):
        child = store.get(child_id)
        if child.kind == TaskKind.LEAF:
            weight = child.weight
            total_weight += weight
            total_progress += weight * child.progress
        sub_progress, sub_weight = collect_progress(store, child_id)
        total_progress += sub_progress
        total_weight += sub_weight
    return total_progress, total_weight


def aggregate(store: TaskTreeStore, task_id: int) -> int:
    """Return the rounded weighted progress of *task_id*'s leaf descendants.

    Yields 0 when the subtree carries no weight.  Rounds half up and clamps to
    ``[0, 100]``.

    Raises:
        NotFound: If *task_id* is not in the store.
    """
    total_progress, total_weight = collect_progress(store, task_id)
    if total_weight <= 0:
        return PROGRESS_MIN
    value = math.floor(total_progress / total_weight + 0.5)
    return int(max(PROGRESS_MIN, min(PROGRESS_MAX, value)))
