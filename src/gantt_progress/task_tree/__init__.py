"""Task tree engine: store, aggregation and the reactive recompute router.

The router keeps every summary task's progress equal to the duration-weighted
progress of its leaf descendants while a :class:`GanttSession` is mutated.
"""

from .adapter import ExternalTaskRecord, TaskAdapter
from .aggregate import aggregate, collect_progress
from .events import Copy, Delete, InitialLoad, Insert, Move, MutationEvent, Update, event_from_payload
from .model import TaskKind, TaskNode
from .router import MutationEventRouter
from .session import GanttSession
from .store import CycleError, DuplicateTask, NotFound, TaskTreeError, TaskTreeStore

__all__ = [
    "Copy",
    "CycleError",
    "Delete",
    "DuplicateTask",
    "ExternalTaskRecord",
    "GanttSession",
    "InitialLoad",
    "Insert",
    "Move",
    "MutationEvent",
    "MutationEventRouter",
    "NotFound",
    "TaskAdapter",
    "TaskKind",
    "TaskNode",
    "TaskTreeError",
    "TaskTreeStore",
    "Update",
    "aggregate",
    "collect_progress",
    "event_from_payload",
]
