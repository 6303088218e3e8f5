"""Convert externally supplied task records into tree nodes.

External sources identify tasks with opaque strings and carry calendar dates,
sometimes wrapped in a provider-specific timestamp type.  The adapter maps
them to integer ids and aware datetimes, keeps a two-way id mapping so the UI
can refer back to the source record, and restores parent links.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .model import TaskKind, TaskNode, clamp_progress, coerce_datetime
from .store import TaskTreeStore

_NON_DIGITS = re.compile(r"\D")

# Method names of common provider timestamp wrappers
_TIMESTAMP_CONVERTERS = ("to_datetime", "ToDatetime", "toDate")


def _unwrap_timestamp(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    for name in _TIMESTAMP_CONVERTERS:
        convert = getattr(value, name, None)
        if callable(convert):
            return convert()
    return value


class ExternalTaskRecord(BaseModel):
    """A task as delivered by an external source."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str = Field(default="", validation_alias=AliasChoices("name", "text", "title"))
    description: str = Field(default="", validation_alias=AliasChoices("description", "details"))
    start: datetime = Field(validation_alias=AliasChoices("start", "startDate", "start_date"))
    end: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("end", "endDate", "end_date"))
    duration: Optional[float] = None
    progress: float = 0
    parent_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("parent_id", "parentId", "parent")
    )
    type: Optional[str] = None
    open: bool = True

    @field_validator("id", "parent_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_instant(cls, value: Any) -> Any:
        if value is None:
            return None
        return coerce_datetime(_unwrap_timestamp(value))

    @field_validator("description", mode="before")
    @classmethod
    def _empty_description(cls, value: Any) -> Any:
        return value or ""


RecordLike = Union[ExternalTaskRecord, dict[str, Any]]


def digits_id(external_id: str) -> Optional[int]:
    """Integer formed by the digits in *external_id*, or ``None`` if it has none."""
    digits = _NON_DIGITS.sub("", external_id or "")
    return int(digits) if digits else None


class TaskAdapter:
    """Map external records to :class:`TaskNode` objects with numeric ids."""

    def __init__(self) -> None:
        self._to_external: dict[int, str] = {}
        self._to_numeric: dict[str, int] = {}

    def external_id_for(self, task_id: int) -> Optional[str]:
        return self._to_external.get(task_id)

    def numeric_id_for(self, external_id: str) -> Optional[int]:
        return self._to_numeric.get(external_id)

    def _assign_id(self, external_id: str, position: int, taken: set[int]) -> int:
        candidate = digits_id(external_id)
        if candidate is None:
            logger.info("Task id {!r} has no digits; using position {}", external_id, position)
            candidate = position
        candidate = max(candidate, 1)
        while candidate in taken:
            candidate += 1
        taken.add(candidate)
        return candidate

    def adapt(self, records: Iterable[RecordLike]) -> list[TaskNode]:
        """Convert *records*, returning nodes ordered parents first.

        Each call replaces the previous id mapping.
        """
        parsed = [
            r if isinstance(r, ExternalTaskRecord) else ExternalTaskRecord.model_validate(r)
            for r in records
        ]
        self._to_external.clear()
        self._to_numeric.clear()

        taken: set[int] = set()
        for position, record in enumerate(parsed, start=1):
            if record.id in self._to_numeric:
                logger.warning("Duplicate external task id {!r}; keeping the first", record.id)
                continue
            numeric = self._assign_id(record.id, position, taken)
            self._to_numeric[record.id] = numeric
            self._to_external[numeric] = record.id

        nodes: dict[int, TaskNode] = {}
        for record in parsed:
            numeric = self._to_numeric[record.id]
            if numeric in nodes:
                continue
            nodes[numeric] = self._to_node(numeric, record)

        self._break_cycles(nodes)
        return self._parents_first(nodes)

    def _to_node(self, numeric: int, record: ExternalTaskRecord) -> TaskNode:
        try:
            kind = TaskKind(record.type) if record.type else TaskKind.LEAF
        except ValueError:
            kind = TaskKind.LEAF
        parent = self._to_numeric.get(record.parent_id) if record.parent_id else None
        if record.parent_id and parent is None:
            logger.warning("Task {!r} references unknown parent {!r}", record.id, record.parent_id)
        return TaskNode(
            id=numeric,
            kind=kind,
            text=record.name,
            start=record.start,
            end=record.end,
            duration=record.duration,
            progress=clamp_progress(record.progress),
            parent=parent if parent != numeric else None,
            details=record.description,
            open=record.open,
            external_id=record.id,
        )

    def _break_cycles(self, nodes: dict[int, TaskNode]) -> None:
        for node in nodes.values():
            seen = {node.id}
            prev = node
            current = node.parent
            while current is not None:
                if current in seen:
                    logger.warning("Parent cycle at task {}; moving it to the root", prev.id)
                    prev.parent = None
                    break
                seen.add(current)
                prev = nodes[current]
                current = prev.parent

    def _parents_first(self, nodes: dict[int, TaskNode]) -> list[TaskNode]:
        children: dict[Optional[int], list[int]] = {}
        for node in nodes.values():
            children.setdefault(node.parent, []).append(node.id)
        ordered: list[TaskNode] = []
        queue = list(children.get(None, []))
        while queue:
            task_id = queue.pop(0)
            ordered.append(nodes[task_id])
            queue.extend(children.get(task_id, []))
        return ordered

    def load(self, store: TaskTreeStore, records: Iterable[RecordLike]) -> list[int]:
        """Adapt *records* and insert them into *store*; return the new ids."""
        inserted: list[int] = []
        for node in self.adapt(records):
            inserted.append(store.insert(node, parent=node.parent))
        logger.info("Loaded {} external task(s)", len(inserted))
        return inserted
