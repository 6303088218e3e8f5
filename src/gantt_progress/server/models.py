"""Pydantic models for API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ..task_tree.adapter import ExternalTaskRecord

TaskType = Literal["task", "summary", "milestone"]
Placement = Literal["child", "before", "after"]


class AddTaskRequest(BaseModel):
    text: Optional[str] = None
    type: TaskType = "task"
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    details: str = ""
    target: Optional[int] = None
    mode: Placement = "child"


class AddChildRequest(BaseModel):
    text: Optional[str] = None
    type: TaskType = "task"
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    details: Optional[str] = None


class UpdateTaskRequest(BaseModel):
    text: Optional[str] = None
    type: Optional[TaskType] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, ge=0)
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    details: Optional[str] = None
    open: Optional[bool] = None


class MoveTaskRequest(BaseModel):
    target: Optional[int] = None
    mode: Placement = "child"
    in_progress: bool = False


class CopyTaskRequest(BaseModel):
    target: Optional[int] = None
    mode: Placement = "after"


class LoadTasksRequest(BaseModel):
    tasks: list[ExternalTaskRecord] = Field(default_factory=list)


class TaskResponse(BaseModel):
    """Standard wrapper for task responses."""
    task: dict[str, Any]


class TaskListResponse(BaseModel):
    tasks: list[dict[str, Any]]
    total: int


class LoadResponse(BaseModel):
    loaded: int
    summaries: list[int]
    id_map: dict[str, int]


class ProgressResponse(BaseModel):
    id: int
    progress: int
    stored_progress: int
    weight: float
