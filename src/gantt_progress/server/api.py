"""FastAPI app exposing a Gantt session to a browser chart.

Every mutating endpoint runs the matching widget command on the session, so
the attached :class:`MutationEventRouter` re-aggregates summary progress
exactly as it would for events raised by the chart itself.
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .. import __version__
from ..config import (
    get_new_child_defaults,
    get_new_task_defaults,
    get_propagate_to_ancestors,
    load_engine_config,
)
from ..constants import (
    EVENT_ADD_TASK,
    EVENT_COPY_TASK,
    EVENT_DELETE_TASK,
    EVENT_MOVE_TASK,
    EVENT_UPDATE_TASK,
)
from ..task_tree.adapter import TaskAdapter
from ..task_tree.aggregate import aggregate, collect_progress
from ..task_tree.router import MutationEventRouter
from ..task_tree.session import GanttSession
from ..task_tree.store import CycleError, NotFound
from .models import (
    AddChildRequest,
    AddTaskRequest,
    CopyTaskRequest,
    LoadResponse,
    LoadTasksRequest,
    MoveTaskRequest,
    ProgressResponse,
    TaskListResponse,
    TaskResponse,
    UpdateTaskRequest,
)


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
    config: Optional[dict[str, Any]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        project_dir: Directory holding the optional ``.gantt_progress/`` config.
        enable_cors: Whether to enable CORS.
        config: Explicit configuration; skips reading the config file.

    Returns:
        Configured FastAPI app.
    """
    if config is None:
        config, err = load_engine_config(project_dir or Path.cwd())
        if err:
            logger.warning("Ignoring unreadable config: {}", err)

    session = GanttSession()
    router = MutationEventRouter(
        session,
        propagate=get_propagate_to_ancestors(config),
        child_defaults=get_new_child_defaults(config),
    )
    router.attach()
    adapter = TaskAdapter()
    new_task_defaults = get_new_task_defaults(config)
    lock = threading.Lock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        router.detach()
        logger.info("Gantt session closed")

    app = FastAPI(
        title="Gantt Progress",
        description="Summary-progress aggregation for hierarchical Gantt charts",
        version=__version__,
        lifespan=lifespan,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.session = session
    app.state.router = router
    app.state.adapter = adapter

    def _task_or_404(task_id: int) -> dict[str, Any]:
        node = session.get_task(task_id)
        if node is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return node.to_dict()

    def _run(command: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            return session.exec(command, payload)
        except NotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except (CycleError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {"name": "Gantt Progress", "version": __version__, "status": "running"}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @app.get("/api/tasks", response_model=TaskListResponse)
    def list_tasks() -> TaskListResponse:
        with lock:
            tasks = session.get_state()["tasks"]
        return TaskListResponse(tasks=tasks, total=len(tasks))

    @app.get("/api/tasks/{task_id}", response_model=TaskResponse)
    def get_task(task_id: int) -> TaskResponse:
        with lock:
            return TaskResponse(task=_task_or_404(task_id))

    @app.get("/api/tasks/{task_id}/progress", response_model=ProgressResponse)
    def get_progress(task_id: int) -> ProgressResponse:
        with lock:
            node = _task_or_404(task_id)
            _, weight = collect_progress(session.store, task_id)
            return ProgressResponse(
                id=task_id,
                progress=aggregate(session.store, task_id),
                stored_progress=node["progress"],
                weight=weight,
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @app.post("/api/tasks/load", response_model=LoadResponse)
    def load_tasks(request: LoadTasksRequest) -> LoadResponse:
        with lock:
            session.store.clear()
            try:
                loaded = adapter.load(session.store, request.tasks)
            except ValueError as exc:
                session.store.clear()
                raise HTTPException(status_code=400, detail=str(exc))
            summaries = router.initial_load()
            id_map = {record.id: adapter.numeric_id_for(record.id) for record in request.tasks}
        return LoadResponse(loaded=len(loaded), summaries=summaries, id_map=id_map)

    @app.post("/api/tasks", response_model=TaskResponse, status_code=201)
    def add_task(request: AddTaskRequest) -> TaskResponse:
        fields = request.model_dump(exclude={"target", "mode"}, exclude_none=True)
        fields.setdefault("text", new_task_defaults["text"])
        if "end" not in fields:
            fields.setdefault("duration", new_task_defaults["duration"])
        with lock:
            result = _run(EVENT_ADD_TASK, {"task": fields, "target": request.target, "mode": request.mode})
            return TaskResponse(task=_task_or_404(result["id"]))

    @app.post("/api/tasks/{task_id}/children", response_model=TaskResponse, status_code=201)
    def add_child(task_id: int, request: Optional[AddChildRequest] = None) -> TaskResponse:
        fields = request.model_dump(exclude_none=True) if request else {}
        with lock:
            _task_or_404(task_id)
            try:
                new_id = router.add_child(task_id, **fields)
            except RuntimeError as exc:
                raise HTTPException(status_code=409, detail=str(exc))
            return TaskResponse(task=_task_or_404(new_id))

    @app.patch("/api/tasks/{task_id}", response_model=TaskResponse)
    def update_task(task_id: int, request: UpdateTaskRequest) -> TaskResponse:
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        with lock:
            _run(EVENT_UPDATE_TASK, {"id": task_id, "task": changes})
            return TaskResponse(task=_task_or_404(task_id))

    @app.delete("/api/tasks/{task_id}")
    def delete_task(task_id: int) -> dict[str, Any]:
        with lock:
            result = _run(EVENT_DELETE_TASK, {"id": task_id})
        return {"deleted": result["removed"]}

    @app.post("/api/tasks/{task_id}/move", response_model=TaskResponse)
    def move_task(task_id: int, request: MoveTaskRequest) -> TaskResponse:
        payload = {
            "id": task_id,
            "target": request.target,
            "mode": request.mode,
            "inProgress": request.in_progress,
        }
        with lock:
            _run(EVENT_MOVE_TASK, payload)
            return TaskResponse(task=_task_or_404(task_id))

    @app.post("/api/tasks/{task_id}/copy", response_model=TaskResponse, status_code=201)
    def copy_task(task_id: int, request: Optional[CopyTaskRequest] = None) -> TaskResponse:
        request = request or CopyTaskRequest()
        with lock:
            result = _run(EVENT_COPY_TASK, {"id": task_id, "target": request.target, "mode": request.mode})
            return TaskResponse(task=_task_or_404(result["id"]))

    return app
