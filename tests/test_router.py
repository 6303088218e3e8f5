"""Tests for the mutation event router (task_tree/router.py, task_tree/events.py)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from gantt_progress.task_tree.events import (
    Copy,
    Delete,
    InitialLoad,
    Insert,
    Move,
    Update,
    event_from_payload,
)
from gantt_progress.task_tree.model import TaskKind, TaskNode
from gantt_progress.task_tree.router import MutationEventRouter
from gantt_progress.task_tree.session import GanttSession
from gantt_progress.task_tree.store import TaskTreeStore

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _build_store() -> TaskTreeStore:
    """
    1 Project (summary)
      2 Phase A (summary)
        4 a1 (4d, 50%)
        5 a2 (6d, 100%)
      3 Phase B (summary)
        6 b1 (2d, 0%)
      7 Launch (milestone)
    """
    store = TaskTreeStore()
    store.insert(TaskNode(id=1, kind=TaskKind.SUMMARY, text="Project", start=T0))
    store.insert(TaskNode(id=2, kind=TaskKind.SUMMARY, text="Phase A", start=T0), parent=1)
    store.insert(TaskNode(id=3, kind=TaskKind.SUMMARY, text="Phase B", start=T0), parent=1)
    store.insert(TaskNode(id=4, text="a1", start=T0, duration=4, progress=50), parent=2)
    store.insert(TaskNode(id=5, text="a2", start=T0, duration=6, progress=100), parent=2)
    store.insert(TaskNode(id=6, text="b1", start=T0, duration=2, progress=0), parent=3)
    store.insert(TaskNode(id=7, kind=TaskKind.MILESTONE, text="Launch", start=T0), parent=1)
    return store


@pytest.fixture
def session() -> GanttSession:
    return GanttSession(_build_store())


@pytest.fixture
def router(session: GanttSession) -> MutationEventRouter:
    r = MutationEventRouter(session)
    r.attach()
    return r


def _progress(session: GanttSession, task_id: int) -> int:
    return session.store.get(task_id).progress


class TestEventPayloads:
    def test_known_payloads(self) -> None:
        assert event_from_payload("add-task", {"id": 3}) == Insert(id=3)
        assert event_from_payload("update-task", {"id": "4"}) == Update(id=4)
        assert event_from_payload("delete-task", {"id": 9, "source": 2}) == Delete(former_parent=2)
        assert event_from_payload("delete-task", {"id": 9, "source": None}) == Delete(former_parent=None)
        assert event_from_payload("copy-task", {"id": 11}) == Copy(id=11)
        assert event_from_payload("move-task", {"id": 4, "source": 2, "inProgress": True}) == Move(
            id=4, former_parent=2, in_progress=True
        )

    def test_move_defaults_to_final(self) -> None:
        assert event_from_payload("move-task", {"id": 4, "source": 2}).in_progress is False

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError, match="Unknown"):
            event_from_payload("drag-task", {"id": 1})

    def test_missing_id(self) -> None:
        with pytest.raises(ValueError, match="Malformed"):
            event_from_payload("update-task", {})


class TestInitialLoad:
    def test_attach_recomputes_every_summary(self, session: GanttSession) -> None:
        router = MutationEventRouter(session)
        written = router.attach()
        assert set(written) == {1, 2, 3}
        assert _progress(session, 2) == 80
        assert _progress(session, 3) == 0
        # (4*50 + 6*100 + 2*0) / 12
        assert _progress(session, 1) == 67

    def test_stale_summary_value_is_overwritten(self, session: GanttSession) -> None:
        session.store.update(2, {"progress": 5})
        MutationEventRouter(session).attach()
        assert _progress(session, 2) == 80

    def test_attach_twice_is_noop(self, router: MutationEventRouter, session: GanttSession) -> None:
        assert router.attach() == []
        assert session.handler_count("update-task") == 1

    def test_initial_load_event_targets_self(self, router: MutationEventRouter) -> None:
        assert router.handle(InitialLoad(2)) == [2]
        assert router.handle(InitialLoad(4)) == [2]


class TestUpdate:
    def test_leaf_edit_updates_nearest_summary(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("update-task", {"id": 4, "task": {"progress": 100}})
        assert _progress(session, 2) == 100

    def test_only_nearest_summary_is_refreshed(self, router: MutationEventRouter, session: GanttSession) -> None:
        before = _progress(session, 1)
        session.exec("update-task", {"id": 6, "task": {"progress": 100}})
        assert _progress(session, 3) == 100
        assert _progress(session, 1) == before

    def test_write_back_does_not_emit_update(self, router: MutationEventRouter, session: GanttSession) -> None:
        seen: list[dict[str, Any]] = []
        session.on("update-task", seen.append)
        session.exec("update-task", {"id": 4, "task": {"progress": 0}})
        assert [p["id"] for p in seen] == [4]

    def test_milestone_edit_refreshes_summary_above(self, router: MutationEventRouter) -> None:
        assert router.handle(Update(7)) == [1]

    def test_leaf_turned_milestone_drops_its_weight(
        self, router: MutationEventRouter, session: GanttSession
    ) -> None:
        session.exec("update-task", {"id": 4, "task": {"type": "milestone"}})
        # only a2 (6d, 100%) still carries weight
        assert _progress(session, 2) == 100

    def test_direct_summary_write_is_replaced_on_next_recompute(
        self, router: MutationEventRouter, session: GanttSession
    ) -> None:
        session.exec("update-task", {"id": 2, "task": {"progress": 3}})
        assert _progress(session, 2) == 3
        session.exec("update-task", {"id": 5, "task": {"text": "a2 renamed"}})
        assert _progress(session, 2) == 80


class TestInsertAndCopy:
    def test_insert_recomputes_parent_summary(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("add-task", {"task": {"duration": 10, "progress": 0, "start": T0}, "target": 2, "mode": "child"})
        # (200 + 600 + 0) / 20
        assert _progress(session, 2) == 40

    def test_new_summary_does_not_target_itself(self, router: MutationEventRouter, session: GanttSession) -> None:
        result = session.exec("add-task", {"task": {"type": "summary", "progress": 90}, "target": 3})
        assert router.handle(Insert(result["id"])) == [3]
        assert _progress(session, result["id"]) == 90

    def test_copy_recomputes_summary_of_copy(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("update-task", {"id": 6, "task": {"progress": 100}})
        session.exec("copy-task", {"id": 4, "target": 6, "mode": "after"})
        # b1 (2d, 100%) + copy of a1 (4d, 50%)
        assert _progress(session, 3) == 67


class TestDelete:
    def test_delete_only_leaf_leaves_zero(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("update-task", {"id": 6, "task": {"progress": 100}})
        assert _progress(session, 3) == 100
        session.exec("delete-task", {"id": 6})
        assert _progress(session, 3) == 0

    def test_delete_recomputes_former_parent(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("delete-task", {"id": 4})
        assert _progress(session, 2) == 100

    def test_delete_summary_targets_grandparent(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("delete-task", {"id": 3})
        # only Phase A's leaves remain under the project
        assert _progress(session, 1) == 80

    def test_delete_root_is_noop(self, router: MutationEventRouter) -> None:
        assert router.handle(Delete(former_parent=None)) == []


class TestMove:
    def test_in_progress_move_changes_nothing(self, router: MutationEventRouter, session: GanttSession) -> None:
        before = {node.id: node.progress for node in session.store}
        session.exec("move-task", {"id": 5, "target": 3, "mode": "child", "inProgress": True})
        assert session.store.parent_of(5) == 3
        assert {node.id: node.progress for node in session.store} == before

    def test_final_move_updates_both_summaries(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("move-task", {"id": 5, "target": 3, "mode": "child"})
        assert _progress(session, 2) == 50
        # b1 (2d, 0%) + a2 (6d, 100%)
        assert _progress(session, 3) == 75

    def test_drag_then_drop(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("move-task", {"id": 5, "target": 3, "mode": "child", "inProgress": True})
        assert _progress(session, 2) == 80
        session.exec("move-task", {"id": 5, "target": 3, "mode": "child", "inProgress": True})
        session.exec("move-task", {"id": 5, "target": 3, "mode": "child"})
        assert _progress(session, 2) == 50
        assert _progress(session, 3) == 75

    def test_drop_back_on_origin(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("move-task", {"id": 5, "target": 3, "mode": "child", "inProgress": True})
        session.exec("move-task", {"id": 5, "target": 4, "mode": "after"})
        assert session.store.children(2) == [4, 5]
        assert _progress(session, 2) == 80
        assert _progress(session, 3) == 0

    def test_hand_built_move_event(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("move-task", {"id": 5, "target": 3, "mode": "child", "inProgress": True})
        assert router.handle(Move(id=5, former_parent=2)) == [2, 3]
        assert _progress(session, 2) == 50

    def test_reorder_within_parent(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("move-task", {"id": 5, "target": 4, "mode": "before"})
        assert session.store.children(2) == [5, 4]
        assert _progress(session, 2) == 80

    def test_move_to_root_refreshes_former_parent(self, router: MutationEventRouter, session: GanttSession) -> None:
        session.exec("move-task", {"id": 4, "target": None})
        assert session.store.parent_of(4) is None
        assert _progress(session, 2) == 100


class TestErrors:
    def test_missing_target_is_skipped(self, router: MutationEventRouter) -> None:
        assert router.recompute(999) == []
        assert router.handle(Update(999)) == []

    def test_rejected_update_keeps_leaf_and_summary(
        self, router: MutationEventRouter, session: GanttSession
    ) -> None:
        with pytest.raises(ValueError):
            session.exec("update-task", {"id": 4, "task": {"progress": 100, "start": "not-a-date"}})
        assert _progress(session, 4) == 50
        assert _progress(session, 2) == 80

    def test_listener_swallows_failures(self, router: MutationEventRouter, session: GanttSession) -> None:
        for listener in list(session._handlers["update-task"]):
            listener({"id": 999})
            listener({})


class TestPropagation:
    def test_propagate_refreshes_every_summary_ancestor(self, session: GanttSession) -> None:
        router = MutationEventRouter(session, propagate=True)
        router.attach()
        session.exec("update-task", {"id": 6, "task": {"progress": 100}})
        assert _progress(session, 3) == 100
        # (200 + 600 + 200) / 12
        assert _progress(session, 1) == 83

    def test_propagate_written_ids(self, session: GanttSession) -> None:
        router = MutationEventRouter(session, propagate=True)
        assert router.recompute(4) == [2, 1]


class TestAddChildHook:
    def test_default_hook_uses_session(self, router: MutationEventRouter, session: GanttSession) -> None:
        new_id = router.add_child(3, progress=100, duration=2)
        node = session.store.get(new_id)
        assert node.parent == 3
        assert node.text == "New subtask"
        assert node.start == session.store.get(3).start
        assert _progress(session, 3) == 50

    def test_child_defaults(self, router: MutationEventRouter, session: GanttSession) -> None:
        new_id = router.add_child(6)
        node = session.store.get(new_id)
        assert node.duration == 1
        assert node.parent == 6

    def test_injected_hook(self, session: GanttSession) -> None:
        calls: list[tuple[int, dict[str, Any]]] = []

        def hook(parent_id: int, fields: dict[str, Any]) -> int:
            calls.append((parent_id, fields))
            return 42

        router = MutationEventRouter(session, add_child=hook, child_defaults={"text": "Sub"})
        assert router.add_child(2, duration=3) == 42
        assert calls[0][0] == 2
        assert calls[0][1]["text"] == "Sub"
        assert calls[0][1]["duration"] == 3

    def test_detach_releases_hook_and_listeners(self, router: MutationEventRouter, session: GanttSession) -> None:
        router.detach()
        assert session.handler_count() == 0
        assert not router.attached
        with pytest.raises(RuntimeError):
            router.add_child(2)
        with pytest.raises(RuntimeError):
            router.attach()

    def test_detached_router_stops_recomputing(self, router: MutationEventRouter, session: GanttSession) -> None:
        router.detach()
        session.exec("update-task", {"id": 4, "task": {"progress": 100}})
        assert _progress(session, 2) == 80

    def test_context_manager(self, session: GanttSession) -> None:
        with MutationEventRouter(session) as router:
            assert router.attached
            assert _progress(session, 2) == 80
        assert session.handler_count() == 0
