"""
Tests for the revisioned task store.
"""
import pytest

from sprintboard.models.task import Task
from sprintboard.services.task_store import BACKLOG, BOARD, TaskStore


def make_task(task_id: str, status: str = "TODO") -> Task:
    return Task(id=task_id, key=f"TASK-{task_id}", status=status)


class TestTaskStore:

    def test_apply_replaces_collection(self):
        store = TaskStore()
        store.apply(store.begin_fetch(BOARD), [make_task("1"), make_task("2")])
        assert store.apply(store.begin_fetch(BOARD), [make_task("3")])
        assert [t.id for t in store.tasks(BOARD)] == ["3"]

    def test_result_from_before_invalidate_is_discarded(self):
        store = TaskStore()
        store.apply(store.begin_fetch(BOARD), [make_task("1")])
        ticket = store.begin_fetch(BOARD)
        store.invalidate("move")
        assert not store.apply(ticket, [make_task("stale")])
        assert [t.id for t in store.tasks(BOARD)] == ["1"]

    def test_superseded_fetch_is_discarded(self):
        store = TaskStore()
        older = store.begin_fetch(BOARD)
        newer = store.begin_fetch(BOARD)
        assert store.apply(newer, [make_task("new")])
        assert not store.apply(older, [make_task("old")])
        assert [t.id for t in store.tasks(BOARD)] == ["new"]

    def test_collections_are_independent(self):
        store = TaskStore()
        board = store.begin_fetch(BOARD)
        backlog = store.begin_fetch(BACKLOG)
        assert store.apply(board, [make_task("1")])
        assert store.apply(backlog, [make_task("2")])
        assert [t.id for t in store.tasks(BACKLOG)] == ["2"]

    def test_clear_orphans_in_flight_fetch(self):
        store = TaskStore()
        store.apply(store.begin_fetch(BOARD), [make_task("1")])
        ticket = store.begin_fetch(BOARD)
        store.clear(BOARD)
        assert store.tasks(BOARD) == []
        assert not store.apply(ticket, [make_task("late")])
        assert store.tasks(BOARD) == []

    def test_error_recorded_with_result(self):
        store = TaskStore()
        store.apply(store.begin_fetch(BOARD), [], error="Failed to load tasks")
        assert store.error(BOARD) == "Failed to load tasks"
        store.apply(store.begin_fetch(BOARD), [make_task("1")])
        assert store.error(BOARD) == ""

    def test_invalidate_notifies_listeners(self):
        store = TaskStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)
        store.invalidate()
        store.invalidate()
        unsubscribe()
        store.invalidate()
        assert seen == [1, 2]
        assert store.revision == 3

    def test_grouped_and_find(self):
        store = TaskStore()
        store.apply(store.begin_fetch(BOARD), [make_task("1", "DONE")])
        assert [t.id for t in store.grouped()["DONE"]] == ["1"]
        assert store.find("1").status == "DONE"
        with pytest.raises(KeyError):
            store.find("missing")
