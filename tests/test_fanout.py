"""
Live list reconciliation and live view tests
"""
import random
from types import SimpleNamespace

import pytest

from volunteer_board.core.query import ACTIVE_STATUSES, SortSpec, visible_tasks
from volunteer_board.db.models import TaskStatus
from volunteer_board.db.models.enums import ChangeAction
from volunteer_board.exceptions.board import InvalidTransitionError
from volunteer_board.realtime.change_feed import ChangeEvent
from volunteer_board.realtime.fanout import ListOp, LiveList
from volunteer_board.realtime.views import LiveView, build_view


def task(record_id, number, status=TaskStatus.OPEN, archived=False, title="t"):
    return SimpleNamespace(
        id=record_id, task_number=number, status=status, archived=archived,
        assigned_to=frozenset(), zone=None, title=title
    )


def event(record, action=ChangeAction.UPDATE):
    return ChangeEvent(action=action, collection="tasks", record=record)


@pytest.fixture
def active_list():
    return LiveList(visible_tasks(ACTIVE_STATUSES).matches, SortSpec.parse("tasks", "-task_number"))


class TestLiveList:
    """Reconciliation rules"""

    def test_reset_filters_and_sorts(self, active_list):
        change = active_list.reset([
            task("a", 1), task("b", 3), task("c", 2, status=TaskStatus.COMPLETED), task("d", 4, archived=True)
        ])

        assert change.op == ListOp.RESET
        assert active_list.ids() == ["b", "a"]

    def test_create_inserts_in_order(self, active_list):
        active_list.reset([task("a", 1), task("c", 3)])

        changes = active_list.apply(event(task("b", 2), ChangeAction.CREATE))

        assert [(c.op, c.index) for c in changes] == [(ListOp.INSERT, 1)]
        assert active_list.ids() == ["c", "b", "a"]

    def test_ties_broken_by_id(self, active_list):
        active_list.reset([task("b", 1)])
        active_list.apply(event(task("a", 1), ChangeAction.CREATE))
        active_list.apply(event(task("c", 1), ChangeAction.CREATE))
        assert active_list.ids() == ["a", "b", "c"]

    def test_create_not_matching_is_ignored(self, active_list):
        active_list.reset([])
        assert active_list.apply(event(task("a", 1, archived=True), ChangeAction.CREATE)) == []
        assert active_list.ids() == []

    def test_duplicate_create_is_an_update(self, active_list):
        active_list.reset([task("a", 1)])

        changes = active_list.apply(event(task("a", 1, title="new"), ChangeAction.CREATE))

        assert [c.op for c in changes] == [ListOp.REPLACE]
        assert len(active_list) == 1
        assert active_list.items[0].title == "new"

    def test_update_in_place(self, active_list):
        active_list.reset([task("a", 1), task("b", 2)])

        changes = active_list.apply(event(task("a", 1, status=TaskStatus.IN_PROGRESS)))

        assert [(c.op, c.index) for c in changes] == [(ListOp.REPLACE, 1)]
        assert active_list.items[1].status == TaskStatus.IN_PROGRESS

    def test_update_moves_on_sort_key_change(self, active_list):
        active_list.reset([task("a", 1), task("b", 2)])

        changes = active_list.apply(event(task("a", 5)))

        assert [(c.op, c.index) for c in changes] == [(ListOp.REMOVE, 1), (ListOp.INSERT, 0)]
        assert active_list.ids() == ["a", "b"]

    def test_update_leaving_filter_removes(self, active_list):
        active_list.reset([task("a", 1), task("b", 2)])

        changes = active_list.apply(event(task("b", 2, status=TaskStatus.COMPLETED)))

        assert [(c.op, c.index) for c in changes] == [(ListOp.REMOVE, 0)]
        assert active_list.ids() == ["a"]

    def test_update_entering_filter_inserts(self, active_list):
        active_list.reset([task("a", 1)])
        changes = active_list.apply(event(task("b", 2)))
        assert [(c.op, c.index) for c in changes] == [(ListOp.INSERT, 0)]

    def test_archive_removes(self, active_list):
        active_list.reset([task("a", 1)])
        active_list.apply(event(task("a", 1, archived=True)))
        assert active_list.ids() == []

    def test_delete_removes(self, active_list):
        active_list.reset([task("a", 1), task("b", 2)])
        changes = active_list.apply(event(task("a", 1), ChangeAction.DELETE))
        assert [c.op for c in changes] == [ListOp.REMOVE]
        assert active_list.ids() == ["b"]

    def test_delete_unknown_is_ignored(self, active_list):
        active_list.reset([task("a", 1)])
        assert active_list.apply(event(task("zzz", 1), ChangeAction.DELETE)) == []


class TestLiveView:
    """Views fed by the real store and change feed"""

    async def test_display_view_follows_lifecycle(self, store, feed, lifecycle, crediting, volunteer_a, task_data):
        existing = await lifecycle.create_task(task_data, None)
        view = build_view(store, "display")
        batches = []
        view.add_listener(batches.append)
        await view.start()

        assert batches[0][0].op == ListOp.RESET
        assert [t.id for t in view.items] == [existing.id]

        created = await lifecycle.create_task(task_data, None)
        await lifecycle.claim(existing.id, volunteer_a.id)
        await feed.drain()
        assert [t.id for t in view.items] == [created.id, existing.id]
        assert view.items[1].status == TaskStatus.IN_PROGRESS

        await crediting.complete(existing.id, [volunteer_a.id], 30)
        await lifecycle.archive_task(created.id)
        await feed.drain()
        assert view.items == []
        view.stop()

    async def test_dashboard_needs_viewer(self, store):
        with pytest.raises(ValueError):
            build_view(store, "dashboard")

    async def test_unknown_view(self, store):
        with pytest.raises(ValueError):
            build_view(store, "kanban")

    async def test_dashboard_shows_only_own_tasks(self, store, feed, lifecycle, volunteer_a, volunteer_b, task_data):
        view = build_view(store, "dashboard", volunteer_a.id)
        await view.start()

        mine = await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)
        await lifecycle.create_task(task_data, None, assignee=volunteer_b.id)
        await feed.drain()

        assert [t.id for t in view.items] == [mine.id]

        await lifecycle.unclaim(mine.id)
        await feed.drain()
        assert view.items == []
        view.stop()

    async def test_leaderboard_reorders(self, store, feed, lifecycle, crediting, volunteer_a, volunteer_b, task_data):
        view = build_view(store, "leaderboard")
        await view.start()

        task_record = await lifecycle.create_task(task_data, None)
        await crediting.complete(task_record.id, [volunteer_b.id], 90)
        await feed.drain()

        assert [v.id for v in view.items][:2] == [volunteer_b.id, volunteer_a.id]
        assert view.items[0].total_minutes == 90
        view.stop()

    async def test_resubscribes_after_listener_feed_failure(self, store, feed, lifecycle, task_data):
        view = build_view(store, "admin")
        await view.start()
        first = await lifecycle.create_task(task_data, None)
        await feed.drain()

        # Simulate the subscription breaking underneath the view
        view._unsubscribe()
        await view._on_error(RuntimeError("connection reset"))
        second = await lifecycle.create_task(task_data, None)
        await feed.drain()

        assert view.reconnects == 1
        assert [t.id for t in view.items] == [second.id, first.id]
        assert feed.subscriber_count("tasks") == 1
        view.stop()

    async def test_failing_listener_is_dropped(self, store, feed, lifecycle, task_data):
        view = build_view(store, "admin")
        calls = []

        def broken(changes):
            raise RuntimeError("socket closed")

        view.add_listener(broken)
        view.add_listener(calls.append)
        await view.start()

        await lifecycle.create_task(task_data, None)
        await feed.drain()

        assert view.listeners == [calls.append]
        assert len(calls) == 2
        view.stop()

    async def test_refresh_matches_store(self, store, feed, lifecycle, task_data):
        view = build_view(store, "admin")
        await view.start()
        await lifecycle.create_task(task_data, None)

        await view.refresh()
        await feed.drain()

        fresh = await store.list("tasks", view.filter, view.sort)
        assert view.items == fresh
        assert feed.subscriber_count("tasks") == 1
        view.stop()


@pytest.mark.parametrize("seed", [3, 11, 42])
async def test_replayed_changes_match_fresh_query(store, feed, lifecycle, crediting, volunteer_service, task_data, seed):
    """After any sequence of writes, every view holds exactly what a fresh query returns"""
    rng = random.Random(seed)
    crew = [
        await volunteer_service.register_volunteer(f"discord:{seed}{i}", f"Member {i}")
        for i in range(3)
    ]
    views = [
        build_view(store, "display"),
        build_view(store, "admin"),
        build_view(store, "dashboard", crew[0].id),
        build_view(store, "leaderboard"),
        build_view(store, "completions"),
    ]
    for view in views:
        await view.start()

    task_ids = []
    for _ in range(40):
        operation = rng.choice(["create", "create", "claim", "unclaim", "edit", "complete", "archive", "delete"])
        target = rng.choice(task_ids) if task_ids else None
        volunteer = rng.choice(crew)
        try:
            if operation == "create" or target is None:
                assignee = volunteer.id if rng.random() < 0.3 else None
                created = await lifecycle.create_task(task_data, None, assignee=assignee)
                task_ids.append(created.id)
            elif operation == "claim":
                await lifecycle.claim(target, volunteer.id)
            elif operation == "unclaim":
                await lifecycle.unclaim(target)
            elif operation == "edit":
                await lifecycle.edit_task(target, {"task_number": rng.randint(1, 50), "title": f"Job {rng.randint(1, 9)}"})
            elif operation == "complete":
                await crediting.complete(target, [volunteer.id], rng.randint(5, 120))
            elif operation == "archive":
                await lifecycle.archive_task(target)
            elif operation == "delete":
                await store.delete("tasks", target)
                task_ids.remove(target)
        except InvalidTransitionError:
            pass

    await feed.drain()

    for view in views:
        fresh = await store.list(view.collection, view.filter, view.sort)
        assert view.items == fresh, view.name
        view.stop()
