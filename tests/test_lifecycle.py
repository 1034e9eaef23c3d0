"""
Task lifecycle tests: create, claim, unclaim, edit and archive
"""
import pytest

from volunteer_board.core.lifecycle import TaskLifecycleEngine
from volunteer_board.core.query import TaskFilter
from volunteer_board.db.models import TaskStatus, Zone
from volunteer_board.exceptions.board import InvalidTransitionError, NotFoundError
from tests.fakes import FailingNotifier, SlowNotifier


class TestCreateTask:
    """Test task creation"""

    async def test_create_open_task(self, lifecycle, notifier, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, volunteer_a.id)

        assert task.task_number == 1
        assert task.status == TaskStatus.OPEN
        assert task.assigned_to == frozenset()
        assert task.archived is False
        assert task.created_by == volunteer_a.id
        assert notifier.kinds() == ["created"]

    async def test_create_with_assignee_starts_in_progress(self, lifecycle, notifier, volunteer_a, volunteer_b, task_data):
        task = await lifecycle.create_task(task_data, volunteer_a.id, assignee=volunteer_b.id)

        assert task.status == TaskStatus.IN_PROGRESS
        assert task.assigned_to == frozenset({volunteer_b.id})
        assert notifier.kinds() == ["created", "claimed"]

    async def test_task_numbers_increase(self, lifecycle, task_data):
        first = await lifecycle.create_task(task_data, None)
        second = await lifecycle.create_task(task_data, None)
        assert second.task_number == first.task_number + 1

    async def test_archived_tasks_keep_their_number(self, lifecycle, task_data):
        first = await lifecycle.create_task(task_data, None)
        second = await lifecycle.create_task(task_data, None)
        await lifecycle.archive_task(second.id)

        third = await lifecycle.create_task(task_data, None)
        assert first.task_number == 1
        assert third.task_number == 3

    async def test_create_with_unknown_assignee(self, lifecycle, task_data):
        with pytest.raises(NotFoundError):
            await lifecycle.create_task(task_data, None, assignee="nobody")
        assert await lifecycle.count_tasks() == 0

    @pytest.mark.parametrize("field,value", [
        ("title", ""),
        ("estimated_minutes", 0),
        ("estimated_minutes", -15),
        ("zone", "Basement"),
    ])
    async def test_create_rejects_invalid_fields(self, lifecycle, task_data, field, value):
        with pytest.raises(ValueError):
            await lifecycle.create_task({**task_data, field: value}, None)


class TestClaim:
    """Test claiming and releasing tasks"""

    async def test_claim_open_task(self, lifecycle, notifier, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None)

        claimed = await lifecycle.claim(task.id, volunteer_a.id)

        assert claimed.status == TaskStatus.IN_PROGRESS
        assert claimed.assigned_to == frozenset({volunteer_a.id})
        assert notifier.kinds() == ["created", "claimed"]
        assert notifier.events[-1].contributors == [volunteer_a]

    async def test_second_claim_conflicts(self, lifecycle, volunteer_a, volunteer_b, task_data):
        task = await lifecycle.create_task(task_data, None)
        await lifecycle.claim(task.id, volunteer_a.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.claim(task.id, volunteer_b.id)

        assert exc_info.value.status_code == 409
        assert exc_info.value.current_status == "in_progress"
        current = await lifecycle.get_task(task.id)
        assert current.assigned_to == frozenset({volunteer_a.id})

    async def test_claim_is_not_idempotent(self, lifecycle, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None)
        await lifecycle.claim(task.id, volunteer_a.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.claim(task.id, volunteer_a.id)

    async def test_claim_unknown_task(self, lifecycle, volunteer_a):
        with pytest.raises(NotFoundError) as exc_info:
            await lifecycle.claim("missing", volunteer_a.id)
        assert exc_info.value.status_code == 404

    async def test_claim_by_unknown_volunteer(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)
        with pytest.raises(NotFoundError):
            await lifecycle.claim(task.id, "ghost")
        assert (await lifecycle.get_task(task.id)).status == TaskStatus.OPEN

    async def test_unclaim_returns_task_to_open(self, lifecycle, notifier, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None)
        await lifecycle.claim(task.id, volunteer_a.id)

        released = await lifecycle.unclaim(task.id, volunteer_a.id)

        assert released.status == TaskStatus.OPEN
        assert released.assigned_to == frozenset()
        # Releasing is not announced
        assert notifier.kinds() == ["created", "claimed"]

    async def test_unclaim_open_task_conflicts(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)
        with pytest.raises(InvalidTransitionError):
            await lifecycle.unclaim(task.id)

    async def test_claim_succeeds_when_announcement_fails(self, store, volunteer_a, task_data):
        engine = TaskLifecycleEngine(store, FailingNotifier())
        task = await engine.create_task(task_data, None)

        claimed = await engine.claim(task.id, volunteer_a.id)

        assert claimed.status == TaskStatus.IN_PROGRESS

    async def test_slow_announcement_does_not_block(self, store, volunteer_a, task_data, monkeypatch):
        from volunteer_board.core.config import settings
        monkeypatch.setattr(settings, "NOTIFY_TIMEOUT_SECONDS", 0.05)
        engine = TaskLifecycleEngine(store, SlowNotifier(delay=5))

        task = await engine.create_task(task_data, None)
        claimed = await engine.claim(task.id, volunteer_a.id)

        assert claimed.status == TaskStatus.IN_PROGRESS


class TestCompletedIsTerminal:
    """Completed tasks accept no further lifecycle transitions"""

    @pytest.fixture
    async def completed_task(self, lifecycle, crediting, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None)
        await lifecycle.claim(task.id, volunteer_a.id)
        result = await crediting.complete(task.id, [volunteer_a.id], 45)
        return result.task

    async def test_claim_completed(self, lifecycle, completed_task, volunteer_b):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.claim(completed_task.id, volunteer_b.id)

    async def test_unclaim_completed(self, lifecycle, completed_task):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.unclaim(completed_task.id)

    async def test_edit_cannot_reopen(self, lifecycle, completed_task):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.edit_task(completed_task.id, {"status": "open"})

    async def test_edit_cannot_change_contributors(self, lifecycle, completed_task, volunteer_b):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.edit_task(completed_task.id, {"assigned_to": [volunteer_b.id]})

    async def test_edit_descriptive_fields_allowed(self, lifecycle, completed_task):
        edited = await lifecycle.edit_task(completed_task.id, {"title": "Swept twice"})
        assert edited.title == "Swept twice"
        assert edited.status == TaskStatus.COMPLETED

    async def test_archive_completed(self, lifecycle, completed_task):
        archived = await lifecycle.archive_task(completed_task.id)
        assert archived.archived is True
        assert archived.status == TaskStatus.COMPLETED


class TestEditTask:
    """Test free-form edits"""

    async def test_edit_plain_fields(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)

        edited = await lifecycle.edit_task(task.id, {"title": "Oil the planer", "zone": "CNC", "estimated_minutes": 30})

        assert edited.title == "Oil the planer"
        assert edited.zone == Zone.CNC
        assert edited.estimated_minutes == 30
        assert edited.status == TaskStatus.OPEN

    async def test_assigning_open_task_promotes_it(self, lifecycle, notifier, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None)

        edited = await lifecycle.edit_task(task.id, {"assigned_to": [volunteer_a.id]})

        assert edited.status == TaskStatus.IN_PROGRESS
        assert edited.assigned_to == frozenset({volunteer_a.id})
        assert notifier.kinds() == ["created", "claimed"]

    async def test_bare_assignee_id_is_accepted(self, lifecycle, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None)
        edited = await lifecycle.edit_task(task.id, {"assigned_to": volunteer_a.id})
        assert edited.assigned_to == frozenset({volunteer_a.id})

    async def test_explicit_status_wins(self, lifecycle, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.edit_task(task.id, {"assigned_to": [volunteer_a.id], "status": "open"})

    async def test_removing_all_assignees_is_rejected(self, lifecycle, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.edit_task(task.id, {"assigned_to": []})

        current = await lifecycle.get_task(task.id)
        assert current.status == TaskStatus.IN_PROGRESS

    async def test_release_with_explicit_status(self, lifecycle, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)

        edited = await lifecycle.edit_task(task.id, {"assigned_to": [], "status": "open"})

        assert edited.status == TaskStatus.OPEN
        assert edited.assigned_to == frozenset()

    async def test_add_second_assignee(self, lifecycle, notifier, volunteer_a, volunteer_b, task_data):
        task = await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)

        edited = await lifecycle.edit_task(task.id, {"assigned_to": [volunteer_a.id, volunteer_b.id]})

        assert edited.assigned_to == frozenset({volunteer_a.id, volunteer_b.id})
        assert notifier.events[-1].contributors == [volunteer_b]

    async def test_edit_cannot_complete(self, lifecycle, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)
        with pytest.raises(InvalidTransitionError):
            await lifecycle.edit_task(task.id, {"status": "completed"})

    async def test_required_field_cannot_be_cleared(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)
        with pytest.raises(ValueError):
            await lifecycle.edit_task(task.id, {"title": None})

    async def test_unknown_assignee(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)
        with pytest.raises(NotFoundError):
            await lifecycle.edit_task(task.id, {"assigned_to": ["ghost"]})

    async def test_empty_edit_changes_nothing(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)
        assert await lifecycle.edit_task(task.id, {}) == task


class TestArchiveAndListing:
    """Archived tasks disappear from every listing"""

    async def test_archive_hides_task(self, lifecycle, task_data):
        kept = await lifecycle.create_task(task_data, None)
        hidden = await lifecycle.create_task(task_data, None)

        await lifecycle.archive_task(hidden.id)

        listed = await lifecycle.list_tasks()
        assert [t.id for t in listed] == [kept.id]
        assert await lifecycle.count_tasks() == 1
        # Still readable directly
        assert (await lifecycle.get_task(hidden.id)).archived is True

    async def test_filter_cannot_include_archived(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)
        await lifecycle.archive_task(task.id)

        assert await lifecycle.list_tasks(TaskFilter(archived=None)) == []
        assert await lifecycle.list_tasks(TaskFilter(archived=True)) == []

    async def test_archive_twice_is_a_no_op(self, lifecycle, task_data):
        task = await lifecycle.create_task(task_data, None)

        first = await lifecycle.archive_task(task.id)
        second = await lifecycle.archive_task(task.id)

        assert first == second

    async def test_archive_keeps_status(self, lifecycle, volunteer_a, task_data):
        task = await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)
        archived = await lifecycle.archive_task(task.id)
        assert archived.status == TaskStatus.IN_PROGRESS
        assert archived.assigned_to == frozenset({volunteer_a.id})

    async def test_list_by_status_and_assignee(self, lifecycle, volunteer_a, volunteer_b, task_data):
        mine = await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)
        await lifecycle.create_task(task_data, None, assignee=volunteer_b.id)
        await lifecycle.create_task(task_data, None)

        in_progress = await lifecycle.list_tasks(TaskFilter(statuses=frozenset({TaskStatus.IN_PROGRESS})))
        assert len(in_progress) == 2

        assigned = await lifecycle.list_tasks(TaskFilter(assignee=volunteer_a.id))
        assert [t.id for t in assigned] == [mine.id]

    async def test_default_order_newest_number_first(self, lifecycle, task_data):
        created = [await lifecycle.create_task(task_data, None) for _ in range(3)]
        listed = await lifecycle.list_tasks()
        assert [t.task_number for t in listed] == [3, 2, 1]
        assert {t.id for t in listed} == {t.id for t in created}

    async def test_task_stats(self, lifecycle, volunteer_a, task_data):
        await lifecycle.create_task(task_data, None)
        await lifecycle.create_task(task_data, None, assignee=volunteer_a.id)
        hidden = await lifecycle.create_task(task_data, None)
        await lifecycle.archive_task(hidden.id)

        stats = await lifecycle.task_stats()

        assert stats.open == 1
        assert stats.in_progress == 1
        assert stats.completed == 0
        assert stats.total == 2
