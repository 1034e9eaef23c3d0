# volunteer_board/core/lifecycle.py
"""
Task lifecycle: create, claim, unclaim, edit and archive.

State machine::

    open <-> in_progress -> completed

``archived`` is an independent flag that can be set in any state. Every
write happens only after the precondition check against the latest read;
concurrent writers are not locked out, the store's last write wins.
"""
from typing import Any, Dict, FrozenSet, List, Optional, Union

from loguru import logger

from volunteer_board.api.v1.schemas.tasks import TaskCreate, TaskRecord, TaskStats, TaskUpdate
from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.core.metrics import TASK_TRANSITIONS
from volunteer_board.core.pagination import PaginationParams
from volunteer_board.core.query import TaskFilter, visible_tasks
from volunteer_board.core.task_utils import TaskStatusTransition
from volunteer_board.db.models.enums import NotificationKind, TaskStatus
from volunteer_board.db.record_store import RecordStore
from volunteer_board.exceptions.board import InvalidTransitionError, NotFoundError
from volunteer_board.integrations.notifier import NotificationDispatcher, NotificationEvent, announce_best_effort

# Fields that may never be cleared through an edit
REQUIRED_FIELDS = ("task_number", "title", "description", "zone", "estimated_minutes")


class TaskLifecycleEngine:
    """Owns the task state machine"""

    def __init__(self, store: RecordStore, notifier: Optional[NotificationDispatcher] = None):
        self.store = store
        self.notifier = notifier

    # Reads

    async def get_task(self, task_id: str) -> TaskRecord:
        task = await self.store.get("tasks", task_id)
        if task is None:
            raise NotFoundError("tasks", task_id)
        return task

    async def list_tasks(
        self,
        filter: Optional[TaskFilter] = None,
        sort: Optional[str] = None,
        page: Optional[PaginationParams] = None
    ) -> List[TaskRecord]:
        """List tasks; archived tasks never appear whatever the filter says"""
        return await self.store.list("tasks", self._visible(filter), sort, page)

    async def count_tasks(self, filter: Optional[TaskFilter] = None) -> int:
        return await self.store.count("tasks", self._visible(filter))

    async def task_stats(self) -> TaskStats:
        counts = {}
        for task_status in TaskStatus:
            counts[task_status.value] = await self.store.count(
                "tasks", visible_tasks(frozenset({task_status}))
            )
        return TaskStats(**counts)

    # Transitions

    async def claim(self, task_id: str, volunteer_id: str) -> TaskRecord:
        """
        Assign ``volunteer_id`` to an open task and move it to in_progress.

        Not idempotent: claiming a task that is already in progress fails even
        for the volunteer who holds it.
        """
        task = await self.get_task(task_id)
        volunteer = await self._get_volunteer(volunteer_id)

        if task.status != TaskStatus.OPEN:
            raise InvalidTransitionError(task_id, "claim", task.status.value)

        updated = await self.store.update("tasks", task_id, {
            "status": TaskStatus.IN_PROGRESS,
            "assigned_to": frozenset({volunteer_id}),
        })
        TASK_TRANSITIONS.labels(operation="claim").inc()
        logger.info(f"Task #{task.task_number} claimed by {volunteer_id}")

        await announce_best_effort(self.notifier, NotificationEvent(
            kind=NotificationKind.CLAIMED,
            task=updated,
            contributors=[volunteer],
            actor=volunteer
        ))
        return updated

    async def unclaim(self, task_id: str, actor_id: Optional[str] = None) -> TaskRecord:
        """Release an in-progress task back to open"""
        task = await self.get_task(task_id)

        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(task_id, "unclaim", task.status.value)

        updated = await self.store.update("tasks", task_id, {
            "status": TaskStatus.OPEN,
            "assigned_to": frozenset(),
        })
        TASK_TRANSITIONS.labels(operation="unclaim").inc()
        logger.info(f"Task #{task.task_number} unclaimed by {actor_id or 'unknown'}")
        return updated

    async def create_task(
        self,
        fields: Union[TaskCreate, Dict[str, Any]],
        creator_id: Optional[str],
        assignee: Optional[str] = None
    ) -> TaskRecord:
        """
        Create a task with the next task number.

        Numbering reads the current maximum and writes max + 1, so two
        simultaneous creations can receive the same number.
        """
        data = fields if isinstance(fields, TaskCreate) else TaskCreate.model_validate(fields)
        assignee = assignee or data.assignee

        assignee_record = await self._get_volunteer(assignee) if assignee else None
        creator = await self.store.get("volunteers", creator_id) if creator_id else None

        task = await self.store.create("tasks", {
            **data.model_dump(exclude={"assignee"}),
            "task_number": await self._next_task_number(),
            "status": TaskStatus.IN_PROGRESS if assignee else TaskStatus.OPEN,
            "assigned_to": frozenset({assignee}) if assignee else frozenset(),
            "archived": False,
            "created_by": creator_id,
        })
        TASK_TRANSITIONS.labels(operation="create").inc()
        logger.info(f"Task #{task.task_number} created: {task.title} by {creator_id or 'unknown'}")

        await announce_best_effort(self.notifier, NotificationEvent(
            kind=NotificationKind.CREATED,
            task=task,
            actor=creator
        ))
        if assignee_record is not None:
            await announce_best_effort(self.notifier, NotificationEvent(
                kind=NotificationKind.CLAIMED,
                task=task,
                contributors=[assignee_record],
                actor=creator
            ))
        return task

    async def edit_task(
        self,
        task_id: str,
        fields: Union[TaskUpdate, Dict[str, Any]],
        actor_id: Optional[str] = None
    ) -> TaskRecord:
        """
        Apply a free-form edit.

        Assigning someone to an open task promotes it to in_progress unless
        the same edit sets a status explicitly. Removing every assignee does
        not demote the task; an edit that would leave an in_progress task
        with nobody assigned (or an open task with assignees) is rejected.
        """
        update = fields if isinstance(fields, TaskUpdate) else TaskUpdate.model_validate(fields)
        changes = update.model_dump(exclude_unset=True)

        for name in REQUIRED_FIELDS:
            if name in changes and changes[name] is None:
                raise ValueError(f"{name} cannot be cleared")
        for name in ("status", "assigned_to"):
            if name in changes and changes[name] is None:
                changes.pop(name)

        task = await self.get_task(task_id)
        assigned_to: FrozenSet[str] = changes.get("assigned_to", task.assigned_to)
        added = assigned_to - task.assigned_to

        if task.status == TaskStatus.COMPLETED:
            if changes.get("status", TaskStatus.COMPLETED) != TaskStatus.COMPLETED:
                raise InvalidTransitionError(task_id, "reopen", task.status.value)
            if assigned_to != task.assigned_to:
                raise InvalidTransitionError(
                    task_id, "reassign", task.status.value,
                    reason="Contributors of a completed task cannot be changed"
                )
            new_status = TaskStatus.COMPLETED
        else:
            if changes.get("status") == TaskStatus.COMPLETED:
                raise InvalidTransitionError(
                    task_id, "complete", task.status.value,
                    reason="Tasks are completed by recording a completion, not by editing"
                )
            if "status" in changes:
                new_status = changes["status"]
            elif task.status == TaskStatus.OPEN and not task.assigned_to and assigned_to:
                new_status = TaskStatus.IN_PROGRESS
            else:
                new_status = task.status

            if not TaskStatusTransition.is_consistent(new_status, assigned_to):
                raise InvalidTransitionError(
                    task_id, "edit", task.status.value,
                    reason=f"A task that is {new_status.value} cannot have "
                           f"{len(assigned_to)} assignee(s)"
                )

        added_volunteers = [await self._get_volunteer(v) for v in sorted(added)]

        if new_status != task.status:
            changes["status"] = new_status
        else:
            changes.pop("status", None)
        if not changes:
            return task

        updated = await self.store.update("tasks", task_id, changes)
        TASK_TRANSITIONS.labels(operation="edit").inc()
        logger.info(f"Task #{updated.task_number} edited by {actor_id or 'unknown'}: {sorted(changes)}")

        if added_volunteers:
            await announce_best_effort(self.notifier, NotificationEvent(
                kind=NotificationKind.CLAIMED,
                task=updated,
                contributors=added_volunteers
            ))
        return updated

    async def archive_task(self, task_id: str, actor_id: Optional[str] = None) -> TaskRecord:
        """Hide a task from every listing; archiving twice changes nothing"""
        task = await self.get_task(task_id)
        if task.archived:
            return task

        updated = await self.store.update("tasks", task_id, {"archived": True})
        TASK_TRANSITIONS.labels(operation="archive").inc()
        logger.info(f"Task #{task.task_number} archived by {actor_id or 'unknown'}")
        return updated

    # Helpers

    async def _get_volunteer(self, volunteer_id: str) -> VolunteerRecord:
        volunteer = await self.store.get("volunteers", volunteer_id)
        if volunteer is None:
            raise NotFoundError("volunteers", volunteer_id)
        return volunteer

    async def _next_task_number(self) -> int:
        # Archived tasks keep their numbers, so count them too
        latest = await self.store.list(
            "tasks",
            TaskFilter(archived=None),
            "-task_number",
            PaginationParams(page=1, size=1)
        )
        return latest[0].task_number + 1 if latest else 1

    @staticmethod
    def _visible(filter: Optional[TaskFilter]) -> TaskFilter:
        if filter is None:
            return visible_tasks()
        if filter.archived is not False:
            return filter.model_copy(update={"archived": False})
        return filter
