# volunteer_board/core/crediting.py
"""
Completion crediting.

Completing a task writes one completion per contributor and bumps each
contributor's cached ``total_minutes``. The store has no multi-record
transaction, so the writes run strictly one after another and a failure
part-way through is reported with exactly who was credited.
"""
from typing import List, Optional, Sequence

from loguru import logger

from volunteer_board.api.v1.schemas.completions import CompletionRecord, CompletionResult
from volunteer_board.api.v1.schemas.tasks import TaskRecord
from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.core.metrics import (
    COMPLETIONS_RECORDED,
    MINUTES_CREDITED,
    PARTIAL_COMPLETIONS,
    TASK_TRANSITIONS
)
from volunteer_board.core.query import CompletionFilter
from volunteer_board.db.models.enums import NotificationKind, TaskStatus
from volunteer_board.db.record_store import RecordStore
from volunteer_board.exceptions.board import InvalidTransitionError, NotFoundError, PartialCompletionFailure
from volunteer_board.integrations.notifier import NotificationDispatcher, NotificationEvent, announce_best_effort


def validate_completion_request(volunteer_ids: Sequence[str], minutes_per_volunteer: int):
    if not volunteer_ids:
        raise ValueError("At least one volunteer is required")
    if len(set(volunteer_ids)) != len(volunteer_ids):
        raise ValueError("A volunteer can only be credited once per completion")
    if isinstance(minutes_per_volunteer, bool) or not isinstance(minutes_per_volunteer, int):
        raise ValueError("minutes_per_volunteer must be a whole number of minutes")
    if minutes_per_volunteer <= 0:
        raise ValueError("minutes_per_volunteer must be positive")


class CompletionCreditingEngine:
    """Turns 'these volunteers finished this task' into completions and credit"""

    def __init__(self, store: RecordStore, notifier: Optional[NotificationDispatcher] = None):
        self.store = store
        self.notifier = notifier

    async def complete(
        self,
        task_id: str,
        volunteer_ids: Sequence[str],
        minutes_per_volunteer: int,
        note: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> CompletionResult:
        """
        Credit every volunteer with the full ``minutes_per_volunteer`` and
        mark the task completed.

        Volunteers are processed in the order given. For each one the
        completion is written first, then the total. The task is only marked
        completed after every volunteer has been credited.

        Raises:
            ValueError: empty or duplicated volunteer list, non-positive minutes
            NotFoundError: task or any volunteer does not exist
            InvalidTransitionError: task is already completed
            PartialCompletionFailure: a write failed after the first one; never retry blindly
        """
        volunteer_ids = list(volunteer_ids)
        validate_completion_request(volunteer_ids, minutes_per_volunteer)

        task = await self.store.get("tasks", task_id)
        if task is None:
            raise NotFoundError("tasks", task_id)
        if task.status == TaskStatus.COMPLETED:
            raise InvalidTransitionError(task_id, "complete", task.status.value)

        # Every read happens before the first write
        volunteers: List[VolunteerRecord] = []
        for volunteer_id in volunteer_ids:
            volunteer = await self.store.get("volunteers", volunteer_id)
            if volunteer is None:
                raise NotFoundError("volunteers", volunteer_id)
            volunteers.append(volunteer)

        completions: List[CompletionRecord] = []
        credited: List[str] = []

        for index, volunteer in enumerate(volunteers):
            completion_id = None
            try:
                completion = await self.store.create("completions", {
                    "task_id": task_id,
                    "volunteer_id": volunteer.id,
                    "actual_minutes": minutes_per_volunteer,
                    "note": note,
                })
                completion_id = completion.id
                await self.store.update("volunteers", volunteer.id, {
                    "total_minutes": volunteer.total_minutes + minutes_per_volunteer
                })
            except Exception as e:
                PARTIAL_COMPLETIONS.inc()
                logger.error(
                    f"Completion of task {task_id} stopped at volunteer {volunteer.id} "
                    f"after crediting {credited}: {e}"
                )
                raise PartialCompletionFailure(
                    task_id=task_id,
                    credited=credited,
                    uncredited=volunteer_ids[index:],
                    failed_volunteer=volunteer.id,
                    orphaned_completion_id=completion_id,
                    cause=e
                ) from e

            completions.append(completion)
            credited.append(volunteer.id)
            COMPLETIONS_RECORDED.inc()
            MINUTES_CREDITED.inc(minutes_per_volunteer)

        try:
            task = await self.store.update("tasks", task_id, {"status": TaskStatus.COMPLETED})
        except Exception as e:
            PARTIAL_COMPLETIONS.inc()
            logger.error(f"All volunteers credited but task {task_id} could not be marked completed: {e}")
            raise PartialCompletionFailure(
                task_id=task_id,
                credited=credited,
                uncredited=[],
                cause=e
            ) from e

        TASK_TRANSITIONS.labels(operation="complete").inc()
        logger.info(
            f"Task #{task.task_number} completed by {len(credited)} volunteer(s), "
            f"{minutes_per_volunteer} minutes each, recorded by {actor_id or 'unknown'}"
        )

        await self._announce_completion(task, volunteers, minutes_per_volunteer)
        return CompletionResult(completions=completions, task=task)

    async def finalize_completion(self, task_id: str, actor_id: Optional[str] = None) -> CompletionResult:
        """
        Mark a task completed whose contributors were all credited but whose
        status update failed.

        Only the status is written; no completion is created and no total
        changes, so running it after a ``PartialCompletionFailure`` with an
        empty ``uncredited`` list cannot credit anyone twice.

        Raises:
            NotFoundError: task does not exist
            InvalidTransitionError: task is already completed or has no completions
        """
        task = await self.store.get("tasks", task_id)
        if task is None:
            raise NotFoundError("tasks", task_id)
        if task.status == TaskStatus.COMPLETED:
            raise InvalidTransitionError(task_id, "finalize", task.status.value)

        completions = await self.store.list("completions", CompletionFilter(task_id=task_id), "created_at")
        if not completions:
            raise InvalidTransitionError(
                task_id, "finalize", task.status.value, "no volunteer has been credited for this task"
            )

        task = await self.store.update("tasks", task_id, {"status": TaskStatus.COMPLETED})
        TASK_TRANSITIONS.labels(operation="complete").inc()
        logger.warning(
            f"Task #{task.task_number} finalized from {len(completions)} existing completion(s) "
            f"by {actor_id or 'unknown'}"
        )

        volunteers: List[VolunteerRecord] = []
        for volunteer_id in dict.fromkeys(c.volunteer_id for c in completions):
            volunteer = await self.store.get("volunteers", volunteer_id)
            if volunteer is not None:
                volunteers.append(volunteer)
        minutes = {c.actual_minutes for c in completions}

        await self._announce_completion(task, volunteers, minutes.pop() if len(minutes) == 1 else None)
        return CompletionResult(completions=completions, task=task)

    async def _announce_completion(
        self,
        task: TaskRecord,
        volunteers: List[VolunteerRecord],
        minutes_per_volunteer: Optional[int]
    ):
        """Channel announcement, then a thank-you to each contributor"""
        await announce_best_effort(self.notifier, NotificationEvent(
            kind=NotificationKind.COMPLETED,
            task=task,
            contributors=volunteers,
            minutes_per_volunteer=minutes_per_volunteer
        ))
        for volunteer in volunteers:
            await announce_best_effort(self.notifier, NotificationEvent(
                kind=NotificationKind.COMPLETED_DM,
                task=task,
                contributors=[volunteer],
                minutes_per_volunteer=minutes_per_volunteer
            ))
