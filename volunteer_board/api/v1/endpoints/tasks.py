# volunteer_board/api/v1/endpoints/tasks.py
"""Task lifecycle endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
from loguru import logger

from volunteer_board.api.v1.schemas.completions import CompletionResult
from volunteer_board.api.v1.schemas.tasks import (
    CompleteTaskRequest, TaskCreate, TaskRecord, TaskStats, TaskUpdate
)
from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.auth.dependencies import (
    get_crediting_engine, get_current_volunteer, get_lifecycle_engine, get_optional_volunteer
)
from volunteer_board.core.crediting import CompletionCreditingEngine
from volunteer_board.core.lifecycle import TaskLifecycleEngine
from volunteer_board.core.pagination import PaginatedResponse, PaginationParams, get_pagination, get_sort
from volunteer_board.core.query import TaskFilter
from volunteer_board.db.models import TaskStatus, Zone

router = APIRouter()


def _actor_id(volunteer: Optional[VolunteerRecord]) -> Optional[str]:
    return volunteer.id if volunteer else None


@router.get("/", response_model=PaginatedResponse[TaskRecord])
async def list_tasks(
    pagination: PaginationParams = Depends(get_pagination),
    sort: Optional[str] = Depends(get_sort),
    status_filter: Optional[List[TaskStatus]] = Query(None, alias="status", description="Filter by status"),
    zone: Optional[Zone] = Query(None, description="Filter by zone"),
    assignee: Optional[str] = Query(None, description="Filter by assigned volunteer id"),
    engine: TaskLifecycleEngine = Depends(get_lifecycle_engine)
):
    """List tasks; archived tasks are never listed"""
    try:
        task_filter = TaskFilter(
            statuses=frozenset(status_filter) if status_filter else None,
            zone=zone,
            assignee=assignee
        )
        tasks = await engine.list_tasks(task_filter, sort, pagination)
        total = await engine.count_tasks(task_filter)
        return PaginatedResponse[TaskRecord].build(tasks, total, pagination)

    except (HTTPException, ValueError):
        raise
    except Exception as e:
        logger.error(f"Failed to list tasks: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve tasks"
        )


@router.get("/stats", response_model=TaskStats)
async def get_task_stats(engine: TaskLifecycleEngine = Depends(get_lifecycle_engine)):
    """Counts of listed tasks by status"""
    try:
        return await engine.task_stats()
    except Exception as e:
        logger.error(f"Failed to compute task stats: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve task statistics"
        )


@router.post("/", response_model=TaskRecord, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    engine: TaskLifecycleEngine = Depends(get_lifecycle_engine),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """Create a task; giving an assignee starts it in progress"""
    try:
        return await engine.create_task(task_data, _actor_id(current_volunteer))

    except (HTTPException, ValueError):
        raise
    except Exception as e:
        logger.error(f"Failed to create task: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create task"
        )


@router.get("/{task_id}", response_model=TaskRecord)
async def get_task(
    task_id: str,
    engine: TaskLifecycleEngine = Depends(get_lifecycle_engine)
):
    """Get a specific task by id, archived or not"""
    try:
        return await engine.get_task(task_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve task"
        )


@router.patch("/{task_id}", response_model=TaskRecord)
async def edit_task(
    task_id: str,
    updates: TaskUpdate,
    engine: TaskLifecycleEngine = Depends(get_lifecycle_engine),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """Edit a task; only the fields sent are changed"""
    try:
        return await engine.edit_task(task_id, updates, _actor_id(current_volunteer))

    except (HTTPException, ValueError):
        raise
    except Exception as e:
        logger.error(f"Failed to edit task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update task"
        )


@router.post("/{task_id}/claim", response_model=TaskRecord)
async def claim_task(
    task_id: str,
    engine: TaskLifecycleEngine = Depends(get_lifecycle_engine),
    current_volunteer: VolunteerRecord = Depends(get_current_volunteer)
):
    """Claim an open task for the calling volunteer"""
    try:
        return await engine.claim(task_id, current_volunteer.id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to claim task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to claim task"
        )


@router.post("/{task_id}/unclaim", response_model=TaskRecord)
async def unclaim_task(
    task_id: str,
    engine: TaskLifecycleEngine = Depends(get_lifecycle_engine),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """Release an in-progress task back to open"""
    try:
        return await engine.unclaim(task_id, _actor_id(current_volunteer))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to unclaim task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to unclaim task"
        )


@router.post("/{task_id}/archive", response_model=TaskRecord)
async def archive_task(
    task_id: str,
    engine: TaskLifecycleEngine = Depends(get_lifecycle_engine),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """Archive a task (hidden from every listing)"""
    try:
        return await engine.archive_task(task_id, _actor_id(current_volunteer))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to archive task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to archive task"
        )


@router.post("/{task_id}/complete", response_model=CompletionResult)
async def complete_task(
    task_id: str,
    request: CompleteTaskRequest,
    engine: CompletionCreditingEngine = Depends(get_crediting_engine),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """
    Record that the given volunteers finished the task.

    Each volunteer is credited the full ``minutes_per_volunteer``. A 500
    response with ``credited``/``uncredited`` lists means the completion was
    only partly applied; re-submit for the uncredited volunteers only, or
    call /finalize when nobody is left uncredited.
    """
    try:
        return await engine.complete(
            task_id,
            request.volunteer_ids,
            request.minutes_per_volunteer,
            request.note,
            _actor_id(current_volunteer)
        )

    except (HTTPException, ValueError):
        raise
    except Exception as e:
        logger.error(f"Failed to complete task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete task"
        )


@router.post("/{task_id}/finalize", response_model=CompletionResult)
async def finalize_task(
    task_id: str,
    engine: CompletionCreditingEngine = Depends(get_crediting_engine),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """
    Mark completed a task whose volunteers were all credited but whose status
    update failed. Credits nobody; 409 when the task has no completions.
    """
    try:
        return await engine.finalize_completion(task_id, _actor_id(current_volunteer))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to finalize task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to finalize task"
        )
