# volunteer_board/api/v1/endpoints/hours.py
"""Manually logged volunteer hours"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional
from loguru import logger

from volunteer_board.api.v1.schemas.hours import HoursLog, HoursRecord
from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.auth.dependencies import get_current_volunteer, get_hours_service, get_store
from volunteer_board.core.hours import HoursService
from volunteer_board.core.pagination import PaginatedResponse, PaginationParams, get_pagination
from volunteer_board.core.query import VolunteerHoursFilter
from volunteer_board.db.record_store import RecordStore

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[HoursRecord])
async def list_hours(
    pagination: PaginationParams = Depends(get_pagination),
    volunteer_id: Optional[str] = Query(None, description="Volunteer whose hours to list (default: caller)"),
    task_id: Optional[str] = Query(None, description="Filter by linked task id"),
    current_volunteer: VolunteerRecord = Depends(get_current_volunteer),
    service: HoursService = Depends(get_hours_service),
    store: RecordStore = Depends(get_store)
):
    """List logged hours, newest work date first"""
    try:
        volunteer_id = volunteer_id or current_volunteer.id
        entries = await service.list_hours(volunteer_id, task_id, pagination)
        total = await store.count(
            "volunteer_hours", VolunteerHoursFilter(volunteer_id=volunteer_id, task_id=task_id)
        )
        return PaginatedResponse[HoursRecord].build(entries, total, pagination)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list hours: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve volunteer hours"
        )


@router.post("/", response_model=HoursRecord, status_code=status.HTTP_201_CREATED)
async def log_hours(
    entry: HoursLog,
    current_volunteer: VolunteerRecord = Depends(get_current_volunteer),
    service: HoursService = Depends(get_hours_service)
):
    """Log hours for the caller, or for ``volunteer_id`` with the caller recorded as creator"""
    try:
        return await service.log_hours(
            volunteer_id=entry.volunteer_id or current_volunteer.id,
            description=entry.description,
            hours=entry.hours,
            work_date=entry.work_date,
            task_id=entry.task_id,
            actor_id=current_volunteer.id
        )

    except (HTTPException, ValueError):
        raise
    except Exception as e:
        logger.error(f"Failed to log hours for {current_volunteer.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to log volunteer hours"
        )
