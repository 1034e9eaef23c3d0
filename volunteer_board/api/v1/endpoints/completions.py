# volunteer_board/api/v1/endpoints/completions.py
"""Completion history and admin purge"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional
from loguru import logger

from volunteer_board.api.v1.schemas.completions import CompletionRecord
from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.auth.dependencies import get_optional_volunteer, get_store, get_volunteer_service
from volunteer_board.core.pagination import PaginatedResponse, PaginationParams, get_pagination
from volunteer_board.core.query import CompletionFilter
from volunteer_board.core.volunteers import VolunteerService
from volunteer_board.db.record_store import RecordStore

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[CompletionRecord])
async def list_completions(
    pagination: PaginationParams = Depends(get_pagination),
    task_id: Optional[str] = Query(None, description="Filter by task id"),
    volunteer_id: Optional[str] = Query(None, description="Filter by volunteer id"),
    service: VolunteerService = Depends(get_volunteer_service),
    store: RecordStore = Depends(get_store)
):
    """List completions, newest first"""
    try:
        completion_filter = CompletionFilter(task_id=task_id, volunteer_id=volunteer_id)
        completions = await service.list_completions(completion_filter, pagination)
        total = await store.count("completions", completion_filter)
        return PaginatedResponse[CompletionRecord].build(completions, total, pagination)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list completions: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve completions"
        )


@router.delete("/{completion_id}", response_model=CompletionRecord)
async def purge_completion(
    completion_id: str,
    service: VolunteerService = Depends(get_volunteer_service),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """
    Delete a completion record. The volunteer's total_minutes is NOT reduced;
    check /volunteers/{id}/drift afterwards.
    """
    try:
        return await service.purge_completion(
            completion_id, current_volunteer.id if current_volunteer else None
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to purge completion {completion_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete completion"
        )
