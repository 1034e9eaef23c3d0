# volunteer_board/api/v1/endpoints/volunteers.py
"""Volunteer registration, leaderboard and credit administration"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
from loguru import logger

from volunteer_board.api.v1.schemas.volunteers import MinutesDrift, VolunteerProfileUpdate, VolunteerRecord, VolunteerRegister
from volunteer_board.auth.dependencies import get_current_volunteer, get_optional_volunteer, get_volunteer_service
from volunteer_board.core.volunteers import VolunteerService

router = APIRouter()


@router.post("/register", response_model=VolunteerRecord, status_code=status.HTTP_201_CREATED)
async def register_volunteer(
    registration: VolunteerRegister,
    service: VolunteerService = Depends(get_volunteer_service)
):
    """Register an identified member; registering again returns the existing volunteer"""
    try:
        return await service.register_volunteer(
            registration.external_ref,
            registration.display_name,
            registration.avatar
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to register volunteer: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register volunteer"
        )


@router.get("/me", response_model=VolunteerRecord)
async def read_current_volunteer(current_volunteer: VolunteerRecord = Depends(get_current_volunteer)):
    """Get the calling volunteer"""
    return current_volunteer


@router.patch("/me", response_model=VolunteerRecord)
async def update_current_volunteer(
    updates: VolunteerProfileUpdate,
    current_volunteer: VolunteerRecord = Depends(get_current_volunteer),
    service: VolunteerService = Depends(get_volunteer_service)
):
    """Change the calling volunteer's display name or avatar"""
    try:
        return await service.update_profile(current_volunteer.id, updates.display_name, updates.avatar)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update volunteer {current_volunteer.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update volunteer"
        )


@router.get("/leaderboard", response_model=List[VolunteerRecord])
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100, description="Number of volunteers"),
    service: VolunteerService = Depends(get_volunteer_service)
):
    """Volunteers with the most credited time"""
    try:
        return await service.leaderboard(limit)
    except Exception as e:
        logger.error(f"Failed to load leaderboard: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve leaderboard"
        )


@router.get("/{volunteer_id}", response_model=VolunteerRecord)
async def get_volunteer(
    volunteer_id: str,
    service: VolunteerService = Depends(get_volunteer_service)
):
    try:
        return await service.get_volunteer(volunteer_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get volunteer {volunteer_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve volunteer"
        )


@router.get("/{volunteer_id}/drift", response_model=MinutesDrift)
async def get_minutes_drift(
    volunteer_id: str,
    service: VolunteerService = Depends(get_volunteer_service)
):
    """Compare the cached total with the volunteer's completion history"""
    try:
        return await service.minutes_drift(volunteer_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to compute drift for volunteer {volunteer_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute minutes drift"
        )


@router.post("/{volunteer_id}/reset-minutes", response_model=VolunteerRecord)
async def reset_total_minutes(
    volunteer_id: str,
    service: VolunteerService = Depends(get_volunteer_service),
    current_volunteer: Optional[VolunteerRecord] = Depends(get_optional_volunteer)
):
    """Admin override: set total_minutes to 0 without touching completions"""
    try:
        return await service.reset_total_minutes(
            volunteer_id, current_volunteer.id if current_volunteer else None
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to reset minutes for volunteer {volunteer_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reset total minutes"
        )
