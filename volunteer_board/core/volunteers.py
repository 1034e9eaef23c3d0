# volunteer_board/core/volunteers.py
"""Volunteer registration and the admin overrides on credit"""
from typing import List, Optional

from loguru import logger

from volunteer_board.api.v1.schemas.completions import CompletionRecord
from volunteer_board.api.v1.schemas.volunteers import MinutesDrift, VolunteerRecord
from volunteer_board.core.pagination import PaginationParams
from volunteer_board.core.query import CompletionFilter, VolunteerFilter
from volunteer_board.db.record_store import RecordStore
from volunteer_board.exceptions.board import NotFoundError


class VolunteerService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def register_volunteer(
        self,
        external_ref: str,
        display_name: str,
        avatar: Optional[str] = None
    ) -> VolunteerRecord:
        """Create a volunteer with no credit, or return the one already registered for ``external_ref``"""
        existing = await self.store.list("volunteers", VolunteerFilter(external_ref=external_ref))
        if existing:
            return existing[0]

        volunteer = await self.store.create("volunteers", {
            "external_ref": external_ref,
            "display_name": display_name,
            "avatar": avatar,
            "total_minutes": 0,
        })
        logger.info(f"Volunteer registered: {display_name} ({volunteer.id})")
        return volunteer

    async def get_volunteer(self, volunteer_id: str) -> VolunteerRecord:
        volunteer = await self.store.get("volunteers", volunteer_id)
        if volunteer is None:
            raise NotFoundError("volunteers", volunteer_id)
        return volunteer

    async def update_profile(
        self,
        volunteer_id: str,
        display_name: Optional[str] = None,
        avatar: Optional[str] = None
    ) -> VolunteerRecord:
        fields = {}
        if display_name is not None:
            fields["display_name"] = display_name
        if avatar is not None:
            fields["avatar"] = avatar
        if not fields:
            return await self.get_volunteer(volunteer_id)
        return await self.store.update("volunteers", volunteer_id, fields)

    async def leaderboard(self, limit: int = 10) -> List[VolunteerRecord]:
        return await self.store.list(
            "volunteers", None, "-total_minutes", PaginationParams(page=1, size=limit)
        )

    async def reset_total_minutes(self, volunteer_id: str, actor_id: Optional[str] = None) -> VolunteerRecord:
        """
        Zero the cached total. Completion history is kept, so the total no
        longer matches the sum of completions afterwards.
        """
        volunteer = await self.store.update("volunteers", volunteer_id, {"total_minutes": 0})
        logger.warning(f"total_minutes of volunteer {volunteer_id} reset to 0 by {actor_id or 'unknown'}")
        return volunteer

    async def list_completions(
        self,
        filter: Optional[CompletionFilter] = None,
        page: Optional[PaginationParams] = None
    ) -> List[CompletionRecord]:
        return await self.store.list("completions", filter, None, page)

    async def purge_completion(self, completion_id: str, actor_id: Optional[str] = None) -> CompletionRecord:
        """
        Delete a completion record. The volunteer's total_minutes is left
        untouched; use minutes_drift to see the difference.
        """
        completion = await self.store.delete("completions", completion_id)
        logger.warning(
            f"Completion {completion_id} ({completion.actual_minutes} min for volunteer "
            f"{completion.volunteer_id}) purged by {actor_id or 'unknown'}"
        )
        return completion

    async def minutes_drift(self, volunteer_id: str) -> MinutesDrift:
        volunteer = await self.get_volunteer(volunteer_id)
        completions = await self.store.list("completions", CompletionFilter(volunteer_id=volunteer_id))
        return MinutesDrift(
            volunteer_id=volunteer_id,
            total_minutes=volunteer.total_minutes,
            completion_minutes=sum(c.actual_minutes for c in completions)
        )
