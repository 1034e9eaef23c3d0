# volunteer_board/core/hours.py
"""
Manually logged volunteer hours.

Logged hours are a separate record of time worked outside the claim and
complete flow. They never touch a volunteer's ``total_minutes``, which
stays the sum of completion credit.
"""
from datetime import date
from typing import List, Optional

from loguru import logger

from volunteer_board.api.v1.schemas.hours import HoursRecord
from volunteer_board.core.pagination import PaginationParams
from volunteer_board.core.query import VolunteerHoursFilter
from volunteer_board.db.record_store import RecordStore
from volunteer_board.exceptions.board import NotFoundError


class HoursService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def log_hours(
        self,
        volunteer_id: str,
        description: str,
        hours: float,
        work_date: date,
        task_id: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> HoursRecord:
        """
        Record ``hours`` worked by ``volunteer_id`` on ``work_date``.

        ``actor_id`` is stored as ``created_by`` and defaults to the
        volunteer, so a coordinator can log time on someone's behalf.

        Raises:
            ValueError: blank description or non-positive hours
            NotFoundError: volunteer or linked task does not exist
        """
        description = (description or "").strip()
        if not description:
            raise ValueError("description is required")
        if isinstance(hours, bool) or hours <= 0:
            raise ValueError("hours must be positive")

        if await self.store.get("volunteers", volunteer_id) is None:
            raise NotFoundError("volunteers", volunteer_id)
        if task_id is not None and await self.store.get("tasks", task_id) is None:
            raise NotFoundError("tasks", task_id)

        entry = await self.store.create("volunteer_hours", {
            "volunteer_id": volunteer_id,
            "task_id": task_id,
            "description": description,
            "hours": float(hours),
            "work_date": work_date,
            "created_by": actor_id or volunteer_id,
        })
        logger.info(
            f"{entry.hours}h on {work_date.isoformat()} logged for volunteer {volunteer_id} "
            f"by {entry.created_by}"
        )
        return entry

    async def list_hours(
        self,
        volunteer_id: Optional[str] = None,
        task_id: Optional[str] = None,
        page: Optional[PaginationParams] = None
    ) -> List[HoursRecord]:
        """Newest work date first"""
        return await self.store.list(
            "volunteer_hours", VolunteerHoursFilter(volunteer_id=volunteer_id, task_id=task_id), None, page
        )

    async def total_hours(self, volunteer_id: str) -> float:
        entries = await self.store.list("volunteer_hours", VolunteerHoursFilter(volunteer_id=volunteer_id))
        return sum(e.hours for e in entries)
