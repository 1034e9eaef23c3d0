# volunteer_board/api/v1/schemas/hours.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import date, datetime


class HoursLog(BaseModel):
    """
    Schema for logging time worked outside the task flow.

    ``volunteer_id`` defaults to the caller; ``task_id`` links the entry to
    a task without completing it.
    """
    description: str = Field(..., min_length=1, max_length=2000)
    hours: float = Field(..., gt=0, le=24, description="Hours worked on work_date")
    work_date: date
    volunteer_id: Optional[str] = None
    task_id: Optional[str] = None


class HoursRecord(BaseModel):
    """Logged hours as stored"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    volunteer_id: str
    task_id: Optional[str] = None
    description: str
    hours: float
    work_date: date
    created_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, entry) -> "HoursRecord":
        return cls.model_validate(entry)

    @property
    def minutes(self) -> int:
        return round(self.hours * 60)
