# volunteer_board/api/v1/schemas/tasks.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, FrozenSet
from datetime import datetime

from volunteer_board.db.models.enums import TaskStatus, Zone


class TaskBase(BaseModel):
    """Base schema for task"""
    title: str = Field(..., min_length=1, max_length=500, description="Task title")
    description: str = Field("", description="Task description")
    zone: Zone = Field(Zone.GENERAL, description="Makerspace zone")
    estimated_minutes: int = Field(..., gt=0, description="Estimated effort in minutes")
    image: Optional[str] = Field(None, max_length=500, description="Image reference")


class TaskCreate(TaskBase):
    """Schema for creating a task"""
    assignee: Optional[str] = Field(None, description="Volunteer to assign on creation")


class TaskUpdate(BaseModel):
    """Schema for updating a task; only fields that are sent are applied"""
    task_number: Optional[int] = Field(None, gt=0)
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    zone: Optional[Zone] = None
    estimated_minutes: Optional[int] = Field(None, gt=0)
    image: Optional[str] = Field(None, max_length=500)
    status: Optional[TaskStatus] = None
    assigned_to: Optional[FrozenSet[str]] = Field(None, description="Volunteer ids (empty to unassign)")

    @field_validator('assigned_to', mode='before')
    @classmethod
    def coerce_single_assignee(cls, v):
        """Accept a bare id for backward compatibility with single-assignee clients"""
        if isinstance(v, str):
            return [v] if v else []
        return v


class TaskRecord(TaskBase):
    """Task as stored and as returned by the API"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    task_number: int
    status: TaskStatus
    assigned_to: FrozenSet[str] = frozenset()
    archived: bool = False
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, task) -> "TaskRecord":
        """Convert Task model to a record"""
        return cls.model_validate(task)


class CompleteTaskRequest(BaseModel):
    """Schema for crediting one or more volunteers for a task"""
    volunteer_ids: List[str] = Field(..., min_length=1, description="Contributors, in crediting order")
    minutes_per_volunteer: int = Field(..., gt=0, description="Minutes credited to each contributor")
    note: Optional[str] = Field(None, max_length=2000)

    @field_validator('volunteer_ids')
    @classmethod
    def validate_unique(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("volunteer_ids must not contain duplicates")
        return v


class TaskStats(BaseModel):
    """Counts of visible (non-archived) tasks by status"""
    open: int = 0
    in_progress: int = 0
    completed: int = 0

    @property
    def total(self) -> int:
        return self.open + self.in_progress + self.completed
