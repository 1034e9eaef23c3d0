# volunteer_board/api/v1/schemas/completions.py
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime

from volunteer_board.api.v1.schemas.tasks import TaskRecord


class CompletionRecord(BaseModel):
    """One volunteer's credited time against one task"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    task_id: str
    volunteer_id: str
    actual_minutes: int
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, completion) -> "CompletionRecord":
        return cls.model_validate(completion)


class CompletionResult(BaseModel):
    """Outcome of a fully successful completion"""
    completions: List[CompletionRecord]
    task: TaskRecord

    @property
    def aggregate_minutes(self) -> int:
        return sum(c.actual_minutes for c in self.completions)
