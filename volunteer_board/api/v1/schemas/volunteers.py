# volunteer_board/api/v1/schemas/volunteers.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class VolunteerRegister(BaseModel):
    """
    Schema for first registration of an identified member.
    """
    external_ref: str = Field(..., min_length=1, max_length=255, description="Identity provider reference")
    display_name: str = Field(..., min_length=1, max_length=255)
    avatar: Optional[str] = Field(None, max_length=500)


class VolunteerRecord(BaseModel):
    """
    Volunteer as stored, including the cached credit total.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    external_ref: str
    display_name: str
    avatar: Optional[str] = None
    total_minutes: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, volunteer) -> "VolunteerRecord":
        return cls.model_validate(volunteer)


class MinutesDrift(BaseModel):
    """Cached total compared with the sum of the volunteer's completions"""
    volunteer_id: str
    total_minutes: int
    completion_minutes: int

    @property
    def drift(self) -> int:
        return self.total_minutes - self.completion_minutes


class VolunteerProfileUpdate(BaseModel):
    """Fields a volunteer may change on their own profile"""
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    avatar: Optional[str] = Field(None, max_length=500)
