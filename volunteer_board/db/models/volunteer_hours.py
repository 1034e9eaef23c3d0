# volunteer_board/db/models/volunteer_hours.py
"""Manually logged volunteer time"""
from sqlalchemy import Column, Date, Float, String, Text, ForeignKey, Index

from volunteer_board.db.models.base import Base, TimestampMixin, IDMixin


class VolunteerHours(Base, IDMixin, TimestampMixin):
    """Hours a volunteer worked outside the task flow, optionally against a task"""
    __tablename__ = "volunteer_hours"

    volunteer_id = Column(String(32), ForeignKey("volunteers.id", ondelete="CASCADE"), nullable=False)
    task_id = Column(String(32), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=False)
    hours = Column(Float, nullable=False)
    work_date = Column(Date, nullable=False)
    created_by = Column(String(32), ForeignKey("volunteers.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        Index('idx_hours_volunteer', 'volunteer_id'),
        Index('idx_hours_work_date', 'work_date'),
    )

    def __repr__(self):
        return f"<VolunteerHours volunteer={self.volunteer_id} hours={self.hours} date={self.work_date}>"
