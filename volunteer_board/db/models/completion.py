# volunteer_board/db/models/completion.py
"""Completion model"""
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index

from volunteer_board.db.models.base import Base, TimestampMixin, IDMixin


class Completion(Base, IDMixin, TimestampMixin):
    """Time credited to one volunteer for one task"""
    __tablename__ = "completions"

    task_id = Column(String(32), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    volunteer_id = Column(String(32), ForeignKey("volunteers.id", ondelete="CASCADE"), nullable=False)
    actual_minutes = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)

    __table_args__ = (
        Index('idx_completion_task', 'task_id'),
        Index('idx_completion_volunteer', 'volunteer_id'),
        Index('idx_completion_created', 'created_at'),
    )

    def __repr__(self):
        return f"<Completion task={self.task_id} volunteer={self.volunteer_id} minutes={self.actual_minutes}>"
