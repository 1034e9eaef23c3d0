# volunteer_board/db/models/task.py
"""Task and assignment models"""
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, Enum, Boolean
from sqlalchemy.orm import relationship

from volunteer_board.db.models.base import Base, TimestampMixin, IDMixin
from volunteer_board.db.models.enums import TaskStatus, Zone


class Task(Base, IDMixin, TimestampMixin):
    """A unit of makerspace work"""
    __tablename__ = "tasks"

    # Not unique: concurrent creation may hand out the same number
    task_number = Column(Integer, nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    zone = Column(Enum(Zone), nullable=False, default=Zone.GENERAL)
    estimated_minutes = Column(Integer, nullable=False)
    status = Column(Enum(TaskStatus), nullable=False, default=TaskStatus.OPEN, index=True)
    archived = Column(Boolean, nullable=False, default=False, index=True)
    image = Column(String(500), nullable=True)
    created_by = Column(String(64), nullable=True)

    assignments = relationship(
        "TaskAssignment",
        back_populates="task",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        Index('idx_task_status_archived', 'status', 'archived'),
    )

    @property
    def assigned_to(self) -> frozenset:
        return frozenset(a.volunteer_id for a in self.assignments)

    def __repr__(self):
        return f"<Task #{self.task_number} title={self.title} status={self.status}>"


class TaskAssignment(Base):
    """Set-valued link between a task and the volunteers working on it"""
    __tablename__ = "task_assignments"

    task_id = Column(String(32), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    volunteer_id = Column(String(32), ForeignKey("volunteers.id", ondelete="CASCADE"), primary_key=True, index=True)

    task = relationship("Task", back_populates="assignments")

    def __repr__(self):
        return f"<TaskAssignment task={self.task_id} volunteer={self.volunteer_id}>"
