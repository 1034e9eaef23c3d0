# volunteer_board/db/models/volunteer.py
"""Volunteer model"""
from sqlalchemy import Column, Integer, String, Index

from volunteer_board.db.models.base import Base, TimestampMixin, IDMixin


class Volunteer(Base, IDMixin, TimestampMixin):
    """A registered makerspace member who can claim tasks and earn credit"""
    __tablename__ = "volunteers"

    external_ref = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    avatar = Column(String(500), nullable=True)
    # Cached sum of this volunteer's completions, maintained by the crediting engine
    total_minutes = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index('idx_volunteer_total_minutes', 'total_minutes'),
    )

    def __repr__(self):
        return f"<Volunteer name={self.display_name} total_minutes={self.total_minutes}>"
