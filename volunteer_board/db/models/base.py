import uuid
from sqlalchemy import Column, String, DateTime, func
from volunteer_board.db.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)


class IDMixin:
    """Mixin for opaque string identifiers"""
    id = Column(String(32), primary_key=True, default=new_id)
