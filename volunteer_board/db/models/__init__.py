# volunteer_board/db/models/__init__.py
"""
Database models package
Imports all models for easy access
"""

# Import base classes and mixins
from volunteer_board.db.models.base import Base, TimestampMixin, IDMixin

# Import all enums
from volunteer_board.db.models.enums import TaskStatus, Zone, NotificationKind, ChangeAction

# Import board models
from volunteer_board.db.models.volunteer import Volunteer
from volunteer_board.db.models.task import Task, TaskAssignment
from volunteer_board.db.models.completion import Completion
from volunteer_board.db.models.volunteer_hours import VolunteerHours

# Export all models and enums
__all__ = [
    # Base classes
    'Base', 'TimestampMixin', 'IDMixin',

    # Enums
    'TaskStatus', 'Zone', 'NotificationKind', 'ChangeAction',

    # Board models
    'Volunteer', 'Task', 'TaskAssignment', 'Completion', 'VolunteerHours',
]
