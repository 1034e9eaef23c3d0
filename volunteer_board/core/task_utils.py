# volunteer_board/core/task_utils.py
"""
Utilities for task management: status consistency and time formatting
"""
from typing import FrozenSet

from volunteer_board.db.models.enums import TaskStatus


class TaskStatusTransition:
    """Task status checks"""

    @staticmethod
    def is_consistent(status: TaskStatus, assigned_to: FrozenSet[str]) -> bool:
        """
        Check the status/assignment invariant.

        in_progress needs at least one assignee and open needs none;
        completed keeps whoever was assigned for the record.
        """
        if status == TaskStatus.IN_PROGRESS:
            return bool(assigned_to)
        if status == TaskStatus.OPEN:
            return not assigned_to
        return True


def format_minutes(minutes: int) -> str:
    """
    Format minutes as a short duration.

    Examples: 45 -> "45min", 120 -> "2h", 150 -> "2h 30min"
    """
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}min"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}min"


def minutes_to_hours(minutes: int) -> float:
    """Hours rounded to one decimal, e.g. 45 -> 0.8"""
    return round(minutes / 60, 1)
