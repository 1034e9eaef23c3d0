"""
Task utility tests
"""
import pytest

from volunteer_board.core.task_utils import TaskStatusTransition, format_minutes, minutes_to_hours
from volunteer_board.db.models import TaskStatus


class TestFormatting:
    """Minute formatting helpers"""

    @pytest.mark.parametrize("minutes,expected", [
        (45, "45min"),
        (60, "1h"),
        (120, "2h"),
        (150, "2h 30min"),
    ])
    def test_format_minutes(self, minutes, expected):
        assert format_minutes(minutes) == expected

    def test_minutes_to_hours(self):
        assert minutes_to_hours(90) == 1.5
        assert minutes_to_hours(100) == 1.7


class TestConsistency:
    """Status and assignment must agree"""

    @pytest.mark.parametrize("status,assigned_to,consistent", [
        (TaskStatus.OPEN, frozenset(), True),
        (TaskStatus.OPEN, frozenset({"v1"}), False),
        (TaskStatus.IN_PROGRESS, frozenset({"v1"}), True),
        (TaskStatus.IN_PROGRESS, frozenset(), False),
        (TaskStatus.COMPLETED, frozenset(), True),
        (TaskStatus.COMPLETED, frozenset({"v1", "v2"}), True),
    ])
    def test_is_consistent(self, status, assigned_to, consistent):
        assert TaskStatusTransition.is_consistent(status, assigned_to) is consistent
