# volunteer_board/core/query.py
"""
Filters and sort orders shared by the record store and the live views.

Every filter evaluates identically in SQL (``clauses``) and in memory
(``matches``), and every sort order has the same total ordering in both
places, so a live view fed by change events ends up with exactly the list a
fresh query would return.
"""
from functools import cmp_to_key
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from volunteer_board.db.models import Completion, Task, TaskAssignment, TaskStatus, Volunteer, VolunteerHours, Zone

ACTIVE_STATUSES: FrozenSet[TaskStatus] = frozenset({TaskStatus.OPEN, TaskStatus.IN_PROGRESS})

# Fields each collection may be ordered by
SORTABLE_FIELDS: Dict[str, FrozenSet[str]] = {
    "tasks": frozenset({"task_number", "estimated_minutes", "title", "created_at", "updated_at"}),
    "volunteers": frozenset({"total_minutes", "display_name", "created_at", "updated_at"}),
    "completions": frozenset({"actual_minutes", "created_at"}),
    "volunteer_hours": frozenset({"work_date", "hours", "created_at"}),
}

DEFAULT_SORTS: Dict[str, str] = {
    "tasks": "-task_number",
    "volunteers": "-total_minutes",
    "completions": "-created_at",
    "volunteer_hours": "-work_date,-created_at",
}


class RecordFilter(BaseModel):
    """Base class for collection filters"""
    model_config = ConfigDict(frozen=True)

    collection: ClassVar[str]

    def matches(self, record: Any) -> bool:
        raise NotImplementedError

    def clauses(self) -> List[Any]:
        raise NotImplementedError


class TaskFilter(RecordFilter):
    """
    Task listing filter.

    ``archived=False`` is the default so every listing hides archived tasks;
    ``None`` disables the check and is only used for task numbering.
    """
    collection: ClassVar[str] = "tasks"

    statuses: Optional[FrozenSet[TaskStatus]] = None
    zone: Optional[Zone] = None
    assignee: Optional[str] = None
    archived: Optional[bool] = False

    def matches(self, record) -> bool:
        if self.archived is not None and record.archived != self.archived:
            return False
        if self.statuses is not None and record.status not in self.statuses:
            return False
        if self.zone is not None and record.zone != self.zone:
            return False
        if self.assignee is not None and self.assignee not in record.assigned_to:
            return False
        return True

    def clauses(self) -> List[Any]:
        conditions = []
        if self.archived is not None:
            conditions.append(Task.archived == self.archived)
        if self.statuses is not None:
            conditions.append(Task.status.in_(sorted(self.statuses, key=lambda s: s.value)))
        if self.zone is not None:
            conditions.append(Task.zone == self.zone)
        if self.assignee is not None:
            conditions.append(Task.assignments.any(TaskAssignment.volunteer_id == self.assignee))
        return conditions


class VolunteerFilter(RecordFilter):
    collection: ClassVar[str] = "volunteers"

    external_ref: Optional[str] = None

    def matches(self, record) -> bool:
        return self.external_ref is None or record.external_ref == self.external_ref

    def clauses(self) -> List[Any]:
        if self.external_ref is None:
            return []
        return [Volunteer.external_ref == self.external_ref]


class CompletionFilter(RecordFilter):
    collection: ClassVar[str] = "completions"

    task_id: Optional[str] = None
    volunteer_id: Optional[str] = None

    def matches(self, record) -> bool:
        if self.task_id is not None and record.task_id != self.task_id:
            return False
        if self.volunteer_id is not None and record.volunteer_id != self.volunteer_id:
            return False
        return True

    def clauses(self) -> List[Any]:
        conditions = []
        if self.task_id is not None:
            conditions.append(Completion.task_id == self.task_id)
        if self.volunteer_id is not None:
            conditions.append(Completion.volunteer_id == self.volunteer_id)
        return conditions


class VolunteerHoursFilter(RecordFilter):
    collection: ClassVar[str] = "volunteer_hours"

    volunteer_id: Optional[str] = None
    task_id: Optional[str] = None

    def matches(self, record) -> bool:
        if self.volunteer_id is not None and record.volunteer_id != self.volunteer_id:
            return False
        if self.task_id is not None and record.task_id != self.task_id:
            return False
        return True

    def clauses(self) -> List[Any]:
        conditions = []
        if self.volunteer_id is not None:
            conditions.append(VolunteerHours.volunteer_id == self.volunteer_id)
        if self.task_id is not None:
            conditions.append(VolunteerHours.task_id == self.task_id)
        return conditions


def visible_tasks(statuses: Optional[FrozenSet[TaskStatus]] = None, **kwargs) -> TaskFilter:
    """Filter for anything shown to people: archived tasks are always excluded"""
    return TaskFilter(statuses=statuses, archived=False, **kwargs)


class SortSpec:
    """
    Parsed sort order such as ``-task_number,created_at``.

    The record id is always appended as a final ascending key so the
    ordering is total.
    """

    def __init__(self, fields: Sequence[Tuple[str, bool]]):
        self.fields: Tuple[Tuple[str, bool], ...] = tuple(fields)

    @classmethod
    def parse(cls, collection: str, spec: Optional[str] = None) -> "SortSpec":
        spec = spec or DEFAULT_SORTS[collection]
        allowed = SORTABLE_FIELDS[collection]
        fields = []
        for part in spec.split(","):
            part = part.strip()
            if not part:
                continue
            descending = part.startswith("-")
            name = part.lstrip("-")
            if name not in allowed:
                raise ValueError(f"Cannot sort {collection} by '{name}'")
            fields.append((name, descending))
        return cls(fields)

    def order_by(self, model) -> List[Any]:
        columns = []
        for name, descending in self.fields:
            column = getattr(model, name)
            columns.append(column.desc() if descending else column.asc())
        columns.append(model.id.asc())
        return columns

    def sort_key(self, record) -> Tuple[Any, ...]:
        return tuple(getattr(record, name) for name, _ in self.fields)

    def compare(self, a, b) -> int:
        for name, descending in self.fields:
            left, right = getattr(a, name), getattr(b, name)
            if left == right:
                continue
            result = -1 if left < right else 1
            return -result if descending else result
        if a.id == b.id:
            return 0
        return -1 if a.id < b.id else 1

    def sorted(self, records) -> list:
        return sorted(records, key=cmp_to_key(self.compare))

    def __repr__(self):
        return "SortSpec(" + ",".join(("-" if d else "") + n for n, d in self.fields) + ")"
