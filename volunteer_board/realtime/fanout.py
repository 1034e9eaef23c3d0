# volunteer_board/realtime/fanout.py
"""
Reconciles a locally held, filtered and sorted list with change events.

The rules are the same for every view; a ``LiveList`` only knows whether a
record belongs in it (``predicate``) and where (``sort``).
"""
import enum
from typing import Any, Callable, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from volunteer_board.core.query import SortSpec
from volunteer_board.db.models.enums import ChangeAction
from volunteer_board.realtime.change_feed import ChangeEvent


class ListOp(str, enum.Enum):
    RESET = "reset"
    INSERT = "insert"
    REMOVE = "remove"
    REPLACE = "replace"


class ListChange(BaseModel):
    """One positional edit to a live list, ready to send to a client"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    op: ListOp
    index: Optional[int] = None
    record: Any = None
    items: Optional[List[Any]] = None


class LiveList:
    def __init__(self, predicate: Callable[[Any], bool], sort: SortSpec):
        self.predicate = predicate
        self.sort = sort
        self.items: List[Any] = []

    def reset(self, records: Iterable[Any]) -> ListChange:
        """Replace the whole list with ``records`` that match, in sort order"""
        self.items = self.sort.sorted(r for r in records if self.predicate(r))
        return ListChange(op=ListOp.RESET, items=list(self.items))

    def index_of(self, record_id: str) -> Optional[int]:
        for index, item in enumerate(self.items):
            if item.id == record_id:
                return index
        return None

    def ids(self) -> List[str]:
        return [item.id for item in self.items]

    def apply(self, event: ChangeEvent) -> List[ListChange]:
        """
        Apply one change event and return the resulting edits.

        A ``create`` for a record already held is handled as an ``update`` so
        events replayed after a refresh are harmless.
        """
        if event.action == ChangeAction.DELETE:
            return self._remove(event.record_id)
        return self._upsert(event.record)

    def _upsert(self, record) -> List[ListChange]:
        index = self.index_of(record.id)
        matches = self.predicate(record)

        if index is None:
            if not matches:
                return []
            return [self._insert(record)]

        if not matches:
            return self._remove(record.id)

        current = self.items[index]
        if self.sort.sort_key(current) == self.sort.sort_key(record):
            self.items[index] = record
            return [ListChange(op=ListOp.REPLACE, index=index, record=record)]

        # Sort key changed: move it
        del self.items[index]
        return [
            ListChange(op=ListOp.REMOVE, index=index, record=current),
            self._insert(record),
        ]

    def _insert(self, record) -> ListChange:
        low, high = 0, len(self.items)
        while low < high:
            middle = (low + high) // 2
            if self.sort.compare(self.items[middle], record) < 0:
                low = middle + 1
            else:
                high = middle
        self.items.insert(low, record)
        return ListChange(op=ListOp.INSERT, index=low, record=record)

    def _remove(self, record_id: str) -> List[ListChange]:
        index = self.index_of(record_id)
        if index is None:
            return []
        record = self.items.pop(index)
        return [ListChange(op=ListOp.REMOVE, index=index, record=record)]

    def __len__(self):
        return len(self.items)

    def __repr__(self):
        return f"<LiveList {len(self.items)} items sorted by {self.sort!r}>"
