# volunteer_board/realtime/views.py
"""
Live views: a ``LiveList`` kept in step with the record store.

A view subscribes first, then loads the full list, then replays whatever
arrived while it was loading. If its subscription is dropped it subscribes
again and reloads; subscribers never see that as an error.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Union

import backoff
from loguru import logger

from volunteer_board.core.query import ACTIVE_STATUSES, RecordFilter, SortSpec, TaskFilter, visible_tasks
from volunteer_board.db.record_store import RecordStore
from volunteer_board.realtime.change_feed import ChangeEvent
from volunteer_board.realtime.fanout import ListChange, LiveList

Listener = Callable[[List[ListChange]], Union[Awaitable[None], None]]

VIEW_NAMES = ("display", "dashboard", "admin", "leaderboard", "completions")


class LiveView:
    def __init__(
        self,
        store: RecordStore,
        collection: str,
        filter: Optional[RecordFilter] = None,
        sort: Union[str, SortSpec, None] = None,
        name: Optional[str] = None
    ):
        self.store = store
        self.collection = collection
        self.filter = filter
        self.sort = sort if isinstance(sort, SortSpec) else SortSpec.parse(collection, sort)
        self.name = name or collection
        predicate = filter.matches if filter is not None else (lambda record: True)
        self.live = LiveList(predicate, self.sort)
        self.listeners: List[Listener] = []
        self.reconnects = 0
        self._unsubscribe = None
        self._buffer: Optional[List[ChangeEvent]] = None
        self._stopped = False

    @property
    def items(self) -> List[Any]:
        return self.live.items

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self.listeners.append(listener)

        def remove():
            if listener in self.listeners:
                self.listeners.remove(listener)

        return remove

    async def start(self):
        self._stopped = False
        await self._connect()
        logger.info(f"Live view {self.name} started with {len(self.live)} items")

    def stop(self):
        self._stopped = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def refresh(self):
        """Drop the subscription and rebuild from a full read"""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self._connect()

    @backoff.on_exception(backoff.expo, Exception, max_tries=5, max_time=30)
    async def _connect(self):
        self._buffer = []
        self._unsubscribe = self.store.subscribe(self.collection, self._on_event, self._on_error)
        try:
            records = await self.store.list(self.collection, self.filter, self.sort)
        except Exception:
            self._unsubscribe()
            self._unsubscribe = None
            self._buffer = None
            raise

        snapshot = self.live.reset(records)
        buffered, self._buffer = self._buffer, None
        for event in buffered:
            self.live.apply(event)
        if buffered:
            snapshot = snapshot.model_copy(update={"items": list(self.live.items)})
        await self._notify([snapshot])

    async def _on_event(self, event: ChangeEvent):
        if self._buffer is not None:
            self._buffer.append(event)
            return
        changes = self.live.apply(event)
        if changes:
            await self._notify(changes)

    async def _on_error(self, error: Exception):
        self._unsubscribe = None
        if self._stopped:
            return
        self.reconnects += 1
        logger.warning(f"Live view {self.name} lost its subscription ({error}); resubscribing")
        try:
            await self._connect()
        except Exception as e:
            logger.error(f"Live view {self.name} could not resubscribe: {e}")

    async def _notify(self, changes: List[ListChange]):
        for listener in list(self.listeners):
            try:
                result = listener(changes)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Dropping listener on live view {self.name}: {e}")
                if listener in self.listeners:
                    self.listeners.remove(listener)


def build_view(store: RecordStore, name: str, viewer_id: Optional[str] = None) -> LiveView:
    """
    Build one of the board's standard views.

    - display: open and in-progress tasks, newest task number first
    - dashboard: the viewer's open and in-progress tasks
    - admin: every task in any status
    - leaderboard: volunteers by total minutes
    - completions: newest completions first

    Archived tasks are excluded from every task view.
    """
    if name == "display":
        return LiveView(store, "tasks", visible_tasks(ACTIVE_STATUSES), "-task_number", name)
    if name == "dashboard":
        if not viewer_id:
            raise ValueError("The dashboard view needs a viewer")
        task_filter = TaskFilter(statuses=ACTIVE_STATUSES, assignee=viewer_id, archived=False)
        return LiveView(store, "tasks", task_filter, "-task_number", f"dashboard:{viewer_id}")
    if name == "admin":
        return LiveView(store, "tasks", visible_tasks(), "-task_number", name)
    if name == "leaderboard":
        return LiveView(store, "volunteers", None, "-total_minutes", name)
    if name == "completions":
        return LiveView(store, "completions", None, "-created_at", name)
    raise ValueError(f"Unknown view '{name}'")
