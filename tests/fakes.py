# tests/fakes.py
import asyncio
from typing import Any, Callable, Dict, List, Optional

from volunteer_board.integrations.notifier import NotificationEvent


class RecordingNotifier:
    """Notifier that keeps every announced event for assertions"""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def announce(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [event.kind.value for event in self.events]


class FailingNotifier:
    async def announce(self, event: NotificationEvent) -> None:
        raise ConnectionError("chat service unavailable")


class SlowNotifier:
    def __init__(self, delay: float = 1.0):
        self.delay = delay

    async def announce(self, event: NotificationEvent) -> None:
        await asyncio.sleep(self.delay)


class StoreWriteError(Exception):
    pass


class FailingStore:
    """
    Wraps a record store and raises StoreWriteError on the first write
    ``should_fail(operation, collection, record_id, fields)`` selects.
    """

    def __init__(self, store, should_fail: Callable[[str, str, Optional[str], Dict[str, Any]], bool]):
        self.store = store
        self.should_fail = should_fail
        self.failures = 0

    def _check(self, operation, collection, record_id, fields):
        if self.failures == 0 and self.should_fail(operation, collection, record_id, fields):
            self.failures += 1
            raise StoreWriteError(f"{operation} on {collection} failed")

    async def get(self, collection, record_id):
        return await self.store.get(collection, record_id)

    async def list(self, collection, filter=None, sort=None, page=None):
        return await self.store.list(collection, filter, sort, page)

    async def count(self, collection, filter=None):
        return await self.store.count(collection, filter)

    async def create(self, collection, fields):
        self._check("create", collection, None, fields)
        return await self.store.create(collection, fields)

    async def update(self, collection, record_id, fields):
        self._check("update", collection, record_id, fields)
        return await self.store.update(collection, record_id, fields)

    async def delete(self, collection, record_id):
        self._check("delete", collection, record_id, {})
        return await self.store.delete(collection, record_id)

    def subscribe(self, collection, handler, on_error=None):
        return self.store.subscribe(collection, handler, on_error)
