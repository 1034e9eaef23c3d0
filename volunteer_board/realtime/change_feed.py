# volunteer_board/realtime/change_feed.py
"""
In-process change feed.

Every successful write to the record store is published here as a
``ChangeEvent``. Each subscription owns a bounded queue and a pump task, so a
slow or failing subscriber never delays the writer or any other subscriber.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger
from pydantic import BaseModel, ConfigDict

from volunteer_board.core.config import settings
from volunteer_board.db.models.enums import ChangeAction
from volunteer_board.exceptions.board import ChangeFeedError, ChangeFeedOverflow

ChangeHandler = Callable[["ChangeEvent"], Awaitable[None]]
ErrorHandler = Callable[[Exception], Any]
Unsubscribe = Callable[[], None]


class ChangeEvent(BaseModel):
    """A single authoritative change to one record"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    action: ChangeAction
    collection: str
    record: Any

    @property
    def record_id(self) -> str:
        return self.record.id


class _Subscription:
    """One subscriber's queue and the task delivering from it"""

    def __init__(
        self,
        feed: "ChangeFeed",
        collection: str,
        handler: ChangeHandler,
        on_error: Optional[ErrorHandler],
        maxsize: int
    ):
        self.feed = feed
        self.collection = collection
        self.handler = handler
        self.on_error = on_error
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.busy = False
        self.task = asyncio.create_task(self._pump())

    def offer(self, event: ChangeEvent):
        if self.closed:
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                f"Change feed subscriber on {self.collection} fell behind "
                f"({self.queue.maxsize} pending), dropping subscription"
            )
            self.fail(ChangeFeedOverflow(f"Subscriber on {self.collection} overflowed"))

    async def _pump(self):
        while not self.closed:
            event = await self.queue.get()
            self.busy = True
            try:
                await self.handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Change feed handler on {self.collection} failed: {e}")
                self.fail(ChangeFeedError(str(e)))
            finally:
                self.busy = False
                self.queue.task_done()

    def fail(self, error: Exception):
        if self.closed:
            return
        self.close()
        if self.on_error is None:
            return
        try:
            result = self.on_error(error)
        except Exception as e:
            logger.error(f"Change feed error callback on {self.collection} failed: {e}")
            return
        if asyncio.iscoroutine(result):
            self.feed._track(asyncio.create_task(result))

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.feed._remove(self)
        # Pending events are dropped; release any drain() waiting on them
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()
        # A pump closing itself leaves its loop once the current event is done
        if self.task is not asyncio.current_task():
            self.task.cancel()


class ChangeFeed:
    """Per-collection publish/subscribe with independent subscribers"""

    def __init__(self, queue_size: int = None):
        self.queue_size = queue_size or settings.CHANGE_FEED_QUEUE_SIZE
        self._subscriptions: Dict[str, List[_Subscription]] = {}
        self._callbacks: Set[asyncio.Task] = set()

    def subscribe(
        self,
        collection: str,
        handler: ChangeHandler,
        on_error: Optional[ErrorHandler] = None
    ) -> Unsubscribe:
        """
        Deliver every later event on ``collection`` to ``handler``, in publish order.

        If the handler raises, or falls more than ``queue_size`` events behind,
        the subscription is closed and ``on_error`` is called with the cause
        (awaited in the background when it is a coroutine function).
        Returns a callable that ends the subscription.
        """
        subscription = _Subscription(self, collection, handler, on_error, self.queue_size)
        self._subscriptions.setdefault(collection, []).append(subscription)
        logger.debug(f"New change feed subscriber on {collection}")
        return subscription.close

    def publish(self, event: ChangeEvent):
        """Queue ``event`` for every current subscriber of its collection; never blocks"""
        for subscription in list(self._subscriptions.get(event.collection, [])):
            subscription.offer(event)

    def subscriber_count(self, collection: str) -> int:
        return len(self._subscriptions.get(collection, []))

    async def drain(self):
        """Wait until every queued event and every error callback has finished"""
        while True:
            await asyncio.sleep(0)
            pending = [
                s.queue.join()
                for subscriptions in self._subscriptions.values()
                for s in subscriptions
                if s.busy or not s.queue.empty()
            ]
            pending.extend(self._callbacks)
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self):
        """Cancel every subscription and outstanding error callback"""
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                subscription.close()
        callbacks = list(self._callbacks)
        for task in callbacks:
            task.cancel()
        await asyncio.gather(*callbacks, return_exceptions=True)
        logger.info("Change feed closed")

    def _remove(self, subscription: _Subscription):
        subscriptions = self._subscriptions.get(subscription.collection, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)

    def _track(self, task: asyncio.Task):
        self._callbacks.add(task)
        task.add_done_callback(self._callbacks.discard)
