"""Synchronization between remote change events, the cache and key listeners.

Remote change events are handed to a single consumer task through an
``asyncio.Queue``; every cache mutation and callback dispatch happens on
the event loop that called :meth:`SyncCoordinator.start_listening`.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from checklist.cache import ChecklistCache, Subscription
from checklist.models import ChangeEvent
from checklist.store import RemoteStore, StoreSubscription

logger = logging.getLogger(__name__)

RESULTS_KEY = "results"

T = TypeVar("T")
KeyCallback = Callable[[], None]


class SyncCoordinator:
    """Turns remote changes and local writes into cache invalidation plus notification."""

    def __init__(
        self,
        store: RemoteStore,
        cache: ChecklistCache,
        *,
        items_table: str = "checklist_item",
        results_table: str = "checklist_result",
    ) -> None:
        self._store = store
        self._cache = cache
        self.items_table = items_table
        self.results_table = results_table
        self._callbacks: Dict[str, Dict[int, KeyCallback]] = {}
        self._tokens = itertools.count(1)
        self._subscriptions: List[StoreSubscription] = []
        self._listening = False
        self._start_lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def watched_tables(self) -> Sequence[str]:
        return (self.items_table, self.results_table)

    async def start_listening(self) -> None:
        """Open one change subscription per watched table. Repeated calls are no-ops."""
        async with self._start_lock:
            if self._listening:
                return

            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()
            self._consumer = asyncio.create_task(self._consume(), name="checklist-sync-consumer")

            opened: List[StoreSubscription] = []
            try:
                for table in self.watched_tables:
                    opened.append(await self._store.subscribe_changes(table, self._enqueue))
            except Exception:
                logger.exception("Failed to start synchronization")
                for subscription in opened:
                    await subscription.close()
                await self._stop_consumer()
                raise

            self._subscriptions = opened
            self._listening = True
            logger.info("Started listening to changes on %s", ", ".join(self.watched_tables))

    async def stop_listening(self) -> None:
        """Close subscriptions and the consumer task. Repeated calls are no-ops."""
        async with self._start_lock:
            if not self._listening:
                return

            subscriptions, self._subscriptions = self._subscriptions, []
            for subscription in subscriptions:
                try:
                    await subscription.close()
                except Exception:
                    logger.exception("Failed to close change subscription")
            await self._stop_consumer()
            self._listening = False
            logger.info("Stopped listening to changes")

    def subscribe_to_key(self, key: str, callback: KeyCallback) -> Subscription:
        token = next(self._tokens)
        self._callbacks.setdefault(key, {})[token] = callback

        def dispose() -> None:
            callbacks = self._callbacks.get(key)
            if callbacks is None:
                return
            callbacks.pop(token, None)
            if not callbacks:
                del self._callbacks[key]

        return Subscription(dispose)

    def subscribe_to_results(self, callback: KeyCallback) -> Subscription:
        return self.subscribe_to_key(RESULTS_KEY, callback)

    def listener_count(self, key: Optional[str] = None) -> int:
        if key is not None:
            return len(self._callbacks.get(key, {}))
        return sum(len(callbacks) for callbacks in self._callbacks.values())

    def notify_key(self, key: str) -> None:
        logger.debug("Refreshing %s", key)
        self._cache.invalidate(key)
        self._dispatch(list(self._callbacks.get(key, {}).values()), key)

    def notify_all(self) -> None:
        logger.debug("Refreshing all keys")
        self._cache.invalidate_all()
        for key, callbacks in list(self._callbacks.items()):
            self._dispatch(list(callbacks.values()), key)

    async def run_mutation(
        self,
        operation: Callable[[], Awaitable[T]],
        affected_key: Optional[str] = None,
    ) -> T:
        """Run a write, then invalidate and notify. Failures propagate without notifying."""
        result = await operation()
        if affected_key is not None:
            self.notify_key(affected_key)
        else:
            self.notify_all()
        return result

    def key_for_event(self, event: ChangeEvent) -> Optional[str]:
        """Cache key a remote change affects, or None when it affects none."""
        if event.table == self.items_table:
            row = event.new_row or event.old_row or {}
            checklist_type = row.get("checklist_type")
            if not checklist_type:
                logger.debug("Ignoring %s event without checklist_type", event.event_type.value)
                return None
            return str(checklist_type)
        if event.table == self.results_table:
            return RESULTS_KEY
        logger.debug("Ignoring change on unwatched table %s", event.table)
        return None

    def handle_change(self, event: ChangeEvent) -> None:
        """Map a remote change to the cache key it affects and notify it."""
        key = self.key_for_event(event)
        if key is not None:
            self.notify_key(key)

    async def drain(self) -> None:
        """Wait until every queued change event has been handled."""
        if self._queue is not None:
            await self._queue.join()

    def _enqueue(self, event: ChangeEvent) -> None:
        if self._queue is None or self._loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            # Events already queued are handled as one batch; each key is notified once.
            batch = [await self._queue.get()]
            while not self._queue.empty():
                batch.append(self._queue.get_nowait())
            try:
                keys: Dict[str, None] = {}
                for event in batch:
                    try:
                        key = self.key_for_event(event)
                    except Exception:
                        logger.exception("Failed to handle %s change on %s", event.event_type.value, event.table)
                        continue
                    if key is not None:
                        keys[key] = None
                for key in keys:
                    try:
                        self.notify_key(key)
                    except Exception:
                        logger.exception("Failed to notify %s", key)
            finally:
                for _ in batch:
                    self._queue.task_done()

    async def _stop_consumer(self) -> None:
        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            consumer.cancel()
            with suppress(asyncio.CancelledError):
                await consumer
        self._queue = None

    def _dispatch(self, callbacks: List[KeyCallback], key: str) -> None:
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Refresh callback for %s failed", key)
