"""Live fan-out of outcome and summary events to subscribed viewers."""

import json
import logging
import queue
import threading

from PySide6.QtCore import QThreadPool

from aznetmon.store import ResultStore
from aznetmon.subscribers import MessageChannel, SubscriberHandle, SubscriptionRegistry
from aznetmon.workers import DeliveryWorker

logger = logging.getLogger(__name__)


class _Stop:
    pass


class Broadcaster:
    """Fans out events from the internal event queue to every subscriber.

    Key features:
    - Non-blocking ``publish()``: events are dropped when the queue is full
    - One dispatcher thread drains the queue
    - Each subscriber has its own outbox drained by at most one pool task,
      and the pool always has a thread per subscriber, so a slow or dead
      viewer never delays the others or the publisher
    - A failed write unsubscribes that viewer
    - At most ``max_backlog`` messages may be pending per subscriber; a
      subscriber that far behind misses events until it catches up

    New subscribers receive the latest outcome of every known target before
    any live event (see ``subscribe()``).
    """

    def __init__(
        self,
        store: ResultStore,
        registry: SubscriptionRegistry | None = None,
        thread_pool: QThreadPool | None = None,
        queue_max: int = 64,
        max_backlog: int = 4,
    ):
        if queue_max <= 0:
            raise ValueError("queue_max must be positive")
        if max_backlog <= 0:
            raise ValueError("max_backlog must be positive")

        self.store = store
        self.registry = registry if registry is not None else SubscriptionRegistry()
        self.max_backlog = max_backlog

        if thread_pool is None:
            thread_pool = QThreadPool()
            thread_pool.setMaxThreadCount(32)
        self.thread_pool = thread_pool

        self._queue: queue.Queue = queue.Queue(maxsize=queue_max)
        self._thread: threading.Thread | None = None

        self._stats_lock = threading.Lock()
        self._published = 0
        self._dropped = 0
        self._skipped = 0
        self._delivered = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the dispatcher thread."""
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._dispatch_loop, name="aznetmon-dispatcher", daemon=True)
        self._thread.start()
        logger.info("Broadcaster started")

    def stop(self, timeout: float = 3.0) -> None:
        """Stop the dispatcher and wait for in-flight deliveries."""
        if not self.is_running:
            return
        self._queue.put(_Stop())
        self._thread.join(timeout=timeout)
        self._thread = None
        self.thread_pool.waitForDone(int(timeout * 1000))
        logger.info("Broadcaster stopped")

    def publish(self, message: dict) -> bool:
        """Enqueue an event without blocking.

        Returns:
            True if the event was queued, False if it was dropped
        """
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            with self._stats_lock:
                self._dropped += 1
            logger.debug("Event dropped: queue full (%d)", self._queue.maxsize)
            return False

        with self._stats_lock:
            self._published += 1
        return True

    def subscribe(self, channel: MessageChannel, name: str | None = None) -> SubscriberHandle:
        """Register a viewer and send it the current state.

        The handle's write lock is held from registration until the snapshot
        is written. Live deliveries scheduled meanwhile wait on that lock, so
        the viewer sees one message per known target before any live event.

        Returns:
            The new handle (already closed if the snapshot could not be sent)
        """
        handle = SubscriberHandle(channel, name)
        sent = 0
        ok = True

        with handle.exclusive():
            self.registry.add(handle)
            self._ensure_capacity()
            snapshot = self.store.snapshot()
            for outcome in snapshot.latest.values():
                if not handle.write(json.dumps(outcome.to_message())):
                    ok = False
                    break
                sent += 1

        if not ok:
            self._drop(handle)
        else:
            logger.debug("Snapshot sent: subscriber=%s, messages=%d", handle.name, sent)
        return handle

    def unsubscribe(self, handle: SubscriberHandle) -> None:
        """Remove a viewer and close its channel. Safe to call twice."""
        self.registry.remove(handle)
        handle.close()

    def on_event(self, message: dict) -> int:
        """Queue the event for every registered subscriber.

        Returns:
            Number of subscribers the event was queued for
        """
        text = json.dumps(message)
        queued = 0

        for handle in self.registry.handles():
            if not handle.enqueue(text, self.max_backlog):
                with self._stats_lock:
                    self._skipped += 1
                logger.debug("Delivery skipped: subscriber=%s backlog full", handle.name)
                continue
            queued += 1

            if handle.claim_drain():
                self.thread_pool.start(DeliveryWorker(handle, self._on_delivered, self._drop))

        return queued

    def get_stats(self) -> dict:
        with self._stats_lock:
            return {
                "published": self._published,
                "dropped": self._dropped,
                "skipped": self._skipped,
                "delivered": self._delivered,
                "failed": self._failed,
                "subscribers": len(self.registry),
                "queued": self._queue.qsize(),
            }

    def _ensure_capacity(self) -> None:
        """Keep at least one pool thread per subscriber."""
        needed = len(self.registry)
        if needed > self.thread_pool.maxThreadCount():
            self.thread_pool.setMaxThreadCount(needed)
            logger.debug("Delivery pool grown to %d threads", needed)

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            if isinstance(item, _Stop):
                break
            try:
                self.on_event(item)
            except Exception as e:
                logger.exception("Dispatch error: %s", str(e))

    def _on_delivered(self, handle: SubscriberHandle) -> None:
        with self._stats_lock:
            self._delivered += 1

    def _drop(self, handle: SubscriberHandle) -> None:
        # Later deliveries to the same dead handle land here too
        if self.registry.remove(handle):
            with self._stats_lock:
                self._failed += 1
            logger.warning("Subscriber dropped after write failure: %s", handle.name)
        handle.close()
