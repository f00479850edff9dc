"""Subscriber handles and the registry of live viewers."""

import itertools
import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import Iterator, Protocol

logger = logging.getLogger(__name__)

_handle_ids = itertools.count(1)


class MessageChannel(Protocol):
    """Bidirectional transport as seen by the broadcaster: write text, close."""

    def send_text(self, text: str) -> None:
        """Write one complete message. Raises on any transport failure."""
        ...

    def close(self) -> None:
        ...


class SubscriberHandle:
    """One viewer connection with its own write lock and outbox.

    Writes to the same channel are serialized by the handle, so a snapshot
    message and a live event can never interleave on the wire. Live events
    wait in the outbox and are written by at most one drainer at a time, so
    a stalled viewer holds at most one worker thread.
    """

    def __init__(self, channel: MessageChannel, name: str | None = None):
        self.id = next(_handle_ids)
        self.name = name or f"subscriber-{self.id}"
        self._channel = channel
        self._lock = threading.Lock()

        # Guards the outbox, the drain flag and the closed flag
        self._state_lock = threading.Lock()
        self._outbox: deque[str] = deque()
        self._pending = 0
        self._draining = False
        self._closed = False

    def __repr__(self):
        return f"<SubscriberHandle {self.name}>"

    @property
    def closed(self) -> bool:
        with self._state_lock:
            return self._closed

    @property
    def pending(self) -> int:
        """Messages queued or being written."""
        with self._state_lock:
            return self._pending

    def enqueue(self, text: str, limit: int) -> bool:
        """Queue a live message unless ``limit`` messages are already pending.

        Returns:
            False if the handle is closed or its backlog is full
        """
        with self._state_lock:
            if self._closed or self._pending >= limit:
                return False
            self._outbox.append(text)
            self._pending += 1
            return True

    def claim_drain(self) -> bool:
        """Become the drainer of this handle.

        Returns:
            True if the caller must start draining, False if a drainer is
            already active or there is nothing to send
        """
        with self._state_lock:
            if self._draining or self._closed or not self._outbox:
                return False
            self._draining = True
            return True

    def next_message(self) -> str | None:
        """Pop the next queued message. None ends the current drain."""
        with self._state_lock:
            if self._outbox and not self._closed:
                return self._outbox.popleft()
            self._draining = False
            return None

    def release(self) -> None:
        """Mark one popped message as written or failed."""
        with self._state_lock:
            self._pending = max(0, self._pending - 1)

    @contextmanager
    def exclusive(self) -> Iterator["SubscriberHandle"]:
        """Hold the write lock for a sequence of writes."""
        with self._lock:
            yield self

    def write(self, text: str) -> bool:
        """Write one message. The caller must hold ``exclusive()``.

        Returns:
            True if the message was written, False if the channel failed or
            the handle is already closed
        """
        if self.closed:
            return False
        try:
            self._channel.send_text(text)
        except Exception as e:
            logger.warning("Write failed: subscriber=%s, error=%s", self.name, str(e) or type(e).__name__)
            return False
        return True

    def deliver(self, text: str) -> bool:
        """Write one message under the handle's lock."""
        with self._lock:
            return self.write(text)

    def close(self) -> None:
        """Mark the handle closed and close its channel. Safe to call twice."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._pending -= len(self._outbox)
            self._outbox.clear()

        try:
            self._channel.close()
        except Exception as e:
            logger.debug("Channel close failed: subscriber=%s, error=%s", self.name, str(e))


class SubscriptionRegistry:
    """Set of active subscriber handles, guarded by its own lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: dict[int, SubscriberHandle] = {}

    def __len__(self):
        with self._lock:
            return len(self._handles)

    def __contains__(self, handle: SubscriberHandle):
        with self._lock:
            return handle.id in self._handles

    def add(self, handle: SubscriberHandle) -> None:
        with self._lock:
            self._handles[handle.id] = handle
            count = len(self._handles)
        logger.info("Subscriber added: %s (total: %d)", handle.name, count)

    def remove(self, handle: SubscriberHandle) -> bool:
        """Remove a handle.

        Returns:
            True if the handle was registered, False if it was already gone
        """
        with self._lock:
            removed = self._handles.pop(handle.id, None) is not None
            count = len(self._handles)
        if removed:
            logger.info("Subscriber removed: %s (remaining: %d)", handle.name, count)
        return removed

    def handles(self) -> list[SubscriberHandle]:
        """Copy of the currently registered handles."""
        with self._lock:
            return list(self._handles.values())
