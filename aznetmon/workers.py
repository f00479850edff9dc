"""Worker classes for probe and delivery tasks on Qt thread pools."""

import logging
from typing import Callable

from PySide6.QtCore import QRunnable

from aznetmon.models import ProbeOutcome, Target
from aznetmon.prober import Prober
from aznetmon.subscribers import SubscriberHandle

logger = logging.getLogger(__name__)


class ProbeWorker(QRunnable):
    """Worker that probes one target in a background thread.

    The outcome is handed to ``on_outcome`` on the worker thread itself, so
    the result is committed as soon as the probe completes.
    """

    def __init__(
        self,
        prober: Prober,
        target: Target,
        on_outcome: Callable[[ProbeOutcome], None],
        on_finished: Callable[[Target], None] | None = None,
    ):
        super().__init__()
        self.prober = prober
        self.target = target
        self.on_outcome = on_outcome
        self.on_finished = on_finished

    def run(self):
        """Execute the probe in background thread."""
        try:
            logger.debug("Probe starting: target=%s", self.target.key)

            # May block up to the prober's timeout
            outcome = self.prober.probe(self.target)
            self.on_outcome(outcome)

            logger.debug(
                "Probe completed: target=%s, success=%s, duration=%.2fms",
                self.target.key,
                outcome.success,
                outcome.duration_ms,
            )

        except Exception as e:
            logger.exception("Probe worker exception: target=%s, error=%s", self.target.key, str(e))

        finally:
            if self.on_finished is not None:
                self.on_finished(self.target)


class DeliveryWorker(QRunnable):
    """Worker that drains one subscriber's outbox in order.

    Only one DeliveryWorker runs per handle at a time (see
    ``SubscriberHandle.claim_drain()``). It stops when the outbox is empty or
    a write fails.
    """

    def __init__(
        self,
        handle: SubscriberHandle,
        on_delivered: Callable[[SubscriberHandle], None],
        on_failed: Callable[[SubscriberHandle], None],
    ):
        super().__init__()
        self.handle = handle
        self.on_delivered = on_delivered
        self.on_failed = on_failed

    def run(self):
        try:
            while True:
                text = self.handle.next_message()
                if text is None:
                    break

                # Blocks only on this subscriber's own write lock
                try:
                    ok = self.handle.deliver(text)
                finally:
                    self.handle.release()

                if ok:
                    self.on_delivered(self.handle)
                else:
                    # Closes the handle, so the next pop ends the drain
                    self.on_failed(self.handle)
        except Exception as e:
            logger.exception("Delivery worker exception: subscriber=%s, error=%s", self.handle.name, str(e))
            self.handle.close()
            self.handle.next_message()
