"""Single-producer, single-consumer event channel between the bridge and the orchestrator."""

from __future__ import annotations

import logging
import queue
import threading

from studio_runner.session.errors import TransportClosedError
from studio_runner.session.models import EndMarker, LogEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class MessageChannel:
    """Unbounded ordered queue of ``LogEvent`` items terminated by one ``EndMarker``.

    Closing the producer end without ``finish()`` is not a normal end of stream:
    the consumer sees ``TransportClosedError`` instead of an end marker.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[LogEvent | EndMarker | object] = queue.Queue()
        self._lock = threading.Lock()
        self._finished = False
        self._closed = False
        self.dropped = 0

    def send(self, event: LogEvent) -> bool:
        """Forward one event; returns False when the stream has already ended."""

        with self._lock:
            if self._finished or self._closed:
                self.dropped += 1
                logger.warning("Dropping %s event sent after end of stream", event.level.value)
                return False
            self._queue.put(event)
            return True

    def finish(self, marker: EndMarker) -> bool:
        """Send the end marker; only the first call has any effect."""

        with self._lock:
            if self._finished or self._closed:
                logger.debug("Ignoring repeated end marker: %s", marker.reason.value)
                return False
            self._finished = True
            self._queue.put(marker)
            return True

    def close(self) -> None:
        """Release the producer end. Without a prior ``finish()`` the consumer gets an error."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            if not self._finished:
                self._queue.put(_CLOSED)

    def receive(self, timeout: float | None = None) -> LogEvent | EndMarker:
        """Block until the next item; raises ``TransportClosedError`` on abnormal closure."""

        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty as error:
            raise TimeoutError("No message received before timeout.") from error
        if item is _CLOSED:
            raise TransportClosedError("Bridge closed the channel without an end marker.")
        if not isinstance(item, LogEvent | EndMarker):
            raise TypeError(f"Unexpected channel item: {item!r}")
        return item
