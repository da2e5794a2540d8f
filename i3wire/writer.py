"""
Outbound write scheduling for i3wire.

Queues encoded frames and hands them to the stream in order, pausing
while the stream is saturated and resuming on drain.
"""

import logging
from collections import deque
from typing import Callable, Deque

logger = logging.getLogger(__name__)


class WriteScheduler:
    """
    FIFO write queue with backpressure.

    The ``write`` callable hands one buffer to the stream and returns
    True if more can be written, False if the stream is now saturated
    (the buffer itself was accepted). A write that raises BlockingIOError
    was not accepted; that buffer stays at the head of the queue and is
    the first one retried.
    """

    def __init__(self, write: Callable[[bytes], bool]):
        self._write = write
        self._queue: Deque[bytes] = deque()
        self._paused = False
        self.pauses = 0

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def pending(self) -> int:
        """Number of buffers waiting to be written."""
        return len(self._queue)

    def enqueue(self, data: bytes) -> None:
        """Queue a buffer and try to flush."""
        self._queue.append(data)
        self.flush()

    def flush(self) -> int:
        """
        Write queued buffers until the queue is empty or the stream saturates.

        Returns:
            Number of buffers handed to the stream
        """
        written = 0
        while self._queue and not self._paused:
            data = self._queue[0]
            try:
                accepted = self._write(data)
            except BlockingIOError:
                self.pause()
                break
            self._queue.popleft()
            written += 1
            if not accepted:
                self.pause()
        return written

    def pause(self) -> None:
        """Stop flushing until resume() is called."""
        if not self._paused:
            self._paused = True
            self.pauses += 1
            logger.debug(f"[WRITE] Paused with {len(self._queue)} buffers queued")

    def resume(self) -> int:
        """Stream drained; continue with the remaining buffers."""
        if self._paused:
            logger.debug(f"[WRITE] Resumed with {len(self._queue)} buffers queued")
        self._paused = False
        return self.flush()

    def clear(self) -> int:
        """Drop all queued buffers. Returns how many were dropped."""
        dropped = len(self._queue)
        self._queue.clear()
        return dropped
