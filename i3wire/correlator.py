"""
Reply correlation for i3wire.

The i3 IPC protocol carries no request id: replies arrive in the order
the requests were sent, so each reply resolves the oldest pending request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from .exceptions import ProtocolDesyncError
from .packets import Message, command_name

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A request awaiting its reply."""
    future: asyncio.Future
    code: int
    sent_at: float = field(default_factory=time.monotonic)


class RequestCorrelator:
    """
    FIFO queue of pending requests.

    Requests must be registered before their bytes are handed to the
    writer, otherwise a fast reply could find the queue empty.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop
        self._pending: Deque[PendingRequest] = deque()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def register(self, code: int) -> asyncio.Future:
        """Enqueue a pending request and return its future."""
        loop = self.loop or asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append(PendingRequest(future=future, code=code))
        return future

    def resolve(self, message: Message) -> PendingRequest:
        """
        Settle the oldest pending request with a reply.

        Rejects with the message's decode error if it carries one,
        otherwise resolves with the parsed payload. A request whose
        future was cancelled still consumes the reply.

        Raises:
            ProtocolDesyncError: If no request is pending
        """
        if not self._pending:
            raise ProtocolDesyncError(message.code)

        request = self._pending.popleft()

        if request.code != message.code:
            logger.warning(
                f"[CORR] Reply code {message.code} ({command_name(message.code)}) "
                f"answers request {request.code} ({command_name(request.code)})"
            )

        logger.debug(
            f"[CORR] Reply for {command_name(request.code)} after "
            f"{(time.monotonic() - request.sent_at) * 1000:.1f} ms"
        )

        if request.future.done():
            logger.debug(f"[CORR] Dropping reply for abandoned request {request.code}")
            return request

        if message.error is not None:
            request.future.set_exception(message.error)
        else:
            request.future.set_result(message.payload)
        return request

    def reject_all(self, exc: BaseException) -> int:
        """
        Reject every pending request.

        Returns:
            Number of requests rejected
        """
        rejected = 0
        while self._pending:
            request = self._pending.popleft()
            if not request.future.done():
                request.future.set_exception(exc)
                rejected += 1
        return rejected
