"""
Connection to the i3 IPC socket.

Composes the codec, reassembler, write scheduler, correlator and event
router around one asyncio transport. Everything runs on the event loop
that owns the transport.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from .config import RuntimeConfig
from .correlator import RequestCorrelator
from .events import EventRouter, Listener, SubscriptionManager
from .exceptions import (
    InvalidMagicError,
    ProtocolDesyncError,
    ProtocolError,
    TransportClosed,
    TransportError,
)
from .logging_setup import format_block, log, log_debug, log_error, log_warning
from .packets import CommandLike, Message, decode_header, encode_message
from .reassembly import StreamReassembler
from .stats import StatsCollector
from .writer import WriteScheduler


class I3Connection(asyncio.Protocol):
    """
    One IPC session with the window manager.

    ``send`` returns a future resolved with the reply payload. Events are
    delivered to listeners registered with ``on``; call ``subscribe`` to
    have the window manager start sending an event.
    """

    def __init__(self, config: Optional[RuntimeConfig] = None):
        self.config = config or RuntimeConfig()
        self.stats = StatsCollector()

        self.reassembler = StreamReassembler(strict_magic=self.config.strict_magic)
        self.writer = WriteScheduler(self._write_to_transport)
        self.correlator = RequestCorrelator()
        self.router = EventRouter()
        self.subscriptions = SubscriptionManager(self.send)

        self._transport: Optional[asyncio.Transport] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed: Optional[asyncio.Future] = None
        self._writing_paused = False
        self._drain_scheduled = False

    # ---------------- Public API ----------------

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    def send(self, command: CommandLike, payload: Any = None) -> asyncio.Future:
        """
        Send a request.

        Args:
            command: Command name ("GET_TREE"), code, or descriptor
            payload: Optional payload (str sent as-is, other values as JSON)

        Returns:
            Future resolved with the reply payload, or rejected with
            ProtocolDecodeError if the reply is not valid JSON

        Raises:
            ProtocolCommandError: If the command is unknown
            TransportClosed: If the connection is not open
        """
        data = encode_message(command, payload)
        if not self.is_connected:
            raise TransportClosed("Connection is not open")

        header, _ = decode_header(data, strict=False)

        # Register before writing so a fast reply always finds its request
        future = self.correlator.register(header.code)
        self.writer.enqueue(data)

        self.stats.increment("messages_sent")
        log_debug(f"[SEND] code={header.code} length={header.length}")
        return future

    async def request(
        self,
        command: CommandLike,
        payload: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Send a request and wait for its reply.

        Raises:
            asyncio.TimeoutError: If no reply arrives within ``timeout``
                (defaults to the configured request_timeout)
        """
        if timeout is None:
            timeout = self.config.request_timeout
        return await asyncio.wait_for(self.send(command, payload), timeout)

    def subscribe(self, name: str) -> Optional[asyncio.Future]:
        """
        Ask the window manager to send ``name`` events.

        Idempotent: only the first call per event name produces traffic.

        Returns:
            The SUBSCRIBE reply future, or None if already subscribed
        """
        future = self.subscriptions.subscribe(name)
        if future is not None:
            self.stats.increment("subscriptions")
            future.add_done_callback(
                lambda fut: self._subscribe_done(name, fut)
            )
        return future

    def on(self, name: str, callback: Listener) -> None:
        """Register a listener for an event, "error" or "close"."""
        self.router.on(name, callback)

    def off(self, name: str, callback: Listener) -> bool:
        return self.router.off(name, callback)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()

    async def wait_closed(self) -> None:
        """Wait until the transport has been lost."""
        if self._closed is not None:
            await asyncio.shield(self._closed)

    # ---------------- asyncio.Protocol ----------------

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport
        self._loop = asyncio.get_running_loop()
        self._closed = self._loop.create_future()
        self.correlator.loop = self._loop
        log_debug("[CONN] Transport attached")

    def data_received(self, data: bytes) -> None:
        self.stats.increment("bytes_received", len(data))
        self.reassembler.feed(data)
        if not self._drain_scheduled:
            self._process()

    def pause_writing(self) -> None:
        self._writing_paused = True
        self.writer.pause()
        self.stats.increment("write_pauses")

    def resume_writing(self) -> None:
        self._writing_paused = False
        self.writer.resume()

    def eof_received(self) -> Optional[bool]:
        log_debug("[CONN] EOF from window manager")
        return None

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._transport = None
        self._writing_paused = False
        dropped = self.writer.clear()
        self.reassembler.reset()

        if exc is not None:
            error = TransportError(f"IPC stream failed: {exc}")
            error.__cause__ = exc
            log_error(f"[CONN] {error}")
            self.router.emit_error(error)

        rejected = 0
        if self.config.reject_pending_on_close:
            rejected = self.correlator.reject_all(TransportClosed("Connection closed"))

        log(format_block("CONN", [
            "Connection closed",
            f"unsent buffers dropped: {dropped}",
            f"pending requests rejected: {rejected}",
            f"pending requests left: {self.correlator.pending}",
        ]))

        self.router.emit_close(exc)
        if self._closed is not None and not self._closed.done():
            self._closed.set_result(None)

    # ---------------- Internals ----------------

    def _write_to_transport(self, data: bytes) -> bool:
        if self._transport is None:
            raise TransportClosed("Connection is not open")
        self._transport.write(data)
        self.stats.increment("bytes_sent", len(data))
        # The transport calls pause_writing() from inside write() when full
        return not self._writing_paused

    def _process(self) -> None:
        """
        Complete and handle at most one buffered message.

        If bytes remain afterwards, the next pass is scheduled on the loop
        rather than run here, so a burst is drained iteratively.
        """
        self._drain_scheduled = False
        if self._transport is None:
            return

        try:
            message = self.reassembler.next_message()
        except InvalidMagicError as e:
            self._fatal(e)
            return

        if message is None:
            return

        self._handle(message)

        if self.reassembler.has_pending_bytes() and self._transport is not None:
            self._drain_scheduled = True
            self._loop.call_soon(self._process)

    def _handle(self, message: Message) -> None:
        self.stats.increment("messages_received")
        if message.error is not None:
            self.stats.increment("decode_failures")
            log_warning(f"[RECV] {message.error}")

        if message.is_event:
            self.stats.increment("events_received")
            self.router.dispatch(message)
            return

        self.stats.increment("replies_received")
        try:
            self.correlator.resolve(message)
        except ProtocolDesyncError as e:
            self._fatal(e)

    def _fatal(self, exc: ProtocolError) -> None:
        """The stream cannot be trusted any more: report and close."""
        self.stats.increment("protocol_errors")
        log_error(f"[CONN] Protocol failure, closing: {exc}")
        self.reassembler.reset()
        self.router.emit_error(exc)
        self.close()

    def _subscribe_done(self, name: str, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log_warning(f"[SUB] Subscription to {name} failed: {exc}")
            if not isinstance(exc, TransportClosed):
                self.router.emit_error(exc)
            return

        reply = future.result()
        if isinstance(reply, dict) and not reply.get("success", True):
            error = ProtocolError(f"Subscription to {name} rejected: {reply}")
            log_warning(f"[SUB] {error}")
            self.router.emit_error(error)
