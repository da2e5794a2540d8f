"""
Event routing and subscription tracking for i3wire.

Listener registration is local bookkeeping only; subscribing with the
window manager is a separate, explicit step.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set

from .config import CLOSE_CHANNEL, ERROR_CHANNEL, EVENT_NAMES
from .exceptions import ProtocolError
from .packets import Message, event_name

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]

CHANNELS = EVENT_NAMES + (ERROR_CHANNEL, CLOSE_CHANNEL)


class EventRouter:
    """
    Dispatches events to listeners by name.

    Besides the six i3 events there are two local channels: "error"
    receives exceptions (undecodable events, transport failures) and
    "close" receives the close reason (None on a clean close).
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {name: [] for name in CHANNELS}

    def on(self, name: str, callback: Listener) -> None:
        """
        Register a listener.

        Raises:
            ValueError: If the channel name is unknown
        """
        self._channel(name).append(callback)

    def off(self, name: str, callback: Listener) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        listeners = self._channel(name)
        try:
            listeners.remove(callback)
        except ValueError:
            return False
        return True

    def dispatch(self, message: Message) -> int:
        """
        Route a completed event message.

        Returns:
            Number of listeners notified
        """
        if message.error is not None:
            return self.emit_error(message.error)

        name = event_name(message.code)
        if name is None:
            return self.emit_error(ProtocolError(f"Unknown event code {message.code}"))

        return self._notify(name, message.payload)

    def emit_error(self, exc: BaseException) -> int:
        if not self._listeners[ERROR_CHANNEL]:
            logger.warning(f"[EVENT] Unhandled error: {exc}")
        return self._notify(ERROR_CHANNEL, exc)

    def emit_close(self, exc: Optional[BaseException] = None) -> int:
        return self._notify(CLOSE_CHANNEL, exc)

    def _channel(self, name: str) -> List[Listener]:
        try:
            return self._listeners[name]
        except KeyError:
            raise ValueError(f"Unknown event {name!r}") from None

    def _notify(self, name: str, arg: Any) -> int:
        """Call listeners; a failing listener does not stop the others."""
        notified = 0
        for callback in list(self._listeners[name]):
            try:
                callback(arg)
            except Exception:
                logger.exception(f"[EVENT] Listener for {name!r} failed")
            notified += 1
        return notified


class SubscriptionManager:
    """
    Tracks which events this connection has subscribed to.

    The set only grows; i3 has no unsubscribe.
    """

    def __init__(self, send: Callable[[str, Any], asyncio.Future]):
        self._send = send
        self._subscribed: Set[str] = set()

    @property
    def subscribed(self) -> FrozenSet[str]:
        return frozenset(self._subscribed)

    def is_subscribed(self, name: str) -> bool:
        return name in self._subscribed

    def subscribe(self, name: str) -> Optional[asyncio.Future]:
        """
        Subscribe to an event once.

        Returns:
            The SUBSCRIBE reply future, or None if already subscribed

        Raises:
            ValueError: If the event name is unknown
        """
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event {name!r}")
        if name in self._subscribed:
            return None

        future = self._send("SUBSCRIBE", [name])
        self._subscribed.add(name)
        logger.debug(f"[SUB] Subscribed to {name}")
        return future
