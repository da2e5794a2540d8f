"""
Statistics collection for i3wire connections.

Provides per-connection counters for monitoring.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Dict, Union


@dataclass
class ConnectionStats:
    """Counters for a single connection."""

    # Traffic
    messages_sent: int = 0
    messages_received: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0

    # Dispatch
    replies_received: int = 0
    events_received: int = 0
    subscriptions: int = 0

    # Errors
    decode_failures: int = 0
    protocol_errors: int = 0

    # Backpressure
    write_pauses: int = 0


class StatsCollector:
    """
    Statistics collector.

    Connections run on a single event loop, so no locking is done.
    """

    def __init__(self):
        self._stats = ConnectionStats()
        self._start_time = time.time()

    def increment(self, stat_name: str, amount: int = 1) -> None:
        """Increment a counter by name."""
        if hasattr(self._stats, stat_name):
            current = getattr(self._stats, stat_name)
            setattr(self._stats, stat_name, current + amount)

    def get(self, stat_name: str) -> int:
        return getattr(self._stats, stat_name)

    def get_stats(self) -> Dict[str, Union[int, float]]:
        """Get a snapshot of all counters plus uptime."""
        snapshot: Dict[str, Union[int, float]] = dict(asdict(self._stats))
        snapshot["uptime"] = time.time() - self._start_time
        return snapshot

    def reset(self) -> None:
        """Reset all counters."""
        self._stats = ConnectionStats()
        self._start_time = time.time()
