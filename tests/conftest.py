"""
Pytest configuration and fixtures for i3wire tests.
"""

import asyncio
import os
import sys
from typing import List, Optional

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from i3wire.config import RuntimeConfig
from i3wire.connection import I3Connection
from i3wire.packets import Message, decode_message


class FakeTransport(asyncio.Transport):
    """
    In-memory transport that records writes.

    Set ``saturate_after`` to have the transport report a full buffer
    (pause_writing) once that many writes have been made.
    """

    def __init__(self, protocol: asyncio.Protocol):
        super().__init__()
        self.protocol = protocol
        self.written: List[bytes] = []
        self.closed = False
        self.saturate_after: Optional[int] = None

    def write(self, data) -> None:
        self.written.append(bytes(data))
        if self.saturate_after is not None and len(self.written) >= self.saturate_after:
            self.saturate_after = None
            self.protocol.pause_writing()

    def drain(self) -> None:
        self.protocol.resume_writing()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            asyncio.get_running_loop().call_soon(self.protocol.connection_lost, None)

    def is_closing(self) -> bool:
        return self.closed

    def frames(self) -> List[Message]:
        return [decode_message(data) for data in self.written]


async def run_loop(iterations: int = 10) -> None:
    """Let scheduled callbacks run."""
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest.fixture
def make_connection():
    """Factory for a connection attached to a FakeTransport; call inside a running loop."""

    def _make(**config_kwargs):
        connection = I3Connection(RuntimeConfig(**config_kwargs))
        transport = FakeTransport(connection)
        connection.connection_made(transport)
        return connection, transport

    return _make


@pytest.fixture
def temp_config_dir(tmp_path):
    """Temporary directory for config files."""
    return str(tmp_path)
