"""
Custom exceptions for i3wire.

Provides specific exception types for better error handling and debugging.
"""

from typing import Optional, Union


class I3WireError(Exception):
    """Base exception for all i3wire errors."""
    pass


# ---------------- Protocol Errors ----------------

class ProtocolError(I3WireError):
    """Base class for protocol-related errors."""
    pass


class PacketParseError(ProtocolError):
    """Failed to parse frame structure."""
    pass


class ProtocolCommandError(ProtocolError):
    """Command name or code is not part of the i3 IPC protocol."""

    def __init__(self, command: Union[str, int]):
        super().__init__(f"Invalid command {command!r}")
        self.command = command


class ProtocolDecodeError(ProtocolError):
    """A completed message payload is not valid JSON."""

    def __init__(self, message: str, raw: bytes = b"", code: Optional[int] = None):
        super().__init__(message)
        self.raw = raw
        self.code = code


class InvalidMagicError(ProtocolError):
    """Frame header does not start with the i3-ipc magic sequence."""

    def __init__(self, magic: bytes):
        super().__init__(f"Invalid frame magic {magic!r}")
        self.magic = magic


class ProtocolDesyncError(ProtocolError):
    """A reply arrived with no request waiting for it."""

    def __init__(self, code: int):
        super().__init__(f"Unsolicited reply for command code {code}")
        self.code = code


# ---------------- Transport Errors ----------------

class TransportError(I3WireError):
    """Base class for stream-level failures."""
    pass


class TransportClosed(TransportError):
    """The IPC stream is closed."""
    pass


class SocketPathError(TransportError):
    """The i3 socket path could not be determined."""
    pass
