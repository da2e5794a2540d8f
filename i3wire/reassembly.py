"""
Stream reassembly for i3wire.

Turns bytes arriving in arbitrary chunk boundaries into complete messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional

from .config import HEADER_LEN
from .logging_setup import log_debug
from .packets import Message, MessageHeader, decode_header, decode_payload


class ReassemblyState(Enum):
    """Reassembler state enumeration."""
    AWAITING_HEADER = auto()   # Fewer than HEADER_LEN bytes of the next frame
    AWAITING_PAYLOAD = auto()  # Header decoded, payload bytes outstanding
    COMPLETE = auto()          # Payload fully received, not yet parsed


@dataclass
class ReassemblyCursor:
    """Read position plus the in-progress message, if any."""
    offset: int = 0
    header: Optional[MessageHeader] = None
    remaining: int = 0
    payload: bytearray = field(default_factory=bytearray)

    def reset(self) -> None:
        """Forget the in-progress message. The read offset is kept."""
        self.header = None
        self.remaining = 0
        self.payload = bytearray()


class StreamReassembler:
    """
    Reassembles i3 IPC frames from a byte stream.

    Owns the read buffer and cursor. ``feed`` only stores bytes;
    ``next_message`` advances the state machine over what is currently
    buffered and yields at most one message per call, so the caller
    decides when the next one is parsed.
    """

    def __init__(self, strict_magic: bool = True):
        self.strict_magic = strict_magic
        self.state = ReassemblyState.AWAITING_HEADER
        self._buffer = bytearray()
        self._cursor = ReassemblyCursor()

    @property
    def cursor(self) -> ReassemblyCursor:
        return self._cursor

    @property
    def buffered(self) -> int:
        """Number of unread bytes in the buffer."""
        return len(self._buffer) - self._cursor.offset

    def has_pending_bytes(self) -> bool:
        return self.buffered > 0

    def feed(self, data: bytes) -> None:
        """Append newly arrived bytes."""
        if data:
            self._buffer += data

    def next_message(self) -> Optional[Message]:
        """
        Advance over the buffered bytes.

        Returns:
            The next complete Message, or None if more bytes are needed

        Raises:
            InvalidMagicError: If strict and a header has a bad magic.
                The stream cannot be resynchronized after this.
        """
        cursor = self._cursor

        if self.state is ReassemblyState.AWAITING_HEADER:
            if self.buffered < HEADER_LEN:
                self._compact()
                return None
            header, start = decode_header(
                self._buffer, cursor.offset, strict=self.strict_magic
            )
            cursor.offset = start
            cursor.header = header
            cursor.remaining = header.length
            if header.length:
                self.state = ReassemblyState.AWAITING_PAYLOAD
            else:
                self.state = ReassemblyState.COMPLETE

        if self.state is ReassemblyState.AWAITING_PAYLOAD:
            take = min(self.buffered, cursor.remaining)
            if take:
                cursor.payload += self._buffer[cursor.offset : cursor.offset + take]
                cursor.offset += take
                cursor.remaining -= take
            if cursor.remaining:
                self._compact()
                return None
            self.state = ReassemblyState.COMPLETE

        return self._complete()

    def drain(self) -> List[Message]:
        """Return every message that can be completed from buffered bytes."""
        messages = []
        while True:
            message = self.next_message()
            if message is None:
                return messages
            messages.append(message)

    def reset(self) -> None:
        """Discard all buffered bytes and any partial message."""
        self._buffer = bytearray()
        self._cursor = ReassemblyCursor()
        self.state = ReassemblyState.AWAITING_HEADER

    def _complete(self) -> Message:
        cursor = self._cursor
        header = cursor.header
        try:
            payload, error = decode_payload(cursor.payload, header.code)
        finally:
            # Never leave a consumed frame behind to be parsed again
            cursor.reset()
            self.state = ReassemblyState.AWAITING_HEADER
            self._compact()

        if error is not None:
            log_debug(f"[WIRE] Undecodable payload for code {header.code}: {error}")
        return Message(
            code=header.code,
            is_event=header.is_event,
            length=header.length,
            payload=payload,
            error=error,
        )

    def _compact(self) -> None:
        """Drop bytes before the read offset."""
        offset = self._cursor.offset
        if not offset:
            return
        if offset >= len(self._buffer):
            self._buffer = bytearray()
        else:
            del self._buffer[:offset]
        self._cursor.offset = 0
