"""
Packet definitions for the i3 IPC wire format.

Defines the Scapy header structure and the pure encode/decode helpers
used on both sides of the stream.

Frame layout:
    MAGIC(6) + LENGTH(4, LE) + TYPE(4, LE) + PAYLOAD(LENGTH)

Bit 31 of TYPE flags an asynchronous event; bits 0-30 carry the
command code (replies) or event code (events).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from scapy.fields import LEIntField, StrFixedLenField
from scapy.packet import Packet

from .config import (
    CODE_MASK,
    COMMAND_NAMES,
    EVENT_FLAG,
    EVENT_NAMES,
    HEADER_LEN,
    I3_MAGIC,
    PAYLOAD_ENCODING,
)
from .exceptions import (
    InvalidMagicError,
    PacketParseError,
    ProtocolCommandError,
    ProtocolDecodeError,
)


class I3Header(Packet):
    """
    Fixed 14-byte i3 IPC message header.

    Fields:
        magic: Protocol magic bytes ("i3-ipc")
        length: Payload length in bytes
        mtype: Message type (event flag + code)
    """

    name = "I3Header"
    fields_desc = [
        StrFixedLenField("magic", I3_MAGIC, len(I3_MAGIC)),
        LEIntField("length", 0),
        LEIntField("mtype", 0),
    ]


_COMMAND_CODES = {name: code for code, name in enumerate(COMMAND_NAMES)}
_EVENT_CODES = {name: code for code, name in enumerate(EVENT_NAMES)}


# ---------------- Command Descriptors ----------------


@dataclass(frozen=True)
class ByName:
    """Command addressed by its protocol name, e.g. "GET_TREE"."""
    name: str


@dataclass(frozen=True)
class ByCode:
    """Command addressed by its numeric code."""
    code: int


@dataclass(frozen=True)
class PreEncoded:
    """A complete frame that is sent as-is."""
    data: bytes


CommandDescriptor = Union[ByName, ByCode, PreEncoded]
CommandLike = Union[CommandDescriptor, str, int]


def as_descriptor(command: CommandLike) -> CommandDescriptor:
    """Coerce a plain name or code into a command descriptor."""
    if isinstance(command, (ByName, ByCode, PreEncoded)):
        return command
    if isinstance(command, str):
        return ByName(command)
    if isinstance(command, int) and not isinstance(command, bool):
        return ByCode(command)
    if isinstance(command, (bytes, bytearray)):
        return PreEncoded(bytes(command))
    raise ProtocolCommandError(command)


def command_code(command: Union[ByName, ByCode, str, int]) -> int:
    """
    Resolve a command name or code to its wire code.

    Raises:
        ProtocolCommandError: If the command is not known
    """
    desc = as_descriptor(command)
    if isinstance(desc, ByName):
        try:
            return _COMMAND_CODES[desc.name]
        except KeyError:
            raise ProtocolCommandError(desc.name) from None
    if isinstance(desc, ByCode):
        if 0 <= desc.code < len(COMMAND_NAMES):
            return desc.code
        raise ProtocolCommandError(desc.code)
    raise ProtocolCommandError(command)


def command_name(code: int) -> Optional[str]:
    """Return the command name for a code, or None if unknown."""
    if 0 <= code < len(COMMAND_NAMES):
        return COMMAND_NAMES[code]
    return None


def event_name(code: int) -> Optional[str]:
    """Return the event name for a code (event flag stripped), or None."""
    if 0 <= code < len(EVENT_NAMES):
        return EVENT_NAMES[code]
    return None


def event_code(name: str) -> int:
    """
    Return the code of a known event name.

    Raises:
        ValueError: If the event name is unknown
    """
    try:
        return _EVENT_CODES[name]
    except KeyError:
        raise ValueError(f"Unknown event {name!r}") from None


# ---------------- Message Model ----------------


@dataclass
class MessageHeader:
    """Decoded header fields of a single frame."""
    magic: bytes
    length: int
    code: int
    is_event: bool

    @property
    def valid_magic(self) -> bool:
        return self.magic == I3_MAGIC


@dataclass
class Message:
    """
    A complete inbound message.

    Exactly one of ``payload`` / ``error`` is meaningful: when the payload
    bytes failed to parse, ``error`` holds the ProtocolDecodeError and
    ``payload`` is None.
    """
    code: int
    is_event: bool
    length: int = 0
    payload: Any = None
    error: Optional[ProtocolDecodeError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def name(self) -> Optional[str]:
        if self.is_event:
            return event_name(self.code)
        return command_name(self.code)


# ---------------- Encoding ----------------


def encode_payload(payload: Any) -> bytes:
    """
    Serialize a payload to bytes.

    None -> empty, str -> UTF-8 text as-is, bytes -> unchanged,
    anything else -> compact JSON.
    """
    if payload is None:
        return b""
    if isinstance(payload, str):
        return payload.encode(PAYLOAD_ENCODING)
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    return json.dumps(payload, separators=(",", ":")).encode(PAYLOAD_ENCODING)


def encode_message(command: CommandLike, payload: Any = None) -> bytes:
    """
    Build a complete frame for a command.

    Args:
        command: Command name, code, or descriptor
        payload: Optional payload (see encode_payload)

    Returns:
        Header + payload bytes

    Raises:
        ProtocolCommandError: If the command is unknown or the pre-encoded
            frame is too short to hold a header
    """
    desc = as_descriptor(command)

    if isinstance(desc, PreEncoded):
        if payload is not None:
            raise ValueError("Pre-encoded frames cannot take a payload")
        if len(desc.data) < HEADER_LEN:
            raise ProtocolCommandError(desc.data)
        return desc.data

    code = command_code(desc)
    body = encode_payload(payload)
    header = I3Header(length=len(body), mtype=code)
    return bytes(header) + body


# ---------------- Decoding ----------------


def decode_header(
    data: Union[bytes, bytearray, memoryview],
    offset: int = 0,
    strict: bool = True,
) -> Tuple[MessageHeader, int]:
    """
    Decode the header starting at ``offset``.

    Args:
        data: Buffer holding at least HEADER_LEN bytes from offset
        offset: Where the header starts
        strict: Reject frames with a wrong magic sequence

    Returns:
        (header, payload_offset)

    Raises:
        PacketParseError: If fewer than HEADER_LEN bytes are available
        InvalidMagicError: If strict and the magic does not match
    """
    if len(data) - offset < HEADER_LEN:
        raise PacketParseError(
            f"Header too short: {len(data) - offset} < {HEADER_LEN} bytes"
        )

    pkt = I3Header(bytes(data[offset : offset + HEADER_LEN]))
    header = MessageHeader(
        magic=pkt.magic,
        length=pkt.length,
        code=pkt.mtype & CODE_MASK,
        is_event=bool(pkt.mtype & EVENT_FLAG),
    )

    if strict and not header.valid_magic:
        raise InvalidMagicError(header.magic)

    return header, offset + HEADER_LEN


def decode_payload(
    raw: Union[bytes, bytearray], code: Optional[int] = None
) -> Tuple[Any, Optional[ProtocolDecodeError]]:
    """
    Parse completed payload bytes as JSON.

    An empty payload means "no value" and yields (None, None).

    Returns:
        (payload, None) on success, (None, error) on failure
    """
    if not raw:
        return None, None
    try:
        return json.loads(bytes(raw).decode(PAYLOAD_ENCODING)), None
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting deeper than the parser can follow
        return None, ProtocolDecodeError(
            f"Invalid JSON payload: {e}", raw=bytes(raw), code=code
        )


def decode_message(data: Union[bytes, bytearray], strict: bool = True) -> Message:
    """
    Decode exactly one whole frame.

    Raises:
        PacketParseError: If the frame is truncated
        InvalidMagicError: If strict and the magic does not match
    """
    header, start = decode_header(data, 0, strict=strict)
    body = data[start : start + header.length]
    if len(body) < header.length:
        raise PacketParseError(
            f"Truncated payload: {len(body)} < {header.length} bytes"
        )

    payload, error = decode_payload(body, header.code)
    return Message(
        code=header.code,
        is_event=header.is_event,
        length=header.length,
        payload=payload,
        error=error,
    )


def encode_event(code: int, payload: Any = None) -> bytes:
    """
    Build an event frame (event flag set).

    The client never sends events; this mirrors what the window manager
    emits and is used by tooling and tests.
    """
    body = encode_payload(payload)
    header = I3Header(length=len(body), mtype=EVENT_FLAG | (code & CODE_MASK))
    return bytes(header) + body
