"""Message frame builder and parser for the Harp binary protocol.

Frame layout::

    +-------------+--------+---------+--------+-------------+-----------------+---------+----------+
    | MessageType | Length | Address |  Port  | PayloadType |   Timestamp     | Payload | Checksum |
    |   1 byte    | 1 byte | 1 byte  | 1 byte |   1 byte    | 6 bytes, opt.   |   var   |  1 byte  |
    +-------------+--------+---------+--------+-------------+-----------------+---------+----------+

- MessageType: Read (1), Write (2) or Event (3); bit 0x08 marks an error reply
- Length: number of bytes that follow the length byte
- PayloadType: element type tag, OR'ed with 0x10 when a timestamp is present
- Timestamp: u32 seconds + u16 count of 32 microsecond ticks, little-endian
- Checksum: sum of all preceding bytes modulo 256
"""

from __future__ import annotations

import asyncio
import logging
import struct
from dataclasses import dataclass
from enum import IntEnum

from ..errors import ProtocolError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 0xFF
ERROR_FLAG = 0x08
TIMESTAMP_FLAG = 0x10
TIMESTAMP_SIZE = 6
TICK_SECONDS = 32e-6
HEADER_SIZE = 5  # type + length + address + port + payload type
MIN_FRAME_SIZE = HEADER_SIZE + 1  # header + checksum
MAX_FRAME_SIZE = 2 + 0xFF


class MessageType(IntEnum):
    """Harp message kinds."""

    READ = 1
    WRITE = 2
    EVENT = 3


@dataclass
class Frame:
    """A single protocol frame."""

    message_type: MessageType
    address: int
    payload_type: int
    payload: bytes = b""
    port: int = DEFAULT_PORT
    timestamp: float | None = None
    is_error: bool = False

    def to_bytes(self) -> bytes:
        return build_frame(
            self.message_type,
            self.address,
            self.payload_type,
            self.payload,
            port=self.port,
            timestamp=self.timestamp,
            is_error=self.is_error,
        )

    def __repr__(self) -> str:
        kind = self.message_type.name + ("|ERROR" if self.is_error else "")
        stamp = f", timestamp={self.timestamp:.6f}" if self.timestamp is not None else ""
        return (
            f"Frame({kind}, address={self.address}, "
            f"type=0x{self.payload_type:02X}{stamp}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


def checksum(data: bytes) -> int:
    """Compute the additive 8-bit checksum of ``data``."""
    return sum(data) & 0xFF


def pack_timestamp(seconds: float) -> bytes:
    whole = int(seconds)
    ticks = round((seconds - whole) / TICK_SECONDS)
    if ticks > 0xFFFF:
        whole, ticks = whole + 1, 0
    return struct.pack("<IH", whole, ticks)


def unpack_timestamp(data: bytes) -> float:
    whole, ticks = struct.unpack("<IH", data)
    return whole + ticks * TICK_SECONDS


def build_frame(
    message_type: int,
    address: int,
    payload_type: int,
    payload: bytes = b"",
    *,
    port: int = DEFAULT_PORT,
    timestamp: float | None = None,
    is_error: bool = False,
) -> bytes:
    """Serialize a frame to bytes.

    Args:
        message_type: Read, Write or Event.
        address: Register address 0-255.
        payload_type: Element type tag without the timestamp flag.
        payload: Packed payload bytes.
        timestamp: Optional device time in seconds.
        is_error: Set the error flag on the message type.

    Returns:
        The complete frame, checksum last.
    """
    if not 0 <= address <= 0xFF:
        raise ValueError(f"Address must be 0-255, got {address}")
    type_byte = int(message_type) | (ERROR_FLAG if is_error else 0)
    tag = payload_type & ~TIMESTAMP_FLAG
    stamp = b""
    if timestamp is not None:
        tag |= TIMESTAMP_FLAG
        stamp = pack_timestamp(timestamp)
    body = bytes([address, port, tag]) + stamp + payload
    length = len(body) + 1
    if length > 0xFF:
        raise ValueError(f"Frame too large: {length} bytes after length field")
    frame = bytes([type_byte, length]) + body
    return frame + bytes([checksum(frame)])


def parse_frame(data: bytes) -> Frame:
    """Parse raw bytes into a Frame.

    Raises:
        ProtocolError: If the frame is undersized, its length field
            disagrees with the data, or the checksum fails.
    """
    if len(data) < MIN_FRAME_SIZE:
        raise ProtocolError(f"Frame too short: {len(data)} bytes")

    length = data[1]
    if length + 2 != len(data):
        raise ProtocolError(
            f"Length field says {length + 2} bytes, got {len(data)}"
        )

    expected = data[-1]
    actual = checksum(data[:-1])
    if expected != actual:
        raise ProtocolError(
            f"Checksum mismatch: expected 0x{expected:02X}, computed 0x{actual:02X}"
        )

    type_byte = data[0]
    try:
        message_type = MessageType(type_byte & ~ERROR_FLAG)
    except ValueError:
        raise ProtocolError(f"Unknown message type 0x{type_byte:02X}") from None

    address = data[2]
    port = data[3]
    tag = data[4]
    offset = HEADER_SIZE
    timestamp = None
    if tag & TIMESTAMP_FLAG:
        if len(data) < MIN_FRAME_SIZE + TIMESTAMP_SIZE:
            raise ProtocolError("Timestamped frame too short")
        timestamp = unpack_timestamp(data[offset : offset + TIMESTAMP_SIZE])
        offset += TIMESTAMP_SIZE

    return Frame(
        message_type=message_type,
        address=address,
        payload_type=tag & ~TIMESTAMP_FLAG,
        payload=bytes(data[offset:-1]),
        port=port,
        timestamp=timestamp,
        is_error=bool(type_byte & ERROR_FLAG),
    )


class FrameReader:
    """Pull whole frames off an ``asyncio.StreamReader``."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader

    async def read_raw(self) -> bytes:
        """Read the bytes of exactly one frame.

        Raises:
            asyncio.IncompleteReadError: If the stream ends mid-frame.
        """
        head = await self._reader.readexactly(2)
        rest = await self._reader.readexactly(head[1])
        return head + rest

    async def read(self) -> Frame:
        raw = await self.read_raw()
        logger.debug("RX %s", raw.hex(" "))
        return parse_frame(raw)
