"""Shared fixtures: an in-memory stream pair standing in for the serial port."""

from __future__ import annotations

import asyncio
from typing import Callable

from output_expander_mcp.models.registers import REGISTERS
from output_expander_mcp.protocol.framing import Frame, MessageType, parse_frame
from output_expander_mcp.protocol.payload import encode, unpack_value

Responder = Callable[[Frame], "bytes | None"]


class FakeWriter:
    """Records written frames and optionally answers them through ``reader``."""

    def __init__(self, reader: asyncio.StreamReader, responder: Responder | None = None) -> None:
        self.reader = reader
        self.responder = responder
        self.written: list[bytes] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        self.written.append(bytes(data))
        if self.responder is not None:
            reply = self.responder(parse_frame(data))
            if reply:
                asyncio.get_running_loop().call_soon(self.reader.feed_data, reply)

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass

    @property
    def frames(self) -> list[Frame]:
        return [parse_frame(data) for data in self.written]


def reply(name: str, message_type: MessageType, value, timestamp: float = 1.5) -> bytes:
    """Encode a timestamped device reply for register ``name``."""
    return encode(REGISTERS.resolve(name), message_type, value, timestamp=timestamp)


class FakeDevice:
    """Minimal register store answering reads and writes like the firmware."""

    def __init__(self, who_am_i: int = 1108, **values) -> None:
        self.values = {"WhoAmI": who_am_i, **values}
        self.timestamp = 10.0

    def __call__(self, frame: Frame) -> bytes | None:
        descriptor = REGISTERS.by_address(frame.address)
        self.timestamp += 0.001
        if frame.message_type == MessageType.WRITE:
            self.values[descriptor.name] = unpack_value(descriptor, frame.payload)
            return reply(descriptor.name, MessageType.WRITE, self.values[descriptor.name], self.timestamp)
        value = self.values.get(descriptor.name, 0 if descriptor.length == 1 else (0,) * descriptor.length)
        return reply(descriptor.name, MessageType.READ, value, self.timestamp)


def stream_pair(responder: Responder | None = None) -> tuple[asyncio.StreamReader, FakeWriter]:
    """Create a reader/writer pair; must be called inside a running loop."""
    reader = asyncio.StreamReader()
    return reader, FakeWriter(reader, responder)
