"""Read and write command builders.

A read command carries no payload; its type tag tells the device which
element type to answer with. A write command carries the packed payload,
whose length must be a whole number of elements of the register's type.
"""

from __future__ import annotations

from ..errors import InvalidLengthError
from ..models.registers import RegisterDescriptor, WireType
from .framing import Frame, MessageType
from .payload import pack_value


def build_read(address: int, wire_type: WireType) -> Frame:
    """Build a read command for the register at ``address``."""
    return Frame(MessageType.READ, address, wire_type.tag)


def build_write(
    address: int,
    wire_type: WireType,
    payload: bytes,
    length: int | None = None,
) -> Frame:
    """Build a write command carrying a pre-encoded payload.

    Args:
        address: Register address 0-255.
        wire_type: Element type of the register.
        payload: Packed payload bytes.
        length: Expected element count, when known.

    Raises:
        InvalidLengthError: If the payload size disagrees with the wire type.
    """
    size = len(payload)
    if length is not None:
        expected = wire_type.width * length
        if size != expected:
            raise InvalidLengthError(address, expected, size)
    elif size == 0 or size % wire_type.width:
        raise InvalidLengthError(address, wire_type.width, size)
    return Frame(MessageType.WRITE, address, wire_type.tag, bytes(payload))


def read_command(descriptor: RegisterDescriptor) -> Frame:
    """Build a read command for a register."""
    return build_read(descriptor.address, descriptor.wire_type)


def write_command(descriptor: RegisterDescriptor, value) -> Frame:
    """Build a write command that stores ``value`` in a register."""
    payload = pack_value(descriptor, value)
    return build_write(descriptor.address, descriptor.wire_type, payload, descriptor.length)


def expected_reply(command: Frame) -> tuple[MessageType, ...]:
    """Message kinds that acknowledge ``command``."""
    if command.message_type == MessageType.READ:
        return (MessageType.READ, MessageType.EVENT)
    return (command.message_type,)
