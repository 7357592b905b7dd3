"""Typed payload encoding and decoding.

Integers are little-endian, floating point registers are IEEE-754 single
precision. Registers with an enum or bit-flag ``value_type`` decode to that
type; multi-element registers decode to a tuple (or their ``NamedTuple``).
"""

from __future__ import annotations

import struct
from enum import Enum
from typing import Any, NamedTuple, Sequence

from ..errors import AddressMismatchError, DeviceError, ProtocolError, TypeMismatchError
from ..models.registers import RegisterDescriptor, WireType
from .framing import ERROR_FLAG, Frame, MessageType, parse_frame


class Timestamped(NamedTuple):
    """A register value paired with the device time it was sampled at."""

    value: Any
    seconds: float


def _check_element(descriptor: RegisterDescriptor, element: Any) -> None:
    wire_type = descriptor.wire_type
    if isinstance(element, bool) or not isinstance(element, (int, float)):
        raise TypeMismatchError(descriptor.name, wire_type.name, type(element).__name__)
    if not wire_type.is_integer:
        return
    if not isinstance(element, int):
        raise TypeMismatchError(descriptor.name, wire_type.name, type(element).__name__)
    low, high = wire_type.bounds
    if not low <= element <= high:
        raise TypeMismatchError(descriptor.name, f"{wire_type.name} in [{low}, {high}]", element)


def _check_enum(descriptor: RegisterDescriptor, element: Any) -> None:
    value_type = descriptor.value_type
    if not (isinstance(value_type, type) and issubclass(value_type, Enum)):
        if isinstance(element, Enum):
            raise TypeMismatchError(descriptor.name, descriptor.wire_type.name, type(element).__name__)
        return
    if isinstance(element, Enum) and not isinstance(element, value_type):
        raise TypeMismatchError(descriptor.name, value_type.__name__, type(element).__name__)
    try:
        value_type(element)
    except ValueError:
        raise TypeMismatchError(descriptor.name, value_type.__name__, element) from None


def _elements(descriptor: RegisterDescriptor, value: Any) -> Sequence:
    if descriptor.length == 1:
        if isinstance(value, (tuple, list)):
            raise TypeMismatchError(descriptor.name, descriptor.wire_type.name, type(value).__name__)
        _check_enum(descriptor, value)
        return (value,)

    if not isinstance(value, (tuple, list)):
        raise TypeMismatchError(
            descriptor.name,
            f"{descriptor.length} x {descriptor.wire_type.name}",
            type(value).__name__,
        )
    value_type = descriptor.value_type
    if (
        hasattr(value, "_fields")
        and value_type is not None
        and not isinstance(value, value_type)
    ):
        raise TypeMismatchError(descriptor.name, value_type.__name__, type(value).__name__)
    if len(value) != descriptor.length:
        raise TypeMismatchError(
            descriptor.name,
            f"{descriptor.length} x {descriptor.wire_type.name}",
            f"{len(value)} values",
        )
    return value


def pack_value(descriptor: RegisterDescriptor, value: Any) -> bytes:
    """Pack ``value`` into the wire layout of ``descriptor``.

    Raises:
        TypeMismatchError: If the value's type or range does not fit the
            register's declared wire type.
    """
    elements = _elements(descriptor, value)
    for element in elements:
        _check_element(descriptor, element)
    fmt = f"<{descriptor.length}{descriptor.wire_type.fmt}"
    try:
        return struct.pack(fmt, *(int(e) if descriptor.wire_type.is_integer else e for e in elements))
    except (struct.error, OverflowError) as e:
        raise TypeMismatchError(descriptor.name, descriptor.wire_type.name, value) from e


def unpack_value(descriptor: RegisterDescriptor, payload: bytes) -> Any:
    """Unpack a payload according to ``descriptor``.

    Raises:
        ProtocolError: If the payload has the wrong size or holds a value
            outside the register's enum.
    """
    if len(payload) != descriptor.payload_size:
        raise ProtocolError(
            f"Register {descriptor.name}: payload must be "
            f"{descriptor.payload_size} bytes, got {len(payload)}"
        )
    elements = struct.unpack(f"<{descriptor.length}{descriptor.wire_type.fmt}", payload)
    value_type = descriptor.value_type
    if descriptor.length > 1:
        return value_type(*elements) if value_type is not None else elements
    element = elements[0]
    if value_type is None:
        return element
    try:
        return value_type(element)
    except ValueError:
        raise ProtocolError(
            f"Register {descriptor.name}: {element} is not a valid {value_type.__name__}"
        ) from None


def encode(
    descriptor: RegisterDescriptor,
    message_type: MessageType,
    value: Any,
    timestamp: float | None = None,
) -> bytes:
    """Encode a full frame carrying ``value`` for ``descriptor``."""
    frame = Frame(
        message_type=MessageType(message_type),
        address=descriptor.address,
        payload_type=descriptor.wire_type.tag,
        payload=pack_value(descriptor, value),
        timestamp=timestamp,
    )
    return frame.to_bytes()


def _check_frame(descriptor: RegisterDescriptor, frame: Frame | bytes) -> Frame:
    if not isinstance(frame, Frame):
        frame = parse_frame(frame)
    if frame.is_error:
        raise DeviceError(frame.address, int(frame.message_type) | ERROR_FLAG, descriptor.name)
    if frame.address != descriptor.address:
        raise AddressMismatchError(descriptor.name, descriptor.address, frame.address)
    if frame.payload_type != descriptor.wire_type.tag:
        try:
            actual = WireType.from_tag(frame.payload_type).name
        except ValueError:
            actual = f"0x{frame.payload_type:02X}"
        raise TypeMismatchError(descriptor.name, descriptor.wire_type.name, actual)
    return frame


def decode(descriptor: RegisterDescriptor, frame: Frame | bytes) -> Any:
    """Decode the value carried by a reply frame.

    Args:
        descriptor: The register the frame is expected to describe.
        frame: A parsed Frame or its raw bytes.

    Raises:
        AddressMismatchError: If the frame addresses another register.
        TypeMismatchError: If the frame's type tag differs from the register's.
        DeviceError: If the frame is an error reply.
        ProtocolError: If the frame or payload is malformed.
    """
    frame = _check_frame(descriptor, frame)
    return unpack_value(descriptor, frame.payload)


def decode_timestamped(descriptor: RegisterDescriptor, frame: Frame | bytes) -> Timestamped:
    """Decode a reply frame together with its device timestamp."""
    frame = _check_frame(descriptor, frame)
    if frame.timestamp is None:
        raise ProtocolError(f"Register {descriptor.name}: reply carries no timestamp")
    return Timestamped(unpack_value(descriptor, frame.payload), frame.timestamp)
