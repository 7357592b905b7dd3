"""Register descriptor table for the Output Expander.

Each register has a fixed address, wire type and access mode. The table is
built once at import time and never mutated; building it fails fast when two
registers collide on address or name.

Per-channel registers (PWM, stimulation) repeat in fixed-size blocks::

    address = base(channel0) + channel * stride + field_offset
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Iterable, Iterator

from ..errors import UnknownRegisterError
from .flags import (
    AcquisitionMode,
    AuxiliaryInputs,
    DigitalOutputs,
    EnableFlag,
    ExpansionBoardType,
    MagneticEncoderReading,
    MagneticEncoderSampleRate,
    OpticalFlowDelta,
    PwmAndStimMapping,
    PwmChannels,
    StimChannels,
    TriggerSource,
)


class WireType(Enum):
    """Payload element types: (type tag, width in bytes, struct format)."""

    U8 = (0x01, 1, "B")
    U16 = (0x02, 2, "H")
    U32 = (0x04, 4, "I")
    S16 = (0x82, 2, "h")
    FLOAT = (0x44, 4, "f")

    def __init__(self, tag: int, width: int, fmt: str) -> None:
        self.tag = tag
        self.width = width
        self.fmt = fmt

    @property
    def is_integer(self) -> bool:
        return self is not WireType.FLOAT

    @property
    def bounds(self) -> tuple[int, int]:
        """Inclusive range of an integer element."""
        bits = self.width * 8
        if self.fmt.islower():
            return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
        return 0, (1 << bits) - 1

    @classmethod
    def from_tag(cls, tag: int) -> WireType:
        for wire_type in cls:
            if wire_type.tag == tag:
                return wire_type
        raise ValueError(f"Unknown payload type tag 0x{tag:02X}")


class Access(IntFlag):
    """How a register may be used."""

    READ = 0x1
    WRITE = 0x2
    EVENT = 0x4


RO = Access.READ
RW = Access.READ | Access.WRITE
WO = Access.WRITE
EV = Access.READ | Access.EVENT
RWE = Access.READ | Access.WRITE | Access.EVENT


@dataclass(frozen=True)
class RegisterDescriptor:
    """Static description of one device register."""

    name: str
    address: int
    wire_type: WireType
    access: Access = RW
    length: int = 1
    value_type: type | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.address <= 255:
            raise ValueError(f"Register {self.name}: address must be 0-255, got {self.address}")
        if self.length < 1:
            raise ValueError(f"Register {self.name}: length must be positive, got {self.length}")

    @property
    def payload_size(self) -> int:
        return self.wire_type.width * self.length

    @property
    def readable(self) -> bool:
        return bool(self.access & Access.READ)

    @property
    def writable(self) -> bool:
        return bool(self.access & Access.WRITE)

    @property
    def event_capable(self) -> bool:
        return bool(self.access & Access.EVENT)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "address": self.address,
            "type": self.wire_type.name,
            "length": self.length,
            "access": [flag.name.lower() for flag in Access if flag & self.access],
            "values": self.value_type.__name__ if self.value_type else None,
        }


class RegisterMap:
    """Immutable name/address lookup over a set of register descriptors."""

    def __init__(self, descriptors: Iterable[RegisterDescriptor]) -> None:
        by_name: dict[str, RegisterDescriptor] = {}
        by_address: dict[int, RegisterDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.address in by_address:
                other = by_address[descriptor.address]
                raise ValueError(
                    f"Registers {other.name} and {descriptor.name} "
                    f"share address {descriptor.address}"
                )
            if descriptor.name in by_name:
                raise ValueError(f"Duplicate register name {descriptor.name}")
            by_name[descriptor.name] = descriptor
            by_address[descriptor.address] = descriptor
        self._by_name = by_name
        self._by_address = by_address

    def resolve(self, name: str) -> RegisterDescriptor:
        """Look up a register by name."""
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownRegisterError(name) from None

    def by_address(self, address: int) -> RegisterDescriptor:
        """Look up a register by address."""
        try:
            return self._by_address[address]
        except KeyError:
            raise UnknownRegisterError(address) from None

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[RegisterDescriptor]:
        return iter(sorted(self._by_address.values(), key=lambda d: d.address))

    def __len__(self) -> int:
        return len(self._by_name)


@dataclass(frozen=True)
class RegisterBlock:
    """A family of registers repeated once per channel."""

    prefix: str
    base: int
    stride: int
    channels: int
    fields: tuple[str, ...]

    def offset(self, field: str) -> int:
        try:
            return self.fields.index(field)
        except ValueError:
            raise ValueError(f"{self.prefix} blocks have no field {field!r}") from None

    def address(self, channel: int, field: str) -> int:
        """Address of ``field`` in the block belonging to ``channel``."""
        if not 0 <= channel < self.channels:
            raise ValueError(
                f"{self.prefix} channel must be 0-{self.channels - 1}, got {channel}"
            )
        return self.base + channel * self.stride + self.offset(field)

    def register(self, channel: int, field: str, registers: RegisterMap | None = None) -> RegisterDescriptor:
        """Descriptor of ``field`` in the block belonging to ``channel``."""
        return (registers or REGISTERS).by_address(self.address(channel, field))


WHO_AM_I = 1108

PWM_FIELDS = (
    "Frequency",
    "DutyCycle",
    "PulseCount",
    "RealFrequency",
    "RealDutyCycle",
    "AcquisitionMode",
    "TriggerSource",
    "EventConfig",
)
STIM_FIELDS = (
    "PulseOnTime",
    "PulseOffTime",
    "PulseCount",
    "AcquisitionMode",
    "TriggerSource",
)

PWM_BASE = 42
STIM_BASE = 69

PWM_BLOCK = RegisterBlock("Pwm", PWM_BASE, len(PWM_FIELDS), 3, PWM_FIELDS)
STIM_BLOCK = RegisterBlock("Stim", STIM_BASE, len(STIM_FIELDS), 1, STIM_FIELDS)


def _pwm_registers(channel: int) -> list[RegisterDescriptor]:
    base = PWM_BASE + channel * PWM_BLOCK.stride
    name = f"Pwm{channel}"
    return [
        RegisterDescriptor(f"{name}Frequency", base, WireType.FLOAT),
        RegisterDescriptor(f"{name}DutyCycle", base + 1, WireType.FLOAT),
        RegisterDescriptor(f"{name}PulseCount", base + 2, WireType.U16),
        RegisterDescriptor(f"{name}RealFrequency", base + 3, WireType.FLOAT, RO),
        RegisterDescriptor(f"{name}RealDutyCycle", base + 4, WireType.FLOAT, RO),
        RegisterDescriptor(f"{name}AcquisitionMode", base + 5, WireType.U8, value_type=AcquisitionMode),
        RegisterDescriptor(f"{name}TriggerSource", base + 6, WireType.U8, value_type=TriggerSource),
        RegisterDescriptor(f"{name}EventConfig", base + 7, WireType.U8, value_type=EnableFlag),
    ]


def _build_registers() -> list[RegisterDescriptor]:
    registers = [
        # Common Harp core registers
        RegisterDescriptor("WhoAmI", 0, WireType.U16, RO),
        RegisterDescriptor("HardwareVersionHigh", 1, WireType.U8, RO),
        RegisterDescriptor("HardwareVersionLow", 2, WireType.U8, RO),
        RegisterDescriptor("AssemblyVersion", 3, WireType.U8, RO),
        RegisterDescriptor("CoreVersionHigh", 4, WireType.U8, RO),
        RegisterDescriptor("CoreVersionLow", 5, WireType.U8, RO),
        RegisterDescriptor("FirmwareVersionHigh", 6, WireType.U8, RO),
        RegisterDescriptor("FirmwareVersionLow", 7, WireType.U8, RO),
        RegisterDescriptor("TimestampSeconds", 8, WireType.U32, RWE),
        RegisterDescriptor("TimestampMicroseconds", 9, WireType.U16, RO),
        RegisterDescriptor("OperationControl", 10, WireType.U8),
        RegisterDescriptor("ResetDevice", 11, WireType.U8),
        # Application registers
        RegisterDescriptor("AuxInState", 32, WireType.U8, EV, value_type=AuxiliaryInputs),
        RegisterDescriptor("AuxInRisingEdge", 33, WireType.U8, value_type=AuxiliaryInputs),
        RegisterDescriptor("AuxInFallingEdge", 34, WireType.U8, value_type=AuxiliaryInputs),
        RegisterDescriptor("OutputSet", 35, WireType.U16, value_type=DigitalOutputs),
        RegisterDescriptor("OutputClear", 36, WireType.U16, value_type=DigitalOutputs),
        RegisterDescriptor("OutputToggle", 37, WireType.U16, value_type=DigitalOutputs),
        RegisterDescriptor("OutputState", 38, WireType.U16, value_type=DigitalOutputs),
        RegisterDescriptor("PwmAndStimEnable", 39, WireType.U16, value_type=PwmAndStimMapping),
        RegisterDescriptor("PwmAndStimDisable", 40, WireType.U16, value_type=PwmAndStimMapping),
        RegisterDescriptor("PwmAndStimState", 41, WireType.U16, value_type=PwmAndStimMapping),
    ]
    for channel in range(PWM_BLOCK.channels):
        registers.extend(_pwm_registers(channel))
    registers += [
        RegisterDescriptor("PwmStart", 66, WireType.U8, value_type=PwmChannels),
        RegisterDescriptor("PwmStop", 67, WireType.U8, value_type=PwmChannels),
        RegisterDescriptor("PwmRiseEvent", 68, WireType.U8, RWE, value_type=PwmChannels),
        RegisterDescriptor("Stim0PulseOnTime", STIM_BASE, WireType.U16),
        RegisterDescriptor("Stim0PulseOffTime", STIM_BASE + 1, WireType.U16),
        RegisterDescriptor("Stim0PulseCount", STIM_BASE + 2, WireType.U16),
        RegisterDescriptor("Stim0AcquisitionMode", STIM_BASE + 3, WireType.U8, value_type=AcquisitionMode),
        RegisterDescriptor("Stim0TriggerSource", STIM_BASE + 4, WireType.U8, value_type=TriggerSource),
        RegisterDescriptor("StimStart", 74, WireType.U8, value_type=StimChannels),
        RegisterDescriptor("StimStop", 75, WireType.U8, value_type=StimChannels),
        RegisterDescriptor("OutputPulse", 76, WireType.U16, value_type=DigitalOutputs),
    ]
    registers += [
        RegisterDescriptor(f"Out{index}PulseWidth", 77 + index, WireType.U16)
        for index in range(10)
    ]
    registers += [
        RegisterDescriptor("ExpansionBoard", 87, WireType.U8, value_type=ExpansionBoardType),
        RegisterDescriptor(
            "MagneticEncoder", 88, WireType.U16, EV, length=2,
            value_type=MagneticEncoderReading,
        ),
        RegisterDescriptor(
            "MagneticEncoderSampleRate", 89, WireType.U8,
            value_type=MagneticEncoderSampleRate,
        ),
        RegisterDescriptor("ServoPeriod", 90, WireType.U16),
    ]
    registers += [
        RegisterDescriptor(f"Servo{index}PulseWidth", 91 + index, WireType.U16)
        for index in range(3)
    ]
    registers.append(
        RegisterDescriptor(
            "OpticalFlow", 94, WireType.S16, EV, length=2,
            value_type=OpticalFlowDelta,
        )
    )
    return registers


REGISTERS = RegisterMap(_build_registers())


def resolve(name: str) -> RegisterDescriptor:
    """Look up a register of the Output Expander by name."""
    return REGISTERS.resolve(name)
