"""Tests for typed payload encoding and decoding."""

import pytest

from output_expander_mcp.errors import (
    AddressMismatchError,
    DeviceError,
    ProtocolError,
    TypeMismatchError,
)
from output_expander_mcp.models.flags import (
    AcquisitionMode,
    AuxiliaryInputs,
    DigitalOutputs,
    ExpansionBoardType,
    MagneticEncoderReading,
    OpticalFlowDelta,
    PwmChannels,
    TriggerSource,
)
from output_expander_mcp.models.registers import resolve
from output_expander_mcp.protocol.framing import MessageType, build_frame, parse_frame
from output_expander_mcp.protocol.payload import (
    decode,
    decode_timestamped,
    encode,
    pack_value,
    unpack_value,
)


@pytest.mark.parametrize(
    "name, value",
    [
        ("ResetDevice", 0),
        ("ResetDevice", 127),
        ("ResetDevice", 255),
        ("Out3PulseWidth", 0),
        ("Out3PulseWidth", 1000),
        ("Out3PulseWidth", 65535),
        ("TimestampSeconds", 4_000_000_000),
        ("Pwm0Frequency", 0.5),
        ("Pwm0Frequency", 1000.0),
        ("Pwm1DutyCycle", -0.0),
        ("OutputSet", DigitalOutputs.NONE),
        ("OutputSet", DigitalOutputs.OUT0 | DigitalOutputs.OUT9),
        ("OutputSet", DigitalOutputs(0x3FF)),
        ("AuxInRisingEdge", AuxiliaryInputs(0x07)),
        ("PwmStart", PwmChannels.PWM0 | PwmChannels.PWM2),
        ("Pwm2AcquisitionMode", AcquisitionMode.FINITE),
        ("ExpansionBoard", ExpansionBoardType.OPTICAL_FLOW),
        ("OpticalFlow", OpticalFlowDelta(-32768, 32767)),
        ("OpticalFlow", OpticalFlowDelta(-5, 12)),
        ("MagneticEncoder", MagneticEncoderReading(4095, 1)),
    ],
)
@pytest.mark.parametrize("kind", [MessageType.WRITE, MessageType.READ, MessageType.EVENT])
def test_roundtrip(name, value, kind):
    """decode(encode(v)) == v for boundary and mid-range values."""
    descriptor = resolve(name)
    assert decode(descriptor, encode(descriptor, kind, value)) == value


def test_decode_returns_value_type():
    descriptor = resolve("Pwm0TriggerSource")
    value = decode(descriptor, encode(descriptor, MessageType.WRITE, TriggerSource.SOFTWARE))
    assert value is TriggerSource.SOFTWARE
    flags = decode(resolve("OutputState"), encode(resolve("OutputState"), MessageType.READ, 0x005))
    assert isinstance(flags, DigitalOutputs)
    assert flags == DigitalOutputs.OUT0 | DigitalOutputs.OUT2


def test_multi_element_decodes_to_named_tuple():
    descriptor = resolve("OpticalFlow")
    delta = decode(descriptor, encode(descriptor, MessageType.EVENT, (3, -4)))
    assert delta.delta_x == 3
    assert delta.delta_y == -4


def test_little_endian_layout():
    assert pack_value(resolve("Out0PulseWidth"), 0x1234) == b"\x34\x12"
    assert pack_value(resolve("OpticalFlow"), (-1, 1)) == b"\xFF\xFF\x01\x00"
    assert pack_value(resolve("Pwm0Frequency"), 50.0) == b"\x00\x00\x48\x42"


def test_decode_timestamped():
    descriptor = resolve("AuxInState")
    data = encode(descriptor, MessageType.EVENT, AuxiliaryInputs.AUX_IN1, timestamp=42.5)
    value, seconds = decode_timestamped(descriptor, data)
    assert value == AuxiliaryInputs.AUX_IN1
    assert seconds == pytest.approx(42.5, abs=32e-6)


def test_decode_timestamped_requires_timestamp():
    descriptor = resolve("AuxInState")
    with pytest.raises(ProtocolError, match="timestamp"):
        decode_timestamped(descriptor, encode(descriptor, MessageType.READ, 0))


def test_decode_accepts_parsed_frame():
    descriptor = resolve("ServoPeriod")
    frame = parse_frame(encode(descriptor, MessageType.READ, 20000))
    assert decode(descriptor, frame) == 20000


def test_decode_address_mismatch():
    data = encode(resolve("Servo0PulseWidth"), MessageType.READ, 1500)
    with pytest.raises(AddressMismatchError) as excinfo:
        decode(resolve("Servo1PulseWidth"), data)
    assert excinfo.value.expected == resolve("Servo1PulseWidth").address
    assert excinfo.value.actual == resolve("Servo0PulseWidth").address


def test_decode_type_mismatch():
    descriptor = resolve("Out0PulseWidth")
    data = build_frame(MessageType.READ, descriptor.address, 0x01, b"\x05")
    with pytest.raises(TypeMismatchError) as excinfo:
        decode(descriptor, data)
    assert excinfo.value.expected == "U16"
    assert excinfo.value.actual == "U8"


def test_decode_error_reply():
    descriptor = resolve("Pwm0Frequency")
    data = build_frame(MessageType.WRITE, descriptor.address, 0x44, b"\x00" * 4, is_error=True)
    with pytest.raises(DeviceError) as excinfo:
        decode(descriptor, data)
    assert excinfo.value.code == 0x0A


def test_decode_wrong_payload_size():
    descriptor = resolve("Out0PulseWidth")
    data = build_frame(MessageType.READ, descriptor.address, 0x02, b"\x01\x02\x03\x04")
    with pytest.raises(ProtocolError):
        decode(descriptor, data)


def test_decode_unknown_enum_value():
    with pytest.raises(ProtocolError, match="AcquisitionMode"):
        unpack_value(resolve("Pwm0AcquisitionMode"), b"\x09")


@pytest.mark.parametrize(
    "name, value",
    [
        ("Out0PulseWidth", 1.5),
        ("Out0PulseWidth", "100"),
        ("Out0PulseWidth", True),
        ("Out0PulseWidth", -1),
        ("Out0PulseWidth", 65536),
        ("ResetDevice", 256),
        ("Pwm0Frequency", "50"),
        ("Pwm0Frequency", 1e40),
        ("Pwm0Frequency", AcquisitionMode.FINITE),
        ("Pwm0AcquisitionMode", TriggerSource.AUX_IN0),
        ("Pwm0AcquisitionMode", 7),
        ("OutputSet", PwmChannels.PWM0),
        ("OpticalFlow", 5),
        ("OpticalFlow", (1, 2, 3)),
        ("OpticalFlow", MagneticEncoderReading(1, 2)),
        ("ServoPeriod", (1,)),
    ],
)
def test_encode_type_mismatch(name, value):
    with pytest.raises(TypeMismatchError):
        encode(resolve(name), MessageType.WRITE, value)


def test_float_register_accepts_int():
    descriptor = resolve("Pwm0DutyCycle")
    assert decode(descriptor, encode(descriptor, MessageType.WRITE, 25)) == 25.0
