"""Tests for the register descriptor table and block arithmetic."""

import pytest

from output_expander_mcp.errors import UnknownRegisterError
from output_expander_mcp.models.flags import (
    AcquisitionMode,
    MagneticEncoderReading,
    OpticalFlowDelta,
    PwmChannels,
)
from output_expander_mcp.models.registers import (
    PWM_BLOCK,
    REGISTERS,
    STIM_BLOCK,
    WHO_AM_I,
    Access,
    RegisterDescriptor,
    RegisterMap,
    WireType,
    resolve,
)


def test_resolve_known_register():
    who = resolve("WhoAmI")
    assert who.address == 0
    assert who.wire_type is WireType.U16
    assert who.readable and not who.writable


def test_resolve_unknown_register():
    with pytest.raises(UnknownRegisterError) as excinfo:
        resolve("Pwm3Frequency")
    assert "Pwm3Frequency" in str(excinfo.value)


def test_unknown_register_is_a_key_error():
    """Callers that catch KeyError keep working."""
    with pytest.raises(KeyError):
        REGISTERS.by_address(250)


def test_addresses_are_unique():
    addresses = [d.address for d in REGISTERS]
    assert len(addresses) == len(set(addresses))
    assert len(REGISTERS) == len(addresses)


def test_duplicate_address_fails_construction():
    with pytest.raises(ValueError, match="share address"):
        RegisterMap([
            RegisterDescriptor("A", 40, WireType.U8),
            RegisterDescriptor("B", 40, WireType.U16),
        ])


def test_duplicate_name_fails_construction():
    with pytest.raises(ValueError, match="Duplicate"):
        RegisterMap([
            RegisterDescriptor("A", 40, WireType.U8),
            RegisterDescriptor("A", 41, WireType.U8),
        ])


def test_descriptor_address_range():
    with pytest.raises(ValueError):
        RegisterDescriptor("Bad", 256, WireType.U8)


def test_iteration_is_address_ordered():
    addresses = [d.address for d in REGISTERS]
    assert addresses == sorted(addresses)


def test_wire_type_widths():
    assert WireType.U8.width == 1
    assert WireType.U16.width == 2
    assert WireType.S16.width == 2
    assert WireType.U32.width == 4
    assert WireType.FLOAT.width == 4


def test_wire_type_bounds():
    assert WireType.U8.bounds == (0, 255)
    assert WireType.U16.bounds == (0, 65535)
    assert WireType.S16.bounds == (-32768, 32767)


def test_wire_type_from_tag():
    assert WireType.from_tag(0x44) is WireType.FLOAT
    with pytest.raises(ValueError):
        WireType.from_tag(0x99)


def test_pwm_block_stride():
    """Equivalent registers of successive PWM channels sit one stride apart."""
    for field in ("Frequency", "DutyCycle", "PulseCount", "AcquisitionMode",
                  "TriggerSource", "EventConfig"):
        addresses = [resolve(f"Pwm{ch}{field}").address for ch in range(3)]
        assert addresses[1] - addresses[0] == PWM_BLOCK.stride
        assert addresses[2] - addresses[1] == PWM_BLOCK.stride


def test_pwm_block_address_arithmetic():
    for channel in range(3):
        for field in PWM_BLOCK.fields:
            descriptor = PWM_BLOCK.register(channel, field)
            assert descriptor.name == f"Pwm{channel}{field}"
            assert descriptor.address == PWM_BLOCK.base + channel * PWM_BLOCK.stride + PWM_BLOCK.offset(field)


def test_pwm_block_rejects_missing_channel():
    with pytest.raises(ValueError):
        PWM_BLOCK.address(3, "Frequency")


def test_pwm_block_rejects_unknown_field():
    with pytest.raises(ValueError):
        PWM_BLOCK.address(0, "Amplitude")


def test_stim_block_matches_named_registers():
    for field in STIM_BLOCK.fields:
        assert STIM_BLOCK.register(0, field).name == f"Stim0{field}"


def test_register_types():
    assert resolve("Pwm1Frequency").wire_type is WireType.FLOAT
    assert resolve("Pwm2PulseCount").wire_type is WireType.U16
    assert resolve("Pwm0AcquisitionMode").value_type is AcquisitionMode
    assert resolve("PwmStart").value_type is PwmChannels
    assert resolve("OpticalFlow").wire_type is WireType.S16
    assert resolve("OpticalFlow").length == 2
    assert resolve("OpticalFlow").value_type is OpticalFlowDelta
    assert resolve("MagneticEncoder").value_type is MagneticEncoderReading


def test_read_only_registers():
    assert not resolve("Pwm0RealFrequency").writable
    assert resolve("AuxInState").event_capable


def test_output_pulse_width_registers():
    for index in range(10):
        assert resolve(f"Out{index}PulseWidth").wire_type is WireType.U16


def test_to_dict():
    d = resolve("Pwm0TriggerSource").to_dict()
    assert d["type"] == "U8"
    assert d["values"] == "TriggerSource"
    assert d["access"] == ["read", "write"]


def test_access_flags():
    assert Access.READ | Access.WRITE == resolve("OutputSet").access


def test_who_am_i_constant():
    assert WHO_AM_I == 1108
