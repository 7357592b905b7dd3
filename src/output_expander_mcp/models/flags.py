"""Bit-flag and enum payload types carried by Output Expander registers.

Bit-flag registers are plain integers on the wire; each bit *i* selects
channel (or output line) *i*. Enum registers hold a single byte.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Iterator, NamedTuple


class AuxiliaryInputs(IntFlag):
    """Auxiliary digital input lines."""

    NONE = 0
    AUX_IN0 = 0x01
    AUX_IN1 = 0x02
    AUX_IN2 = 0x04


class DigitalOutputs(IntFlag):
    """The ten general purpose digital outputs."""

    NONE = 0
    OUT0 = 0x001
    OUT1 = 0x002
    OUT2 = 0x004
    OUT3 = 0x008
    OUT4 = 0x010
    OUT5 = 0x020
    OUT6 = 0x040
    OUT7 = 0x080
    OUT8 = 0x100
    OUT9 = 0x200


class PwmChannels(IntFlag):
    """PWM generator channels."""

    NONE = 0
    PWM0 = 0x01
    PWM1 = 0x02
    PWM2 = 0x04


class StimChannels(IntFlag):
    """Stimulation generator channels."""

    NONE = 0
    STIM0 = 0x01


class PwmAndStimMapping(IntFlag):
    """Routing of PWM and stimulation generators onto digital outputs."""

    NONE = 0
    PWM0_TO_OUT1 = 0x001
    PWM0_TO_OUT2 = 0x002
    PWM0_TO_OUT3 = 0x004
    PWM1_TO_OUT6 = 0x020
    PWM1_TO_OUT7 = 0x040
    PWM1_TO_OUT8 = 0x080
    PWM2_TO_OUT9 = 0x100
    STIM0_TO_OUT0 = 0x200


# Output lines each PWM generator can drive
PWM_OUTPUT_MAPPINGS: dict[PwmChannels, PwmAndStimMapping] = {
    PwmChannels.PWM0: (
        PwmAndStimMapping.PWM0_TO_OUT1
        | PwmAndStimMapping.PWM0_TO_OUT2
        | PwmAndStimMapping.PWM0_TO_OUT3
    ),
    PwmChannels.PWM1: (
        PwmAndStimMapping.PWM1_TO_OUT6
        | PwmAndStimMapping.PWM1_TO_OUT7
        | PwmAndStimMapping.PWM1_TO_OUT8
    ),
    PwmChannels.PWM2: PwmAndStimMapping.PWM2_TO_OUT9,
}


class AcquisitionMode(IntEnum):
    """Whether a generator emits a counted burst or runs indefinitely."""

    CONTINUOUS = 0
    FINITE = 1


class TriggerSource(IntEnum):
    """What starts a PWM or stimulation generator."""

    SOFTWARE = 0
    AUX_IN0 = 1
    AUX_IN1 = 2
    AUX_IN2 = 3


class EnableFlag(IntEnum):
    DISABLED = 0
    ENABLED = 1


class ExpansionBoardType(IntEnum):
    """Expansion boards that can be attached to the device."""

    NONE = 0
    BREAKOUT = 1
    MAGNETIC_ENCODER = 2
    SERVO_MOTOR = 3
    OPTICAL_FLOW = 4


class MagneticEncoderSampleRate(IntEnum):
    """Sampling rate modes of the magnetic encoder expansion."""

    SAMPLE_RATE_50HZ = 0
    SAMPLE_RATE_100HZ = 1
    SAMPLE_RATE_200HZ = 2
    SAMPLE_RATE_250HZ = 3
    SAMPLE_RATE_500HZ = 4
    SAMPLE_RATE_1000HZ = 5
    SAMPLE_RATE_2000HZ = 6

    @property
    def hertz(self) -> int:
        return int(self.name.removeprefix("SAMPLE_RATE_").removesuffix("HZ"))


class MagneticEncoderReading(NamedTuple):
    """Angle and status words reported by the magnetic encoder."""

    angle: int
    status: int


class OpticalFlowDelta(NamedTuple):
    """Motion accumulated by the optical flow sensor since the last report."""

    delta_x: int
    delta_y: int


def iter_channels(mask: int) -> Iterator[int]:
    """Yield the index of every set bit in ``mask``, lowest first."""
    if mask < 0:
        raise ValueError(f"Channel mask must be non-negative, got {mask}")
    index = 0
    value = int(mask)
    while value:
        if value & 1:
            yield index
        value >>= 1
        index += 1


def pwm_output_mapping(mask: PwmChannels) -> PwmAndStimMapping:
    """Return every output line the PWM channels in ``mask`` can drive."""
    mapping = PwmAndStimMapping.NONE
    for index in iter_channels(mask):
        if index >= len(PWM_OUTPUT_MAPPINGS):
            raise ValueError(f"PWM channel {index} does not exist")
        mapping |= PWM_OUTPUT_MAPPINGS[PwmChannels(1 << index)]
    return mapping
