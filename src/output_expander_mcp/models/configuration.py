"""Configuration message sequences for multi-register subsystems.

Every function here is pure: it returns a fresh, ordered list of write
commands computed from its arguments and can be called again at any time.
Channels selected by a mask are always visited lowest index first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ..protocol.commands import write_command
from ..protocol.framing import Frame
from .flags import (
    AcquisitionMode,
    EnableFlag,
    ExpansionBoardType,
    MagneticEncoderSampleRate,
    PwmChannels,
    StimChannels,
    TriggerSource,
    iter_channels,
)
from .registers import PWM_BLOCK, STIM_BLOCK, RegisterBlock, resolve

MAX_PWM_FREQUENCY = 1000.0
MAX_DUTY_CYCLE = 100.0
MAX_PULSE_COUNT = 0xFFFF
SERVO_CHANNELS = 3


def _check_pulse_count(pulse_count: int) -> None:
    if not 0 <= pulse_count <= MAX_PULSE_COUNT:
        raise ValueError(f"Pulse count must be 0-{MAX_PULSE_COUNT}, got {pulse_count}")


def _check_mask(block: RegisterBlock, mask: int) -> list[int]:
    channels = list(iter_channels(mask))
    for channel in channels:
        if channel >= block.channels:
            raise ValueError(
                f"{block.prefix} channel {channel} does not exist "
                f"(device has {block.channels})"
            )
    return channels


def _acquisition(block: RegisterBlock, channel: int, pulse_count: int) -> list[Frame]:
    """Pulse count and acquisition mode writes shared by PWM and stimulation."""
    if pulse_count > 0:
        return [
            write_command(block.register(channel, "PulseCount"), pulse_count),
            write_command(block.register(channel, "AcquisitionMode"), AcquisitionMode.FINITE),
        ]
    return [write_command(block.register(channel, "AcquisitionMode"), AcquisitionMode.CONTINUOUS)]


def configure_pwm(
    mask: PwmChannels,
    frequency: float,
    duty_cycle: float,
    pulse_count: int = 0,
) -> list[Frame]:
    """Build the writes that configure the PWM channels selected by ``mask``.

    Each channel gets Frequency, DutyCycle, then either PulseCount and
    AcquisitionMode=Finite (``pulse_count > 0``) or AcquisitionMode=Continuous,
    followed by TriggerSource=Software and EventConfig=Enabled.

    Args:
        mask: PWM channels to configure.
        frequency: PWM frequency in Hz, at most 1000.
        duty_cycle: Duty cycle in percent, at most 100.
        pulse_count: Number of pulses; zero runs indefinitely.
    """
    if not 0 < frequency <= MAX_PWM_FREQUENCY:
        raise ValueError(f"Frequency must be in (0, {MAX_PWM_FREQUENCY:g}] Hz, got {frequency}")
    if not 0 <= duty_cycle <= MAX_DUTY_CYCLE:
        raise ValueError(f"Duty cycle must be 0-{MAX_DUTY_CYCLE:g}%, got {duty_cycle}")
    _check_pulse_count(pulse_count)

    messages: list[Frame] = []
    for channel in _check_mask(PWM_BLOCK, mask):
        messages.append(write_command(PWM_BLOCK.register(channel, "Frequency"), float(frequency)))
        messages.append(write_command(PWM_BLOCK.register(channel, "DutyCycle"), float(duty_cycle)))
        messages.extend(_acquisition(PWM_BLOCK, channel, pulse_count))
        messages.append(write_command(PWM_BLOCK.register(channel, "TriggerSource"), TriggerSource.SOFTWARE))
        messages.append(write_command(PWM_BLOCK.register(channel, "EventConfig"), EnableFlag.ENABLED))
    return messages


def configure_stim(
    mask: StimChannels,
    on_time: int,
    off_time: int,
    pulse_count: int = 0,
) -> list[Frame]:
    """Build the writes that configure the stimulation channels in ``mask``.

    Times are in the device's pulse-width units (microseconds).
    """
    for label, value in (("On time", on_time), ("Off time", off_time)):
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"{label} must be 0-65535, got {value}")
    _check_pulse_count(pulse_count)

    messages: list[Frame] = []
    for channel in _check_mask(STIM_BLOCK, mask):
        messages.append(write_command(STIM_BLOCK.register(channel, "PulseOnTime"), on_time))
        messages.append(write_command(STIM_BLOCK.register(channel, "PulseOffTime"), off_time))
        messages.extend(_acquisition(STIM_BLOCK, channel, pulse_count))
        messages.append(write_command(STIM_BLOCK.register(channel, "TriggerSource"), TriggerSource.SOFTWARE))
    return messages


def configure_magnetic_encoder(
    sample_rate: MagneticEncoderSampleRate = MagneticEncoderSampleRate.SAMPLE_RATE_1000HZ,
) -> list[Frame]:
    """Select the magnetic encoder expansion, then set its sample rate."""
    return [
        write_command(resolve("ExpansionBoard"), ExpansionBoardType.MAGNETIC_ENCODER),
        write_command(resolve("MagneticEncoderSampleRate"), MagneticEncoderSampleRate(sample_rate)),
    ]


def configure_servo(period: int, pulse_widths: Sequence[int] = ()) -> list[Frame]:
    """Select the servo expansion, set the period and each servo's pulse width.

    Args:
        period: Servo PWM period in microseconds.
        pulse_widths: Pulse widths for servo 0, 1, 2 in order; may be shorter.
    """
    if len(pulse_widths) > SERVO_CHANNELS:
        raise ValueError(f"At most {SERVO_CHANNELS} servo pulse widths, got {len(pulse_widths)}")
    messages = [
        write_command(resolve("ExpansionBoard"), ExpansionBoardType.SERVO_MOTOR),
        write_command(resolve("ServoPeriod"), period),
    ]
    for index, width in enumerate(pulse_widths):
        messages.append(write_command(resolve(f"Servo{index}PulseWidth"), width))
    return messages


def configure_optical_flow() -> list[Frame]:
    return [write_command(resolve("ExpansionBoard"), ExpansionBoardType.OPTICAL_FLOW)]


@dataclass
class PwmConfiguration:
    """Editable PWM parameters; ``messages()`` reflects the current values."""

    mask: PwmChannels = PwmChannels.PWM0
    frequency: float = 0.0
    duty_cycle: float = 0.0
    pulse_count: int = 0

    def messages(self) -> list[Frame]:
        return configure_pwm(self.mask, self.frequency, self.duty_cycle, self.pulse_count)


@dataclass
class MagneticEncoderConfiguration:
    sample_rate: MagneticEncoderSampleRate = MagneticEncoderSampleRate.SAMPLE_RATE_1000HZ

    def messages(self) -> list[Frame]:
        return configure_magnetic_encoder(self.sample_rate)
