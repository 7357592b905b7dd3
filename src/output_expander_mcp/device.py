"""Device handle for an Output Expander board.

A handle exists only after the identity check succeeded and owns the
command channel for its connection. It holds no register values; every
read goes to the device.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from .errors import IdentityMismatchError, TypeMismatchError
from .models import configuration
from .models.flags import MagneticEncoderSampleRate, PwmChannels
from .models.registers import REGISTERS, WHO_AM_I, RegisterDescriptor, RegisterMap
from .protocol.commands import read_command, write_command
from .protocol.framing import Frame
from .protocol.payload import Timestamped, decode, decode_timestamped
from .transport.command_channel import DEFAULT_TIMEOUT, AsyncCommandChannel
from .transport.serial_connection import DEFAULT_BAUDRATE, open_serial

logger = logging.getLogger(__name__)


class OutputExpander:
    """Asynchronous interface to one Output Expander.

    Usage::

        async with await OutputExpander.create("/dev/ttyUSB0") as device:
            await device.apply(configure_pwm(PwmChannels.PWM0, 50.0, 25.0))
            await device.write("PwmStart", PwmChannels.PWM0)
            angle, status = await device.read("MagneticEncoder")
    """

    def __init__(
        self,
        channel: AsyncCommandChannel,
        port: str = "",
        registers: RegisterMap = REGISTERS,
    ) -> None:
        self._channel = channel
        self._port = port
        self._registers = registers

    @classmethod
    async def create(
        cls,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> OutputExpander:
        """Open ``port`` and verify an Output Expander answers on it.

        Raises:
            ConnectionError: If the port cannot be opened.
            IdentityMismatchError: If the device is not an Output Expander.
        """
        reader, writer = await open_serial(port, baudrate)
        return await cls.from_streams(reader, writer, port=port, timeout=timeout)

    @classmethod
    async def from_streams(
        cls,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        port: str = "<stream>",
        timeout: float = DEFAULT_TIMEOUT,
        expected_id: int = WHO_AM_I,
    ) -> OutputExpander:
        """Run the identity check over an already opened stream pair."""
        channel = AsyncCommandChannel(reader, writer, timeout=timeout)
        device = cls(channel, port)
        try:
            who_am_i = await device.read("WhoAmI")
            if who_am_i != expected_id:
                raise IdentityMismatchError(port, expected_id, who_am_i)
        except BaseException:
            await channel.close()
            raise
        logger.info("Output Expander connected on %s", port)
        return device

    @property
    def port(self) -> str:
        return self._port

    @property
    def channel(self) -> AsyncCommandChannel:
        return self._channel

    async def __aenter__(self) -> OutputExpander:
        return self

    async def __aexit__(self, *_) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the connection; the handle is unusable afterwards."""
        await self._channel.close()
        logger.info("Output Expander on %s disconnected", self._port)

    def register(self, name: str) -> RegisterDescriptor:
        return self._registers.resolve(name)

    async def send(
        self,
        command: Frame,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> Frame:
        return await self._channel.send(command, cancel=cancel, timeout=timeout)

    async def read(
        self,
        name: str,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Read the current value of a register."""
        descriptor = self._readable(name)
        reply = await self.send(read_command(descriptor), cancel, timeout)
        return decode(descriptor, reply)

    async def read_timestamped(
        self,
        name: str,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> Timestamped:
        """Read a register together with the device time of the sample."""
        descriptor = self._readable(name)
        reply = await self.send(read_command(descriptor), cancel, timeout)
        return decode_timestamped(descriptor, reply)

    async def write(
        self,
        name: str,
        value: Any,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        """Write a register and wait for the device to acknowledge it."""
        descriptor = self.register(name)
        if not descriptor.writable:
            raise TypeMismatchError(name, "writable register", "read-only register")
        reply = await self.send(write_command(descriptor, value), cancel, timeout)
        decode(descriptor, reply)

    async def apply(self, commands: Iterable[Frame]) -> int:
        """Send a configuration sequence in order, stopping at the first error.

        Returns:
            Number of commands acknowledged.
        """
        count = 0
        for command in commands:
            await self.send(command)
            count += 1
        return count

    async def configure_pwm(
        self,
        mask: PwmChannels,
        frequency: float,
        duty_cycle: float,
        pulse_count: int = 0,
    ) -> int:
        return await self.apply(
            configuration.configure_pwm(mask, frequency, duty_cycle, pulse_count)
        )

    async def configure_magnetic_encoder(
        self,
        sample_rate: MagneticEncoderSampleRate = MagneticEncoderSampleRate.SAMPLE_RATE_1000HZ,
    ) -> int:
        return await self.apply(configuration.configure_magnetic_encoder(sample_rate))

    async def read_device_info(self) -> dict[str, Any]:
        """Read identity and version registers."""
        values = {}
        for name in (
            "WhoAmI",
            "HardwareVersionHigh",
            "HardwareVersionLow",
            "FirmwareVersionHigh",
            "FirmwareVersionLow",
            "CoreVersionHigh",
            "CoreVersionLow",
        ):
            values[name] = await self.read(name)
        return {
            "who_am_i": values["WhoAmI"],
            "hardware": f"{values['HardwareVersionHigh']}.{values['HardwareVersionLow']}",
            "firmware": f"{values['FirmwareVersionHigh']}.{values['FirmwareVersionLow']}",
            "core": f"{values['CoreVersionHigh']}.{values['CoreVersionLow']}",
            "port": self._port,
        }

    def _readable(self, name: str) -> RegisterDescriptor:
        descriptor = self.register(name)
        if not descriptor.readable:
            raise TypeMismatchError(name, "readable register", "write-only register")
        return descriptor
