"""MCP server entry point for the Harp Output Expander.

Exposes register access and configuration tools via the Model Context
Protocol using the official Python MCP SDK with stdio transport.

Connection defaults come from the ``OUTPUT_EXPANDER_PORT`` and
``OUTPUT_EXPANDER_BAUDRATE`` environment variables.
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from typing import Any

from mcp.server.fastmcp import FastMCP

from .device import OutputExpander
from .errors import ExpanderError
from .models.flags import MagneticEncoderSampleRate, PwmChannels
from .models.registers import REGISTERS
from .transport.serial_connection import DEFAULT_BAUDRATE, list_ports

logger = logging.getLogger(__name__)

PORT_ENV = "OUTPUT_EXPANDER_PORT"
BAUDRATE_ENV = "OUTPUT_EXPANDER_BAUDRATE"

mcp = FastMCP(
    "output-expander",
    instructions="Tools for reading, writing and configuring a Harp Output Expander board.",
)

# Global connection state
_device: OutputExpander | None = None


def _get_device() -> OutputExpander:
    """Get the connected device, raising if not connected."""
    if _device is None or _device.channel.closed:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _device


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.name
    if hasattr(value, "_asdict"):
        return {k: _jsonable(v) for k, v in value._asdict().items()}
    if isinstance(value, tuple):
        return [_jsonable(v) for v in value]
    return value


def _parse_value(name: str, value: Any) -> Any:
    """Convert a tool argument into the register's value type.

    Enum registers accept member names as well as integers.
    """
    descriptor = REGISTERS.resolve(name)
    value_type = descriptor.value_type
    if isinstance(value, str) and isinstance(value_type, type) and issubclass(value_type, Enum):
        try:
            return value_type[value.upper()]
        except KeyError:
            raise ValueError(
                f"Unknown {value_type.__name__} '{value}'. "
                f"Valid: {[m.name for m in value_type]}"
            ) from None
    if isinstance(value, list):
        return tuple(value)
    if descriptor.wire_type.is_integer and isinstance(value, int) and value_type is not None and descriptor.length == 1:
        return value_type(value)
    return value


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_serial_ports() -> dict[str, Any]:
    """List serial ports that may host an Output Expander."""
    return {
        "ports": [
            {"device": p.device, "description": p.description, "ftdi": p.is_ftdi}
            for p in list_ports()
        ]
    }


@mcp.tool()
async def connect(port: str | None = None, baudrate: int | None = None) -> dict[str, Any]:
    """Open the serial port and verify an Output Expander answers on it.

    Args:
        port: Serial port name; defaults to $OUTPUT_EXPANDER_PORT.
        baudrate: Baud rate; defaults to $OUTPUT_EXPANDER_BAUDRATE or 1000000.
    """
    global _device
    if _device is not None and not _device.channel.closed:
        return {"connected": True, "message": "Already connected", "port": _device.port}

    port = port or os.environ.get(PORT_ENV)
    if not port:
        return {"error": f"No port given and ${PORT_ENV} is not set"}
    if not baudrate:
        try:
            baudrate = int(os.environ.get(BAUDRATE_ENV, DEFAULT_BAUDRATE))
        except ValueError:
            return {"connected": False, "error": f"${BAUDRATE_ENV} is not an integer"}

    try:
        _device = await OutputExpander.create(port, baudrate)
    except (ExpanderError, ConnectionError) as e:
        return {"connected": False, "error": str(e)}
    return {"connected": True, "port": port}


@mcp.tool()
async def disconnect() -> dict[str, bool]:
    """Close the serial connection to the device."""
    global _device
    if _device is None:
        return {"disconnected": True}
    await _device.close()
    _device = None
    return {"disconnected": True}


@mcp.tool()
async def get_device_info() -> dict[str, Any]:
    """Read the identity and version registers of the device."""
    device = _get_device()
    try:
        return await device.read_device_info()
    except ExpanderError as e:
        return {"error": str(e)}


# ─── REGISTER TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def list_registers() -> dict[str, Any]:
    """List every register with its address, type and access mode."""
    return {"registers": [d.to_dict() for d in REGISTERS]}


@mcp.tool()
async def read_register(name: str, timestamped: bool = False) -> dict[str, Any]:
    """Read a register by name.

    Args:
        name: Register name, e.g. "OutputState" or "Pwm0Frequency".
        timestamped: Also return the device timestamp of the sample.
    """
    device = _get_device()
    try:
        if timestamped:
            value, seconds = await device.read_timestamped(name)
            return {"register": name, "value": _jsonable(value), "timestamp": seconds}
        value = await device.read(name)
    except ExpanderError as e:
        return {"error": str(e)}
    return {"register": name, "value": _jsonable(value)}


@mcp.tool()
async def write_register(name: str, value: Any) -> dict[str, Any]:
    """Write a register by name and wait for the acknowledgement.

    Args:
        name: Register name, e.g. "OutputSet".
        value: Number, enum member name, or list for multi-value registers.
    """
    device = _get_device()
    try:
        await device.write(name, _parse_value(name, value))
    except (ExpanderError, ValueError) as e:
        return {"error": str(e)}
    return {"register": name, "written": _jsonable(value)}


# ─── PWM AND EXPANSION TOOLS ──────────────────────────────────────────

def _pwm_mask(channels: list[int]) -> PwmChannels:
    mask = PwmChannels.NONE
    for channel in channels:
        if not 0 <= channel <= 2:
            raise ValueError(f"PWM channel must be 0-2, got {channel}")
        mask |= PwmChannels(1 << channel)
    return mask


@mcp.tool()
async def configure_pwm(
    channels: list[int],
    frequency: float,
    duty_cycle: float,
    pulse_count: int = 0,
) -> dict[str, Any]:
    """Configure one or more PWM channels.

    Args:
        channels: PWM channel indices 0-2.
        frequency: Frequency in Hz (max 1000).
        duty_cycle: Duty cycle in percent (max 100).
        pulse_count: Number of pulses; 0 runs continuously.
    """
    device = _get_device()
    try:
        count = await device.configure_pwm(_pwm_mask(channels), frequency, duty_cycle, pulse_count)
    except (ExpanderError, ValueError) as e:
        return {"error": str(e)}
    return {"configured": sorted(set(channels)), "writes": count}


@mcp.tool()
async def start_pwm(channels: list[int]) -> dict[str, Any]:
    """Start the given PWM channels."""
    device = _get_device()
    try:
        await device.write("PwmStart", _pwm_mask(channels))
    except (ExpanderError, ValueError) as e:
        return {"error": str(e)}
    return {"started": sorted(set(channels))}


@mcp.tool()
async def stop_pwm(channels: list[int]) -> dict[str, Any]:
    """Stop the given PWM channels."""
    device = _get_device()
    try:
        await device.write("PwmStop", _pwm_mask(channels))
    except (ExpanderError, ValueError) as e:
        return {"error": str(e)}
    return {"stopped": sorted(set(channels))}


@mcp.tool()
async def configure_magnetic_encoder(sample_rate_hz: int = 1000) -> dict[str, Any]:
    """Select the magnetic encoder expansion and set its sample rate.

    Args:
        sample_rate_hz: One of 50, 100, 200, 250, 500, 1000, 2000.
    """
    rates = {rate.hertz: rate for rate in MagneticEncoderSampleRate}
    if sample_rate_hz not in rates:
        return {"error": f"Sample rate must be one of {sorted(rates)}"}
    device = _get_device()
    try:
        await device.configure_magnetic_encoder(rates[sample_rate_hz])
    except ExpanderError as e:
        return {"error": str(e)}
    return {"expansion": "MAGNETIC_ENCODER", "sample_rate_hz": sample_rate_hz}


@mcp.tool()
async def read_magnetic_encoder() -> dict[str, Any]:
    """Read the magnetic encoder angle and status with its timestamp."""
    return await read_register("MagneticEncoder", timestamped=True)


@mcp.tool()
async def read_optical_flow() -> dict[str, Any]:
    """Read the optical flow motion delta with its timestamp."""
    return await read_register("OpticalFlow", timestamped=True)


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("expander://registers")
def resource_registers() -> str:
    """The full register table as JSON."""
    return json.dumps([d.to_dict() for d in REGISTERS], indent=2)


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
