"""Serial port access for the Output Expander.

Uses pyserial for port discovery and pyserial-asyncio for the duplex
stream the command channel runs on. Harp devices talk at 1 Mbaud, 8N1,
through an FTDI USB-serial bridge.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import serial
import serial.tools.list_ports
from serial_asyncio import open_serial_connection

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 1_000_000
FTDI_VENDOR_ID = 0x0403


@dataclass
class PortInfo:
    """A serial port that may host an Output Expander."""

    device: str
    description: str = ""
    hardware_id: str = ""
    is_ftdi: bool = False


def list_ports() -> list[PortInfo]:
    """List serial ports, FTDI bridges first."""
    ports = [
        PortInfo(
            device=port.device,
            description=port.description or "",
            hardware_id=port.hwid or "",
            is_ftdi=port.vid == FTDI_VENDOR_ID,
        )
        for port in serial.tools.list_ports.comports()
    ]
    ports.sort(key=lambda p: (not p.is_ftdi, p.device))
    return ports


async def open_serial(
    port: str,
    baudrate: int = DEFAULT_BAUDRATE,
    **kwargs,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open ``port`` and return its reader/writer stream pair.

    Raises:
        ConnectionError: If the port cannot be opened.
    """
    try:
        reader, writer = await open_serial_connection(
            url=port,
            baudrate=baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            xonxoff=False,
            rtscts=False,
            **kwargs,
        )
    except (serial.SerialException, OSError) as e:
        raise ConnectionError(f"Could not open serial port {port}: {e}") from e

    logger.info("Opened %s at %d baud", port, baudrate)
    return reader, writer
