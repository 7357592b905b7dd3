"""Transport layer: serial stream access and the command/reply channel."""

from .command_channel import AsyncCommandChannel
from .serial_connection import list_ports, open_serial
