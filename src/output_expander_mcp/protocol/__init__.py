"""Protocol layer: message framing, payload codec and command builders."""

from .framing import Frame, MessageType, build_frame, parse_frame
from .payload import Timestamped, decode, decode_timestamped, encode
from .commands import build_read, build_write, read_command, write_command
