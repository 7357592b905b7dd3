"""Host-side protocol library and MCP server for the Harp Output Expander."""

from .device import OutputExpander
from .errors import (
    AddressMismatchError,
    CommandCancelledError,
    CommandTimeoutError,
    DeviceError,
    ExpanderError,
    IdentityMismatchError,
    InvalidLengthError,
    ProtocolError,
    TypeMismatchError,
    UnknownRegisterError,
)
from .models.configuration import (
    configure_magnetic_encoder,
    configure_optical_flow,
    configure_pwm,
    configure_servo,
    configure_stim,
)

__version__ = "0.1.0"
