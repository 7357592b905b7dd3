"""Exception hierarchy for the Output Expander protocol layer.

Every error raised while talking to the device derives from
:class:`ExpanderError`. None of them are retried internally.
"""

from __future__ import annotations


class ExpanderError(Exception):
    """Base class for all Output Expander errors."""


class ProtocolError(ExpanderError):
    """A frame was malformed, undersized or failed its checksum."""


class AddressMismatchError(ExpanderError):
    """A reply frame carried a different register address than requested."""

    def __init__(self, register: str, expected: int, actual: int) -> None:
        self.register = register
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Register {register}: expected address {expected}, got {actual}"
        )


class TypeMismatchError(ExpanderError):
    """A value or frame does not match the register's declared wire type."""

    def __init__(self, register: str, expected: object, actual: object) -> None:
        self.register = register
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Register {register}: expected {expected}, got {actual}"
        )


class DeviceError(ExpanderError):
    """The device answered with an error-flagged reply."""

    def __init__(self, address: int, code: int, register: str | None = None) -> None:
        self.address = address
        self.code = code
        self.register = register
        name = register or f"address {address}"
        super().__init__(f"Device reported error 0x{code:02X} for {name}")


class CommandTimeoutError(ExpanderError, TimeoutError):
    """No matching reply arrived before the deadline."""

    def __init__(self, address: int, timeout: float) -> None:
        self.address = address
        self.timeout = timeout
        super().__init__(
            f"No reply for address {address} within {timeout:.3f}s"
        )


class CommandCancelledError(ExpanderError):
    """The caller's cancellation signal fired before the reply arrived."""

    def __init__(self, address: int) -> None:
        self.address = address
        super().__init__(f"Command for address {address} was cancelled")


class IdentityMismatchError(ExpanderError):
    """The identity register did not hold the expected device type."""

    def __init__(self, port: str, expected: int, actual: int) -> None:
        self.port = port
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"The device ID {actual} on {port} was unexpected (expected {expected}). "
            f"Check whether an Output Expander is connected to the specified port."
        )


class UnknownRegisterError(ExpanderError, KeyError):
    """No register is known under the requested name or address."""

    def __init__(self, key: str | int) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Unknown register {self.key!r}"


class InvalidLengthError(ExpanderError, ValueError):
    """A payload length disagrees with the wire type's fixed width."""

    def __init__(self, address: int, expected: int, actual: int) -> None:
        self.address = address
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Payload for address {address} must be {expected} bytes, got {actual}"
        )
