"""Exception hierarchy for challenge-response.

Exception Hierarchy:
    ChallengeResponseError (base)
    ├── DeviceNotFoundError
    ├── OpenDeviceError
    ├── ListDevicesError
    ├── CanNotWriteToDeviceError
    ├── CanNotReadFromDeviceError
    ├── ChecksumMismatchError
    ├── ConfigNotWrittenError
    ├── CommandNotSupportedError
    ├── WaitTimeoutError
    ├── WaitCancelledError
    ├── SessionCloseError
    ├── UsbError          (wraps usb.core.USBError)
    └── DeviceIOError     (wraps OSError)

Underlying backend exceptions are chained as ``__cause__``; nothing is
retried inside the protocol layer.
"""

from __future__ import annotations

from typing import Any, Optional


class ChallengeResponseError(Exception):
    """Base exception for all challenge-response errors."""


class DeviceNotFoundError(ChallengeResponseError):
    """No token matches the requested bus/address or serial."""

    def __init__(self, message: str = "Device not found") -> None:
        super().__init__(message)


class OpenDeviceError(ChallengeResponseError):
    """A matching token was found but could not be opened or claimed."""

    def __init__(self, message: str = "Can not open device") -> None:
        super().__init__(message)


class ListDevicesError(ChallengeResponseError):
    """The USB backend could not enumerate devices."""

    def __init__(self, message: str = "Could not list available devices") -> None:
        super().__init__(message)


class CanNotWriteToDeviceError(ChallengeResponseError):
    """A feature report write failed or was not fully accepted."""

    def __init__(self, message: str = "Can not write to device") -> None:
        super().__init__(message)


class CanNotReadFromDeviceError(ChallengeResponseError):
    """A feature report read failed or timed out."""

    def __init__(self, message: str = "Can not read from device") -> None:
        super().__init__(message)


class ChecksumMismatchError(ChallengeResponseError):
    """Response CRC did not match the firmware residual."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Wrong CRC: residual 0x{actual:04x}, expected 0x{expected:04x}"
        )


class ConfigNotWrittenError(ChallengeResponseError):
    """The device did not commit a slot configuration.

    The slot must be treated as not reliably configured until re-verified.
    """

    def __init__(self, message: str = "Configuration has failed") -> None:
        super().__init__(message)


class CommandNotSupportedError(ChallengeResponseError):
    """The command is not valid for the requested operation."""

    def __init__(self, command: Any) -> None:
        self.command = command
        super().__init__(f"Command not supported: {command!r}")


class WaitTimeoutError(ChallengeResponseError):
    """An opt-in bounded status wait expired."""


class WaitCancelledError(ChallengeResponseError):
    """A status wait was cancelled through its cancel event."""


class SessionCloseError(ChallengeResponseError):
    """Closing the session failed after the operation itself succeeded.

    The operation's result is kept on ``result``; the close failure is the
    ``__cause__``.  Callers decide whether to use or discard the result.
    """

    def __init__(self, result: Any, message: str = "Device session close failed") -> None:
        self.result = result
        super().__init__(message)


class UsbError(ChallengeResponseError):
    """Wraps an error raised by the USB backend."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.errno: Optional[int] = getattr(error, "errno", None)
        super().__init__(f"USB error: {error}")


class DeviceIOError(ChallengeResponseError):
    """Wraps an OS-level I/O error from the HID backend."""

    def __init__(self, error: OSError) -> None:
        self.error = error
        super().__init__(f"IO error: {error}")
