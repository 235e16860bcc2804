"""
challenge-response - HMAC-SHA1 and Yubico-OTP challenge-response

Talks to USB security tokens (YubiKey, OnlyKey, NitroKey) over 8-byte HID
feature reports.  The protocol layer is written once against a minimal
transport interface with two backends: pyusb (libusb control transfers)
and hidapi (OS HID driver).

Usage:
    # As a library
    from challenge_response import ChallengeResponse, Config, Slot

    cr = ChallengeResponse()
    device = cr.find_device()
    config = Config.new_from(device).set_slot(Slot.TWO)
    with cr.challenge_response_hmac(b"mychallenge", config) as result:
        print(result.hex())

    # Command line
    challenge-response list
    challenge-response hmac mychallenge
"""

from challenge_response.__version__ import __version__

# Core exports
from challenge_response.client import ChallengeResponse, Status
from challenge_response.config import Command, Config, Device, Mode, Slot, SyncLevel
from challenge_response.configure import DeviceModeConfig
from challenge_response.errors import (
    CanNotReadFromDeviceError,
    CanNotWriteToDeviceError,
    ChallengeResponseError,
    ChecksumMismatchError,
    CommandNotSupportedError,
    ConfigNotWrittenError,
    DeviceIOError,
    DeviceNotFoundError,
    ListDevicesError,
    OpenDeviceError,
    SessionCloseError,
    UsbError,
    WaitCancelledError,
    WaitTimeoutError,
)
from challenge_response.hmacmode import Hmac, HmacKey
from challenge_response.otpmode import Aes128Block, Aes128Key
from challenge_response.transport import UsbTransport, create_transport

__all__ = [
    # Version
    "__version__",
    # Core
    "ChallengeResponse",
    "Status",
    "UsbTransport",
    "create_transport",
    # Configuration
    "Command",
    "Config",
    "Device",
    "DeviceModeConfig",
    "Mode",
    "Slot",
    "SyncLevel",
    # Keys and responses
    "Aes128Block",
    "Aes128Key",
    "Hmac",
    "HmacKey",
    # Errors
    "CanNotReadFromDeviceError",
    "CanNotWriteToDeviceError",
    "ChallengeResponseError",
    "ChecksumMismatchError",
    "CommandNotSupportedError",
    "ConfigNotWrittenError",
    "DeviceIOError",
    "DeviceNotFoundError",
    "ListDevicesError",
    "OpenDeviceError",
    "SessionCloseError",
    "UsbError",
    "WaitCancelledError",
    "WaitTimeoutError",
]
