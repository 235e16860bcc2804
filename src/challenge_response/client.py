"""Challenge-response protocol operations.

``ChallengeResponse`` composes the session primitives into the public
operations: HMAC and OTP challenge-response, configuration writes, serial
and status reads, and device discovery.

Every operation owns one ``DeviceSession`` for its whole duration.  The
session is closed on every exit path:

  • operation failed → close is attempted, a close failure is logged and
    the original error propagates;
  • operation succeeded → a close failure raises ``SessionCloseError``
    carrying the result on ``.result``.

Nothing is retried.  Callers must serialize access to a given device.

Example:
    >>> cr = ChallengeResponse()
    >>> device = cr.find_device()
    >>> config = Config.new_from(device).set_slot(Slot.TWO)
    >>> with cr.challenge_response_hmac(b"mychallenge", config) as result:
    ...     print(result.hex())
"""

from __future__ import annotations

import logging
import struct
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional, TypeVar

from .config import Command, Config, Device, Mode, Slot
from .configure import DeviceModeConfig
from .constants import (
    CONFIG1_VALID,
    CONFIG2_VALID,
    HMAC_RESPONSE_CRC_SIZE,
    HMAC_RESPONSE_SIZE,
    OTP_RESPONSE_CRC_SIZE,
    OTP_RESPONSE_SIZE,
    PAYLOAD_SIZE,
    POLL_INTERVAL_S,
    SERIAL_RESPONSE_CRC_SIZE,
    STATUS_RESPONSE_SIZE,
    is_supported,
)
from .errors import (
    CanNotReadFromDeviceError,
    ChallengeResponseError,
    ChecksumMismatchError,
    CommandNotSupportedError,
    ConfigNotWrittenError,
    DeviceNotFoundError,
    SessionCloseError,
)
from .frame import Frame
from .hmacmode import Hmac
from .otpmode import Aes128Block
from .sec import CRC_RESIDUAL_OK, crc16
from .session import DeviceSession
from .transport import UsbTransport, create_transport

log = logging.getLogger(__name__)

T = TypeVar('T')

_ZERO_CHALLENGE = bytes(PAYLOAD_SIZE)


@dataclass(frozen=True)
class Status:
    """Device status record (first 6 bytes of the status report)::

        [0] version major  [1] version minor  [2] version build
        [3] programming sequence (0 = no valid configuration)
        [4:6] touch level / slot-valid bits, little-endian
    """
    version_major: int
    version_minor: int
    version_build: int
    pgm_seq: int
    touch_level: int

    @classmethod
    def from_bytes(cls, data: bytes) -> Status:
        if len(data) < STATUS_RESPONSE_SIZE:
            raise CanNotReadFromDeviceError(
                f"Status record needs {STATUS_RESPONSE_SIZE} bytes, got {len(data)}"
            )
        major, minor, build, pgm_seq, touch_level = struct.unpack_from('<BBBBH', data)
        return cls(major, minor, build, pgm_seq, touch_level)

    @property
    def version(self) -> str:
        return f"{self.version_major}.{self.version_minor}.{self.version_build}"

    def is_slot_configured(self, slot: Slot) -> bool:
        """A zero programming sequence means nothing is configured."""
        if self.pgm_seq == 0:
            return False
        bit = CONFIG1_VALID if slot is Slot.ONE else CONFIG2_VALID
        return bool(self.touch_level & bit)


def check_crc(response: bytes, length: int) -> None:
    """Raise ChecksumMismatchError unless ``response[:length]`` checks out."""
    residual = crc16(response[:length])
    if residual != CRC_RESIDUAL_OK:
        raise ChecksumMismatchError(CRC_RESIDUAL_OK, residual)


class ChallengeResponse:
    """Protocol client over one transport backend.

    Args:
        transport: Backend to use. Defaults to the configured backend.
        poll_interval: Sleep between status reads, in seconds.
        wait_timeout: Optional bound on every status wait, in seconds.
            ``None`` (the default) waits indefinitely.
        cancel_event: Optional event that aborts status waits when set.
    """

    def __init__(
        self,
        transport: Optional[UsbTransport] = None,
        poll_interval: float = POLL_INTERVAL_S,
        wait_timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.transport = transport if transport is not None else create_transport()
        self.poll_interval = poll_interval
        self.wait_timeout = wait_timeout
        self.cancel_event = cancel_event

    def __repr__(self) -> str:
        return f"ChallengeResponse(transport={self.transport!r})"

    # -- Session handling -------------------------------------------------

    def _run(self, device: Device, operation: Callable[[DeviceSession], T]) -> T:
        """Run *operation* in its own session and close it on every exit path."""
        handle, interfaces = self.transport.open(device.bus_id, device.address_id)
        log.debug("Session opened on bus %d address %d (%d interfaces)",
                  device.bus_id, device.address_id, len(interfaces))
        session = DeviceSession(
            self.transport, handle, interfaces,
            poll_interval=self.poll_interval,
            timeout=self.wait_timeout,
            cancel=self.cancel_event,
        )
        try:
            result = operation(session)
        except BaseException:
            try:
                self.transport.close(handle, interfaces)
            except Exception:
                log.warning("Closing device session after error failed", exc_info=True)
            raise

        try:
            self.transport.close(handle, interfaces)
        except Exception as e:
            raise SessionCloseError(result) from e
        log.debug("Session closed on bus %d address %d", device.bus_id, device.address_id)
        return result

    # -- Exchanges (run inside an open session) ---------------------------

    def _exchange(self, session: DeviceSession, frame: Frame) -> bytes:
        session.wait_write_ready()
        session.write_frame(frame)
        return session.read_response_bytes()

    def _read_status(self, session: DeviceSession) -> Status:
        session.wait_write_ready()
        session.write_frame(Frame(_ZERO_CHALLENGE, Command.DEVICE_CONFIG))
        report = session.wait_write_ready()
        session.write_reset()
        # The status report is not CRC checked; the firmware's status
        # record carries no checksum trailer on this path.
        return Status.from_bytes(report)

    # -- Operations -------------------------------------------------------

    def challenge_response_hmac(self, challenge: bytes, conf: Config) -> Hmac:
        """HMAC-SHA1 the challenge with the secret in ``conf.slot``.

        The result is deterministic for a given secret, challenge and slot.

        Returns:
            20-byte ``Hmac``; use it as a context manager to zeroize it.

        Raises:
            ValueError: Challenge longer than 64 bytes.
            ChecksumMismatchError: Response failed its CRC.
        """
        command = Command.challenge_for(Mode.SHA1, conf.slot)
        frame = Frame.for_challenge(challenge, command, conf.variable)

        def operation(session: DeviceSession) -> Hmac:
            response = self._exchange(session, frame)
            check_crc(response, HMAC_RESPONSE_CRC_SIZE)
            return Hmac(response[:HMAC_RESPONSE_SIZE])

        return self._run(conf.device, operation)

    def challenge_response_otp(self, challenge: bytes, conf: Config) -> Aes128Block:
        """Yubico-OTP challenge-response with the AES key in ``conf.slot``.

        Repeated calls with the same challenge return different blocks.

        Returns:
            16-byte ``Aes128Block``.
        """
        command = Command.challenge_for(Mode.OTP, conf.slot)
        frame = Frame.for_challenge(challenge, command)

        def operation(session: DeviceSession) -> Aes128Block:
            response = self._exchange(session, frame)
            check_crc(response, OTP_RESPONSE_CRC_SIZE)
            return Aes128Block(response[:OTP_RESPONSE_SIZE])

        return self._run(conf.device, operation)

    def write_config(self, conf: Config, device_config: DeviceModeConfig,
                     verify: bool = False) -> None:
        """Write a slot configuration with ``conf.command``.

        No retry: on any failure the slot must be treated as not reliably
        configured until re-verified.

        Args:
            verify: Read the status before and after in the same session and
                require the programming sequence to change.

        Raises:
            CommandNotSupportedError: ``conf.command`` is not a config write.
            ConfigNotWrittenError: *verify* is set and the device did not commit.
        """
        if not conf.command.is_config_write:
            raise CommandNotSupportedError(conf.command)
        frame = device_config.to_frame(conf.command)

        def operation(session: DeviceSession) -> None:
            before = self._read_status(session) if verify else None
            session.wait_write_ready()
            session.write_frame(frame)
            session.wait_write_ready()
            if before is not None:
                after = self._read_status(session)
                if after.pgm_seq == before.pgm_seq:
                    raise ConfigNotWrittenError(
                        f"Configuration not committed (programming sequence stayed {after.pgm_seq})"
                    )
            log.info("Configuration written with %s", conf.command.name)

        self._run(conf.device, operation)

    def read_serial_from_device(self, bus_id: int, address_id: int) -> int:
        """Read the serial number of the token at *bus_id*/*address_id*."""
        frame = Frame(_ZERO_CHALLENGE, Command.DEVICE_SERIAL)

        def operation(session: DeviceSession) -> int:
            response = self._exchange(session, frame)
            check_crc(response, SERIAL_RESPONSE_CRC_SIZE)
            serial, _ = struct.unpack_from('<II', response)
            return serial

        device = Device(vendor_id=0, product_id=0, bus_id=bus_id, address_id=address_id)
        return self._run(device, operation)

    def read_serial_number(self, conf: Config) -> int:
        return self.read_serial_from_device(conf.device.bus_id, conf.device.address_id)

    def read_status(self, conf: Config) -> Status:
        return self._run(conf.device, self._read_status)

    def is_configured(self, device: Device, slot: Slot) -> bool:
        status = self.read_status(Config.new_from(device))
        return status.is_slot_configured(slot)

    # -- Discovery --------------------------------------------------------

    def _candidates(self) -> list[Device]:
        return [d for d in self.transport.list_devices()
                if is_supported(d.vendor_id, d.product_id)]

    def _with_serial(self, device: Device) -> Device:
        try:
            serial: Optional[int] = self.read_serial_from_device(device.bus_id, device.address_id)
        except SessionCloseError as e:
            log.warning("Closing %s after serial read failed: %s", device, e.__cause__)
            serial = e.result
        except ChallengeResponseError as e:
            log.debug("Serial read failed for %s: %s", device, e)
            serial = None
        return replace(device, serial=serial)

    def find_all_devices(self) -> list[Device]:
        """All allow-listed tokens, each with one serial-read exchange."""
        devices = [self._with_serial(d) for d in self._candidates()]
        if not devices:
            raise DeviceNotFoundError()
        return devices

    def find_device(self) -> Device:
        """First allow-listed token."""
        for candidate in self._candidates():
            return self._with_serial(candidate)
        raise DeviceNotFoundError()

    def find_device_from_serial(self, serial: int) -> Device:
        for candidate in self._candidates():
            device = self._with_serial(candidate)
            if device.serial == serial:
                return device
        raise DeviceNotFoundError(f"No device with serial {serial} found")
