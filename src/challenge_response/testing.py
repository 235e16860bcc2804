"""Software token for tests and examples.

``SimulatedToken`` reproduces what the firmware shows over the HID feature
report interface:

  • frame reassembly from indexed 7-byte chunks (index 0 restarts a frame,
    index 9 submits it after its crc checks out)
  • a busy flag for a few reads after every write
  • responses streamed as 7-byte chunks tagged ``RESP_PENDING | seq``,
    followed by a plain status report once the stream is drained
  • HMAC-SHA1 and Yubico-OTP challenge-response from programmed slots
  • slot configuration with the programming sequence counter

``SimulatedTransport`` exposes one or more tokens through the same
``UsbTransport`` interface as the real backends::

    token = SimulatedToken(serial=1234567)
    token.program_hmac(Slot.TWO, HmacKey.from_slice(secret))
    cr = ChallengeResponse(SimulatedTransport([token]))
"""

from __future__ import annotations

import logging
import secrets
import struct
from typing import Any, Optional

from .config import Command, Device, Slot
from .configure import CONFIG_SIZE, ConfigFlags, DeviceModeConfig
from .constants import (
    CONFIG1_VALID,
    CONFIG2_VALID,
    FEATURE_RPT_DATA_SIZE,
    FEATURE_RPT_SIZE,
    FRAME_PACKET_COUNT,
    FRAME_SIZE,
    HID_INTERFACE_INDEX,
    OTP_CHALLENGE_SIZE,
    PAYLOAD_SIZE,
    RESP_PENDING_FLAG,
    SEQUENCE_MASK,
    SLOT_WRITE_FLAG,
    WRITE_RESET_PAYLOAD,
)
from .errors import CanNotWriteToDeviceError, DeviceNotFoundError
from .hmacmode import HmacKey
from .otpmode import Aes128Key
from .sec import aes128_encrypt_block, crc16, crc16_trailer, hmac_sha1
from .transport import UsbTransport

log = logging.getLogger(__name__)

YUBICO_VID = 0x1050
YUBIKEY_OTP_FIDO_CCID_PID = 0x0407

_SLOT_BITS = {Slot.ONE: CONFIG1_VALID, Slot.TWO: CONFIG2_VALID}

_CONFIG_SLOTS = {
    Command.CONFIGURATION_1: Slot.ONE,
    Command.CONFIGURATION_2: Slot.TWO,
    Command.UPDATE_1: Slot.ONE,
    Command.UPDATE_2: Slot.TWO,
}
_HMAC_SLOTS = {Command.CHALLENGE_HMAC_1: Slot.ONE, Command.CHALLENGE_HMAC_2: Slot.TWO}
_OTP_SLOTS = {Command.CHALLENGE_OTP_1: Slot.ONE, Command.CHALLENGE_OTP_2: Slot.TWO}


def _hmac_secret(config: DeviceModeConfig) -> bytes:
    return bytes(config.key) + bytes(config.uid[:4])


def _is_hmac(config: DeviceModeConfig) -> bool:
    return config.cfg_flags & ConfigFlags.CHAL_HMAC == ConfigFlags.CHAL_HMAC


def _is_otp(config: DeviceModeConfig) -> bool:
    return config.cfg_flags & ConfigFlags.CHAL_HMAC == ConfigFlags.CHAL_YUBICO


class SimulatedToken:
    """In-memory token answering feature report reads and writes.

    Args:
        serial: Serial number returned by DeviceSerial.
        version: Firmware version reported in the status record.
        busy_reads: Reads that report the busy flag after each write.
        wrap_sequence: End response streams with a pending report whose
            sequence wrapped to 0 instead of a plain status report.
        corrupt_checksum: Flip a bit in every response checksum.
    """

    def __init__(
        self,
        serial: int = 1234567,
        version: tuple[int, int, int] = (5, 4, 3),
        bus_id: int = 1,
        address_id: int = 5,
        vendor_id: int = YUBICO_VID,
        product_id: int = YUBIKEY_OTP_FIDO_CCID_PID,
        busy_reads: int = 1,
        wrap_sequence: bool = False,
        corrupt_checksum: bool = False,
    ):
        self.serial = serial
        self.version = version
        self.bus_id = bus_id
        self.address_id = address_id
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.busy_reads = busy_reads
        self.wrap_sequence = wrap_sequence
        self.corrupt_checksum = corrupt_checksum

        self.slots: dict[Slot, Optional[DeviceModeConfig]] = {Slot.ONE: None, Slot.TWO: None}
        self.pgm_seq = 0
        self.touch_level = 0
        self.use_counter = 1
        self.session_counter = 0
        self.timestamp = 0x0A0B0C

        self._frame = bytearray(FRAME_SIZE)
        self._busy = 0
        self._stream: list[bytes] = []

        # Observability for tests
        self.writes: list[bytes] = []
        self.reads = 0
        self.frames: list[tuple[Command, bytes]] = []

    def as_device(self, serial: Optional[int] = None) -> Device:
        return Device(
            vendor_id=self.vendor_id, product_id=self.product_id,
            bus_id=self.bus_id, address_id=self.address_id,
            name="Simulated token", serial=serial,
        )

    # -- Programming shortcuts --------------------------------------------

    def program(self, slot: Slot, config: DeviceModeConfig) -> None:
        self.slots[slot] = DeviceModeConfig.from_bytes(config.to_bytes())
        self.pgm_seq += 1
        self.touch_level |= _SLOT_BITS[slot]

    def program_hmac(self, slot: Slot, key: HmacKey, variable: bool = True) -> None:
        config = DeviceModeConfig()
        config.challenge_response_hmac(key, variable, False)
        self.program(slot, config)

    def program_otp(self, slot: Slot, key: Aes128Key,
                    private_identity: bytes = bytes(6)) -> None:
        config = DeviceModeConfig()
        config.challenge_response_otp(key, private_identity, False)
        self.program(slot, config)

    # -- Wire ----------------------------------------------------------------

    def status_report(self, flags: int = 0) -> bytes:
        major, minor, build = self.version
        return bytes([
            major, minor, build, self.pgm_seq & 0xFF,
            self.touch_level & 0xFF, (self.touch_level >> 8) & 0xFF,
            0, flags,
        ])

    def read(self) -> bytes:
        self.reads += 1
        if self._busy:
            self._busy -= 1
            return self.status_report(SLOT_WRITE_FLAG)
        if self._stream:
            return self._stream.pop(0)
        return self.status_report()

    def write(self, packet: bytes) -> None:
        packet = bytes(packet)
        self.writes.append(packet)
        self._busy = self.busy_reads

        if packet == WRITE_RESET_PAYLOAD:
            self._stream.clear()
            return

        trailer = packet[FEATURE_RPT_SIZE - 1]
        if not trailer & SLOT_WRITE_FLAG:
            log.debug("Ignoring report without write flag: %s", packet.hex())
            return
        index = trailer & SEQUENCE_MASK
        if index >= FRAME_PACKET_COUNT:
            return
        if index == 0:
            self._frame = bytearray(FRAME_SIZE)
        offset = index * FEATURE_RPT_DATA_SIZE
        self._frame[offset:offset + FEATURE_RPT_DATA_SIZE] = packet[:FEATURE_RPT_DATA_SIZE]
        if index == FRAME_PACKET_COUNT - 1:
            self._submit(bytes(self._frame))

    # -- Firmware -------------------------------------------------------------

    def _submit(self, frame: bytes) -> None:
        payload = frame[:PAYLOAD_SIZE]
        (crc,) = struct.unpack_from('<H', frame, PAYLOAD_SIZE + 1)
        if crc != crc16(payload):
            log.debug("Dropping frame with bad crc 0x%04x", crc)
            return
        try:
            command = Command(frame[PAYLOAD_SIZE])
        except ValueError:
            log.debug("Unknown command 0x%02x", frame[PAYLOAD_SIZE])
            return
        self.frames.append((command, payload))

        if command is Command.DEVICE_SERIAL:
            self._respond(struct.pack('<I', self.serial))
        elif command in _CONFIG_SLOTS:
            self._configure(_CONFIG_SLOTS[command], payload)
        elif command in _HMAC_SLOTS:
            self._challenge_hmac(self.slots[_HMAC_SLOTS[command]], payload)
        elif command in _OTP_SLOTS:
            self._challenge_otp(self.slots[_OTP_SLOTS[command]], payload)
        # DEVICE_CONFIG has no stream: the status report is the answer

    def _respond(self, data: bytes) -> None:
        trailer = bytearray(crc16_trailer(data))
        if self.corrupt_checksum:
            trailer[0] ^= 0x01
        data = data + bytes(trailer)
        if len(data) % FEATURE_RPT_DATA_SIZE:
            data += bytes(FEATURE_RPT_DATA_SIZE - len(data) % FEATURE_RPT_DATA_SIZE)
        self._stream = [
            data[i:i + FEATURE_RPT_DATA_SIZE] + bytes([RESP_PENDING_FLAG | seq])
            for seq, i in enumerate(range(0, len(data), FEATURE_RPT_DATA_SIZE))
        ]
        if self.wrap_sequence:
            self._stream.append(bytes(FEATURE_RPT_DATA_SIZE) + bytes([RESP_PENDING_FLAG]))

    def _configure(self, slot: Slot, payload: bytes) -> None:
        record = payload[:CONFIG_SIZE]
        if not any(record):
            self.slots[slot] = None
            self.touch_level &= ~_SLOT_BITS[slot]
        else:
            self.slots[slot] = DeviceModeConfig.from_bytes(record)
            self.touch_level |= _SLOT_BITS[slot]
        self.pgm_seq = (self.pgm_seq + 1) & 0xFF

    def _challenge_hmac(self, config: Optional[DeviceModeConfig], payload: bytes) -> None:
        if config is None or not _is_hmac(config):
            return
        challenge = payload
        if config.cfg_flags & ConfigFlags.HMAC_LT64:
            challenge = payload.rstrip(payload[-1:])
        self._respond(hmac_sha1(_hmac_secret(config), challenge))

    def _challenge_otp(self, config: Optional[DeviceModeConfig], payload: bytes) -> None:
        if config is None or not _is_otp(config):
            return
        self.session_counter = (self.session_counter + 1) & 0xFF
        self.timestamp = (self.timestamp + 1) & 0xFFFFFF
        ticket = (
            payload[:OTP_CHALLENGE_SIZE]
            + struct.pack('<H', self.use_counter)
            + self.timestamp.to_bytes(3, 'little')
            + bytes([self.session_counter])
            + secrets.token_bytes(2)
        )
        ticket += crc16_trailer(ticket)
        self._respond(aes128_encrypt_block(bytes(config.key), ticket))


class SimulatedTransport(UsbTransport):
    """``UsbTransport`` over one or more ``SimulatedToken`` instances.

    Args:
        tokens: Tokens attached to the simulated bus.
        close_error: Raised from every ``close()`` once the session is released.
    """

    name = "simulated"

    def __init__(self, tokens: Optional[list[SimulatedToken]] = None,
                 close_error: Optional[Exception] = None):
        self.tokens = list(tokens) if tokens is not None else [SimulatedToken()]
        self.close_error = close_error
        self.opened = 0
        self.closed = 0

    @property
    def open_sessions(self) -> int:
        return self.opened - self.closed

    def list_devices(self) -> list[Device]:
        return [token.as_device() for token in self.tokens]

    def open(self, bus_id: int, address_id: int) -> tuple[Any, list[Any]]:
        for token in self.tokens:
            if token.bus_id == bus_id and token.address_id == address_id:
                self.opened += 1
                return token, [HID_INTERFACE_INDEX]
        raise DeviceNotFoundError(f"No device on bus {bus_id} address {address_id}")

    def close(self, handle: Any, interfaces: list[Any]) -> None:
        self.closed += 1
        if self.close_error is not None:
            raise self.close_error

    def read(self, handle: SimulatedToken) -> bytes:
        return handle.read()

    def raw_write(self, handle: SimulatedToken, packet: bytes) -> None:
        if len(packet) != FEATURE_RPT_SIZE:
            raise CanNotWriteToDeviceError(
                f"Device accepted 0 of {FEATURE_RPT_SIZE} bytes"
            )
        handle.write(packet)
