"""Slot configuration record for challenge-response modes.

Layout (52 bytes, from ykdef.h ``struct config_st``)::

    [0:16]   fixed        public id (unused in challenge-response)
    [16:22]  uid          private id / HMAC key tail
    [22:38]  key          AES key / HMAC key head
    [38:44]  acc_code     access code
    [44]     fixed_size
    [45]     ext_flags
    [46]     tkt_flags
    [47]     cfg_flags
    [48:50]  rfu
    [50:52]  ~crc16(record[0:50]), little-endian

The record travels verbatim in the first 52 bytes of a Configuration1/2
frame payload; the remaining 12 bytes are zero.
"""

from __future__ import annotations

import struct
from enum import IntFlag

from .config import Command
from .constants import AES_KEY_SIZE, PAYLOAD_SIZE
from .frame import Frame
from .hmacmode import HmacKey
from .otpmode import Aes128Key
from .sec import crc16

FIXED_SIZE = 16
UID_SIZE = 6
KEY_SIZE = 16
ACC_CODE_SIZE = 6
CONFIG_SIZE = 52
CONFIG_CRC_OFFSET = 50

_LAYOUT = struct.Struct(f'<{FIXED_SIZE}s{UID_SIZE}s{KEY_SIZE}s{ACC_CODE_SIZE}sBBBB2sH')


class TicketFlags(IntFlag):
    TAB_FIRST = 0x01
    APPEND_TAB1 = 0x02
    APPEND_TAB2 = 0x04
    APPEND_DELAY1 = 0x08
    APPEND_DELAY2 = 0x10
    APPEND_CR = 0x20
    CHAL_RESP = 0x40
    PROTECT_CFG2 = 0x80


class ConfigFlags(IntFlag):
    SEND_REF = 0x01
    TICKET_FIRST = 0x02
    PACING_10MS = 0x04
    PACING_20MS = 0x08
    ALLOW_HIDTRIG = 0x10
    STATIC_TICKET = 0x20
    CHAL_YUBICO = 0x20
    CHAL_HMAC = 0x22
    HMAC_LT64 = 0x04
    CHAL_BTN_TRIG = 0x08


class ExtendedFlags(IntFlag):
    SERIAL_BTN_VISIBLE = 0x01
    SERIAL_USB_VISIBLE = 0x02
    SERIAL_API_VISIBLE = 0x04
    USE_NUMERIC_KEYPAD = 0x08
    FAST_TRIG = 0x10
    ALLOW_UPDATE = 0x20
    DORMANT = 0x40
    LED_INV = 0x80


class DeviceModeConfig:
    """Mutable slot configuration builder. Holds key material; call zeroize()."""

    def __init__(self) -> None:
        self.fixed = bytearray(FIXED_SIZE)
        self.uid = bytearray(UID_SIZE)
        self.key = bytearray(KEY_SIZE)
        self.acc_code = bytearray(ACC_CODE_SIZE)
        self.fixed_size = 0
        self.ext_flags = ExtendedFlags(0)
        self.tkt_flags = TicketFlags(0)
        self.cfg_flags = ConfigFlags(0)
        self.rfu = bytearray(2)

    def challenge_response_hmac(self, secret: HmacKey, variable: bool,
                                button_press: bool) -> None:
        """Configure HMAC-SHA1 challenge-response with a 20-byte secret.

        *variable* enables variable-length challenges (HMAC_LT64): the
        device strips trailing padding from the 64-byte payload.
        """
        self.tkt_flags = TicketFlags.CHAL_RESP
        self.cfg_flags = ConfigFlags.CHAL_HMAC
        if variable:
            self.cfg_flags |= ConfigFlags.HMAC_LT64
        if button_press:
            self.cfg_flags |= ConfigFlags.CHAL_BTN_TRIG
        self.ext_flags = ExtendedFlags.SERIAL_API_VISIBLE | ExtendedFlags.ALLOW_UPDATE

        key = secret.data
        self.key[:] = key[:KEY_SIZE]
        self.uid[:4] = key[KEY_SIZE:]

    def challenge_response_otp(self, secret: Aes128Key, private_identity: bytes,
                               button_press: bool) -> None:
        """Configure Yubico-OTP challenge-response with an AES key and 6-byte identity."""
        if len(private_identity) != UID_SIZE:
            raise ValueError(f"Private identity must be exactly {UID_SIZE} bytes")
        self.tkt_flags = TicketFlags.CHAL_RESP
        self.cfg_flags = ConfigFlags.CHAL_YUBICO
        if button_press:
            self.cfg_flags |= ConfigFlags.CHAL_BTN_TRIG
        self.ext_flags = ExtendedFlags.SERIAL_API_VISIBLE

        self.key[:] = secret.data[:AES_KEY_SIZE]
        self.uid[:] = private_identity

    def to_bytes(self) -> bytes:
        """Serialize with the trailing inverted crc16."""
        body = _LAYOUT.pack(
            bytes(self.fixed), bytes(self.uid), bytes(self.key), bytes(self.acc_code),
            self.fixed_size, int(self.ext_flags), int(self.tkt_flags), int(self.cfg_flags),
            bytes(self.rfu), 0,
        )[:CONFIG_CRC_OFFSET]
        return body + struct.pack('<H', ~crc16(body) & 0xFFFF)

    @classmethod
    def from_bytes(cls, data: bytes) -> DeviceModeConfig:
        """Parse a 52-byte record (crc is not checked here)."""
        fixed, uid, key, acc_code, fixed_size, ext, tkt, cfg, rfu, _crc = \
            _LAYOUT.unpack(bytes(data[:CONFIG_SIZE]))
        config = cls()
        config.fixed[:] = fixed
        config.uid[:] = uid
        config.key[:] = key
        config.acc_code[:] = acc_code
        config.fixed_size = fixed_size
        config.ext_flags = ExtendedFlags(ext)
        config.tkt_flags = TicketFlags(tkt)
        config.cfg_flags = ConfigFlags(cfg)
        config.rfu[:] = rfu
        return config

    def to_frame(self, command: Command) -> Frame:
        payload = self.to_bytes().ljust(PAYLOAD_SIZE, b'\x00')
        return Frame(payload, command)

    def zeroize(self) -> None:
        for buf in (self.uid, self.key, self.acc_code):
            for i in range(len(buf)):
                buf[i] = 0

    def __repr__(self) -> str:
        return (
            f"DeviceModeConfig(tkt_flags=0x{int(self.tkt_flags):02x}, "
            f"cfg_flags=0x{int(self.cfg_flags):02x}, ext_flags=0x{int(self.ext_flags):02x})"
        )
