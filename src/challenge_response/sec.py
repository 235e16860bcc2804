"""Checksum and crypto helpers.

The token uses CRC-16/ISO-13239 (reflected polynomial 0x8408, init 0xFFFF,
no final XOR).  The device appends the one's complement of the CRC to
every response, so the CRC over data+crc of a good response always
yields the fixed residual ``CRC_RESIDUAL_OK``.
"""

from __future__ import annotations

import hashlib
import hmac
import struct

from Cryptodome.Cipher import AES

CRC_RESIDUAL_OK = 0xF0B8
_CRC_POLY = 0x8408


def crc16(data: bytes | bytearray) -> int:
    """CRC-16 over *data* as computed by the token firmware."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            lsb = crc & 1
            crc >>= 1
            if lsb:
                crc ^= _CRC_POLY
    return crc


def crc16_trailer(data: bytes | bytearray) -> bytes:
    """Inverted little-endian CRC the firmware appends after *data*."""
    return struct.pack('<H', ~crc16(data) & 0xFFFF)


def validate_crc16(data: bytes | bytearray) -> bool:
    """True if *data* (payload followed by its crc trailer) checks out."""
    return crc16(data) == CRC_RESIDUAL_OK


def hmac_sha1(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha1).digest()


def aes128_encrypt_block(key: bytes, block: bytes) -> bytes:
    """Single-block AES-128-ECB, as used by Yubico-OTP tickets."""
    return AES.new(key, AES.MODE_ECB).encrypt(block)


def aes128_decrypt_block(key: bytes, block: bytes) -> bytes:
    return AES.new(key, AES.MODE_ECB).decrypt(block)
