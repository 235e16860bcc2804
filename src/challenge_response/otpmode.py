"""Yubico-OTP challenge-response key and response types.

In OTP mode the token answers a 6-byte challenge with one AES-128 block.
Decrypted, the block is an OTP ticket whose first 6 bytes are the
challenge (in place of the private identity)::

    [0:6]   challenge
    [6:8]   usage counter (LE)
    [8:11]  timestamp (LE, 24 bit)
    [11]    session counter
    [12:14] random
    [14:16] ~crc16(ticket[0:14]) (LE)

Counter, timestamp and random change on every call, so two responses to
the same challenge differ.
"""

from __future__ import annotations

import secrets

from .constants import AES_KEY_SIZE, OTP_CHALLENGE_SIZE, OTP_RESPONSE_SIZE
from .memory import SecureBytes
from .sec import aes128_decrypt_block, validate_crc16


class Aes128Key(SecureBytes):
    """16-byte AES key to program into a slot. Zeroized on release."""

    SIZE = AES_KEY_SIZE

    @classmethod
    def from_slice(cls, secret: bytes) -> Aes128Key:
        return cls(secret)

    @classmethod
    def generate(cls) -> Aes128Key:
        return cls(secrets.token_bytes(AES_KEY_SIZE))


class Aes128Block(SecureBytes):
    """16-byte encrypted OTP ticket returned by the token."""

    SIZE = OTP_RESPONSE_SIZE

    def decrypt(self, key: Aes128Key) -> bytes:
        return aes128_decrypt_block(key.data, self.data)

    def check(self, key: Aes128Key, challenge: bytes) -> bool:
        """Decrypt with *key*; the ticket must pass its CRC and echo the challenge."""
        ticket = self.decrypt(key)
        if not validate_crc16(ticket):
            return False
        expected = challenge[:OTP_CHALLENGE_SIZE].ljust(OTP_CHALLENGE_SIZE, b'\x00')
        return ticket[:OTP_CHALLENGE_SIZE] == expected
