"""HMAC-SHA1 mode key and response types."""

from __future__ import annotations

import secrets

from .constants import HMAC_RESPONSE_SIZE, HMAC_SECRET_SIZE
from .memory import SecureBytes
from .sec import hmac_sha1


class HmacKey(SecureBytes):
    """20-byte HMAC secret to program into a slot. Zeroized on release."""

    SIZE = HMAC_SECRET_SIZE

    @classmethod
    def from_slice(cls, secret: bytes) -> HmacKey:
        return cls(secret)

    @classmethod
    def generate(cls) -> HmacKey:
        """Random secret from the OS CSPRNG."""
        return cls(secrets.token_bytes(HMAC_SECRET_SIZE))


class Hmac(SecureBytes):
    """20-byte HMAC-SHA1 response from the token."""

    SIZE = HMAC_RESPONSE_SIZE

    def check(self, key: HmacKey, challenge: bytes) -> bool:
        """Recompute HMAC-SHA1(key, challenge) and compare in constant time."""
        return self == hmac_sha1(key.data, challenge)
