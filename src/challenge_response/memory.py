"""Zeroizing byte container for key material and token responses.

``SecureBytes`` keeps its contents in a private ``bytearray`` and
overwrites it with zeros when ``zeroize()`` is called, when a ``with``
block exits, and when the object is finalized.  Python may still hold
transient copies (e.g. the ``bytes`` returned by ``.data``); callers
that care should keep the container itself and use it as a context
manager.
"""

from __future__ import annotations

import hmac
from typing import Optional


class SecureBytes:
    """Mutable byte buffer that wipes itself on release."""

    SIZE: Optional[int] = None

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        if self.SIZE is not None and len(data) != self.SIZE:
            raise ValueError(
                f"{type(self).__name__} must be exactly {self.SIZE} bytes, got {len(data)}"
            )
        self._buffer = bytearray(data)
        self._zeroized = False

    @property
    def data(self) -> bytes:
        """Copy of the contents."""
        if self._zeroized:
            raise ValueError(f"{type(self).__name__} has been zeroized")
        return bytes(self._buffer)

    @property
    def is_zeroized(self) -> bool:
        return self._zeroized

    def zeroize(self) -> None:
        """Overwrite the backing buffer with zeros. Idempotent."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._zeroized = True

    def hex(self) -> str:
        return self.data.hex()

    def __len__(self) -> int:
        return len(self._buffer)

    def __bytes__(self) -> bytes:
        return self.data

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecureBytes):
            return hmac.compare_digest(self._buffer, other._buffer)
        if isinstance(other, (bytes, bytearray)):
            return hmac.compare_digest(self._buffer, bytes(other))
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __enter__(self) -> SecureBytes:
        return self

    def __exit__(self, *exc) -> None:
        self.zeroize()

    def __del__(self) -> None:
        buffer = getattr(self, "_buffer", None)
        if buffer is not None:
            for i in range(len(buffer)):
                buffer[i] = 0

    def __repr__(self) -> str:
        state = "zeroized" if self._zeroized else f"{len(self._buffer)} bytes"
        return f"{type(self).__name__}(<{state}>)"
