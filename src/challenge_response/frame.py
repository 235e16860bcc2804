"""Request frame encoder and packetizer.

Frame layout (70 bytes)::

    [0:64]   payload (challenge or slot configuration)
    [64]     command
    [65:67]  crc16(payload), little-endian
    [67:70]  reserved, zero

On the wire the frame is cut into ten 7-byte chunks, each sent as an
8-byte feature report whose last byte is ``SLOT_WRITE_FLAG | index``.
All-zero chunks other than the first and the last are skipped; the device
treats missing chunks as zeros.  The index always reflects the chunk's
position, not how many reports were actually sent.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Iterator

from .config import Command
from .constants import (
    FEATURE_RPT_DATA_SIZE,
    FRAME_FILLER_SIZE,
    FRAME_PACKET_COUNT,
    PAYLOAD_SIZE,
    SLOT_WRITE_FLAG,
)
from .sec import crc16


def encode_challenge(challenge: bytes, variable: bool = False) -> bytes:
    """Build the 64-byte payload for a challenge.

    In variable-length mode a challenge ending in 0x00 is padded with 0xFF,
    so the device can tell the trailing zero from the padding.  Otherwise
    the padding is zeros.

    Raises:
        ValueError: If the challenge is longer than 64 bytes.
    """
    if len(challenge) > PAYLOAD_SIZE:
        raise ValueError(
            f"Challenge can not be greater than {PAYLOAD_SIZE} bytes (got {len(challenge)})"
        )
    fill = 0xFF if variable and challenge[-1:] == b'\x00' else 0x00
    payload = bytearray([fill]) * PAYLOAD_SIZE
    payload[:len(challenge)] = challenge
    return bytes(payload)


@dataclass(frozen=True)
class Frame:
    """Immutable request frame. The crc is derived from the payload on creation."""
    payload: bytes
    command: Command
    crc: int = field(init=False)

    def __post_init__(self) -> None:
        if len(self.payload) != PAYLOAD_SIZE:
            raise ValueError(
                f"Frame payload must be {PAYLOAD_SIZE} bytes, got {len(self.payload)}"
            )
        object.__setattr__(self, 'payload', bytes(self.payload))
        object.__setattr__(self, 'crc', crc16(self.payload))

    @classmethod
    def for_challenge(cls, challenge: bytes, command: Command,
                      variable: bool = False) -> Frame:
        return cls(encode_challenge(challenge, variable), command)

    def to_bytes(self) -> bytes:
        return (
            self.payload
            + bytes([int(self.command)])
            + struct.pack('<H', self.crc)
            + b'\x00' * FRAME_FILLER_SIZE
        )

    def to_feature_reports(self) -> Iterator[tuple[int, bytes]]:
        """Yield ``(index, report)`` for every chunk that goes on the wire."""
        data = self.to_bytes()
        last = FRAME_PACKET_COUNT - 1
        for index in range(FRAME_PACKET_COUNT):
            chunk = data[index * FEATURE_RPT_DATA_SIZE:(index + 1) * FEATURE_RPT_DATA_SIZE]
            if index not in (0, last) and not any(chunk):
                continue
            yield index, chunk + bytes([SLOT_WRITE_FLAG | index])

    def __repr__(self) -> str:
        return f"Frame(command={self.command.name}, crc=0x{self.crc:04x})"
