"""Configuration value objects: slots, modes, commands and the device record.

These are plain data carriers passed into ChallengeResponse operations.
``Config`` is immutable; the ``set_*`` helpers return modified copies so
a base config can be reused across calls::

    config = Config.new_from(device).set_slot(Slot.ONE).set_variable_size(False)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Optional


class Slot(Enum):
    """One of the two on-device key/configuration slots."""
    ONE = 1
    TWO = 2

    @classmethod
    def from_str(cls, slot_number: str) -> Optional[Slot]:
        """Parse "1" or "2". Returns None for anything else."""
        if slot_number == "1":
            return cls.ONE
        if slot_number == "2":
            return cls.TWO
        return None

    @classmethod
    def from_int(cls, slot_number: int) -> Optional[Slot]:
        """Parse 1 or 2. Returns None for anything else."""
        if slot_number == 1:
            return cls.ONE
        if slot_number == 2:
            return cls.TWO
        return None


class Mode(Enum):
    """Challenge-response algorithm bound to a slot."""
    SHA1 = "sha1"
    OTP = "otp"


class Command(IntEnum):
    """One-byte slot command carried in every request frame."""
    CONFIGURATION_1 = 0x01
    CONFIGURATION_2 = 0x03
    UPDATE_1 = 0x04
    UPDATE_2 = 0x05
    SWAP = 0x06
    DEVICE_SERIAL = 0x10
    DEVICE_CONFIG = 0x11
    CHALLENGE_OTP_1 = 0x20
    CHALLENGE_OTP_2 = 0x28
    CHALLENGE_HMAC_1 = 0x30
    CHALLENGE_HMAC_2 = 0x38
    READ_CONFIG_1 = 0x1C
    READ_CONFIG_2 = 0x1D

    @classmethod
    def challenge_for(cls, mode: Mode, slot: Slot) -> Command:
        """Challenge command for a mode/slot pair."""
        if mode is Mode.OTP:
            return cls.CHALLENGE_OTP_1 if slot is Slot.ONE else cls.CHALLENGE_OTP_2
        return cls.CHALLENGE_HMAC_1 if slot is Slot.ONE else cls.CHALLENGE_HMAC_2

    @classmethod
    def configuration_for(cls, slot: Slot) -> Command:
        return cls.CONFIGURATION_1 if slot is Slot.ONE else cls.CONFIGURATION_2

    @property
    def is_config_write(self) -> bool:
        """Commands that carry a slot configuration record."""
        return self in (
            Command.CONFIGURATION_1, Command.CONFIGURATION_2,
            Command.UPDATE_1, Command.UPDATE_2,
        )


@dataclass(frozen=True)
class SyncLevel:
    """Validation-protocol sync level.

    A value 0 to 100 indicating percentage of syncing required by the
    client, or "fast"/"secure" for server-configured values.
    """
    level: int

    @classmethod
    def fast(cls) -> SyncLevel:
        return cls(0)

    @classmethod
    def secure(cls) -> SyncLevel:
        return cls(100)

    @classmethod
    def custom(cls, level: int) -> SyncLevel:
        """Clamp to 100."""
        return cls(min(level, 100))

    def __str__(self) -> str:
        return str(self.level)


@dataclass(frozen=True)
class Device:
    """A token found on the bus. ``bus_id``/``address_id`` identify it for open()."""
    vendor_id: int
    product_id: int
    bus_id: int
    address_id: int
    name: Optional[str] = None
    serial: Optional[int] = None

    def __str__(self) -> str:
        label = self.name or "token"
        serial = f" serial={self.serial}" if self.serial is not None else ""
        return (
            f"{label} [{self.vendor_id:04x}:{self.product_id:04x}] "
            f"bus {self.bus_id:03d} address {self.address_id:03d}{serial}"
        )


@dataclass(frozen=True)
class Config:
    """Per-call options: target device, slot, mode and command."""
    device: Device
    variable: bool = True
    slot: Slot = Slot.TWO
    mode: Mode = Mode.SHA1
    command: Command = Command.CHALLENGE_HMAC_2

    @classmethod
    def new_from(cls, device: Device) -> Config:
        return cls(device=device)

    def set_variable_size(self, variable: bool) -> Config:
        return replace(self, variable=variable)

    def set_slot(self, slot: Slot) -> Config:
        return replace(self, slot=slot)

    def set_mode(self, mode: Mode) -> Config:
        return replace(self, mode=mode)

    def set_command(self, command: Command) -> Config:
        return replace(self, command=command)
