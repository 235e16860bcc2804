"""Transport capability consumed by the protocol layer.

The protocol (frame writes, status polling, response reads) is written
once against ``UsbTransport`` and never per backend:

  • ``PyUsbTransport``: libusb control transfers via pyusb; detaches the
    kernel HID driver and claims interfaces for the session.
  • ``HidApiTransport``: HID feature reports via hidapi on an opened
    device handle; the OS HID driver stays attached.
  • ``SimulatedTransport`` (in ``challenge_response.testing``): software
    token for tests.

Each ``open()`` must be paired with exactly one ``close()``, on every exit
path; ``ChallengeResponse`` enforces that for every operation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from .config import Device

log = logging.getLogger(__name__)

BACKENDS = ('pyusb', 'hidapi')


class UsbTransport(ABC):
    """Abstract 8-byte feature-report transport, mockable for testing."""

    name = "abstract"

    @abstractmethod
    def list_devices(self) -> list[Device]:
        """Allow-listed tokens currently attached (serial left unset)."""

    @abstractmethod
    def open(self, bus_id: int, address_id: int) -> tuple[Any, list[Any]]:
        """Open the token at *bus_id*/*address_id*.

        Returns:
            ``(handle, interfaces)``, the interfaces claimed for this session.

        Raises:
            DeviceNotFoundError: No device at that bus/address.
            OpenDeviceError: The device exists but can not be opened.
        """

    @abstractmethod
    def close(self, handle: Any, interfaces: list[Any]) -> None:
        """Release claimed interfaces, restore drivers and close the handle."""

    @abstractmethod
    def read(self, handle: Any) -> bytes:
        """Read one feature report. Returns the bytes received (normally 8).

        Raises:
            CanNotReadFromDeviceError: Transfer failed or timed out.
        """

    @abstractmethod
    def raw_write(self, handle: Any, packet: bytes) -> None:
        """Write one 8-byte feature report.

        Raises:
            CanNotWriteToDeviceError: Fewer than 8 bytes were accepted.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def create_transport(backend: Optional[str] = None) -> UsbTransport:
    """Build the transport for *backend* (``"pyusb"`` or ``"hidapi"``).

    Defaults to the configured backend (see ``challenge_response.conf``).
    """
    if backend is None:
        from .conf import get_backend
        backend = get_backend()

    log.debug("Creating %s transport", backend)
    if backend == 'pyusb':
        from .transport_pyusb import PyUsbTransport
        return PyUsbTransport()
    if backend == 'hidapi':
        from .transport_hidapi import HidApiTransport
        return HidApiTransport()
    raise ValueError(f"Unknown transport backend: {backend!r} (expected one of {BACKENDS})")
