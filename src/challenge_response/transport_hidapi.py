"""HID transport via hidapi.

Feature reports go through the OS HID driver on an opened device handle,
so no kernel driver is detached and nothing is claimed.  hidapi frames
every feature report with a leading report ID byte; tokens use report 0,
so writes are 9 bytes (``0x00`` + packet) and reads strip the first byte.

hidapi exposes no per-transfer timeout for feature reports: the OS HID
driver's own control-transfer timeout applies instead of the 2 s bound of
the libusb transport.

hidapi addresses devices by path, not bus/address.  ``Device.bus_id`` /
``address_id`` are recovered from the path:

  • libusb backend paths ``"bbbb:aaaa:ii"`` (hex bus, address, interface)
  • Linux hidraw paths via sysfs ``busnum`` / ``devnum``
  • anything else (macOS, Windows): bus 0, address = enumeration ordinal

Requires: ``pip install hidapi`` + ``apt install libhidapi-dev``
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from .config import Device
from .constants import FEATURE_RPT_SIZE, HID_INTERFACE_INDEX, is_supported
from .errors import (
    CanNotReadFromDeviceError,
    CanNotWriteToDeviceError,
    DeviceIOError,
    DeviceNotFoundError,
    ListDevicesError,
    OpenDeviceError,
)
from .transport import UsbTransport

# hidapi is optional ([hid] extra)
try:
    import hid as hidapi
    HIDAPI_AVAILABLE = True
except ImportError:
    HIDAPI_AVAILABLE = False

log = logging.getLogger(__name__)

REPORT_ID = 0x00
SYSFS_HIDRAW = '/sys/class/hidraw'


# =========================================================================
# Path → bus/address
# =========================================================================

def _path_str(path: Any) -> str:
    if isinstance(path, bytes):
        return path.decode('utf-8', errors='replace')
    return str(path)


def _parse_libusb_path(path: str) -> Optional[tuple[int, int]]:
    """``"0001:0005:00"`` → (1, 5)."""
    parts = path.split(':')
    if len(parts) != 3:
        return None
    try:
        return int(parts[0], 16), int(parts[1], 16)
    except ValueError:
        return None


def _read_int(path: str) -> Optional[int]:
    try:
        with open(path, 'r') as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return None


def _hidraw_bus_address(path: str, sysfs_root: str = SYSFS_HIDRAW) -> Optional[tuple[int, int]]:
    """Walk from /sys/class/hidraw/hidrawN/device up to the USB device node."""
    name = os.path.basename(path)
    if not name.startswith('hidraw'):
        return None
    node = os.path.realpath(os.path.join(sysfs_root, name, 'device'))
    while node and node != os.path.dirname(node):
        busnum = _read_int(os.path.join(node, 'busnum'))
        devnum = _read_int(os.path.join(node, 'devnum'))
        if busnum is not None and devnum is not None:
            return busnum, devnum
        node = os.path.dirname(node)
    return None


def bus_address_from_path(path: Any, ordinal: int) -> tuple[int, int]:
    text = _path_str(path)
    return (
        _parse_libusb_path(text)
        or _hidraw_bus_address(text)
        or (0, ordinal + 1)
    )


# =========================================================================
# Transport
# =========================================================================

class HidApiTransport(UsbTransport):
    """Blocking feature reports on a hidapi device handle.

    Requires: ``pip install hidapi`` + ``apt install libhidapi-dev``
    """

    name = "hidapi"

    def __init__(self):
        if not HIDAPI_AVAILABLE:
            raise ImportError(
                "hidapi is not installed. Install with: pip install hidapi\n"
                "Also need libhidapi: apt install libhidapi-dev (Debian/Ubuntu) "
                "or dnf install hidapi-devel (Fedora)"
            )

    def _candidates(self) -> list[tuple[Device, Any]]:
        """Allow-listed tokens, one entry per physical device, with their paths."""
        try:
            entries = hidapi.enumerate()
        except (OSError, ValueError) as e:
            raise ListDevicesError(f"Could not list available devices: {e}") from e

        # Only the OTP/keyboard interface carries feature reports; a FIDO
        # interface of the same token must not become a second device.
        # hidapi reports -1 where the platform does not know the interface.
        entries = [
            e for e in entries
            if is_supported(e['vendor_id'], e['product_id'])
            and e.get('interface_number', -1) in (-1, HID_INTERFACE_INDEX)
        ]

        seen: dict[tuple[int, int], tuple[Device, Any]] = {}
        for ordinal, entry in enumerate(entries):
            bus_id, address_id = bus_address_from_path(entry['path'], ordinal)
            if (bus_id, address_id) in seen:
                continue
            device = Device(
                vendor_id=entry['vendor_id'],
                product_id=entry['product_id'],
                bus_id=bus_id,
                address_id=address_id,
                name=entry.get('product_string') or None,
            )
            seen[(bus_id, address_id)] = (device, entry['path'])
        return list(seen.values())

    def list_devices(self) -> list[Device]:
        devices = [device for device, _path in self._candidates()]
        log.debug("hidapi found %d token(s)", len(devices))
        return devices

    def open(self, bus_id: int, address_id: int) -> tuple[Any, list[Any]]:
        for device, path in self._candidates():
            if device.bus_id == bus_id and device.address_id == address_id:
                break
        else:
            raise DeviceNotFoundError(f"No device on bus {bus_id} address {address_id}")

        # cython-hidapi exposes device(), newer releases also Device(path=...)
        try:
            if hasattr(hidapi, 'device'):
                handle = hidapi.device()
                handle.open_path(path)
            else:
                handle = hidapi.Device(path=path)
        except (OSError, ValueError) as e:
            raise OpenDeviceError(f"Can not open {_path_str(path)}: {e}") from e

        log.info("Opened %s at %s", device, _path_str(path))
        return handle, []

    def close(self, handle: Any, interfaces: list[Any]) -> None:
        try:
            handle.close()
        except OSError as e:
            raise DeviceIOError(e) from e

    def read(self, handle: Any) -> bytes:
        try:
            data = handle.get_feature_report(REPORT_ID, FEATURE_RPT_SIZE + 1)
        except (OSError, ValueError) as e:
            raise CanNotReadFromDeviceError(f"Feature report read failed: {e}") from e
        # Drop the report ID byte
        return bytes(data[1:])

    def raw_write(self, handle: Any, packet: bytes) -> None:
        try:
            written = handle.send_feature_report(bytes([REPORT_ID]) + bytes(packet))
        except (OSError, ValueError) as e:
            raise CanNotWriteToDeviceError(f"Feature report write failed: {e}") from e
        if written != FEATURE_RPT_SIZE + 1:
            raise CanNotWriteToDeviceError(
                f"Device accepted {written} of {FEATURE_RPT_SIZE + 1} bytes"
            )
