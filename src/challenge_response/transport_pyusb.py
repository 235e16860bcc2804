"""libusb transport via pyusb.

Feature reports travel as class-specific control transfers on interface 0:

    GET_REPORT  bmRequestType=0xA1 bRequest=0x01 wValue=0x0300 wLength=8
    SET_REPORT  bmRequestType=0x21 bRequest=0x09 wValue=0x0300 wLength=8

On open, every interface of the active configuration has its kernel driver
detached (Linux) and is claimed; close releases them and reattaches the
drivers that were detached.

Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import usb.core
import usb.util

from .config import Device
from .constants import (
    FEATURE_REPORT_VALUE,
    FEATURE_RPT_SIZE,
    HID_GET_REPORT,
    HID_INTERFACE_INDEX,
    HID_SET_REPORT,
    USB_TIMEOUT_MS,
    is_supported,
)
from .errors import (
    CanNotReadFromDeviceError,
    CanNotWriteToDeviceError,
    DeviceNotFoundError,
    ListDevicesError,
    OpenDeviceError,
    UsbError,
)
from .transport import UsbTransport

log = logging.getLogger(__name__)

_REQUEST_TYPE_IN = usb.util.build_request_type(
    usb.util.CTRL_IN, usb.util.CTRL_TYPE_CLASS, usb.util.CTRL_RECIPIENT_INTERFACE)
_REQUEST_TYPE_OUT = usb.util.build_request_type(
    usb.util.CTRL_OUT, usb.util.CTRL_TYPE_CLASS, usb.util.CTRL_RECIPIENT_INTERFACE)


@dataclass(frozen=True)
class ClaimedInterface:
    """An interface claimed for one session."""
    number: int
    reattach: bool = False


def _product_name(dev: Any) -> Optional[str]:
    """Product string descriptor; needs device permissions, so may be None."""
    try:
        if dev.iProduct:
            return usb.util.get_string(dev, dev.iProduct)
    except (usb.core.USBError, ValueError, NotImplementedError) as e:
        log.debug("Product string unavailable for %04x:%04x: %s",
                  dev.idVendor, dev.idProduct, e)
    return None


class PyUsbTransport(UsbTransport):
    """Synchronous libusb control transfers with explicit claim/detach."""

    name = "pyusb"

    def __init__(self, timeout_ms: int = USB_TIMEOUT_MS):
        self.timeout_ms = timeout_ms

    # -- Discovery --------------------------------------------------------

    def _find(self, **kwargs) -> Any:
        try:
            return usb.core.find(**kwargs)
        except usb.core.NoBackendError as e:
            raise ListDevicesError(f"No libusb backend available: {e}") from e
        except usb.core.USBError as e:
            raise ListDevicesError(f"Could not list available devices: {e}") from e

    def list_devices(self) -> list[Device]:
        found = self._find(
            find_all=True,
            custom_match=lambda d: is_supported(d.idVendor, d.idProduct),
        )
        devices = []
        for dev in found:
            devices.append(Device(
                vendor_id=dev.idVendor,
                product_id=dev.idProduct,
                bus_id=dev.bus,
                address_id=dev.address,
                name=_product_name(dev),
            ))
        log.debug("pyusb found %d token(s)", len(devices))
        return devices

    # -- Session ----------------------------------------------------------

    def open(self, bus_id: int, address_id: int) -> tuple[Any, list[ClaimedInterface]]:
        dev = self._find(custom_match=lambda d: d.bus == bus_id and d.address == address_id)
        if dev is None:
            raise DeviceNotFoundError(f"No device on bus {bus_id} address {address_id}")

        claimed: list[ClaimedInterface] = []
        try:
            cfg = dev.get_active_configuration()
            for intf in cfg:
                number = intf.bInterfaceNumber
                if any(c.number == number for c in claimed):
                    continue  # alternate setting of an interface already claimed
                reattach = False
                try:
                    if dev.is_kernel_driver_active(number):
                        dev.detach_kernel_driver(number)
                        reattach = True
                        log.debug("Detached kernel driver from interface %d", number)
                except NotImplementedError:
                    # macOS / Windows backends have no kernel driver API
                    pass
                usb.util.claim_interface(dev, number)
                claimed.append(ClaimedInterface(number, reattach))
        except usb.core.USBError as e:
            self._restore(dev, claimed)
            raise OpenDeviceError(f"Can not open device on bus {bus_id} address {address_id}: {e}") from e

        log.info("Opened %04x:%04x on bus %d address %d",
                 dev.idVendor, dev.idProduct, bus_id, address_id)
        return dev, claimed

    def _restore(self, dev: Any, claimed: list[ClaimedInterface]) -> None:
        """Best-effort undo of a partially completed open()."""
        for intf in claimed:
            try:
                usb.util.release_interface(dev, intf.number)
                if intf.reattach:
                    dev.attach_kernel_driver(intf.number)
            except usb.core.USBError as e:
                log.debug("Undo claim of interface %d: %s", intf.number, e)
        usb.util.dispose_resources(dev)

    def close(self, handle: Any, interfaces: list[ClaimedInterface]) -> None:
        """Release every interface and reattach drivers; raise the first failure."""
        first_error: Optional[usb.core.USBError] = None
        try:
            for intf in interfaces:
                try:
                    usb.util.release_interface(handle, intf.number)
                except usb.core.USBError as e:
                    log.debug("Release of interface %d failed: %s", intf.number, e)
                    first_error = first_error or e
                if intf.reattach:
                    try:
                        handle.attach_kernel_driver(intf.number)
                        log.debug("Reattached kernel driver to interface %d", intf.number)
                    except usb.core.USBError as e:
                        log.debug("Reattach on interface %d failed: %s", intf.number, e)
                        first_error = first_error or e
        finally:
            usb.util.dispose_resources(handle)
        if first_error is not None:
            raise UsbError(first_error) from first_error

    # -- Feature reports --------------------------------------------------

    def read(self, handle: Any) -> bytes:
        try:
            data = handle.ctrl_transfer(
                _REQUEST_TYPE_IN, HID_GET_REPORT, FEATURE_REPORT_VALUE,
                HID_INTERFACE_INDEX, FEATURE_RPT_SIZE, timeout=self.timeout_ms,
            )
        except usb.core.USBTimeoutError as e:
            raise CanNotReadFromDeviceError(f"Feature report read timed out: {e}") from e
        except usb.core.USBError as e:
            raise UsbError(e) from e
        return bytes(data)

    def raw_write(self, handle: Any, packet: bytes) -> None:
        try:
            written = handle.ctrl_transfer(
                _REQUEST_TYPE_OUT, HID_SET_REPORT, FEATURE_REPORT_VALUE,
                HID_INTERFACE_INDEX, packet, timeout=self.timeout_ms,
            )
        except usb.core.USBTimeoutError as e:
            raise CanNotWriteToDeviceError(f"Feature report write timed out: {e}") from e
        except usb.core.USBError as e:
            raise UsbError(e) from e
        if written != FEATURE_RPT_SIZE:
            raise CanNotWriteToDeviceError(
                f"Device accepted {written} of {FEATURE_RPT_SIZE} bytes"
            )
