"""Device session: status polling, frame writes and response reads.

A ``DeviceSession`` is one opened transport handle plus its claimed
interfaces, owned by exactly one in-flight operation.  All calls are
strictly sequential: write the full frame, poll until a response is
pending, read the full response, reset.

Status polling has no timeout by default: a token that never clears its
busy flag blocks the caller.  Pass ``timeout`` (seconds) or a
``threading.Event`` as ``cancel`` to bound a wait.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from .constants import (
    FEATURE_RPT_DATA_SIZE,
    FEATURE_RPT_SIZE,
    POLL_INTERVAL_S,
    RESP_PENDING_FLAG,
    RESPONSE_SIZE,
    SEQUENCE_MASK,
    SLOT_WRITE_FLAG,
    WRITE_RESET_PAYLOAD,
)
from .errors import WaitCancelledError, WaitTimeoutError
from .frame import Frame
from .transport import UsbTransport

log = logging.getLogger(__name__)

FlagPredicate = Callable[[int], bool]


def write_ready(flags: int) -> bool:
    """Device is not busy with a previous write."""
    return not flags & SLOT_WRITE_FLAG


def response_pending(flags: int) -> bool:
    """Device has response data ready to stream out."""
    return bool(flags & RESP_PENDING_FLAG)


class DeviceSession:
    """Protocol primitives over one open device handle."""

    def __init__(
        self,
        transport: UsbTransport,
        handle: Any,
        interfaces: list[Any],
        poll_interval: float = POLL_INTERVAL_S,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.transport = transport
        self.handle = handle
        self.interfaces = interfaces
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.cancel = cancel

    # -- Raw I/O ----------------------------------------------------------

    def read(self) -> bytes:
        report = self.transport.read(self.handle)
        log.debug("READ  %s", report.hex(' '))
        return report

    def raw_write(self, packet: bytes) -> None:
        log.debug("WRITE %s", packet.hex(' '))
        self.transport.raw_write(self.handle, packet)

    # -- Status poller ----------------------------------------------------

    def wait(
        self,
        predicate: FlagPredicate,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Read status reports until *predicate* holds for the trailer flags.

        Returns the 8-byte report that satisfied the predicate.

        Raises:
            WaitTimeoutError: *timeout* (or the session default) elapsed.
            WaitCancelledError: *cancel* (or the session default) was set.
        """
        timeout = self.timeout if timeout is None else timeout
        cancel = self.cancel if cancel is None else cancel
        deadline = None if timeout is None else time.monotonic() + timeout

        flags = 0
        while True:
            report = self.read()
            if len(report) == FEATURE_RPT_SIZE:
                flags = report[FEATURE_RPT_SIZE - 1]
                if predicate(flags):
                    return report
            else:
                # A short report says nothing about the device state
                log.debug("Short status report (%d bytes), polling again", len(report))
            if cancel is not None and cancel.is_set():
                raise WaitCancelledError(f"Status wait cancelled (flags 0x{flags:02x})")
            if deadline is not None and time.monotonic() >= deadline:
                raise WaitTimeoutError(
                    f"Timed out after {timeout}s waiting on device status (flags 0x{flags:02x})"
                )
            time.sleep(self.poll_interval)

    def wait_write_ready(self, **kwargs) -> bytes:
        return self.wait(write_ready, **kwargs)

    # -- Writes -----------------------------------------------------------

    def write_frame(self, frame: Frame) -> None:
        """Send a frame, waiting for write-readiness before every report."""
        log.debug("Writing %r", frame)
        for _index, report in frame.to_feature_reports():
            self.wait_write_ready()
            self.raw_write(report)

    def write_reset(self) -> None:
        """End a response read with the reset report, then wait until idle."""
        self.raw_write(WRITE_RESET_PAYLOAD)
        self.wait_write_ready()

    # -- Response reader --------------------------------------------------

    def read_response(self, response: bytearray) -> int:
        """Reassemble a streamed response into *response*.

        Each report is stored at the current offset and the offset advances
        by 7, so the next report overwrites the previous trailer byte.  The
        buffer grows if the device streams more than it holds.  Stops on a
        short read, on a report without ``RESP_PENDING_FLAG``, or when the
        sequence counter wraps back to 0.  Always finishes with a reset.

        Returns:
            Number of usable bytes assembled.
        """
        first = self.wait(response_pending)
        response[0:FEATURE_RPT_SIZE] = first
        offset = FEATURE_RPT_DATA_SIZE

        while True:
            report = self.read()
            if len(report) < FEATURE_RPT_SIZE:
                break
            response[offset:offset + FEATURE_RPT_SIZE] = report
            flags = report[FEATURE_RPT_SIZE - 1]
            if not flags & RESP_PENDING_FLAG:
                break
            if flags & SEQUENCE_MASK == 0:
                # sequence wrapped: stream is over
                break
            offset += FEATURE_RPT_DATA_SIZE

        self.write_reset()
        log.debug("Response: %d bytes", offset)
        return offset

    def read_response_bytes(self) -> bytes:
        """``read_response`` into a fresh buffer; returns the whole buffer."""
        response = bytearray(RESPONSE_SIZE)
        self.read_response(response)
        return bytes(response)
