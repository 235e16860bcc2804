"""Tests for session -- status poller, frame writer, response reader and reset.

No USB hardware required: the transport is a MagicMock whose read() replays
a scripted list of 8-byte status reports.
"""

import itertools
import threading
from unittest.mock import MagicMock, call, patch

import pytest

from challenge_response.config import Command
from challenge_response.constants import WRITE_RESET_PAYLOAD
from challenge_response.errors import WaitCancelledError, WaitTimeoutError
from challenge_response.frame import Frame
from challenge_response.session import DeviceSession, response_pending, write_ready
from challenge_response.transport import UsbTransport

HANDLE = object()

IDLE = bytes(7) + b'\x00'
BUSY = bytes(7) + b'\x80'


# =========================================================================
# Helpers
# =========================================================================

def _make_mock_transport(reports) -> MagicMock:
    """MagicMock UsbTransport whose read() returns *reports* in order."""
    t = MagicMock(spec=UsbTransport)
    t.read.side_effect = reports
    return t


def _session(transport, **kwargs) -> DeviceSession:
    return DeviceSession(transport, HANDLE, [0], poll_interval=0, **kwargs)


def _pending(seq: int, fill: int = 0xAA) -> bytes:
    return bytes([fill]) * 7 + bytes([0x40 | (seq & 0x1F)])


# =========================================================================
# Flag predicates
# =========================================================================

class TestPredicates:

    def test_write_ready(self):
        assert write_ready(0x00)
        assert write_ready(0x40)
        assert not write_ready(0x80)
        assert not write_ready(0xC5)

    def test_response_pending(self):
        assert response_pending(0x40)
        assert response_pending(0x5F)
        assert not response_pending(0x80)
        assert not response_pending(0x00)


# =========================================================================
# Status poller
# =========================================================================

class TestWait:

    def test_returns_first_matching_report(self):
        t = _make_mock_transport([BUSY, BUSY, IDLE])
        report = _session(t).wait_write_ready()
        assert report == IDLE
        assert t.read.call_count == 3
        t.read.assert_called_with(HANDLE)

    def test_sleeps_between_attempts(self):
        t = _make_mock_transport([BUSY, BUSY, IDLE])
        session = DeviceSession(t, HANDLE, [], poll_interval=0.001)
        with patch("challenge_response.session.time.sleep") as mock_sleep:
            session.wait_write_ready()
        assert mock_sleep.call_args_list == [call(0.001), call(0.001)]

    def test_short_read_does_not_end_write_ready_wait(self):
        t = _make_mock_transport([BUSY, b'', BUSY, IDLE])
        assert _session(t).wait_write_ready() == IDLE
        assert t.read.call_count == 4

    def test_short_reads_never_satisfy_wait(self):
        t = _make_mock_transport(itertools.repeat(b'\x01\x02'))
        with pytest.raises(WaitTimeoutError):
            _session(t).wait_write_ready(timeout=0)

    def test_short_read_never_pending(self):
        t = _make_mock_transport([b'\xff\xff', _pending(0)])
        assert _session(t).wait(response_pending) == _pending(0)

    def test_timeout(self):
        t = _make_mock_transport(itertools.repeat(BUSY))
        with pytest.raises(WaitTimeoutError):
            _session(t).wait_write_ready(timeout=0)

    def test_session_default_timeout(self):
        t = _make_mock_transport(itertools.repeat(BUSY))
        with pytest.raises(WaitTimeoutError):
            _session(t, timeout=0).wait_write_ready()

    def test_cancel(self):
        event = threading.Event()
        event.set()
        t = _make_mock_transport(itertools.repeat(BUSY))
        with pytest.raises(WaitCancelledError):
            _session(t).wait_write_ready(cancel=event)
        assert t.read.call_count == 1

    def test_cancel_does_not_mask_ready_report(self):
        event = threading.Event()
        event.set()
        t = _make_mock_transport([IDLE])
        assert _session(t, cancel=event).wait_write_ready() == IDLE

    def test_unbounded_by_default(self):
        """Without timeout or cancel the poller keeps reading."""
        t = _make_mock_transport([BUSY] * 50 + [IDLE])
        assert _session(t).wait_write_ready() == IDLE
        assert t.read.call_count == 51


# =========================================================================
# Writes
# =========================================================================

class TestWriteFrame:

    def test_waits_before_every_report(self):
        frame = Frame.for_challenge(b"mychallenge", Command.CHALLENGE_HMAC_2, variable=True)
        t = _make_mock_transport([BUSY, IDLE, IDLE, BUSY, BUSY, IDLE])
        _session(t).write_frame(frame)

        written = [c.args[1] for c in t.raw_write.call_args_list]
        assert written == [report for _i, report in frame.to_feature_reports()]
        assert t.read.call_count == 6

    def test_write_reset(self):
        t = _make_mock_transport([BUSY, IDLE])
        _session(t).write_reset()
        t.raw_write.assert_called_once_with(HANDLE, WRITE_RESET_PAYLOAD)
        assert t.read.call_count == 2


# =========================================================================
# Response reader
# =========================================================================

class TestReadResponse:

    @pytest.mark.parametrize("n", range(1, 11))
    def test_terminates_after_n_pending_reports(self, n):
        reports = [_pending(seq, fill=seq + 1) for seq in range(n)]
        t = _make_mock_transport(reports + [IDLE, IDLE])
        response = bytearray(36)

        count = _session(t).read_response(response)

        assert count == 7 * n
        assert t.read.call_count == n + 2
        t.raw_write.assert_called_once_with(HANDLE, WRITE_RESET_PAYLOAD)
        for seq in range(n):
            assert response[seq * 7:seq * 7 + 7] == bytes([seq + 1]) * 7

    def test_waits_for_pending(self):
        t = _make_mock_transport([BUSY, IDLE, _pending(0), IDLE, IDLE])
        count = _session(t).read_response(bytearray(36))
        assert count == 7
        assert t.read.call_count == 5

    def test_stops_on_sequence_wrap(self):
        t = _make_mock_transport([_pending(0), _pending(1), _pending(0, fill=0xEE), IDLE])
        response = bytearray(36)
        count = _session(t).read_response(response)
        assert count == 14
        # wrapped report is stored but not counted
        assert response[14:21] == b'\xee' * 7
        assert t.read.call_count == 4

    def test_stops_on_short_read(self):
        t = _make_mock_transport([_pending(0), _pending(1), b'\x00\x00\x00', IDLE])
        assert _session(t).read_response(bytearray(36)) == 14

    def test_next_report_overwrites_trailer(self):
        t = _make_mock_transport([_pending(0, fill=0x11), _pending(1, fill=0x22), IDLE, IDLE])
        response = bytearray(36)
        _session(t).read_response(response)
        assert response[6] == 0x11
        assert response[7] == 0x22

    def test_buffer_grows_for_long_streams(self):
        reports = [_pending(seq) for seq in range(8)]
        t = _make_mock_transport(reports + [IDLE, IDLE])
        response = bytearray(36)
        assert _session(t).read_response(response) == 56
        assert len(response) >= 64

    def test_read_response_bytes_hmac_window(self):
        body = bytes(range(22))
        chunks = [body[i:i + 7].ljust(7, b'\x00') for i in range(0, 22, 7)]
        reports = [chunk + bytes([0x40 | seq]) for seq, chunk in enumerate(chunks)]
        t = _make_mock_transport(reports + [IDLE, IDLE])
        data = _session(t).read_response_bytes()
        assert data[:22] == body
        assert len(data) == 36
