"""Tests for frame -- challenge encoding, frame layout and packetizing."""

import pytest

from challenge_response.config import Command
from challenge_response.constants import (
    FEATURE_RPT_SIZE,
    FRAME_SIZE,
    PAYLOAD_SIZE,
    SLOT_WRITE_FLAG,
)
from challenge_response.frame import Frame, encode_challenge


# =========================================================================
# Helpers
# =========================================================================

def _indices(frame: Frame) -> list:
    return [index for index, _report in frame.to_feature_reports()]


def _reassemble(frame: Frame) -> bytes:
    """Rebuild the frame the way the device does: missing chunks are zero."""
    data = bytearray(FRAME_SIZE)
    for index, report in frame.to_feature_reports():
        data[index * 7:index * 7 + 7] = report[:7]
    return bytes(data)


# =========================================================================
# Challenge encoding
# =========================================================================

class TestEncodeChallenge:

    def test_variable_zero_fill(self):
        payload = encode_challenge(b"mychallenge", variable=True)
        assert payload == b"mychallenge" + bytes(53)

    def test_variable_trailing_zero_uses_ff_fill(self):
        challenge = b"abc\x00"
        payload = encode_challenge(challenge, variable=True)
        assert payload[:4] == challenge
        assert payload[4:] == b'\xff' * 60

    def test_fixed_mode_never_uses_ff_fill(self):
        payload = encode_challenge(b"abc\x00", variable=False)
        assert payload == b"abc\x00" + bytes(60)

    @pytest.mark.parametrize("length", [1, 6, 32, 63, 64])
    def test_variable_prefix_and_zero_padding(self, length):
        challenge = bytes([0x41 + (i % 20) for i in range(length)])
        payload = encode_challenge(challenge, variable=True)
        assert len(payload) == PAYLOAD_SIZE
        assert payload[:length] == challenge
        assert payload[length:] == bytes(PAYLOAD_SIZE - length)

    def test_empty_challenge(self):
        assert encode_challenge(b"", variable=True) == bytes(64)

    def test_full_length_challenge_ending_in_zero(self):
        challenge = b'\x01' * 63 + b'\x00'
        assert encode_challenge(challenge, variable=True) == challenge

    def test_too_long_raises(self):
        with pytest.raises(ValueError, match="64"):
            encode_challenge(bytes(65))


# =========================================================================
# Frame layout
# =========================================================================

class TestFrame:

    def test_size_and_layout(self):
        frame = Frame.for_challenge(b"mychallenge", Command.CHALLENGE_HMAC_2, variable=True)
        data = frame.to_bytes()
        assert len(data) == FRAME_SIZE
        assert data[:64] == b"mychallenge" + bytes(53)
        assert data[64] == 0x38
        assert data[65:67] == b'\x51\x9e'
        assert data[67:] == b'\x00\x00\x00'

    def test_crc_over_zero_payload(self):
        frame = Frame(bytes(64), Command.DEVICE_SERIAL)
        assert frame.crc == 0x5B6B
        assert frame.to_bytes()[64:67] == b'\x10\x6b\x5b'

    def test_immutable(self):
        frame = Frame(bytes(64), Command.DEVICE_CONFIG)
        with pytest.raises(AttributeError):
            frame.payload = b'\x01' * 64

    def test_payload_must_be_64_bytes(self):
        with pytest.raises(ValueError):
            Frame(bytes(10), Command.DEVICE_CONFIG)

    def test_payload_is_copied(self):
        payload = bytearray(64)
        frame = Frame(payload, Command.DEVICE_CONFIG)
        payload[0] = 0xFF
        assert frame.payload == bytes(64)
        assert frame.crc == 0x5B6B

    def test_repr_hides_payload(self):
        frame = Frame.for_challenge(b"secret", Command.CHALLENGE_HMAC_1)
        assert "secret" not in repr(frame)
        assert "CHALLENGE_HMAC_1" in repr(frame)


# =========================================================================
# Packetizer
# =========================================================================

class TestFeatureReports:

    def test_mychallenge_skips_zero_chunks(self):
        frame = Frame.for_challenge(b"mychallenge", Command.CHALLENGE_HMAC_2, variable=True)
        assert _indices(frame) == [0, 1, 9]

    def test_zero_frame_keeps_first_and_last(self):
        frame = Frame(bytes(64), Command.DEVICE_SERIAL)
        assert _indices(frame) == [0, 9]

    def test_full_frame_sends_all(self):
        frame = Frame(b'\x01' * 64, Command.CONFIGURATION_1)
        assert _indices(frame) == list(range(10))

    def test_trailer_encodes_position(self):
        frame = Frame.for_challenge(b"mychallenge", Command.CHALLENGE_HMAC_2, variable=True)
        for index, report in frame.to_feature_reports():
            assert len(report) == FEATURE_RPT_SIZE
            assert report[7] == SLOT_WRITE_FLAG | index

    def test_last_report_content(self):
        frame = Frame(bytes(64), Command.DEVICE_SERIAL)
        reports = dict(frame.to_feature_reports())
        assert reports[9] == bytes([0x00, 0x10, 0x6B, 0x5B, 0x00, 0x00, 0x00, 0x89])
        assert reports[0] == bytes(7) + b'\x80'

    @pytest.mark.parametrize("challenge", [
        b"",
        b"x",
        b"mychallenge",
        b"\x00" * 20 + b"\x01",
        bytes(range(1, 65)),
    ])
    def test_reassembles_to_frame(self, challenge):
        frame = Frame.for_challenge(challenge, Command.CHALLENGE_HMAC_1, variable=True)
        indices = _indices(frame)
        assert indices[0] == 0 and indices[-1] == 9
        assert _reassemble(frame) == frame.to_bytes()
