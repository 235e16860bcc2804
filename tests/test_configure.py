"""Tests for configure -- the 52-byte slot configuration record."""

import pytest

from challenge_response.config import Command
from challenge_response.configure import (
    CONFIG_SIZE,
    ConfigFlags,
    DeviceModeConfig,
    ExtendedFlags,
    TicketFlags,
)
from challenge_response.hmacmode import HmacKey
from challenge_response.otpmode import Aes128Key
from challenge_response.sec import validate_crc16

SECRET = bytes(range(0x10, 0x24))   # 20 bytes
AES = bytes(range(0x30, 0x40))      # 16 bytes


# =========================================================================
# Helpers
# =========================================================================

def _hmac_config(variable=True, button_press=False) -> DeviceModeConfig:
    config = DeviceModeConfig()
    config.challenge_response_hmac(HmacKey.from_slice(SECRET), variable, button_press)
    return config


def _otp_config(identity=b"\xa1\xa2\xa3\xa4\xa5\xa6", button_press=False) -> DeviceModeConfig:
    config = DeviceModeConfig()
    config.challenge_response_otp(Aes128Key.from_slice(AES), identity, button_press)
    return config


# =========================================================================
# HMAC-SHA1 configuration
# =========================================================================

class TestHmacConfiguration:

    def test_record_size_and_crc(self):
        record = _hmac_config().to_bytes()
        assert len(record) == CONFIG_SIZE
        assert validate_crc16(record)

    def test_key_split_across_key_and_uid(self):
        record = _hmac_config().to_bytes()
        assert record[22:38] == SECRET[:16]
        assert record[16:20] == SECRET[16:]
        assert record[20:22] == b'\x00\x00'

    def test_flags_variable(self):
        record = _hmac_config(variable=True).to_bytes()
        assert record[45] == ExtendedFlags.SERIAL_API_VISIBLE | ExtendedFlags.ALLOW_UPDATE
        assert record[46] == TicketFlags.CHAL_RESP
        assert record[47] == 0x22 | 0x04

    def test_flags_fixed_with_button(self):
        record = _hmac_config(variable=False, button_press=True).to_bytes()
        assert record[47] == 0x22 | 0x08

    def test_public_id_and_access_code_empty(self):
        record = _hmac_config().to_bytes()
        assert record[0:16] == bytes(16)
        assert record[38:44] == bytes(6)
        assert record[44] == 0


# =========================================================================
# Yubico-OTP configuration
# =========================================================================

class TestOtpConfiguration:

    def test_key_and_identity(self):
        record = _otp_config().to_bytes()
        assert record[22:38] == AES
        assert record[16:22] == b"\xa1\xa2\xa3\xa4\xa5\xa6"
        assert validate_crc16(record)

    def test_flags(self):
        record = _otp_config().to_bytes()
        assert record[45] == ExtendedFlags.SERIAL_API_VISIBLE
        assert record[46] == TicketFlags.CHAL_RESP
        assert record[47] == ConfigFlags.CHAL_YUBICO

    def test_button_press(self):
        record = _otp_config(button_press=True).to_bytes()
        assert record[47] == 0x20 | 0x08

    @pytest.mark.parametrize("identity", [b"", b"\x01" * 5, b"\x01" * 7])
    def test_identity_must_be_six_bytes(self, identity):
        with pytest.raises(ValueError):
            _otp_config(identity=identity)


# =========================================================================
# Frames, parsing, zeroize
# =========================================================================

class TestDeviceModeConfig:

    def test_to_frame(self):
        config = _hmac_config()
        frame = config.to_frame(Command.CONFIGURATION_2)
        assert frame.command == Command.CONFIGURATION_2
        assert frame.payload[:52] == config.to_bytes()
        assert frame.payload[52:] == bytes(12)

    def test_from_bytes(self):
        original = _otp_config()
        parsed = DeviceModeConfig.from_bytes(original.to_bytes())
        assert parsed.to_bytes() == original.to_bytes()
        assert parsed.cfg_flags == ConfigFlags.CHAL_YUBICO

    def test_empty_config(self):
        record = DeviceModeConfig().to_bytes()
        assert record[:50] == bytes(50)
        assert validate_crc16(record)

    def test_zeroize(self):
        config = _hmac_config()
        config.zeroize()
        assert config.key == bytearray(16)
        assert config.uid == bytearray(6)
        assert config.acc_code == bytearray(6)
        # flags survive
        assert config.tkt_flags == TicketFlags.CHAL_RESP

    def test_repr_hides_key(self):
        text = repr(_hmac_config())
        assert SECRET.hex() not in text
        assert "cfg_flags=0x26" in text
