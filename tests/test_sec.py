"""Tests for sec -- CRC-16, residual check, HMAC-SHA1 and AES block helpers."""

import pytest

from challenge_response.sec import (
    CRC_RESIDUAL_OK,
    aes128_decrypt_block,
    aes128_encrypt_block,
    crc16,
    crc16_trailer,
    hmac_sha1,
    validate_crc16,
)


class TestCrc16:
    """CRC-16 as computed by the token firmware."""

    def test_check_value(self):
        """Standard check input "123456789" without the final XOR."""
        assert crc16(b"123456789") == 0x6F91

    def test_empty_is_init(self):
        assert crc16(b"") == 0xFFFF

    def test_zero_payload(self):
        assert crc16(bytes(64)) == 0x5B6B

    def test_mychallenge_payload(self):
        assert crc16(b"mychallenge" + bytes(53)) == 0x9E51

    def test_accepts_bytearray(self):
        assert crc16(bytearray(b"123456789")) == crc16(b"123456789")


class TestResidual:
    """Data followed by its inverted crc checks out to the fixed residual."""

    @pytest.mark.parametrize("data", [
        b"",
        b"\x01",
        b"\x00\x00\x00\x00",
        b"mychallenge",
        bytes(range(20)),
    ])
    def test_trailer_gives_residual(self, data):
        assert crc16(data + crc16_trailer(data)) == CRC_RESIDUAL_OK
        assert validate_crc16(data + crc16_trailer(data))

    def test_trailer_is_inverted_little_endian(self):
        crc = crc16(b"mychallenge")
        trailer = crc16_trailer(b"mychallenge")
        assert trailer[0] == (~crc & 0xFF)
        assert trailer[1] == ((~crc >> 8) & 0xFF)

    def test_flipped_bit_fails(self):
        data = bytearray(b"\x12\x34\x56\x78" + crc16_trailer(b"\x12\x34\x56\x78"))
        data[1] ^= 0x10
        assert not validate_crc16(data)

    def test_wrong_trailer_fails(self):
        assert not validate_crc16(b"abcd\x00\x00")


class TestHmacSha1:

    def test_rfc2202_case_1(self):
        digest = hmac_sha1(b'\x0b' * 20, b"Hi There")
        assert digest.hex() == "b617318655057264e28bc0b6fb378c8ef146be00"

    def test_rfc2202_case_2(self):
        digest = hmac_sha1(b"Jefe", b"what do ya want for nothing?")
        assert digest.hex() == "effcdf6ae5eb2fa2d27416d5f184df9c259a7c79"


class TestAesBlock:

    KEY = bytes(range(16))
    PLAIN = bytes.fromhex("00112233445566778899aabbccddeeff")
    CIPHER = bytes.fromhex("69c4e0d86a7b0430d8cdb78070b4c55a")

    def test_fips197_encrypt(self):
        assert aes128_encrypt_block(self.KEY, self.PLAIN) == self.CIPHER

    def test_fips197_decrypt(self):
        assert aes128_decrypt_block(self.KEY, self.CIPHER) == self.PLAIN
