"""Shared wire-protocol constants for challenge-response tokens.

Values from the token firmware's HID interface (ykdef.h / ykcore_backend.h).
All transfers are 8-byte HID feature reports over class control requests.
"""

# =========================================================================
# Frame / report sizes
# =========================================================================

PAYLOAD_SIZE = 64          # request payload (challenge or slot config)
FRAME_SIZE = 70            # payload + command + crc(2) + filler(3)
FRAME_FILLER_SIZE = 3
FEATURE_RPT_SIZE = 8       # one HID feature report on the wire
FEATURE_RPT_DATA_SIZE = 7  # usable bytes per report, byte 7 is the trailer
FRAME_PACKET_COUNT = FRAME_SIZE // FEATURE_RPT_DATA_SIZE  # 10
RESPONSE_SIZE = 36         # initial response buffer (grows if needed)

# Checksum windows (data + 2 crc bytes)
SERIAL_RESPONSE_CRC_SIZE = 6
STATUS_RESPONSE_SIZE = 6
HMAC_RESPONSE_CRC_SIZE = 22
OTP_RESPONSE_CRC_SIZE = 18

HMAC_RESPONSE_SIZE = 20
OTP_RESPONSE_SIZE = 16
HMAC_SECRET_SIZE = 20
AES_KEY_SIZE = 16
OTP_CHALLENGE_SIZE = 6     # Yubico-OTP mode only consumes the first 6 bytes

# =========================================================================
# HID class requests
# =========================================================================

HID_GET_REPORT = 0x01
HID_SET_REPORT = 0x09
REPORT_TYPE_FEATURE = 0x03
FEATURE_REPORT_VALUE = REPORT_TYPE_FEATURE << 8
HID_INTERFACE_INDEX = 0

# Control transfer timeout enforced by the transport
USB_TIMEOUT_MS = 2000

# =========================================================================
# Status / trailer byte
# =========================================================================

SLOT_WRITE_FLAG = 0x80     # outbound: write marker; inbound: device busy
RESP_PENDING_FLAG = 0x40   # inbound: response data is streaming out
SEQUENCE_MASK = 0x1F       # 5-bit report sequence counter

# Dummy write that ends a response read
WRITE_RESET_PAYLOAD = bytes([0, 0, 0, 0, 0, 0, 0, 0x8F])

# Status poller back-off between reads (seconds)
POLL_INTERVAL_S = 0.001

# Programming sequence / touch level bits (status record)
CONFIG1_VALID = 0x01
CONFIG2_VALID = 0x02

# =========================================================================
# Device allow-list (Yubico, OpenMoko/OnlyKey, Clay Logic/NitroKey)
# =========================================================================

VENDOR_IDS: frozenset[int] = frozenset({0x1050, 0x1D50, 0x20A0})

PRODUCT_IDS: frozenset[int] = frozenset({
    0x0010,  # YubiKey Gen 1 & 2
    0x0110,  # YubiKey NEO OTP
    0x0113,  # YubiKey NEO OTP+U2F
    0x0114,  # YubiKey NEO OTP+CCID
    0x0116,  # YubiKey NEO OTP+U2F+CCID
    0x0401,  # YubiKey 4/5 OTP
    0x0403,  # YubiKey 4/5 OTP+FIDO
    0x0405,  # YubiKey 4/5 OTP+CCID
    0x0407,  # YubiKey 4/5 OTP+FIDO+CCID
    0x60FC,  # OnlyKey
    0x4211,  # NitroKey
})


def is_supported(vendor_id: int, product_id: int) -> bool:
    """Whether a VID/PID pair is on the token allow-list."""
    return vendor_id in VENDOR_IDS and product_id in PRODUCT_IDS
