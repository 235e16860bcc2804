"""challenge-response version information."""

__version__ = "0.1.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - HMAC-SHA1 and Yubico-OTP challenge-response, slot configuration,
#         pyusb and hidapi backends, config file and CLI
