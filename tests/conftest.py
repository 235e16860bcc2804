"""Shared fixtures: a simulated token on a simulated bus, and a client over it."""

import pytest

from challenge_response.client import ChallengeResponse
from challenge_response.hmacmode import HmacKey
from challenge_response.otpmode import Aes128Key
from challenge_response.testing import SimulatedToken, SimulatedTransport


@pytest.fixture
def token():
    return SimulatedToken(serial=1234567)


@pytest.fixture
def transport(token):
    return SimulatedTransport([token])


@pytest.fixture
def cr(transport):
    return ChallengeResponse(transport, poll_interval=0)


@pytest.fixture
def hmac_key():
    """RFC 2202 test case 1 key."""
    return HmacKey.from_slice(b'\x0b' * 20)


@pytest.fixture
def aes_key():
    """FIPS-197 appendix C.1 key."""
    return Aes128Key.from_slice(bytes(range(16)))
