"""User settings and config persistence for challenge-response.

Config is stored at ~/.config/challenge-response/config.json (XDG-compliant).

Usage:
    from challenge_response.conf import Settings

    settings = Settings()
    settings.backend          # "pyusb" or "hidapi"
    settings.poll_interval    # seconds between status reads
    settings.wait_timeout     # None = wait on the device indefinitely

    # Low-level config access
    from challenge_response.conf import load_config, save_config

The library core never reads this file on its own; the CLI and the
``create_transport()`` default do.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Optional

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'challenge-response')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')

BACKEND_ENV = 'CHALLENGE_RESPONSE_BACKEND'

DEFAULT_BACKEND = 'pyusb'
DEFAULT_POLL_INTERVAL_MS = 1


# =========================================================================
# Low-level config persistence
# =========================================================================

def load_config() -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(CONFIG_PATH, 'r') as f:
            config = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    if not isinstance(config, dict):
        log.warning("Ignoring malformed config at %s", CONFIG_PATH)
        return {}
    return config


def save_config(config: dict):
    """Save user config to disk."""
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(CONFIG_PATH, 'w') as f:
        json.dump(config, f, indent=2)


# =========================================================================
# Transport backend
# =========================================================================

def get_backend() -> str:
    """Backend name: $CHALLENGE_RESPONSE_BACKEND, then config, then "pyusb"."""
    env = os.environ.get(BACKEND_ENV)
    if env:
        return env.strip().lower()
    backend = load_config().get('backend', DEFAULT_BACKEND)
    if not isinstance(backend, str):
        return DEFAULT_BACKEND
    return backend.lower()


def save_backend(backend: str):
    """Persist the transport backend name."""
    config = load_config()
    config['backend'] = backend
    save_config(config)


# =========================================================================
# Status polling
# =========================================================================

def get_poll_interval() -> float:
    """Sleep between status reads in seconds. Defaults to 1 ms."""
    value = load_config().get('poll_interval_ms', DEFAULT_POLL_INTERVAL_MS)
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return DEFAULT_POLL_INTERVAL_MS / 1000.0
    return max(ms, 0.0) / 1000.0


def get_wait_timeout() -> Optional[float]:
    """Upper bound for one status wait in seconds, or None (unbounded)."""
    value = load_config().get('wait_timeout_s')
    if value is None:
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        return None
    return timeout if timeout > 0 else None


# =========================================================================
# Settings snapshot
# =========================================================================

class Settings:
    """Snapshot of the persisted settings, resolved once at construction."""

    def __init__(self) -> None:
        self.backend: str = get_backend()
        self.poll_interval: float = get_poll_interval()
        self.wait_timeout: Optional[float] = get_wait_timeout()

    def __repr__(self) -> str:
        return (
            f"Settings(backend={self.backend!r}, poll_interval={self.poll_interval}, "
            f"wait_timeout={self.wait_timeout})"
        )
