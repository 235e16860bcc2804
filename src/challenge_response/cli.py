#!/usr/bin/env python3
"""
challenge-response - Command Line Interface

Entry point for the challenge-response package.
"""

import argparse
import binascii
import logging
import sys

from challenge_response.__version__ import __version__
from challenge_response.client import ChallengeResponse
from challenge_response.conf import Settings, get_backend, save_backend
from challenge_response.config import Command, Config, Mode, Slot
from challenge_response.configure import DeviceModeConfig
from challenge_response.errors import ChallengeResponseError
from challenge_response.hmacmode import HmacKey
from challenge_response.otpmode import Aes128Key
from challenge_response.transport import BACKENDS, create_transport

log = logging.getLogger(__name__)


def _setup_logging(verbose=0):
    if verbose >= 2:
        logging.basicConfig(level=logging.DEBUG, format='[%(levelname)s] %(name)s: %(message)s')
    elif verbose == 1:
        logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING)


def _parse_hex(value, name):
    try:
        return binascii.unhexlify(value.strip())
    except (binascii.Error, ValueError):
        raise ValueError(f"{name} is not valid hex: {value!r}")


def _challenge_bytes(args):
    if args.hex:
        return _parse_hex(args.challenge, "Challenge")
    return args.challenge.encode('utf-8')


def _add_slot_argument(parser):
    parser.add_argument(
        "--slot", "-s",
        type=int, choices=[1, 2], default=2,
        help="Token slot (default: 2)"
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="challenge-response",
        description="HMAC-SHA1 and OTP challenge-response with USB security tokens",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    challenge-response list                   List attached tokens
    challenge-response serial                 Print the token serial number
    challenge-response status                 Show firmware version and slots
    challenge-response hmac mychallenge       HMAC-SHA1 response from slot 2
    challenge-response otp -s 1 --hex 0a0b0c  OTP response from slot 1
    challenge-response configure-hmac -s 2    Program slot 2 with a new secret
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)"
    )
    parser.add_argument(
        "--backend", "-b",
        choices=BACKENDS,
        help="USB backend (default: config file or pyusb)"
    )
    parser.add_argument(
        "--device-serial", "-d",
        type=int,
        help="Use the token with this serial number"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List attached tokens")
    subparsers.add_parser("serial", help="Print the token serial number")
    subparsers.add_parser("status", help="Show firmware version and configured slots")

    backend_parser = subparsers.add_parser("backend", help="Show or save the default USB backend")
    backend_parser.add_argument("name", nargs="?", choices=BACKENDS, help="Backend to save")

    # Challenge-response
    hmac_parser = subparsers.add_parser("hmac", help="HMAC-SHA1 challenge-response")
    hmac_parser.add_argument("challenge", help="Challenge (text, or hex with --hex)")
    hmac_parser.add_argument("--hex", action="store_true", help="Challenge is hex encoded")
    hmac_parser.add_argument(
        "--fixed", action="store_true",
        help="Fixed 64-byte challenges (slot programmed without variable length)"
    )
    _add_slot_argument(hmac_parser)

    otp_parser = subparsers.add_parser("otp", help="Yubico-OTP challenge-response")
    otp_parser.add_argument("challenge", help="Challenge (text, or hex with --hex)")
    otp_parser.add_argument("--hex", action="store_true", help="Challenge is hex encoded")
    _add_slot_argument(otp_parser)

    # Configuration
    cfg_hmac_parser = subparsers.add_parser(
        "configure-hmac", help="Program a slot for HMAC-SHA1 challenge-response")
    cfg_hmac_parser.add_argument(
        "--secret", help="20-byte secret as hex (default: generate and print one)")
    cfg_hmac_parser.add_argument(
        "--fixed", action="store_true", help="Disable variable length challenges")
    cfg_hmac_parser.add_argument(
        "--button", action="store_true", help="Require a button press per challenge")
    cfg_hmac_parser.add_argument(
        "--verify", action="store_true", help="Check the programming sequence advanced")
    _add_slot_argument(cfg_hmac_parser)

    cfg_otp_parser = subparsers.add_parser(
        "configure-otp", help="Program a slot for Yubico-OTP challenge-response")
    cfg_otp_parser.add_argument(
        "--key", help="16-byte AES key as hex (default: generate and print one)")
    cfg_otp_parser.add_argument(
        "--private-id", default="000000000000", help="6-byte private identity as hex")
    cfg_otp_parser.add_argument(
        "--button", action="store_true", help="Require a button press per challenge")
    cfg_otp_parser.add_argument(
        "--verify", action="store_true", help="Check the programming sequence advanced")
    _add_slot_argument(cfg_otp_parser)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(args.verbose)

    try:
        if args.command == "backend":
            return set_backend(args.name)
        cr = _client(args.backend)
        if args.command == "list":
            return list_devices(cr)
        device = _select_device(cr, args.device_serial)
        if args.command == "serial":
            return show_serial(cr, device)
        elif args.command == "status":
            return show_status(cr, device)
        elif args.command == "hmac":
            return hmac_challenge(cr, device, _challenge_bytes(args), args.slot,
                                  variable=not args.fixed)
        elif args.command == "otp":
            return otp_challenge(cr, device, _challenge_bytes(args), args.slot)
        elif args.command == "configure-hmac":
            return configure_hmac(cr, device, args.slot, secret=args.secret,
                                  variable=not args.fixed, button=args.button,
                                  verify=args.verify)
        elif args.command == "configure-otp":
            return configure_otp(cr, device, args.slot, key=args.key,
                                 private_id=args.private_id, button=args.button,
                                 verify=args.verify)
    except (ChallengeResponseError, ValueError, ImportError) as e:
        log.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def _client(backend=None):
    settings = Settings()
    transport = create_transport(backend or settings.backend)
    return ChallengeResponse(
        transport,
        poll_interval=settings.poll_interval,
        wait_timeout=settings.wait_timeout,
    )


def set_backend(name=None):
    """Print the configured backend, or save *name* as the new default."""
    if name is None:
        print(get_backend())
        return 0
    save_backend(name)
    print(f"Backend set to {name}")
    return 0


def _select_device(cr, serial=None):
    if serial is not None:
        return cr.find_device_from_serial(serial)
    return cr.find_device()


def list_devices(cr):
    """List attached tokens."""
    for i, device in enumerate(cr.find_all_devices(), 1):
        print(f"[{i}] {device}")
    return 0


def show_serial(cr, device):
    """Print the token serial number."""
    print(cr.read_serial_number(Config.new_from(device)))
    return 0


def show_status(cr, device):
    """Show firmware version and configured slots."""
    status = cr.read_status(Config.new_from(device))
    print(f"Device:   {device}")
    print(f"Firmware: {status.version}")
    print(f"Sequence: {status.pgm_seq}")
    for slot in Slot:
        state = "configured" if status.is_slot_configured(slot) else "empty"
        print(f"Slot {slot.value}:   {state}")
    return 0


def hmac_challenge(cr, device, challenge, slot_number, variable=True):
    """Print the HMAC-SHA1 response for a challenge."""
    conf = (Config.new_from(device)
            .set_slot(Slot.from_int(slot_number))
            .set_variable_size(variable))
    with cr.challenge_response_hmac(challenge, conf) as result:
        print(result.hex())
    return 0


def otp_challenge(cr, device, challenge, slot_number):
    """Print the Yubico-OTP response block for a challenge."""
    conf = (Config.new_from(device)
            .set_slot(Slot.from_int(slot_number))
            .set_mode(Mode.OTP))
    with cr.challenge_response_otp(challenge, conf) as result:
        print(result.hex())
    return 0


def configure_hmac(cr, device, slot_number, secret=None, variable=True,
                   button=False, verify=False):
    """Program a slot for HMAC-SHA1 challenge-response."""
    slot = Slot.from_int(slot_number)
    if secret is None:
        key = HmacKey.generate()
        print(f"Secret: {key.hex()}")
    else:
        key = HmacKey.from_slice(_parse_hex(secret, "Secret"))

    device_config = DeviceModeConfig()
    with key:
        device_config.challenge_response_hmac(key, variable, button)
    conf = Config.new_from(device).set_command(Command.configuration_for(slot))
    try:
        cr.write_config(conf, device_config, verify=verify)
    finally:
        device_config.zeroize()
    print(f"Slot {slot.value} configured for HMAC-SHA1")
    return 0


def configure_otp(cr, device, slot_number, key=None, private_id="000000000000",
                  button=False, verify=False):
    """Program a slot for Yubico-OTP challenge-response."""
    slot = Slot.from_int(slot_number)
    if key is None:
        aes_key = Aes128Key.generate()
        print(f"Key: {aes_key.hex()}")
    else:
        aes_key = Aes128Key.from_slice(_parse_hex(key, "Key"))

    device_config = DeviceModeConfig()
    with aes_key:
        device_config.challenge_response_otp(aes_key, _parse_hex(private_id, "Private id"), button)
    conf = Config.new_from(device).set_mode(Mode.OTP).set_command(Command.configuration_for(slot))
    try:
        cr.write_config(conf, device_config, verify=verify)
    finally:
        device_config.zeroize()
    print(f"Slot {slot.value} configured for Yubico-OTP")
    return 0


if __name__ == "__main__":
    sys.exit(main())
