"""Command line entry point.

Usage:
    roly-poly-vpn --config OfficeVPN           (keep OfficeVPN connected)
    roly-poly-vpn --config OfficeVPN --debug   (log nmcli calls, secrets masked)
    roly-poly-vpn --no-secrets                 (plain "nmcli connection up")
    roly-poly-vpn --strategy passwd-file       (pass the secret via a file)
    roly-poly-vpn --version
"""

import argparse
import logging
import sys
import threading
from typing import List, Optional

from . import __version__
from .config import CONFIG_KEY, load_credential, manage_parameter
from .errors import RolyPolyError
from .loop import DEFAULT_INTERVAL, ReconciliationLoop
from .nmcli import ConnectionObserver, Nmcli
from .rotation import DEFAULT_STRATEGY, STRATEGIES, make_rotation
from .shutdown import ShutdownCoordinator

APP_NAME = "roly-poly-vpn"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s: %(message)s"

log = logging.getLogger(APP_NAME)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Keep a 2FA NetworkManager VPN connection up (password + TOTP)",
    )
    parser.add_argument("--debug", action="store_true", help="Log debug messages")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument(
        "--config",
        help="VPN connection name (use 'nmcli connection' to find out)",
    )
    parser.add_argument(
        "--no-secrets", "--noSecrets",
        dest="no_secrets",
        action="store_true",
        help="Don't use VPN password and OTP secret",
    )
    parser.add_argument("--password", help="VPN user password")
    parser.add_argument("--otp-secret", "--otpSecret", dest="otp_secret", help="VPN OTP secret")
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGIES),
        default=DEFAULT_STRATEGY,
        help=f"How the combined secret is handed to NetworkManager (default: {DEFAULT_STRATEGY})",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL,
        help=f"Seconds between connection checks (default: {DEFAULT_INTERVAL})",
    )
    return parser


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    if args.interval <= 0:
        print(f"{APP_NAME}: --interval must be positive", file=sys.stderr)
        return 2

    setup_logging(args.debug)
    log.info(f"Let's have some fun with 2FA VPN via NM! version={__version__}")

    try:
        log.info("Hint: Use 'nmcli connection' to find out your config names.")
        connection = manage_parameter(CONFIG_KEY, args.config, logger=log)

        credential = None
        rotation = None
        nmcli = Nmcli(logger=log.getChild("nmcli"))
        if not args.no_secrets:
            credential = load_credential(args.password, args.otp_secret, logger=log)
            rotation = make_rotation(args.strategy, nmcli, logger=log.getChild("rotation"))

        observer = ConnectionObserver(nmcli, logger=log.getChild("nmcli"))
        lock = threading.Lock()
        stop_event = threading.Event()

        coordinator = ShutdownCoordinator(
            connection, observer, nmcli,
            lock=lock,
            stop_event=stop_event,
            logger=log.getChild("shutdown"),
        )
        coordinator.install()
        coordinator.start()

        loop = ReconciliationLoop(
            connection, observer, nmcli,
            rotation=rotation,
            credential=credential,
            lock=lock,
            stop_event=stop_event,
            interval=args.interval,
            logger=log.getChild("loop"),
        )
        loop.run()
    except RolyPolyError as e:
        log.critical(f"Fatal error, aborting: {e}")
        return 1

    coordinator.join()
    if coordinator.error:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
