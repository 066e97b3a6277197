"""Parameter management via system keyring.

A parameter given on the command line wins and is saved to the keyring.
Without one the keyring is consulted, and as a last resort the user is
asked on the terminal; the answer is saved for next time.
"""

import getpass
import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

import keyring
from keyring.errors import KeyringError

from .errors import ParameterError
from .totp import validate_secret

KEYRING_SERVICE = "roly-poly-vpn"

CONFIG_KEY = "config"
PASSWORD_KEY = "password"
OTP_SECRET_KEY = "otpSecret"

log = logging.getLogger(__name__)

Prompt = Callable[[str, bool], str]


@dataclass(frozen=True)
class Credential:
    """Static VPN password and TOTP secret, held in memory only."""
    password: str = field(repr=False)
    otp_secret: str = field(repr=False)


def get_parameter(name: str) -> Optional[str]:
    """Read a parameter from the keyring, None if missing or unreadable."""
    try:
        return keyring.get_password(KEYRING_SERVICE, name)
    except KeyringError as e:
        log.debug(f"Keyring read failed for '{name}': {e}")
        return None


def save_parameter(name: str, value: str) -> None:
    """Save a parameter to the keyring.

    Raises:
        ParameterError: If the keyring refuses the write
    """
    try:
        keyring.set_password(KEYRING_SERVICE, name, value)
    except KeyringError as e:
        raise ParameterError(f"Can't save '{name}' to keyring: {e}") from e


def terminal_prompt(name: str, hide: bool) -> str:
    """Ask for a parameter value on the terminal."""
    if not sys.stdin or not sys.stdin.isatty():
        raise ParameterError(f"No value for '{name}' and no terminal to ask for one")

    label = f"New '{name}' value: "
    try:
        if hide:
            return getpass.getpass(label)
        return input(label)
    except EOFError as e:
        raise ParameterError(f"Reading '{name}' value from terminal failed") from e


def manage_parameter(
        name: str,
        value: Optional[str] = None,
        hide: bool = False,
        prompt: Prompt = terminal_prompt,
        validate: Optional[Callable[[str], bool]] = None,
        logger: Optional[logging.Logger] = None,
) -> str:
    """Resolve a parameter from flag, keyring or terminal.

    Args:
        name: Keyring key
        value: Value passed on the command line, if any
        hide: Don't echo the value when prompting
        prompt: Callable asking the user, (name, hide) -> value
        validate: Optional check applied before the value is saved
        logger: Logger to report progress to

    Returns:
        The parameter value

    Raises:
        ParameterError: If no usable value can be obtained or saved
    """
    logger = logger or log

    if not value:
        stored = get_parameter(name)
        if stored:
            logger.info(f"Got parameter value from keyring. parameter={name}")
            return stored
        value = prompt(name, hide)

    if not value:
        raise ParameterError(f"Empty value for '{name}'")
    if validate and not validate(value):
        raise ParameterError(f"Invalid value for '{name}'")

    save_parameter(name, value)
    logger.info(f"Parameter's value saved to keyring. parameter={name}")
    return value


def load_credential(
        password: Optional[str] = None,
        otp_secret: Optional[str] = None,
        prompt: Prompt = terminal_prompt,
        logger: Optional[logging.Logger] = None,
) -> Credential:
    """Resolve the VPN password and TOTP secret."""
    return Credential(
        password=manage_parameter(
            PASSWORD_KEY, password, hide=True, prompt=prompt, logger=logger,
        ),
        otp_secret=manage_parameter(
            OTP_SECRET_KEY, otp_secret, hide=True, prompt=prompt,
            validate=validate_secret, logger=logger,
        ),
    )
