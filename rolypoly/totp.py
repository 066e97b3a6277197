"""TOTP pass code generation."""

import binascii
import datetime
import logging
import time
from typing import Callable, Optional, Union

import pyotp

from .errors import GenerationError

DIGITS = 6
PERIOD = 30
# Accepted clock skew, in time steps, on either side of the current one
SKEW = 1

TimeLike = Union[int, float, datetime.datetime]

log = logging.getLogger(__name__)


def _normalize(secret: str) -> str:
    return secret.strip().replace(" ", "").upper()


def _totp(secret: str) -> pyotp.TOTP:
    if not secret or not _normalize(secret):
        raise GenerationError("TOTP secret is empty")
    secret = _normalize(secret)
    try:
        totp = pyotp.TOTP(secret, digits=DIGITS, interval=PERIOD)
        # pyotp decodes lazily, force it so malformed secrets fail here
        totp.byte_secret()
    except (binascii.Error, ValueError, TypeError) as e:
        raise GenerationError(f"TOTP secret is not valid base32: {e}") from e
    return totp


def generate_passcode(secret: str, for_time: Optional[TimeLike] = None) -> str:
    """Generate the pass code for the time step containing ``for_time``.

    Args:
        secret: Base32-encoded TOTP secret
        for_time: Unix timestamp or datetime, defaults to now

    Returns:
        6-digit pass code

    Raises:
        GenerationError: If the secret is empty or invalid
    """
    totp = _totp(secret)
    try:
        if for_time is None:
            return totp.now()
        return totp.at(for_time)
    except (binascii.Error, ValueError, TypeError) as e:
        raise GenerationError(f"TOTP pass code generation failed: {e}") from e


def verify_passcode(
        secret: str,
        code: str,
        for_time: Optional[TimeLike] = None,
) -> bool:
    """Check ``code`` against the current step and its direct neighbours."""
    totp = _totp(secret)
    if for_time is None:
        for_time = datetime.datetime.now()
    return totp.verify(code, for_time=for_time, valid_window=SKEW)


def validate_secret(secret: str) -> bool:
    """Check if a TOTP secret is usable.

    Args:
        secret: Base32-encoded TOTP secret

    Returns:
        True if valid
    """
    try:
        generate_passcode(secret)
        return True
    except GenerationError:
        return False


class PasscodeGenerator:
    """Hands out pass codes, never for the same time step twice.

    A second connect attempt inside one 30s window would otherwise send
    the same code again. Instead of jumping ahead to the next step's code,
    which would eat into the skew tolerance meant for clock drift, the
    attempt waits until the next window starts. Callers holding a lock
    should do that wait themselves beforehand, see ``wait_time``.
    """

    def __init__(
            self,
            clock: Callable[[], float] = time.time,
            sleep: Callable[[float], None] = time.sleep,
            logger: Optional[logging.Logger] = None,
    ):
        self._clock = clock
        self._sleep = sleep
        self._log = logger or log
        self._last_step: Optional[int] = None

    def wait_time(self) -> float:
        """Seconds until a not yet used time step begins, 0 if it already has."""
        if self._last_step is None:
            return 0
        now = self._clock()
        if int(now // PERIOD) > self._last_step:
            return 0
        return (self._last_step + 1) * PERIOD - now

    def next(self, secret: str) -> str:
        """Generate a fresh pass code for ``secret``.

        Raises:
            GenerationError: If the secret is empty or invalid
        """
        wait = self.wait_time()
        if wait > 0:
            self._log.info(f"Pass code of this time step already used, waiting {wait:.0f}s.")
            self._sleep(wait)

        now = self._clock()
        code = generate_passcode(secret, now)
        self._last_step = int(now // PERIOD)
        return code
