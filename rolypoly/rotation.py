"""Credential rotation: bring a VPN up with a freshly combined secret.

The combined secret is the static password immediately followed by the
current TOTP pass code. Whatever the strategy, a successful connect leaves
the profile's password-flags at ALWAYS_PROMPT so NetworkManager can't
silently reconnect later with the (by then stale) pass code.

No step is rolled back on failure. If ``nmcli connection up`` fails in the
``modify`` strategy the profile keeps PER_USER_STORED and the injected
secret until the next successful rotation.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Type

from platformdirs import user_runtime_dir

from .config import Credential
from .nmcli import Nmcli, PasswordFlags
from .totp import PasscodeGenerator

APP_NAME = "roly-poly-vpn"

log = logging.getLogger(__name__)


def combine_secret(password: str, passcode: str) -> str:
    return f"{password}{passcode}"


class CredentialRotation:
    """Base class for connect-with-secret strategies."""

    name = ""

    def __init__(
            self,
            nmcli: Nmcli,
            generator: Optional[PasscodeGenerator] = None,
            logger: Optional[logging.Logger] = None,
    ):
        self._nmcli = nmcli
        self._log = logger or log
        self._generator = generator or PasscodeGenerator(logger=self._log)

    def connect(self, connection: str, credential: Credential) -> None:
        """Connect ``connection`` using ``credential``.

        Raises:
            GenerationError: If no pass code could be generated
            CommandError: If any nmcli call fails
        """
        self._log.info(f"Starting VPN connection. connection={connection} strategy={self.name}")
        self._activate(connection, credential)
        # Ask every time from now on, which keeps NM from reconnecting
        # on its own with an old pass code.
        self._nmcli.set_password_flags(connection, PasswordFlags.ALWAYS_PROMPT)
        self._log.info(f"VPN is connected. connection={connection}")

    def wait_time(self) -> float:
        """Seconds to wait before a connect can get an unused pass code."""
        return self._generator.wait_time()

    def _activate(self, connection: str, credential: Credential) -> None:
        raise NotImplementedError

    def _combined_secret(self, credential: Credential) -> str:
        passcode = self._generator.next(credential.otp_secret)
        self._log.info("Got a new pass code.")
        return combine_secret(credential.password, passcode)


class ModifyRotation(CredentialRotation):
    """Store the combined secret in the profile, then bring it up."""

    name = "modify"

    def _activate(self, connection: str, credential: Credential) -> None:
        # NM rejects the new secret unless it may be stored for this user
        self._nmcli.set_password_flags(connection, PasswordFlags.PER_USER_STORED)
        secret = self._combined_secret(credential)

        self._log.info(f"Updating VPN connection with a new password. connection={connection}")
        self._nmcli.set_secret(connection, secret)
        self._log.info(f"VPN connection is updated. connection={connection}")

        self._nmcli.up(connection)


class AskRotation(CredentialRotation):
    """Switch the profile to always-ask first, then store and connect.

    With password-flags=2 NetworkManager does not keep the secret written
    afterwards, so a non-interactive "connection up" may prompt or fail
    instead of using it. Only use this where a secret agent answers.
    """

    name = "ask"

    def _activate(self, connection: str, credential: Credential) -> None:
        self._nmcli.set_password_flags(connection, PasswordFlags.ALWAYS_PROMPT)
        secret = self._combined_secret(credential)
        self._nmcli.set_secret(connection, secret)
        self._nmcli.up(connection)


class PasswdFileRotation(CredentialRotation):
    """Hand the combined secret to nmcli through a one-shot password file.

    The secret never lands in the profile; the file is readable by the
    current user only and removed as soon as nmcli returns.
    """

    name = "passwd-file"

    def __init__(
            self,
            nmcli: Nmcli,
            generator: Optional[PasscodeGenerator] = None,
            logger: Optional[logging.Logger] = None,
            runtime_dir: Optional[Path] = None,
    ):
        super().__init__(nmcli, generator, logger)
        self._runtime_dir = runtime_dir

    def _get_runtime_dir(self) -> Path:
        runtime_dir = self._runtime_dir or Path(user_runtime_dir(APP_NAME))
        runtime_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        return runtime_dir

    def _activate(self, connection: str, credential: Credential) -> None:
        secret = self._combined_secret(credential)

        # mkstemp creates the file with mode 0600
        fd, path = tempfile.mkstemp(
            prefix="nmcli-", suffix=".passwd", dir=self._get_runtime_dir()
        )
        try:
            with os.fdopen(fd, "w") as f:
                f.write(f"vpn.secrets.password:{secret}\n")
            self._nmcli.up(connection, passwd_file=path)
        finally:
            os.unlink(path)


STRATEGIES: Dict[str, Type[CredentialRotation]] = {
    ModifyRotation.name: ModifyRotation,
    AskRotation.name: AskRotation,
    PasswdFileRotation.name: PasswdFileRotation,
}

DEFAULT_STRATEGY = ModifyRotation.name


def make_rotation(
        strategy: str,
        nmcli: Nmcli,
        generator: Optional[PasscodeGenerator] = None,
        logger: Optional[logging.Logger] = None,
) -> CredentialRotation:
    """Create the rotation strategy registered under ``strategy``.

    Raises:
        ValueError: If the strategy is unknown
    """
    try:
        cls = STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"Unknown connect strategy: {strategy}") from None
    return cls(nmcli, generator=generator, logger=logger)
