"""NetworkManager access via the nmcli command line tool.

All commands are run as argument lists, never through a shell, so
connection names and secrets are passed to nmcli verbatim.
"""

import enum
import logging
import subprocess
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .errors import CommandError

log = logging.getLogger(__name__)

NMCLI = "nmcli"
# "nmcli connection up" itself waits up to 90s for activation
DEFAULT_TIMEOUT = 120

STATE_ACTIVATED = "activated"
PHYSICAL_SUFFIXES = ("ethernet", "wireless")

MASK = "*****"


class PasswordFlags(enum.IntEnum):
    """VPN password-flags values of a NetworkManager profile."""
    PER_USER_STORED = 1
    ALWAYS_PROMPT = 2


@dataclass(frozen=True)
class ConnectionRecord:
    name: str
    link_type: str
    state: str

    @property
    def is_physical(self) -> bool:
        return is_physical(self.link_type)


def is_physical(link_type: str) -> bool:
    """True if the link type is backed by a wired or wireless adapter."""
    return link_type.endswith(PHYSICAL_SUFFIXES)


def split_terse(line: str) -> List[str]:
    """Split a line of ``nmcli -t`` output into fields.

    Terse mode escapes ':' and '\\' inside values with a backslash.
    """
    fields = []
    current = []
    escaped = False
    for char in line:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == ":":
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def parse_connections(output: str) -> List[ConnectionRecord]:
    """Parse ``NAME:TYPE:STATE`` rows, skipping malformed lines."""
    records = []
    for line in output.splitlines():
        if not line.strip():
            continue
        fields = split_terse(line)
        if len(fields) != 3 or not fields[0]:
            log.debug(f"Skipping malformed nmcli line: {line!r}")
            continue
        records.append(ConnectionRecord(*fields))
    return records


def _mask(args: Sequence[str], hide: Iterable[str]) -> List[str]:
    masked = list(args)
    for secret in hide:
        if not secret:
            continue
        masked = [arg.replace(secret, MASK) for arg in masked]
    return masked


class Nmcli:
    """Thin typed wrapper around the nmcli connection commands."""

    def __init__(
            self,
            binary: str = NMCLI,
            timeout: Optional[float] = DEFAULT_TIMEOUT,
            logger: Optional[logging.Logger] = None,
    ):
        self._binary = binary
        self._timeout = timeout
        self._log = logger or log

    def run(self, args: Sequence[str], hide: Iterable[str] = ()) -> str:
        """Run nmcli with ``args`` and return its standard output.

        Args:
            args: Arguments following the nmcli binary
            hide: Secret values to mask in logs and errors

        Raises:
            CommandError: If nmcli is missing, times out or exits non-zero
        """
        hide = list(hide)
        cmd = [self._binary] + list(args)
        shown = _mask(cmd, hide)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout,
                # Ctrl-C in the terminal is for us, not for nmcli
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise CommandError(f"{self._binary} not found", shown) from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(f"Command timed out after {self._timeout}s", shown) from e

        output = _mask([result.stdout], hide)[0]
        self._log.debug(f"Command output. command={' '.join(shown)!r} output={output!r}")

        if result.returncode != 0:
            raise CommandError(
                "Command failed",
                shown,
                returncode=result.returncode,
                stderr=_mask([result.stderr or ""], hide)[0],
            )
        return result.stdout

    def show_active(self) -> str:
        return self.run(["-t", "-f", "NAME,TYPE,STATE", "connection", "show", "--active"])

    def up(self, name: str, passwd_file: Optional[str] = None) -> None:
        args = ["connection", "up", "id", name]
        if passwd_file:
            args += ["passwd-file", passwd_file]
        self.run(args)

    def down(self, name: str) -> None:
        self.run(["connection", "down", "id", name])

    def set_secret(self, name: str, secret: str) -> None:
        """Store ``secret`` as the profile's vpn.secrets password."""
        self.run(
            ["connection", "modify", "id", name, "vpn.secrets", f"password={secret}"],
            hide=[secret],
        )

    def set_password_flags(self, name: str, flags: PasswordFlags) -> None:
        self.run(
            ["connection", "modify", "id", name, "+vpn.data", f"password-flags={int(flags)}"]
        )


class ConnectionObserver:
    """Answers questions about currently active connections.

    Every call queries NetworkManager again; results are never cached.
    """

    def __init__(self, nmcli: Nmcli, logger: Optional[logging.Logger] = None):
        self._nmcli = nmcli
        self._log = logger or log

    def list_active(self, physical_only: bool = False) -> List[str]:
        """Names of activated connections, in nmcli's order.

        Args:
            physical_only: Only keep wired and wireless links

        Returns:
            List of connection names
        """
        records = parse_connections(self._nmcli.show_active())
        self._log.debug(f"All activated/activating connections found: {records}")

        names = []
        for record in records:
            if record.state != STATE_ACTIVATED:
                continue
            if physical_only and not record.is_physical:
                continue
            names.append(record.name)

        self._log.debug(f"Filtered active connections found: {names} (physical={physical_only})")
        return names

    def is_active(self, name: str) -> bool:
        return name in self.list_active(physical_only=False)
