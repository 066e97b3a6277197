"""Shared fixtures: an in-memory NetworkManager and keyring."""

from typing import Callable, List, Optional

import pytest

from rolypoly.errors import CommandError
from rolypoly.nmcli import Nmcli, PasswordFlags

OTP_SECRET = "JBSWY3DPEHPK3PXP"


class FakeClock:
    """Clock whose sleep just moves time forward."""

    def __init__(self, now):
        self.now = now
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeNmcli(Nmcli):
    """Records nmcli argument lists instead of running them.

    ``up`` marks the connection activated and ``down`` removes it, so the
    next listing reflects what happened, like NetworkManager would.
    """

    def __init__(self, rows: Optional[List[str]] = None, password_flags: int = PasswordFlags.ALWAYS_PROMPT):
        super().__init__()
        self.rows = list(rows or [])
        self.calls: List[List[str]] = []
        self.password_flags = password_flags
        self.secret: Optional[str] = None
        self.passwd_files: List[str] = []
        self.fail_on: Optional[Callable[[List[str]], bool]] = None

    def run(self, args, hide=()):
        args = list(args)
        if args[:2] == ["-t", "-f"]:
            return "\n".join(self.rows) + "\n" if self.rows else ""

        self.calls.append(args)
        if self.fail_on and self.fail_on(args):
            raise CommandError("Command failed", ["nmcli"] + args, returncode=4)

        if args[:2] == ["connection", "modify"]:
            setting, value = args[4], args[5]
            if setting == "+vpn.data":
                self.password_flags = int(value.split("=", 1)[1])
            elif setting == "vpn.secrets":
                self.secret = value.split("=", 1)[1]
        elif args[:2] == ["connection", "up"]:
            name = args[3]
            if "passwd-file" in args:
                with open(args[args.index("passwd-file") + 1]) as f:
                    self.passwd_files.append(f.read())
            self.rows.append(f"{name}:vpn:activated")
        elif args[:2] == ["connection", "down"]:
            name = args[3]
            self.rows = [row for row in self.rows if not row.startswith(f"{name}:")]
        return ""

    @property
    def mutations(self) -> List[List[str]]:
        return [call for call in self.calls if call[1] in ("up", "modify")]

    def count(self, verb: str) -> int:
        return sum(1 for call in self.calls if call[1] == verb)


@pytest.fixture
def fake_nmcli():
    return FakeNmcli()


@pytest.fixture
def fake_keyring(monkeypatch):
    """Replace the system keyring with a dict."""
    store = {}

    def get_password(service, key):
        return store.get((service, key))

    def set_password(service, key, value):
        store[(service, key)] = value

    monkeypatch.setattr("rolypoly.config.keyring.get_password", get_password)
    monkeypatch.setattr("rolypoly.config.keyring.set_password", set_password)
    return store
