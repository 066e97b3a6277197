"""Tests for the command line entry point."""

import signal

import pytest

from conftest import OTP_SECRET, FakeNmcli
from rolypoly import __version__, cli
from rolypoly.shutdown import ShutdownCoordinator

WIFI = "Home-WiFi:802-11-wireless:activated"
ARGS = ["--config", "OfficeVPN", "--password", "Secr3t", "--otp-secret", OTP_SECRET, "--interval", "0.01"]


@pytest.fixture
def fake_nmcli(monkeypatch):
    nmcli = FakeNmcli()
    monkeypatch.setattr(cli, "Nmcli", lambda logger=None: nmcli)
    monkeypatch.setattr(cli, "setup_logging", lambda debug=False: None)
    return nmcli


@pytest.fixture
def sigterm_on_start(monkeypatch):
    """Deliver SIGTERM as soon as the handlers would be installed."""
    def install(self, signals=()):
        self.notify(signal.SIGTERM)

    monkeypatch.setattr(ShutdownCoordinator, "install", install)


class TestParser:
    """Tests for argument parsing."""

    def test_defaults(self):
        """Test the default option values."""
        args = cli.build_parser().parse_args([])
        assert args.config is None
        assert not args.no_secrets
        assert args.strategy == "modify"
        assert args.interval == 5

    def test_camel_case_aliases(self):
        """Test that the camelCase flag names still work."""
        args = cli.build_parser().parse_args(["--noSecrets", "--otpSecret", OTP_SECRET])
        assert args.no_secrets
        assert args.otp_secret == OTP_SECRET

    def test_unknown_strategy(self):
        """Test that an unknown strategy is a usage error."""
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--strategy", "telepathy"])


class TestMain:
    """Tests for main()."""

    def test_version(self, capsys):
        """Test that --version prints the version and exits 0."""
        assert cli.main(["--version"]) == 0
        assert capsys.readouterr().out.strip() == __version__

    def test_bad_interval(self):
        """Test that a non-positive interval is a usage error."""
        assert cli.main(["--interval", "0"]) == 2

    def test_shutdown_while_active(self, fake_keyring, fake_nmcli, sigterm_on_start):
        """Test that SIGTERM with the VPN up disconnects once and exits 0."""
        fake_nmcli.rows = ["OfficeVPN:vpn:activated", WIFI]

        assert cli.main(ARGS) == 0
        assert fake_nmcli.calls == [["connection", "down", "id", "OfficeVPN"]]

    def test_shutdown_while_inactive(self, fake_keyring, fake_nmcli, sigterm_on_start):
        """Test that SIGTERM with the VPN down disconnects nothing and exits 0."""
        fake_nmcli.rows = []

        assert cli.main(ARGS) == 0
        assert fake_nmcli.count("down") == 0

    def test_fatal_command_error(self, fake_keyring, fake_nmcli, monkeypatch, caplog):
        """Test that a failing nmcli call exits 1 without leaking secrets."""
        monkeypatch.setattr(ShutdownCoordinator, "install", lambda self, signals=(): None)
        fake_nmcli.rows = [WIFI]
        fake_nmcli.fail_on = lambda args: args[1] == "up"

        assert cli.main(ARGS) == 1
        assert "Fatal error" in caplog.text
        assert "Secr3t" not in caplog.text

    def test_missing_parameter_is_fatal(self, fake_keyring, fake_nmcli, monkeypatch):
        """Test that a missing parameter exits 1."""
        monkeypatch.setattr(cli, "manage_parameter", _raise_parameter_error)
        assert cli.main(["--no-secrets"]) == 1

    def test_parameters_saved(self, fake_keyring, fake_nmcli, sigterm_on_start):
        """Test that flag values end up in the keyring."""
        cli.main(ARGS)
        assert sorted(key for _, key in fake_keyring) == ["config", "otpSecret", "password"]


def _raise_parameter_error(name, value=None, **kwargs):
    from rolypoly.errors import ParameterError
    raise ParameterError(f"No value for '{name}' and no terminal to ask for one")
