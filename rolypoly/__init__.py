"""roly-poly-vpn - Keep a 2FA NetworkManager VPN connected.

Combines a static password with a TOTP pass code, reconnects whenever a
physical network link is up and the VPN is not, and disconnects cleanly
on SIGINT/SIGTERM.
"""

__version__ = "1.4.0"

from .config import Credential, load_credential, manage_parameter
from .errors import CommandError, GenerationError, ParameterError, RolyPolyError
from .loop import Action, ReconciliationLoop
from .nmcli import ConnectionObserver, Nmcli, PasswordFlags
from .rotation import STRATEGIES, CredentialRotation, make_rotation
from .shutdown import ShutdownCoordinator
from .totp import PasscodeGenerator, generate_passcode, validate_secret

__all__ = [
    "__version__",
    # Config
    "Credential",
    "load_credential",
    "manage_parameter",
    # Errors
    "RolyPolyError",
    "ParameterError",
    "GenerationError",
    "CommandError",
    # NetworkManager
    "Nmcli",
    "ConnectionObserver",
    "PasswordFlags",
    # Rotation
    "CredentialRotation",
    "STRATEGIES",
    "make_rotation",
    # Loop & shutdown
    "Action",
    "ReconciliationLoop",
    "ShutdownCoordinator",
    # TOTP
    "PasscodeGenerator",
    "generate_passcode",
    "validate_secret",
]
