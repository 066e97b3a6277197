"""Reconciliation loop keeping the VPN connection up."""

import enum
import logging
import threading
from typing import Optional

from .config import Credential
from .nmcli import ConnectionObserver, Nmcli
from .rotation import CredentialRotation

DEFAULT_INTERVAL = 5

log = logging.getLogger(__name__)

# Only one loop may drive the profile per process
_RUNNING = threading.Lock()


class Action(enum.Enum):
    """What a single tick ended up doing."""
    IDLE = "idle"
    POSTPONED = "postponed"
    CONNECTED = "connected"
    STOPPED = "stopped"


class ReconciliationLoop:
    """Compares the VPN's state with the desired one every few seconds.

    Nothing is remembered between ticks: each tick asks NetworkManager
    again and acts on the answer.
    """

    def __init__(
            self,
            connection: str,
            observer: ConnectionObserver,
            nmcli: Nmcli,
            rotation: Optional[CredentialRotation] = None,
            credential: Optional[Credential] = None,
            lock: Optional[threading.Lock] = None,
            stop_event: Optional[threading.Event] = None,
            interval: float = DEFAULT_INTERVAL,
            logger: Optional[logging.Logger] = None,
    ):
        if credential is not None and rotation is None:
            raise ValueError("A credential needs a rotation strategy")
        self.connection = connection
        self.interval = interval
        self._observer = observer
        self._nmcli = nmcli
        self._rotation = rotation
        self._credential = credential
        self._lock = lock or threading.Lock()
        self._stop = stop_event or threading.Event()
        self._log = logger or log

    @property
    def use_secrets(self) -> bool:
        return self._credential is not None

    def tick(self) -> Action:
        """Run one reconciliation step."""
        if self._observer.is_active(self.connection):
            self._log.debug(f"Connection is active. connection={self.connection}")
            return Action.IDLE

        if not self._observer.list_active(physical_only=True):
            self._log.info("No active connection found, thus postponing VPN connection.")
            return Action.POSTPONED

        if self.use_secrets:
            # Wait for an unused pass code here, outside the lock and before
            # the profile is touched, so a shutdown can cut it short.
            wait = self._rotation.wait_time()
            if wait > 0:
                self._log.info(f"Pass code of this time step already used, waiting {wait:.0f}s.")
                if self._stop.wait(wait):
                    return Action.STOPPED
                if self._observer.is_active(self.connection):
                    return Action.IDLE

        with self._lock:
            # Shutdown may have started while we were polling
            if self._stop.is_set():
                return Action.STOPPED

            self._log.info(f"VPN connection isn't active. Starting. connection={self.connection}")
            if self.use_secrets:
                self._rotation.connect(self.connection, self._credential)
            else:
                self._log.info(f"Starting VPN connection. connection={self.connection}")
                self._nmcli.up(self.connection)
                self._log.info(f"VPN is connected. connection={self.connection}")
        return Action.CONNECTED

    def run(self) -> None:
        """Tick until the stop event is set.

        Raises:
            RuntimeError: If another loop is already running
            RolyPolyError: On any fatal error inside a tick
        """
        if not _RUNNING.acquire(blocking=False):
            raise RuntimeError("A reconciliation loop is already running")
        try:
            self._log.info(f"Starting the main loop. sleepSeconds={self.interval}")
            while not self._stop.is_set():
                self.tick()
                self._log.debug(f"Sleeping. connection={self.connection} sleepSeconds={self.interval}")
                self._stop.wait(self.interval)
            self._log.info("Main loop stopped.")
        finally:
            _RUNNING.release()

    def stop(self) -> None:
        self._stop.set()
