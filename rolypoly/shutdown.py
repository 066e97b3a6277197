"""Clean VPN teardown on SIGINT/SIGTERM."""

import logging
import signal
import threading
from typing import Iterable, Optional

from .errors import RolyPolyError
from .nmcli import ConnectionObserver, Nmcli

SIGNALS = (signal.SIGTERM, signal.SIGINT)

log = logging.getLogger(__name__)


class ShutdownCoordinator:
    """Waits for a termination signal and takes the VPN down once.

    The signal handler only records the signal. The actual teardown runs on
    a separate thread, under the same lock the reconciliation loop holds
    while it rotates credentials, and finally sets the stop event the loop
    is waiting on.
    """

    def __init__(
            self,
            connection: str,
            observer: ConnectionObserver,
            nmcli: Nmcli,
            lock: Optional[threading.Lock] = None,
            stop_event: Optional[threading.Event] = None,
            logger: Optional[logging.Logger] = None,
    ):
        self.connection = connection
        self._observer = observer
        self._nmcli = nmcli
        self._lock = lock or threading.Lock()
        self.stop_event = stop_event or threading.Event()
        self._log = logger or log
        self._received = threading.Event()
        self._signum: Optional[int] = None
        self._thread: Optional[threading.Thread] = None
        self._torn_down = False
        self.error: Optional[RolyPolyError] = None

    @property
    def signum(self) -> Optional[int]:
        return self._signum

    def install(self, signals: Iterable[int] = SIGNALS) -> None:
        """Register the handler. Must be called from the main thread."""
        for sig in signals:
            signal.signal(sig, self.notify)

    def notify(self, signum: int, frame=None) -> None:
        """Signal handler; only the first signal counts."""
        if self._received.is_set():
            return
        self._signum = signum
        self._received.set()

    def start(self) -> None:
        self._log.info("Starting Wait For Death loop.")
        self._thread = threading.Thread(target=self._run, name="shutdown", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread:
            self._thread.join(timeout)

    def _run(self) -> None:
        self._received.wait()
        try:
            name = signal.Signals(self._signum).name
        except ValueError:
            name = str(self._signum)
        self._log.info(f"Caught signal. Terminating. signal={name}")
        self.teardown()

    def teardown(self) -> None:
        """Disconnect the VPN if it is up, then release the main loop."""
        with self._lock:
            if self._torn_down:
                return
            self._torn_down = True
            try:
                if self._observer.is_active(self.connection):
                    self._log.info(f"Stopping VPN connection. connection={self.connection}")
                    self._nmcli.down(self.connection)
                self._log.info("We are good to go, see you next time!")
            except RolyPolyError as e:
                self._log.error(f"VPN teardown failed: {e}")
                self.error = e
            finally:
                # Still under the lock, so the loop can't start another connect
                self.stop_event.set()
