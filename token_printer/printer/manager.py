"""
Printer connection manager.

Single owner of the printer handle and the connection state. Discovery is
retried lazily, when a job needs the printer, never by a background poller:
a printer that is switched off most of the day should not flood the logs.

State machine:
    DISCONNECTED --connect succeeds--> CONNECTED
    CONNECTED --channel lost / disconnect--> DISCONNECTED
    DISCONNECTED --connect fails--> DISCONNECTED (attempt counter + 1)

CONNECTING is only visible while a discovery pass holds the manager lock.
"""
import threading
import time
from typing import Callable, Optional

from token_printer.exceptions import DiscoveryError, TransportError
from token_printer.logging_config import get_logger
from token_printer.models import (
    ConnectionState,
    DiscoveryMode,
    PrinterEndpoint,
    SelfTestMode,
    SystemStatus,
)
from token_printer.printer.connection import PrinterConnection
from token_printer.printer.discovery import Discovery

logger = get_logger(__name__)

TROUBLESHOOTING = (
    "USB/serial cable connected and working",
    "Printer powered on and loaded with paper",
    "Printer driver installed (spooler mode)",
    "Printer not in use by another program",
    "Run with enough privileges to open the port (Administrator / dialout group)",
)


class ConnectionManager:
    """Owns the single printer handle and runs the reconnection policy."""

    def __init__(
        self,
        discovery: Discovery,
        mode: DiscoveryMode,
        status: Optional[SystemStatus] = None,
        max_reconnect_attempts: int = 3,
        reconnect_delay: float = 5.0,
        self_test: SelfTestMode = SelfTestMode.ALWAYS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.discovery = discovery
        self.mode = mode
        self.status = status or SystemStatus()
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.self_test = self_test
        self._sleep = sleep

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[PrinterConnection] = None

        self.last_endpoint: Optional[PrinterEndpoint] = None
        self.last_error: Optional[Exception] = None
        self.reconnect_attempts = 0
        # True when the last successful connect printed the self-test slip
        self.last_connect_verified = False

    # ---------- Observers ----------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def handle(self) -> Optional[PrinterConnection]:
        return self._handle

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    # ---------- Public API ----------

    def connect(self) -> bool:
        """Run one discovery pass (startup and manual reconnect)."""
        with self._lock:
            return self._connect(automatic=False)

    def ensure_connected(self) -> bool:
        """Make sure a live handle exists, retrying a bounded number of times.

        Returns immediately, without probing, when already connected.
        """
        with self._lock:
            if self.is_connected:
                return True

            for attempt in range(1, self.max_reconnect_attempts + 1):
                logger.info(f"Reconnection attempt {attempt}/{self.max_reconnect_attempts}")
                if self._connect(automatic=True):
                    return True
                if attempt < self.max_reconnect_attempts:
                    self._sleep(self.reconnect_delay)

            logger.error(f"Printer still unavailable after {self.max_reconnect_attempts} attempt(s)")
            return False

    def report_channel_lost(self, reason: str = "") -> None:
        """Drop the current handle after an I/O failure. Idempotent."""
        with self._lock:
            if self._handle is None and self._state is ConnectionState.DISCONNECTED:
                return
            endpoint = self._handle.endpoint if self._handle else self.last_endpoint
            logger.warning(f"Printer channel lost on {endpoint}" + (f": {reason}" if reason else ""))
            self._release()

    def disconnect(self) -> None:
        """Explicit teardown, used at shutdown and before a manual reconnect."""
        with self._lock:
            if self._handle is not None:
                logger.info(f"Disconnecting printer on {self._handle.endpoint}")
            self._release()

    def reconnect(self) -> bool:
        """Manual reconnect: release the current handle, then discover again."""
        with self._lock:
            logger.info("Manual printer reconnect requested")
            self.disconnect()
            self.reconnect_attempts = 0
            return self._connect(automatic=False)

    def check_status(self) -> dict:
        """Query the device behind the current handle.

        A failed query counts as channel loss, so the next job rediscovers.
        """
        with self._lock:
            if not self.is_connected:
                return self._status_dict("Printer not connected")
            try:
                device = self._handle.query_status()
            except (TransportError, OSError) as e:
                self.report_channel_lost(str(e))
                return self._status_dict(f"Status check failed: {e}")
            if device.get("offline"):
                self.report_channel_lost("printer reports offline")
                return self._status_dict("Printer reports offline")
            return self._status_dict("Printer connected and responding")

    # ---------- Internals ----------

    def _should_verify(self, automatic: bool) -> bool:
        if self.self_test is SelfTestMode.ALWAYS:
            return True
        if self.self_test is SelfTestMode.INITIAL:
            return not automatic
        return False

    def _connect(self, automatic: bool) -> bool:
        self._release()
        self._state = ConnectionState.CONNECTING
        verify = self._should_verify(automatic)
        try:
            handle = self.discovery.discover(self.mode, hint=self.last_endpoint, verify=verify)
        except DiscoveryError as e:
            self.last_error = e
            self.reconnect_attempts += 1
            logger.error(f"Printer not found: {e}")
            if not automatic:
                logger.error("Troubleshooting checklist:")
                for number, item in enumerate(TROUBLESHOOTING, start=1):
                    logger.error(f"   {number}. {item}")
            return False
        finally:
            if self._state is ConnectionState.CONNECTING:
                self._state = ConnectionState.DISCONNECTED

        self._handle = handle
        self._state = ConnectionState.CONNECTED
        self.last_endpoint = handle.endpoint
        self.last_connect_verified = verify
        self.last_error = None
        self.reconnect_attempts = 0
        self.status.set_printer(True, handle.endpoint)
        logger.info(f"Printer connected on {handle.endpoint}")
        return True

    def _release(self) -> None:
        if self._handle is not None:
            self._handle.disconnect()
        self._handle = None
        self._state = ConnectionState.DISCONNECTED
        self.status.set_printer(False)

    def _status_dict(self, message: str) -> dict:
        return {
            "connected": self.is_connected,
            "state": self._state.name,
            "endpoint": str(self.last_endpoint) if self.last_endpoint else None,
            "message": message,
        }

    def __repr__(self):
        return f"<ConnectionManager {self.mode.value} {self._state.name}>"
