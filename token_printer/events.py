"""Socket.IO event source and periodic status reporter."""
import threading
from concurrent.futures import Future
from typing import Optional

import socketio
from pydantic import ValidationError
from socketio.exceptions import BadNamespaceError, SocketIOError
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from token_printer.logging_config import get_logger
from token_printer.models import (
    PrintErrorReport,
    PrinterStatusReport,
    SystemStatus,
    TokenEvent,
    TokenPrintedReport,
)

logger = get_logger(__name__)


class SocketIOEventSource:
    """Subscribes to ``newToken`` events and relays print results upstream.

    The Socket.IO client runs its own threads; handlers here only parse and
    enqueue into the bridge, they never touch the printer.
    """

    NEW_TOKEN = "newToken"
    PRINTER_STATUS = "printerStatus"
    TOKEN_PRINTED = "tokenPrinted"
    PRINT_ERROR = "printError"
    TEST_PRINT = "testPrint"
    RECONNECT_PRINTER = "reconnectPrinter"

    def __init__(self, url: str, bridge, status: SystemStatus,
                 reconnect_delay: float = 5.0, client: Optional[socketio.Client] = None):
        self.url = url
        self.bridge = bridge
        self.status = status
        self.reconnect_delay = reconnect_delay
        self.sio = client or socketio.Client(
            reconnection=True,
            reconnection_attempts=0,  # retry forever
            reconnection_delay=reconnect_delay,
            reconnection_delay_max=reconnect_delay,
        )
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._register_handlers()

    def _register_handlers(self) -> None:
        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("connect_error", self._on_connect_error)
        self.sio.on(self.NEW_TOKEN, self._on_new_token)
        self.sio.on(self.PRINTER_STATUS, self._on_status_request)
        self.sio.on(self.TEST_PRINT, self._on_test_print)
        self.sio.on(self.RECONNECT_PRINTER, self._on_reconnect_printer)

    # ---------- Lifecycle ----------

    def start(self) -> None:
        """Connect in the background, retrying until the first connection succeeds."""
        self._stop.clear()
        self._thread = threading.Thread(target=self._connect_loop, name="EventSource", daemon=True)
        self._thread.start()

    def _connect_loop(self) -> None:
        while not self._stop.is_set():
            try:
                logger.info(f"Connecting to event source {self.url}")
                self.sio.connect(self.url, transports=["websocket", "polling"])
                return
            except SocketIOConnectionError as e:
                logger.error(f"Event source connection error: {e}")
                self._stop.wait(self.reconnect_delay)

    def stop(self) -> None:
        self._stop.set()
        if self.sio.connected:
            self.sio.disconnect()
        if self._thread is not None:
            self._thread.join(timeout=self.reconnect_delay + 1)
            self._thread = None
        self.status.set_event_source(False)

    # ---------- Inbound ----------

    def _on_connect(self) -> None:
        logger.info("Connected to event source; waiting for new tokens")
        self.status.set_event_source(True)
        self.report_printer_status(self.status.printer_connected)

    def _on_disconnect(self, reason=None) -> None:
        logger.warning(f"Disconnected from event source: {reason or 'unknown reason'}; reconnecting")
        self.status.set_event_source(False)

    def _on_connect_error(self, data=None) -> None:
        logger.error(f"Event source connection error: {data}")

    def _on_new_token(self, data) -> None:
        event = self.parse_token(data)
        if event is not None:
            self.bridge.submit_token(event)

    @staticmethod
    def parse_token(data) -> Optional[TokenEvent]:
        """Build a TokenEvent from a ``newToken`` payload, or None if invalid."""
        if not isinstance(data, dict):
            data = {"numero": data}
        try:
            return TokenEvent.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed {SocketIOEventSource.NEW_TOKEN} payload {data!r}: {e}")
            return None

    def _on_status_request(self, data=None) -> None:
        self._respond(self.bridge.request_status(), f"{self.PRINTER_STATUS}Response")

    def _on_test_print(self, data=None) -> None:
        self._respond(self.bridge.request_test_print(), f"{self.TEST_PRINT}Response")

    def _on_reconnect_printer(self, data=None) -> None:
        self._respond(self.bridge.request_reconnect(), f"{self.RECONNECT_PRINTER}Response")

    def _respond(self, future: Future, event_name: str) -> None:
        def done(f: Future) -> None:
            error = f.exception()
            payload = {"success": False, "error": str(error)} if error else f.result()
            self._emit(event_name, payload)
        future.add_done_callback(done)

    # ---------- Outbound ----------

    def _emit(self, event_name: str, payload: dict) -> None:
        # Client.connected is still False while the connect handler runs.
        try:
            self.sio.emit(event_name, payload)
        except BadNamespaceError:
            logger.debug(f"Not connected; dropping {event_name}")
        except SocketIOError as e:
            logger.warning(f"Failed to emit {event_name}: {e}")

    def report_printer_status(self, connected: bool) -> None:
        self._emit(self.PRINTER_STATUS, PrinterStatusReport(connected=connected).model_dump(mode="json"))

    def report_token_printed(self, token: str) -> None:
        self._emit(self.TOKEN_PRINTED, TokenPrintedReport(token=token).model_dump(mode="json"))

    def report_print_error(self, token: str, error: Optional[str]) -> None:
        self._emit(self.PRINT_ERROR,
                   PrintErrorReport(token=token, error=error or "unknown error").model_dump(mode="json"))


class StatusReporter:
    """Periodically pushes the printer status upstream and logs the aggregate."""

    def __init__(self, status: SystemStatus, source: SocketIOEventSource, interval: float = 30.0):
        self.status = status
        self.source = source
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.interval <= 0 or self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="StatusReporter", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval)
            self._thread = None

    def report_once(self) -> dict:
        snapshot = self.status.to_dict()
        logger.debug(f"Status: {snapshot}")
        self.source.report_printer_status(snapshot["printer_connected"])
        return snapshot

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.report_once()
