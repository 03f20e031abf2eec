"""
Service bridge between the event source and the printer.

Single authoritative path to the printer: every token job and every control
request (status, test print, reconnect) is queued and executed, in arrival
order, by one worker thread. Thermal printers are single-channel devices and
interleaved command streams corrupt output, so nothing else may touch the
connection manager while a job or a discovery pass is running.
"""
import threading
from concurrent.futures import Future
from enum import Enum, auto
from queue import Queue
from typing import Optional

from token_printer.logging_config import get_logger
from token_printer.models import JobErrorKind, JobOutcome, SystemStatus, TokenEvent
from token_printer.printer.executor import PrintJobExecutor
from token_printer.printer.manager import ConnectionManager

logger = get_logger(__name__)


class CommandType(Enum):
    PRINT_TOKEN = auto()
    STATUS = auto()
    TEST_PRINT = auto()
    RECONNECT = auto()
    STOP = auto()


class Command:
    def __init__(self, command_type: CommandType, payload: Optional[TokenEvent] = None):
        self.command_type = command_type
        self.payload = payload
        self.future: Future = Future()


class ServiceBridge:
    """Consumes token events and control requests, one at a time."""

    def __init__(self, manager: ConnectionManager, executor: PrintJobExecutor,
                 status: SystemStatus, establishment_name: Optional[str] = None,
                 upstream=None):
        self.manager = manager
        self.executor = executor
        self.status = status
        self.establishment_name = establishment_name
        # Outbound reporter (the event source); set after construction.
        self.upstream = upstream

        self._queue: Queue = Queue()
        self._thread: Optional[threading.Thread] = None
        self._accepting = True

    # ---------- Lifecycle ----------

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="PrintWorker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Finish the commands already queued, then stop the worker."""
        self._accepting = False
        if self._thread is None:
            return
        self._queue.put(Command(CommandType.STOP))
        self._thread.join(timeout)
        self._thread = None

    # ---------- Public API ----------

    def submit_token(self, event: TokenEvent) -> Future:
        """Queue a token for printing; the future resolves to its JobOutcome."""
        logger.info(f"New token received: {event.number}")
        return self._enqueue(Command(CommandType.PRINT_TOKEN, event))

    def request_status(self) -> Future:
        return self._enqueue(Command(CommandType.STATUS))

    def request_test_print(self) -> Future:
        return self._enqueue(Command(CommandType.TEST_PRINT))

    def request_reconnect(self) -> Future:
        return self._enqueue(Command(CommandType.RECONNECT))

    def _enqueue(self, command: Command) -> Future:
        if not self._accepting:
            raise RuntimeError("Service bridge is stopped")
        self._queue.put(command)
        return command.future

    # ---------- Worker ----------

    def _run(self) -> None:
        while True:
            command = self._queue.get()
            if command.command_type is CommandType.STOP:
                command.future.set_result(None)
                return
            if not command.future.set_running_or_notify_cancel():
                continue
            try:
                result = self.execute(command)
            except Exception as e:
                # Keep the worker alive; the caller sees the error on the future.
                logger.exception(f"Unexpected error while handling {command.command_type.name}")
                command.future.set_exception(e)
            else:
                command.future.set_result(result)

    def execute(self, command: Command):
        """Run one command synchronously on the calling thread."""
        was_connected = self.manager.is_connected
        try:
            if command.command_type is CommandType.PRINT_TOKEN:
                return self.handle_token(command.payload)
            if command.command_type is CommandType.STATUS:
                return self._handle_status()
            if command.command_type is CommandType.TEST_PRINT:
                return self._handle_test_print()
            if command.command_type is CommandType.RECONNECT:
                return self._handle_reconnect()
            raise ValueError(f"Unsupported command: {command.command_type}")
        finally:
            if self.manager.is_connected != was_connected:
                self._notify("report_printer_status", self.manager.is_connected)

    def handle_token(self, event: TokenEvent) -> JobOutcome:
        if self.manager.ensure_connected():
            extra = {
                "establishment_name": event.establishment_name or self.establishment_name,
                "category": event.category,
            }
            outcome = self.executor.print_token(self.manager.handle, event.number, extra)
        else:
            reason = self.manager.last_error or "printer not connected"
            logger.error(f"Token {event.number} not printed: printer unavailable")
            outcome = JobOutcome.failed(event.number, JobErrorKind.DEVICE_UNAVAILABLE,
                                        f"Printer unavailable: {reason}")

        self.status.record_outcome(outcome)
        if outcome.success:
            self._notify("report_token_printed", outcome.token_number)
        else:
            self._notify("report_print_error", outcome.token_number, outcome.error_message)
        return outcome

    def _handle_status(self) -> dict:
        result = self.manager.check_status()
        result["success"] = True
        result["status"] = self.status.to_dict()
        return result

    def _handle_test_print(self) -> dict:
        was_connected = self.manager.is_connected
        if not self.manager.ensure_connected():
            return {"success": False, "error": "Printer not connected"}
        if not was_connected and self.manager.last_connect_verified:
            # Connecting already printed the test slip
            return {"success": True, "error": None}
        outcome = self.executor.print_test(self.manager.handle)
        return {"success": outcome.success, "error": outcome.error_message}

    def _handle_reconnect(self) -> dict:
        connected = self.manager.reconnect()
        return {
            "success": connected,
            "connected": connected,
            "endpoint": str(self.manager.last_endpoint) if connected else None,
            "error": None if connected else str(self.manager.last_error),
        }

    def _notify(self, method: str, *args) -> None:
        if self.upstream is None:
            return
        try:
            getattr(self.upstream, method)(*args)
        except Exception:
            # A dead event-source connection must not fail the print job.
            logger.exception(f"Failed to send {method} upstream")
