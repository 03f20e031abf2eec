"""Print job executor: format a token slip and send it as one job."""
import logging
from datetime import datetime
from typing import Callable, Optional, TYPE_CHECKING

from token_printer.exceptions import TransportError
from token_printer.logging_config import get_logger
from token_printer.models import JobErrorKind, JobOutcome
from token_printer.printer.connection import PrinterConnection
from token_printer.printer.renderer import ReceiptRenderer

if TYPE_CHECKING:  # pragma: no cover
    from token_printer.printer.manager import ConnectionManager

logger = get_logger(__name__)


class PrintJobExecutor:
    """Renders receipts and transmits them, classifying failures.

    The full layout is rendered before anything is written, and written with
    a single call, so a formatting problem never reaches the printer and an
    I/O failure never leaves a half-composed job in front of the next one.
    """

    def __init__(self, renderer: ReceiptRenderer, manager: "ConnectionManager",
                 clock: Callable[[], datetime] = datetime.now):
        self.renderer = renderer
        self.manager = manager
        self._clock = clock

    def print_token(self, handle: PrinterConnection, token_number: str,
                    extra: Optional[dict] = None) -> JobOutcome:
        """Print one token slip.

        Args:
            handle: Open printer connection from the connection manager
            token_number: Token shown in large type
            extra: Optional ``establishment_name`` and ``category``
        """
        extra = extra or {}
        when = self._clock()
        try:
            data = self.renderer.render_token(
                token_number,
                establishment_name=extra.get("establishment_name"),
                category=extra.get("category"),
                when=when,
            )
        except (UnicodeError, ValueError, OSError) as e:
            logger.error(f"Token {token_number} could not be formatted: {e}")
            return JobOutcome.failed(token_number, JobErrorKind.FORMAT_ERROR, str(e))

        if logger.isEnabledFor(logging.DEBUG):
            preview = self.renderer.render_preview(
                token_number, extra.get("establishment_name"), extra.get("category"), when)
            logger.debug(f"Token slip:\n{preview}")
        logger.info(f"Printing token {token_number} on {handle.endpoint}")
        outcome = self._transmit(handle, token_number, data)
        if outcome.success:
            logger.info(f"Token {token_number} printed")
        return outcome

    def print_test(self, handle: PrinterConnection) -> JobOutcome:
        """Print the connection test slip on demand."""
        label = "test"
        try:
            data = self.renderer.render_self_test(str(handle.endpoint), when=self._clock())
        except (UnicodeError, ValueError) as e:
            return JobOutcome.failed(label, JobErrorKind.FORMAT_ERROR, str(e))
        return self._transmit(handle, label, data)

    def _transmit(self, handle: PrinterConnection, token_number: str, data: bytes) -> JobOutcome:
        try:
            handle.write(data)
        except (TransportError, OSError) as e:
            logger.error(f"Print of {token_number} on {handle.endpoint} failed: {e}")
            self.manager.report_channel_lost(str(e))
            return JobOutcome.failed(token_number, JobErrorKind.DEVICE_UNAVAILABLE, str(e))
        return JobOutcome.ok(token_number)
