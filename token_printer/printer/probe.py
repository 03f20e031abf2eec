"""Transport probe: open one candidate endpoint and verify a printer is there."""
from typing import Callable, Optional

from token_printer.exceptions import (
    EndpointNotResponding,
    EndpointUnreachable,
    StatusQueryError,
    TransportError,
)
from token_printer.logging_config import get_logger
from token_printer.models import PrinterEndpoint
from token_printer.printer.connection import PrinterConnection, create_printer
from token_printer.printer.renderer import ReceiptRenderer

logger = get_logger(__name__)


class TransportProbe:
    """Opens and verifies a single printer endpoint.

    ``probe`` either returns an open, live connection or raises a
    ProbeError; it never leaves a half-open channel behind.
    """

    def __init__(self, renderer: ReceiptRenderer, timeout: float = 5.0, baudrate: int = 9600,
                 spooler=None,
                 connection_factory: Optional[Callable[[PrinterEndpoint], PrinterConnection]] = None):
        self.renderer = renderer
        self.timeout = timeout
        self.baudrate = baudrate
        self._spooler = spooler
        self._factory = connection_factory or self._create

    def _create(self, endpoint: PrinterEndpoint) -> PrinterConnection:
        return create_printer(endpoint, timeout=self.timeout, baudrate=self.baudrate,
                              spooler=self._spooler)

    def probe(self, endpoint: PrinterEndpoint, verify: bool = True) -> PrinterConnection:
        """Open ``endpoint``, query its status and optionally print a test slip.

        Raises:
            EndpointUnreachable: the channel could not be opened
            EndpointNotResponding: the liveness query failed or timed out
        """
        logger.info(f"Probing {endpoint}")
        try:
            connection = self._factory(endpoint)
            connection.connect()
        except (TransportError, OSError, ImportError) as e:
            logger.info(f"  {endpoint} unreachable: {e}")
            raise EndpointUnreachable(endpoint, str(e)) from e

        try:
            status = connection.query_status()
        except (TransportError, OSError) as e:
            connection.disconnect()
            reason = str(e) if isinstance(e, StatusQueryError) else f"status query failed: {e}"
            logger.info(f"  {endpoint} not responding: {reason}")
            raise EndpointNotResponding(endpoint, reason) from e

        if status.get("offline"):
            connection.disconnect()
            logger.info(f"  {endpoint} reports offline (cover open or paper out?)")
            raise EndpointNotResponding(endpoint, "printer reports offline")

        logger.info(f"Printer responding on {endpoint}")
        if verify:
            self.print_self_test(connection)
        return connection

    def print_self_test(self, connection: PrinterConnection) -> bool:
        """Print the connection test slip. Failures are logged, never raised."""
        try:
            connection.write(self.renderer.render_self_test(str(connection.endpoint)))
        except (TransportError, OSError, ValueError) as e:
            logger.warning(f"Connection test print on {connection.endpoint} failed: {e}")
            return False
        logger.info(f"Connection test printed on {connection.endpoint}")
        return True
