"""Token printer bridge: prints tokens published by a remote event source."""
from typing import Optional, Union

from token_printer.bridge import ServiceBridge
from token_printer.config import Config, PrinterSettings, build_printer_settings
from token_printer.config import config as configs
from token_printer.events import SocketIOEventSource, StatusReporter
from token_printer.logging_config import get_logger
from token_printer.models import SystemStatus
from token_printer.printer import (
    ConnectionManager,
    Discovery,
    PrintJobExecutor,
    ReceiptRenderer,
    TransportProbe,
)
from token_printer.printer.connection import default_spooler, list_spooler_printers

logger = get_logger(__name__)


class TokenPrinterService:
    """All components of one running bridge, wired together."""

    def __init__(self, cfg, settings: PrinterSettings, status: SystemStatus,
                 manager: ConnectionManager, executor: PrintJobExecutor,
                 bridge: ServiceBridge, source: Optional[SocketIOEventSource] = None,
                 reporter: Optional[StatusReporter] = None):
        self.config = cfg
        self.settings = settings
        self.status = status
        self.manager = manager
        self.executor = executor
        self.bridge = bridge
        self.source = source
        self.reporter = reporter

    def start(self) -> None:
        """Connect the printer, then start consuming events."""
        if not self.manager.connect():
            logger.warning("Starting without a printer; discovery will be retried on the next token")
        self.bridge.start()
        if self.source is not None:
            self.source.start()
        if self.reporter is not None:
            self.reporter.start()

    def stop(self) -> None:
        """Graceful shutdown: stop intake, finish queued jobs, release the printer."""
        logger.info("Stopping token printer service")
        if self.reporter is not None:
            self.reporter.stop()
        if self.source is not None:
            self.source.stop()
        self.bridge.stop(timeout=30)
        self.manager.disconnect()


def create_service(config_name: Union[str, type, Config] = "default", *, spooler=None,
                   with_event_source: bool = True) -> TokenPrinterService:
    """Create and wire the bridge from a configuration.

    Raises:
        ConfigurationError: the printer configuration is unusable
    """
    cfg = configs[config_name] if isinstance(config_name, str) else config_name
    settings = build_printer_settings(cfg)

    status = SystemStatus()
    renderer = ReceiptRenderer(
        width=settings.width,
        codepage=settings.codepage,
        footer=settings.footer,
        timestamp_format=settings.timestamp_format,
        logo_path=settings.logo_path,
    )
    probe = TransportProbe(renderer, timeout=settings.timeout, baudrate=settings.baudrate,
                           spooler=spooler)
    if spooler is not None:
        spooler_lister = spooler.list_printers
    else:
        spooler_lister = lambda: list_spooler_printers(default_spooler(settings.timeout))
    discovery = Discovery(probe, endpoint=settings.endpoint, spooler_lister=spooler_lister)
    manager = ConnectionManager(
        discovery,
        settings.discovery_mode,
        status=status,
        max_reconnect_attempts=settings.max_reconnect_attempts,
        reconnect_delay=settings.reconnect_delay,
        self_test=settings.self_test,
    )
    executor = PrintJobExecutor(renderer, manager)
    bridge = ServiceBridge(manager, executor, status, establishment_name=settings.establishment_name)

    source = reporter = None
    if with_event_source:
        source = SocketIOEventSource(cfg.BACKEND_URL, bridge, status,
                                     reconnect_delay=float(cfg.SOCKET_RECONNECT_DELAY))
        bridge.upstream = source
        reporter = StatusReporter(status, source, interval=float(cfg.STATUS_INTERVAL))

    logger.info(f"Printer mode: {settings.transport.value} ({settings.discovery_mode.value})"
                + (f", endpoint {settings.endpoint}" if settings.endpoint else ""))
    return TokenPrinterService(cfg, settings, status, manager, executor, bridge, source, reporter)
