"""Printer subsystem: transports, discovery, connection management and print jobs."""
from token_printer.printer.connection import (
    PrinterConnection,
    NetworkPrinter,
    SerialPrinter,
    SpoolerPrinter,
    create_printer,
    list_serial_ports,
    list_spooler_printers,
)
from token_printer.printer.escpos import ESCPOSBuilder
from token_printer.printer.renderer import ReceiptRenderer
from token_printer.printer.probe import TransportProbe
from token_printer.printer.discovery import Discovery
from token_printer.printer.manager import ConnectionManager
from token_printer.printer.executor import PrintJobExecutor

__all__ = [
    "PrinterConnection",
    "NetworkPrinter",
    "SerialPrinter",
    "SpoolerPrinter",
    "create_printer",
    "list_serial_ports",
    "list_spooler_printers",
    "ESCPOSBuilder",
    "ReceiptRenderer",
    "TransportProbe",
    "Discovery",
    "ConnectionManager",
    "PrintJobExecutor",
]
