#!/usr/bin/env python3
"""
Token Printer Connectivity Tester
Probes a printer over serial, network or the OS spooler using the same
code path the bridge uses, and optionally prints the connection test slip.
"""

import logging
import sys

from token_printer.exceptions import DiscoveryError, ProbeError
from token_printer.logging_config import setup_logging
from token_printer.models import DiscoveryMode, PrinterEndpoint
from token_printer.printer import Discovery, ReceiptRenderer, TransportProbe
from token_printer.printer.connection import list_serial_ports, list_spooler_printers
from token_printer.printer.discovery import is_likely_serial_printer, is_likely_spooler_printer


def probe_endpoint(probe: TransportProbe, endpoint: PrinterEndpoint, print_test: bool = True) -> bool:
    """Probe a single endpoint and report the result."""
    print(f"Testing {endpoint}...")
    try:
        connection = probe.probe(endpoint, verify=False)
    except ProbeError as e:
        print(f"✗ {e.kind.value}: {e.reason}")
        return False
    try:
        print(f"✓ Printer responding on {endpoint}")
        if print_test:
            if not probe.print_self_test(connection):
                print("✗ Test page could not be sent")
                return False
            print("✓ Test page sent")
    finally:
        connection.disconnect()
    return True


def scan(probe: TransportProbe, mode: DiscoveryMode, print_test: bool = True) -> bool:
    """List candidates for a scan mode, then probe them in priority order."""
    discovery = Discovery(probe)
    try:
        candidates = discovery.candidates(mode)
    except DiscoveryError as e:
        print(f"✗ {e}")
        return False

    for endpoint, likely in candidates:
        marker = "*" if likely else " "
        print(f"  {marker} {endpoint}")
    print()

    try:
        connection = discovery.discover(mode, verify=print_test)
    except DiscoveryError as e:
        print(f"✗ {e.message}")
        for cause in getattr(e, "causes", []):
            print(f"    - {cause}")
        return False
    try:
        print(f"✓ Printer found on {connection.endpoint}")
    finally:
        connection.disconnect()
    return True


def list_ports() -> None:
    """Print serial ports and spooler printers without probing them."""
    print("Serial ports:")
    ports = list_serial_ports()
    for port in ports:
        marker = "*" if is_likely_serial_printer(port) else " "
        print(f"  {marker} {port.path} - {port.manufacturer or 'Unknown'} ({port.vendor_id or '----'})")
    if not ports:
        print("  (none)")

    print("Spooler printers:")
    try:
        names = list_spooler_printers()
    except (OSError, ImportError, ConnectionError) as e:
        print(f"  ✗ {e}")
        return
    for name in names:
        marker = "*" if is_likely_spooler_printer(name) else " "
        print(f"  {marker} {name}")
    if not names:
        print("  (none)")


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(
        description="Token Printer Connectivity Tester",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python printer-test.py list
  python printer-test.py scan-serial
  python printer-test.py scan-spooler --no-print
  python printer-test.py serial COM3
  python printer-test.py serial /dev/ttyUSB0 115200
  python printer-test.py net 192.168.1.100 9100 --no-print
  python printer-test.py spooler TMUSB001
        """
    )

    parser.add_argument("--no-print", action="store_true",
                        help="Skip printing test page (connection test only)")
    parser.add_argument("--timeout", type=float, default=5.0,
                        help="I/O timeout in seconds (default: 5)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show probe log output")

    subparsers = parser.add_subparsers(dest="mode", required=True)

    subparsers.add_parser("list", help="List serial ports and spooler printers")
    subparsers.add_parser("scan-serial", help="Probe every serial port, likely printers first")
    subparsers.add_parser("scan-spooler", help="Probe every spooler printer, likely printers first")

    net_parser = subparsers.add_parser("net", help="Test network printer")
    net_parser.add_argument("ip", help="Printer IP address")
    net_parser.add_argument("port", nargs="?", type=int, default=9100,
                            help="Port number (default: 9100)")

    serial_parser = subparsers.add_parser("serial", help="Test serial printer")
    serial_parser.add_argument("port", help="Serial port (e.g., COM3, /dev/ttyUSB0)")
    serial_parser.add_argument("baudrate", nargs="?", type=int, default=9600,
                               help="Baud rate (default: 9600)")

    spooler_parser = subparsers.add_parser("spooler", help="Test spooler-registered printer")
    spooler_parser.add_argument("name", help="Printer name as registered with the spooler")

    args = parser.parse_args(argv)

    setup_logging(log_level=logging.INFO if args.verbose else logging.WARNING)

    print("=" * 40)
    print("Token Printer Connectivity Tester")
    print("=" * 40 + "\n")

    print_test = not args.no_print
    baudrate = getattr(args, "baudrate", 9600)
    probe = TransportProbe(ReceiptRenderer(), timeout=args.timeout, baudrate=baudrate)

    if args.mode == "list":
        list_ports()
        return 0
    if args.mode == "scan-serial":
        ok = scan(probe, DiscoveryMode.SERIAL_SCAN, print_test=print_test)
    elif args.mode == "scan-spooler":
        ok = scan(probe, DiscoveryMode.SPOOLER_SCAN, print_test=print_test)
    elif args.mode == "net":
        ok = probe_endpoint(probe, PrinterEndpoint.network(args.ip, args.port), print_test)
    elif args.mode == "serial":
        ok = probe_endpoint(probe, PrinterEndpoint.serial(args.port), print_test)
    else:
        ok = probe_endpoint(probe, PrinterEndpoint.spooler(args.name), print_test)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
