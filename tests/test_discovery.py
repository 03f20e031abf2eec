# tests/test_discovery.py

import pytest

from token_printer.exceptions import AllCandidatesFailedError, NoCandidatesError
from token_printer.models import DiscoveryMode, PrinterEndpoint
from token_printer.printer.connection import SerialPortInfo
from token_printer.printer.discovery import (
    Discovery,
    is_likely_serial_printer,
    is_likely_spooler_printer,
    order_candidates,
)
from token_printer.printer.probe import TransportProbe
from token_printer.printer.renderer import ReceiptRenderer
from tests.fakes.fake_printer import FakePrinterFactory

A = PrinterEndpoint.serial("COM4")
B = PrinterEndpoint.serial("COM1")
C = PrinterEndpoint.serial("COM7")

PORTS = [
    SerialPortInfo("COM4", manufacturer="EPSON", vendor_id="04b8", description="EPSON TM-T20"),
    SerialPortInfo("COM1", manufacturer="(Standard port types)", description="Communications Port"),
    SerialPortInfo("COM7", manufacturer="Prolific", vendor_id="067b", description="USB-Serial"),
]


def make_discovery(factory, ports=PORTS, **kwargs):
    probe = TransportProbe(ReceiptRenderer(), connection_factory=factory)
    return Discovery(probe, serial_lister=lambda: list(ports), **kwargs)


def test_likely_serial_printer_by_vendor_or_keyword():
    assert is_likely_serial_printer(PORTS[0])
    assert is_likely_serial_printer(PORTS[2])
    assert not is_likely_serial_printer(PORTS[1])
    assert is_likely_serial_printer(SerialPortInfo("COM9", manufacturer="Citizen Systems"))


def test_likely_spooler_printer():
    assert is_likely_spooler_printer("EPSON TM-T20II Receipt")
    assert is_likely_spooler_printer("TMUSB001")
    assert not is_likely_spooler_printer("Microsoft Print to PDF")


def test_order_puts_likely_tier_first_preserving_enumeration_order():
    assert order_candidates([(A, True), (B, False), (C, True)]) == [A, C, B]


def test_order_moves_hint_to_front_of_its_tier():
    candidates = [(A, True), (B, False), (C, True)]
    assert order_candidates(candidates, hint=C) == [C, A, B]
    # A hint from the other tier never beats a likely printer
    assert order_candidates(candidates, hint=B) == [A, C, B]
    # Unknown hint is ignored
    assert order_candidates([(A, True)], hint=C) == [A]


def test_discover_probes_in_priority_order():
    factory = FakePrinterFactory()
    printer = factory.add(B)

    connection = make_discovery(factory).discover(DiscoveryMode.SERIAL_SCAN)

    assert connection is printer
    assert factory.created == [A, C, B]


def test_discover_stops_at_first_success():
    factory = FakePrinterFactory()
    first = factory.add(A)
    factory.add(C)

    connection = make_discovery(factory).discover(DiscoveryMode.SERIAL_SCAN, verify=False)

    assert connection is first
    assert factory.created == [A]


def test_discover_collects_every_failure():
    factory = FakePrinterFactory()
    silent = factory.add(C)
    silent.responding = False

    with pytest.raises(AllCandidatesFailedError) as excinfo:
        make_discovery(factory).discover(DiscoveryMode.SERIAL_SCAN)

    assert [cause.endpoint for cause in excinfo.value.causes] == [A, C, B]
    assert excinfo.value.mode == "serial-scan"


def test_no_serial_ports_means_no_candidates():
    factory = FakePrinterFactory()

    with pytest.raises(NoCandidatesError):
        make_discovery(factory, ports=[]).discover(DiscoveryMode.SERIAL_SCAN)
    assert factory.probe_count == 0


def test_enumeration_failure_means_no_candidates():
    def broken():
        raise OSError("permission denied")

    probe = TransportProbe(ReceiptRenderer(), connection_factory=FakePrinterFactory())
    discovery = Discovery(probe, serial_lister=broken)

    with pytest.raises(NoCandidatesError, match="permission denied"):
        discovery.candidates(DiscoveryMode.SERIAL_SCAN)


def test_explicit_mode_uses_configured_endpoint_only():
    factory = FakePrinterFactory()
    endpoint = PrinterEndpoint.network("10.0.0.9")
    factory.add(endpoint)

    discovery = make_discovery(factory, endpoint=endpoint)

    assert discovery.candidates(DiscoveryMode.EXPLICIT) == [(endpoint, True)]
    assert discovery.discover(DiscoveryMode.EXPLICIT).endpoint == endpoint
    assert factory.created == [endpoint]


def test_explicit_mode_without_endpoint():
    with pytest.raises(NoCandidatesError):
        make_discovery(FakePrinterFactory()).candidates(DiscoveryMode.EXPLICIT)


def test_spooler_scan_uses_spooler_lister():
    factory = FakePrinterFactory()
    receipt = PrinterEndpoint.spooler("EPSON TM-T20")
    factory.add(receipt)
    probe = TransportProbe(ReceiptRenderer(), connection_factory=factory)
    discovery = Discovery(probe, spooler_lister=lambda: ["Microsoft Print to PDF", "EPSON TM-T20"])

    connection = discovery.discover(DiscoveryMode.SPOOLER_SCAN)

    assert connection.endpoint == receipt
    assert factory.created == [receipt]
