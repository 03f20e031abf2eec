"""Discovery strategies: find a reachable printer for a transport mode."""
from typing import Callable, List, Optional, Sequence, Tuple

from token_printer.exceptions import (
    AllCandidatesFailedError,
    NoCandidatesError,
    ProbeError,
    TransportError,
)
from token_printer.logging_config import get_logger
from token_printer.models import DiscoveryMode, EndpointKind, PrinterEndpoint
from token_printer.printer.connection import (
    PrinterConnection,
    SerialPortInfo,
    list_serial_ports,
    list_spooler_printers,
)
from token_printer.printer.probe import TransportProbe

logger = get_logger(__name__)

# Common thermal printer USB vendor IDs
PRINTER_VENDOR_IDS = {
    "04b8": "Epson",
    "0519": "Star Micronics",
    "04da": "Panasonic",
    "067b": "Prolific (printer cables)",
    "0fe6": "Bixolon",
    "1504": "Sewoo",
    "0dd4": "Custom",
}

SERIAL_KEYWORDS = ("epson", "star", "citizen", "bixolon", "printer", "pos", "receipt", "thermal")
SPOOLER_KEYWORDS = ("epson", "star", "citizen", "bixolon", "sewoo", "elgin", "bematech",
                    "daruma", "receipt", "thermal", "pos", "tm-", "tmusb")


def is_likely_serial_printer(port: SerialPortInfo) -> bool:
    if port.vendor_id and port.vendor_id.lower() in PRINTER_VENDOR_IDS:
        return True
    haystack = " ".join(filter(None, (port.path, port.manufacturer, port.description))).lower()
    return any(keyword in haystack for keyword in SERIAL_KEYWORDS)


def is_likely_spooler_printer(name: str) -> bool:
    lowered = name.lower()
    return any(keyword in lowered for keyword in SPOOLER_KEYWORDS)


def order_candidates(candidates: Sequence[Tuple[PrinterEndpoint, bool]],
                     hint: Optional[PrinterEndpoint] = None) -> List[PrinterEndpoint]:
    """Likely printers first, then the rest, each tier in enumeration order.

    ``hint`` (the last endpoint that worked) leads its own tier; it never
    jumps ahead of a likely printer from the other tier.
    """
    likely = [endpoint for endpoint, is_likely in candidates if is_likely]
    other = [endpoint for endpoint, is_likely in candidates if not is_likely]
    for tier in (likely, other):
        if hint is not None and hint in tier:
            tier.remove(hint)
            tier.insert(0, hint)
    return likely + other


class Discovery:
    """Enumerates candidates for a mode and probes them until one answers."""

    def __init__(self, probe: TransportProbe, endpoint: Optional[PrinterEndpoint] = None,
                 serial_lister: Callable[[], List[SerialPortInfo]] = list_serial_ports,
                 spooler_lister: Optional[Callable[[], List[str]]] = None):
        self.probe = probe
        self.endpoint = endpoint
        self._list_serial = serial_lister
        self._list_spooler = spooler_lister or list_spooler_printers

    def candidates(self, mode: DiscoveryMode) -> List[Tuple[PrinterEndpoint, bool]]:
        """Enumerate ``(endpoint, likely_printer)`` pairs for ``mode``."""
        if mode is DiscoveryMode.EXPLICIT:
            if self.endpoint is None:
                raise NoCandidatesError(mode.value, "no printer endpoint configured")
            return [(self.endpoint, True)]

        try:
            if mode is DiscoveryMode.SERIAL_SCAN:
                ports = self._list_serial()
                found = [(PrinterEndpoint.serial(p.path), is_likely_serial_printer(p)) for p in ports]
                labels = {p.path: p.manufacturer or "Unknown" for p in ports}
            else:
                names = self._list_spooler()
                found = [(PrinterEndpoint.spooler(n), is_likely_spooler_printer(n)) for n in names]
                labels = {}
        except (TransportError, OSError, ImportError) as e:
            raise NoCandidatesError(mode.value, f"enumeration failed: {e}") from e

        if not found:
            raise NoCandidatesError(mode.value)

        logger.info(f"Found {len(found)} candidate(s) for {mode.value} discovery:")
        for endpoint, is_likely in found:
            tier = "printer" if is_likely else "other"
            extra = labels.get(endpoint.path) if endpoint.kind is EndpointKind.SERIAL else None
            logger.info(f"   [{tier}] {endpoint}" + (f" - {extra}" if extra else ""))
        return found

    def discover(self, mode: DiscoveryMode, hint: Optional[PrinterEndpoint] = None,
                 verify: bool = True) -> PrinterConnection:
        """Probe candidates in priority order and return the first live connection.

        Raises:
            NoCandidatesError: nothing to probe
            AllCandidatesFailedError: every candidate failed its probe
        """
        ordered = order_candidates(self.candidates(mode), hint)
        causes: List[ProbeError] = []
        for endpoint in ordered:
            try:
                return self.probe.probe(endpoint, verify=verify)
            except ProbeError as e:
                causes.append(e)
        raise AllCandidatesFailedError(mode.value, causes)
