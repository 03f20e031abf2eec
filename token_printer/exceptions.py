"""
Exceptions for the token printer bridge.

Exception Hierarchy:
    TokenPrinterError (base)
    ├── ConfigurationError        - invalid settings (startup failure)
    ├── ProbeError                - a single endpoint could not be verified
    │   ├── EndpointUnreachable   - channel could not be opened
    │   └── EndpointNotResponding - opened, but the liveness query failed
    └── DiscoveryError            - no printer found for a discovery pass
        ├── NoCandidatesError
        └── AllCandidatesFailedError

    TransportError (ConnectionError)
    └── StatusQueryError          - missing or unexpected status reply

Only ConfigurationError is fatal. Probe and discovery errors degrade the
connection manager to DISCONNECTED; print job errors become a failed
JobOutcome instead of propagating.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from token_printer.models import PrinterEndpoint


class TokenPrinterError(Exception):
    """Base exception for all bridge errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(TokenPrinterError):
    """The configuration cannot be turned into a working printer setup."""

    def __init__(self, message: str, setting: Optional[str] = None):
        details = {"setting": setting} if setting else None
        super().__init__(message, details)
        self.setting = setting


# =============================================================================
# TRANSPORT ERRORS - raised by the printer connections themselves
# =============================================================================

class TransportError(ConnectionError):
    """I/O failure on a printer channel (open, write or read)."""


class StatusQueryError(TransportError):
    """The printer did not answer a status request, or answered garbage."""


# =============================================================================
# PROBE / DISCOVERY ERRORS
# =============================================================================

class ProbeErrorKind(Enum):
    UNREACHABLE = "unreachable"
    NOT_RESPONDING = "not_responding"


class ProbeError(TokenPrinterError):
    """A candidate endpoint failed verification."""

    kind = ProbeErrorKind.NOT_RESPONDING

    def __init__(self, endpoint: "PrinterEndpoint", reason: str):
        message = f"{endpoint}: {self.kind.value} ({reason})"
        super().__init__(message)
        self.endpoint = endpoint
        self.reason = reason


class EndpointUnreachable(ProbeError):
    """The transport channel could not be opened."""

    kind = ProbeErrorKind.UNREACHABLE


class EndpointNotResponding(ProbeError):
    """The channel opened but the device did not pass the liveness query."""

    kind = ProbeErrorKind.NOT_RESPONDING


class DiscoveryError(TokenPrinterError):
    """Base class for a discovery pass that produced no printer."""


class NoCandidatesError(DiscoveryError):
    """Enumeration returned zero endpoints."""

    def __init__(self, mode: str, reason: str = "no endpoints enumerated"):
        super().__init__(f"No printer candidates for {mode} discovery: {reason}", {"mode": mode})
        self.mode = mode


class AllCandidatesFailedError(DiscoveryError):
    """Every enumerated candidate was probed and none succeeded."""

    def __init__(self, mode: str, causes: List[ProbeError]):
        summary = "; ".join(str(cause) for cause in causes)
        super().__init__(
            f"All {len(causes)} printer candidate(s) failed for {mode} discovery: {summary}",
            {"mode": mode},
        )
        self.mode = mode
        self.causes = list(causes)
