"""Data model shared by the printer subsystem and the service bridge."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EndpointKind(Enum):
    SERIAL = "serial"
    NETWORK = "network"
    SPOOLER = "spooler"


@dataclass(frozen=True)
class PrinterEndpoint:
    """How to reach one candidate printer.

    Build instances through the ``serial``, ``network`` and ``spooler``
    constructors; only the fields of the chosen kind are populated.
    """

    kind: EndpointKind
    path: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    name: Optional[str] = None

    @classmethod
    def serial(cls, path: str) -> "PrinterEndpoint":
        return cls(kind=EndpointKind.SERIAL, path=path)

    @classmethod
    def network(cls, host: str, port: int = 9100) -> "PrinterEndpoint":
        return cls(kind=EndpointKind.NETWORK, host=host, port=int(port))

    @classmethod
    def spooler(cls, name: str) -> "PrinterEndpoint":
        return cls(kind=EndpointKind.SPOOLER, name=name)

    def __str__(self) -> str:
        if self.kind is EndpointKind.SERIAL:
            return f"serial:{self.path}"
        if self.kind is EndpointKind.NETWORK:
            return f"tcp://{self.host}:{self.port}"
        return f"spooler:{self.name}"


class DiscoveryMode(Enum):
    EXPLICIT = "explicit"
    SERIAL_SCAN = "serial-scan"
    SPOOLER_SCAN = "spooler-scan"


class SelfTestMode(Enum):
    ALWAYS = "always"
    INITIAL = "initial"
    NEVER = "never"


class ConnectionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()


class JobErrorKind(Enum):
    DEVICE_UNAVAILABLE = "device_unavailable"
    FORMAT_ERROR = "format_error"


class TokenEvent(BaseModel):
    """A "new token" notification as delivered by the event source."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    number: str = Field(alias="numero", min_length=1)
    establishment_name: Optional[str] = Field(default=None, alias="estabelecimento")
    category: Optional[str] = Field(default=None, alias="categoria")
    received_at: datetime = Field(default_factory=datetime.now)

    @field_validator("number", mode="before")
    @classmethod
    def _number_as_text(cls, value):
        # Backends send the token as either "042" or 42.
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("establishment_name", "category", mode="before")
    @classmethod
    def _blank_as_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


@dataclass(frozen=True)
class JobOutcome:
    """Result of one print job."""

    success: bool
    token_number: str
    error_kind: Optional[JobErrorKind] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def ok(cls, token_number: str) -> "JobOutcome":
        return cls(success=True, token_number=token_number)

    @classmethod
    def failed(cls, token_number: str, kind: JobErrorKind, message: str) -> "JobOutcome":
        return cls(success=False, token_number=token_number, error_kind=kind, error_message=message)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "token": self.token_number,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error_message,
            "timestamp": self.timestamp.isoformat(),
        }


class SystemStatus:
    """Process-wide aggregate, written by the connection manager and the bridge."""

    def __init__(self, start_time: Optional[datetime] = None):
        self._lock = threading.Lock()
        self.start_time = start_time or datetime.now()
        self.printer_connected = False
        self.printer_endpoint: Optional[str] = None
        self.event_source_connected = False
        self.last_token: Optional[str] = None
        self.total_printed = 0
        self.total_errors = 0

    def set_printer(self, connected: bool, endpoint: Optional[PrinterEndpoint] = None) -> None:
        with self._lock:
            self.printer_connected = connected
            self.printer_endpoint = str(endpoint) if connected and endpoint else None

    def set_event_source(self, connected: bool) -> None:
        with self._lock:
            self.event_source_connected = connected

    def record_outcome(self, outcome: JobOutcome) -> None:
        with self._lock:
            self.last_token = outcome.token_number
            if outcome.success:
                self.total_printed += 1
            else:
                self.total_errors += 1

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "printer_connected": self.printer_connected,
                "printer_endpoint": self.printer_endpoint,
                "event_source_connected": self.event_source_connected,
                "last_token": self.last_token,
                "start_time": self.start_time.isoformat(),
                "uptime_seconds": int((datetime.now() - self.start_time).total_seconds()),
                "total_printed": self.total_printed,
                "total_errors": self.total_errors,
            }

    def __repr__(self):
        return (f"<SystemStatus printer={'up' if self.printer_connected else 'down'} "
                f"printed={self.total_printed} errors={self.total_errors}>")


# Outbound reports to the event source


class PrinterStatusReport(BaseModel):
    connected: bool
    timestamp: datetime = Field(default_factory=datetime.now)


class TokenPrintedReport(BaseModel):
    token: str
    timestamp: datetime = Field(default_factory=datetime.now)


class PrintErrorReport(BaseModel):
    token: str
    error: str
    timestamp: datetime = Field(default_factory=datetime.now)
