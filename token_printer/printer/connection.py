"""Printer connection handlers for Serial, Network, and spooler-registered printers."""
import shutil
import socket
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import serial
from serial.tools import list_ports

from token_printer.exceptions import StatusQueryError, TransportError
from token_printer.models import EndpointKind, PrinterEndpoint
from token_printer.printer.escpos import ESCPOSBuilder

# Windows spooler support (only installed on Windows)
try:
    import pywintypes
    import win32print
    WIN32PRINT_AVAILABLE = True
except ImportError:
    WIN32PRINT_AVAILABLE = False

PRINTER_ATTRIBUTE_WORK_OFFLINE = 0x00000400
PRINTER_STATUS_OFFLINE = 0x00000080


class PrinterConnection(ABC):
    """An open channel to one printer endpoint.

    This is the handle owned by the connection manager: it stays open
    between jobs and is only closed on disconnect or channel loss.
    """

    endpoint: PrinterEndpoint

    @abstractmethod
    def connect(self) -> bool:
        """Establish connection to the printer."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to the printer. Never raises."""

    @abstractmethod
    def write(self, data: bytes) -> bool:
        """Send data to the printer in a single call."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the channel is open."""

    @abstractmethod
    def query_status(self) -> dict:
        """Ask the device whether it is alive.

        Raises StatusQueryError when the device does not answer in time or
        answers something unexpected, TransportError on I/O failure.
        """

    def __repr__(self):
        state = "open" if self.is_connected() else "closed"
        return f"<{self.__class__.__name__} {self.endpoint} {state}>"


class NetworkPrinter(PrinterConnection):
    """TCP/IP network printer connection (raw port, usually 9100)."""

    def __init__(self, ip: str, port: int = 9100, timeout: float = 5.0):
        self.ip = ip
        self.port = port
        self.timeout = timeout
        self.endpoint = PrinterEndpoint.network(ip, port)
        self._socket: Optional[socket.socket] = None

    def connect(self) -> bool:
        try:
            self._socket = socket.create_connection((self.ip, self.port), timeout=self.timeout)
            self._socket.settimeout(self.timeout)
            return True
        except OSError as e:
            self._socket = None
            raise TransportError(f"Failed to connect to {self.ip}:{self.port}: {e}") from e

    def disconnect(self) -> None:
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

    def write(self, data: bytes) -> bool:
        if not self._socket:
            raise TransportError("Not connected")
        try:
            self._socket.sendall(data)
            return True
        except OSError as e:
            raise TransportError(f"Failed to send data to {self.endpoint}: {e}") from e

    def is_connected(self) -> bool:
        return self._socket is not None

    def query_status(self) -> dict:
        self.write(ESCPOSBuilder.STATUS_PRINTER)
        try:
            reply = self._socket.recv(1)
        except socket.timeout as e:
            raise StatusQueryError(f"No status reply from {self.endpoint} within {self.timeout}s") from e
        except OSError as e:
            raise TransportError(f"Failed to read status from {self.endpoint}: {e}") from e
        if not reply:
            raise StatusQueryError(f"{self.endpoint} closed the connection during status query")
        try:
            return ESCPOSBuilder.parse_printer_status(reply)
        except ValueError as e:
            raise StatusQueryError(f"{self.endpoint}: {e}") from e


class SerialPrinter(PrinterConnection):
    """Serial (or USB virtual COM) printer connection."""

    def __init__(self, port: str, baudrate: int = 9600, timeout: float = 5.0):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.endpoint = PrinterEndpoint.serial(port)
        self._serial: Optional[serial.Serial] = None

    def connect(self) -> bool:
        try:
            self._serial = serial.Serial(
                self.port,
                self.baudrate,
                timeout=self.timeout,
                write_timeout=self.timeout,
            )
            return True
        except (serial.SerialException, OSError, ValueError) as e:
            self._serial = None
            raise TransportError(f"Failed to open {self.port}: {e}") from e

    def disconnect(self) -> None:
        if self._serial:
            try:
                self._serial.close()
            except (serial.SerialException, OSError):
                pass
            self._serial = None

    def write(self, data: bytes) -> bool:
        if not self._serial:
            raise TransportError("Not connected")
        try:
            self._serial.write(data)
            self._serial.flush()
            return True
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Failed to send data to {self.endpoint}: {e}") from e

    def is_connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def query_status(self) -> dict:
        if not self._serial:
            raise TransportError("Not connected")
        try:
            self._serial.reset_input_buffer()
            self._serial.write(ESCPOSBuilder.STATUS_PRINTER)
            reply = self._serial.read(1)
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Status query on {self.endpoint} failed: {e}") from e
        if not reply:
            raise StatusQueryError(f"No status reply from {self.endpoint} within {self.timeout}s")
        try:
            return ESCPOSBuilder.parse_printer_status(reply)
        except ValueError as e:
            raise StatusQueryError(f"{self.endpoint}: {e}") from e


class CupsSpooler:
    """CUPS backend driven through the ``lpstat`` and ``lp`` commands."""

    def __init__(self, lp_path: str = "lp", lpstat_path: str = "lpstat", timeout: float = 5.0):
        self._lp_path = lp_path
        self._lpstat_path = lpstat_path
        self.timeout = timeout

    def _run(self, cmd: List[str], data: Optional[bytes] = None) -> subprocess.CompletedProcess:
        if shutil.which(cmd[0]) is None:
            raise TransportError(f"CUPS not available: '{cmd[0]}' not found in PATH")
        try:
            return subprocess.run(cmd, input=data, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise StatusQueryError(f"'{cmd[0]}' did not finish within {self.timeout}s") from e
        except OSError as e:
            raise TransportError(f"Failed to run '{cmd[0]}': {e}") from e

    @staticmethod
    def _output(proc: subprocess.CompletedProcess) -> str:
        return ((proc.stdout or b"") + (proc.stderr or b"")).decode(errors="replace").strip()

    def list_printers(self) -> List[str]:
        proc = self._run([self._lpstat_path, "-e"])
        if proc.returncode != 0:
            raise TransportError(f"lpstat failed (rc={proc.returncode}): {self._output(proc)}")
        return [line.strip() for line in proc.stdout.decode(errors="replace").splitlines() if line.strip()]

    def open(self, name: str):
        if name not in self.list_printers():
            raise TransportError(f"Printer '{name}' is not registered with CUPS")
        return name

    def close(self, token) -> None:
        pass

    def status(self, token) -> dict:
        proc = self._run([self._lpstat_path, "-p", token])
        if proc.returncode != 0:
            raise StatusQueryError(f"lpstat -p failed (rc={proc.returncode}): {self._output(proc)}")
        return {"offline": "disabled" in self._output(proc)}

    def submit(self, token, data: bytes, title: str) -> None:
        proc = self._run([self._lp_path, "-d", token, "-t", title, "-o", "raw"], data=data)
        if proc.returncode != 0:
            raise TransportError(f"lp failed (rc={proc.returncode}): {self._output(proc)}")


class Win32Spooler:
    """Windows print spooler backend (pywin32)."""

    def __init__(self):
        if not WIN32PRINT_AVAILABLE:
            raise ImportError("pywin32 not installed. Run: pip install pywin32")

    def list_printers(self) -> List[str]:
        flags = win32print.PRINTER_ENUM_LOCAL | win32print.PRINTER_ENUM_CONNECTIONS
        try:
            return [info[2] for info in win32print.EnumPrinters(flags, None, 1)]
        except pywintypes.error as e:
            raise TransportError(f"Failed to enumerate printers: {e}") from e

    def open(self, name: str):
        try:
            return win32print.OpenPrinter(name)
        except pywintypes.error as e:
            raise TransportError(f"Failed to open printer '{name}': {e}") from e

    def close(self, token) -> None:
        try:
            win32print.ClosePrinter(token)
        except pywintypes.error:
            pass

    def status(self, token) -> dict:
        try:
            info = win32print.GetPrinter(token, 2)
        except pywintypes.error as e:
            raise StatusQueryError(f"GetPrinter failed: {e}") from e
        offline = bool(info.get("Attributes", 0) & PRINTER_ATTRIBUTE_WORK_OFFLINE
                       or info.get("Status", 0) & PRINTER_STATUS_OFFLINE)
        return {"offline": offline}

    def submit(self, token, data: bytes, title: str) -> None:
        try:
            win32print.StartDocPrinter(token, 1, (title, None, "RAW"))
            try:
                win32print.StartPagePrinter(token)
                win32print.WritePrinter(token, data)
                win32print.EndPagePrinter(token)
            finally:
                win32print.EndDocPrinter(token)
        except pywintypes.error as e:
            raise TransportError(f"Spooler write failed: {e}") from e


def default_spooler(timeout: float = 5.0):
    """Pick the spooler backend for the running platform."""
    if sys.platform == "win32":
        return Win32Spooler()
    return CupsSpooler(timeout=timeout)


class SpoolerPrinter(PrinterConnection):
    """Printer registered with the OS print spooler, fed RAW ESC/POS jobs."""

    JOB_TITLE = "Token"

    def __init__(self, name: str, spooler=None, timeout: float = 5.0):
        self.name = name
        self.endpoint = PrinterEndpoint.spooler(name)
        self._spooler = spooler or default_spooler(timeout)
        self._token = None

    def connect(self) -> bool:
        self._token = self._spooler.open(self.name)
        return True

    def disconnect(self) -> None:
        if self._token is not None:
            self._spooler.close(self._token)
            self._token = None

    def write(self, data: bytes) -> bool:
        if self._token is None:
            raise TransportError("Not connected")
        self._spooler.submit(self._token, data, self.JOB_TITLE)
        return True

    def is_connected(self) -> bool:
        return self._token is not None

    def query_status(self) -> dict:
        if self._token is None:
            raise TransportError("Not connected")
        status = self._spooler.status(self._token)
        if status.get("offline"):
            raise StatusQueryError(f"{self.endpoint} is marked offline by the spooler")
        return status


@dataclass(frozen=True)
class SerialPortInfo:
    path: str
    manufacturer: Optional[str] = None
    vendor_id: Optional[str] = None
    description: Optional[str] = None


def list_serial_ports() -> List[SerialPortInfo]:
    """Enumerate serial ports in the order the OS reports them."""
    ports = []
    for port in list_ports.comports():
        ports.append(SerialPortInfo(
            path=port.device,
            manufacturer=port.manufacturer,
            vendor_id=f"{port.vid:04x}" if port.vid is not None else None,
            description=port.description,
        ))
    return ports


def list_spooler_printers(spooler=None) -> List[str]:
    """Enumerate printer names registered with the OS spooler."""
    return (spooler or default_spooler()).list_printers()


def create_printer(endpoint: PrinterEndpoint, timeout: float = 5.0,
                   baudrate: int = 9600, spooler=None) -> PrinterConnection:
    """Factory function to create an (unopened) connection for an endpoint."""
    if endpoint.kind is EndpointKind.NETWORK:
        return NetworkPrinter(ip=endpoint.host, port=endpoint.port, timeout=timeout)
    elif endpoint.kind is EndpointKind.SERIAL:
        return SerialPrinter(port=endpoint.path, baudrate=baudrate, timeout=timeout)
    elif endpoint.kind is EndpointKind.SPOOLER:
        return SpoolerPrinter(name=endpoint.name, spooler=spooler, timeout=timeout)
    raise ValueError(f"Unknown endpoint kind: {endpoint.kind}")
