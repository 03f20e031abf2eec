"""Bridge configuration.

Settings come from environment variables, optionally loaded from a ``.env``
file in the working directory. ``build_printer_settings`` validates the
printer-related part and is the only place a configuration error is raised.
"""
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

from token_printer.exceptions import ConfigurationError
from token_printer.models import DiscoveryMode, PrinterEndpoint, SelfTestMode
from token_printer.printer.escpos import ESCPOSBuilder

# Must run before the Config classes below read the environment
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration."""
    BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:3000")
    SOCKET_RECONNECT_DELAY = os.environ.get("SOCKET_RECONNECT_DELAY", "5")

    # Printer transport: usb | network | windows-spooler
    PRINTER_MODE = os.environ.get("PRINTER_MODE", "usb")
    PRINTER_PORT = os.environ.get("PRINTER_PORT")          # serial path, e.g. COM3 or /dev/ttyUSB0
    PRINTER_IP = os.environ.get("PRINTER_IP")
    PRINTER_IP_PORT = os.environ.get("PRINTER_IP_PORT", "9100")
    PRINTER_NAME = os.environ.get("PRINTER_NAME")          # spooler-registered name
    PRINTER_BAUDRATE = os.environ.get("PRINTER_BAUDRATE", "9600")
    PRINTER_TIMEOUT = os.environ.get("PRINTER_TIMEOUT", "5")

    # Reconnection policy
    MAX_RECONNECT_ATTEMPTS = os.environ.get("MAX_RECONNECT_ATTEMPTS", "3")
    RECONNECT_DELAY = os.environ.get("RECONNECT_DELAY", "5")
    SELF_TEST_MODE = os.environ.get("SELF_TEST_MODE", "always")

    # Receipt layout
    PRINTER_WIDTH = os.environ.get("PRINTER_WIDTH", "48")
    PRINTER_CODEPAGE = os.environ.get("PRINTER_CODEPAGE", "cp850")
    ESTABLISHMENT_NAME = os.environ.get("ESTABLISHMENT_NAME")
    FOOTER_TEXT = os.environ.get("FOOTER_TEXT", "Aguarde ser chamado")
    TIMESTAMP_FORMAT = os.environ.get("TIMESTAMP_FORMAT", "%d/%m/%Y %H:%M:%S")
    LOGO_PATH = os.environ.get("LOGO_PATH")

    # Reporting and logging
    STATUS_INTERVAL = os.environ.get("STATUS_INTERVAL", "30")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_DIR = os.environ.get("LOG_DIR")
    LOG_TO_FILE = _env_bool("LOG_TO_FILE", "false")


class DevelopmentConfig(Config):
    """Development configuration."""
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    """Production configuration."""
    LOG_TO_FILE = _env_bool("LOG_TO_FILE", "true")


class TestingConfig(Config):
    """Testing configuration."""
    BACKEND_URL = "http://localhost:0"
    PRINTER_MODE = "network"
    PRINTER_IP = "127.0.0.1"
    PRINTER_PORT = None
    PRINTER_NAME = None
    RECONNECT_DELAY = "0"
    SELF_TEST_MODE = "never"
    ESTABLISHMENT_NAME = None
    LOGO_PATH = None
    STATUS_INTERVAL = "0"
    LOG_TO_FILE = False


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": ProductionConfig,
}


class TransportMode(Enum):
    USB = "usb"
    NETWORK = "network"
    SPOOLER = "windows-spooler"


# Older deployments used PRINTER_MODE=tmusb for the Epson TM USB driver port
LEGACY_TMUSB_NAME = "TMUSB001"


@dataclass(frozen=True)
class PrinterSettings:
    """Validated printer settings."""
    transport: TransportMode
    discovery_mode: DiscoveryMode
    endpoint: Optional[PrinterEndpoint]
    baudrate: int = 9600
    timeout: float = 5.0
    max_reconnect_attempts: int = 3
    reconnect_delay: float = 5.0
    self_test: SelfTestMode = SelfTestMode.ALWAYS
    width: int = 48
    codepage: str = "cp850"
    establishment_name: Optional[str] = None
    footer: str = "Aguarde ser chamado"
    timestamp_format: str = "%d/%m/%Y %H:%M:%S"
    logo_path: Optional[str] = None


def _number(cfg, name: str, cast, minimum=None):
    raw = getattr(cfg, name)
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number (got {raw!r})", setting=name)
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum} (got {value})", setting=name)
    return value


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_printer_settings(cfg) -> PrinterSettings:
    """Validate a Config class (or object) and build PrinterSettings.

    Raises:
        ConfigurationError: unknown transport mode, missing endpoint for
            network mode, or malformed numeric values.
    """
    mode_name = (_blank_to_none(cfg.PRINTER_MODE) or "").lower()
    serial_path = _blank_to_none(cfg.PRINTER_PORT)
    spooler_name = _blank_to_none(cfg.PRINTER_NAME)

    if mode_name == "tmusb":
        mode_name = TransportMode.SPOOLER.value
        spooler_name = spooler_name or LEGACY_TMUSB_NAME

    try:
        transport = TransportMode(mode_name)
    except ValueError:
        valid = ", ".join(m.value for m in TransportMode)
        raise ConfigurationError(
            f"Invalid PRINTER_MODE {cfg.PRINTER_MODE!r}; expected one of: {valid}",
            setting="PRINTER_MODE",
        )

    timeout = _number(cfg, "PRINTER_TIMEOUT", float, minimum=0.1)

    if transport is TransportMode.NETWORK:
        host = _blank_to_none(cfg.PRINTER_IP)
        if not host:
            raise ConfigurationError("PRINTER_IP is required when PRINTER_MODE=network",
                                     setting="PRINTER_IP")
        port = _number(cfg, "PRINTER_IP_PORT", int, minimum=1)
        endpoint = PrinterEndpoint.network(host, port)
        discovery_mode = DiscoveryMode.EXPLICIT
    elif transport is TransportMode.USB:
        endpoint = PrinterEndpoint.serial(serial_path) if serial_path else None
        discovery_mode = DiscoveryMode.EXPLICIT if endpoint else DiscoveryMode.SERIAL_SCAN
    else:
        endpoint = PrinterEndpoint.spooler(spooler_name) if spooler_name else None
        discovery_mode = DiscoveryMode.EXPLICIT if endpoint else DiscoveryMode.SPOOLER_SCAN

    try:
        self_test = SelfTestMode((cfg.SELF_TEST_MODE or "always").strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Invalid SELF_TEST_MODE {cfg.SELF_TEST_MODE!r}; expected always, initial or never",
            setting="SELF_TEST_MODE",
        )

    codepage = (cfg.PRINTER_CODEPAGE or "cp850").strip().lower()
    if codepage not in ESCPOSBuilder.CODEPAGES:
        raise ConfigurationError(f"Unsupported PRINTER_CODEPAGE {codepage!r}", setting="PRINTER_CODEPAGE")

    return PrinterSettings(
        transport=transport,
        discovery_mode=discovery_mode,
        endpoint=endpoint,
        baudrate=_number(cfg, "PRINTER_BAUDRATE", int, minimum=1),
        timeout=timeout,
        max_reconnect_attempts=_number(cfg, "MAX_RECONNECT_ATTEMPTS", int, minimum=1),
        reconnect_delay=_number(cfg, "RECONNECT_DELAY", float, minimum=0),
        self_test=self_test,
        width=_number(cfg, "PRINTER_WIDTH", int, minimum=16),
        codepage=codepage,
        establishment_name=_blank_to_none(cfg.ESTABLISHMENT_NAME),
        footer=cfg.FOOTER_TEXT or "",
        timestamp_format=cfg.TIMESTAMP_FORMAT or "%d/%m/%Y %H:%M:%S",
        logo_path=_blank_to_none(cfg.LOGO_PATH),
    )
