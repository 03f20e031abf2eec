# tests/test_config.py

import pytest

from token_printer.config import TransportMode, build_printer_settings, config
from token_printer.exceptions import ConfigurationError
from token_printer.models import DiscoveryMode, PrinterEndpoint, SelfTestMode

TESTING = config["testing"]


def settings_for(**overrides):
    cfg = type("Cfg", (TESTING,), overrides)
    return build_printer_settings(cfg)


def test_config_registry():
    assert set(config) == {"development", "production", "testing", "default"}
    assert config["default"] is config["production"]


def test_testing_config_builds_network_settings():
    settings = build_printer_settings(TESTING)

    assert settings.transport is TransportMode.NETWORK
    assert settings.discovery_mode is DiscoveryMode.EXPLICIT
    assert settings.endpoint == PrinterEndpoint.network("127.0.0.1", 9100)
    assert settings.self_test is SelfTestMode.NEVER
    assert settings.reconnect_delay == 0


def test_network_mode_requires_ip():
    with pytest.raises(ConfigurationError) as excinfo:
        settings_for(PRINTER_IP="  ")
    assert excinfo.value.setting == "PRINTER_IP"


def test_invalid_mode():
    with pytest.raises(ConfigurationError, match="PRINTER_MODE"):
        settings_for(PRINTER_MODE="bluetooth")


def test_usb_mode_with_port_is_explicit():
    settings = settings_for(PRINTER_MODE="usb", PRINTER_PORT="COM3")

    assert settings.transport is TransportMode.USB
    assert settings.discovery_mode is DiscoveryMode.EXPLICIT
    assert settings.endpoint == PrinterEndpoint.serial("COM3")


def test_usb_mode_without_port_scans():
    settings = settings_for(PRINTER_MODE="USB", PRINTER_PORT="")

    assert settings.discovery_mode is DiscoveryMode.SERIAL_SCAN
    assert settings.endpoint is None


def test_spooler_mode():
    assert settings_for(PRINTER_MODE="windows-spooler").discovery_mode is DiscoveryMode.SPOOLER_SCAN

    settings = settings_for(PRINTER_MODE="windows-spooler", PRINTER_NAME="EPSON TM-T20")
    assert settings.endpoint == PrinterEndpoint.spooler("EPSON TM-T20")


def test_legacy_tmusb_mode_maps_to_spooler():
    settings = settings_for(PRINTER_MODE="tmusb")

    assert settings.transport is TransportMode.SPOOLER
    assert settings.endpoint == PrinterEndpoint.spooler("TMUSB001")


@pytest.mark.parametrize("name,value", [
    ("PRINTER_IP_PORT", "abc"),
    ("PRINTER_IP_PORT", "0"),
    ("MAX_RECONNECT_ATTEMPTS", "0"),
    ("RECONNECT_DELAY", "-1"),
    ("PRINTER_TIMEOUT", "soon"),
    ("PRINTER_WIDTH", "8"),
])
def test_bad_numbers(name, value):
    with pytest.raises(ConfigurationError) as excinfo:
        settings_for(**{name: value})
    assert excinfo.value.setting == name


def test_bad_self_test_mode():
    with pytest.raises(ConfigurationError, match="SELF_TEST_MODE"):
        settings_for(SELF_TEST_MODE="sometimes")


def test_unsupported_codepage():
    with pytest.raises(ConfigurationError, match="PRINTER_CODEPAGE"):
        settings_for(PRINTER_CODEPAGE="utf-8")


def test_layout_settings():
    settings = settings_for(
        PRINTER_WIDTH="32",
        PRINTER_CODEPAGE="CP860",
        ESTABLISHMENT_NAME=" Clinic X ",
        FOOTER_TEXT="Please wait",
        SELF_TEST_MODE="initial",
    )

    assert settings.width == 32
    assert settings.codepage == "cp860"
    assert settings.establishment_name == "Clinic X"
    assert settings.footer == "Please wait"
    assert settings.self_test is SelfTestMode.INITIAL
