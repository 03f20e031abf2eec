# tests/test_models.py

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from token_printer.models import (
    JobErrorKind,
    JobOutcome,
    PrinterEndpoint,
    PrinterStatusReport,
    SystemStatus,
    TokenEvent,
)


def test_endpoint_labels():
    assert str(PrinterEndpoint.serial("/dev/ttyUSB0")) == "serial:/dev/ttyUSB0"
    assert str(PrinterEndpoint.network("10.0.0.9")) == "tcp://10.0.0.9:9100"
    assert str(PrinterEndpoint.spooler("TMUSB001")) == "spooler:TMUSB001"


def test_endpoints_are_hashable_values():
    assert PrinterEndpoint.network("h", "9100") == PrinterEndpoint.network("h", 9100)
    assert len({PrinterEndpoint.serial("COM3"), PrinterEndpoint.serial("COM3")}) == 1


def test_token_event_from_backend_payload():
    event = TokenEvent.model_validate({"numero": 42, "estabelecimento": "Clinic X", "categoria": " "})

    assert event.number == "42"
    assert event.establishment_name == "Clinic X"
    assert event.category is None


def test_token_event_by_field_name():
    event = TokenEvent(number=" 007 ", category="Preferencial")
    assert event.number == "007"
    assert event.category == "Preferencial"


@pytest.mark.parametrize("payload", [{}, {"numero": ""}, {"numero": None}])
def test_token_event_requires_number(payload):
    with pytest.raises(ValidationError):
        TokenEvent.model_validate(payload)


@pytest.mark.parametrize("number,expected", [(7, "7"), (7.0, "7"), (7.5, "7.5"), (" 042 ", "042")])
def test_token_number_as_text(number, expected):
    assert TokenEvent.model_validate({"numero": number}).number == expected


def test_job_outcome_constructors():
    ok = JobOutcome.ok("1")
    failed = JobOutcome.failed("2", JobErrorKind.FORMAT_ERROR, "bad char")

    assert ok.success and ok.error_kind is None
    assert not failed.success
    assert failed.to_dict()["error_kind"] == "format_error"
    assert failed.to_dict()["error"] == "bad char"


def test_system_status_counters():
    status = SystemStatus(start_time=datetime.now() - timedelta(seconds=90))

    status.record_outcome(JobOutcome.ok("1"))
    status.record_outcome(JobOutcome.ok("2"))
    status.record_outcome(JobOutcome.failed("3", JobErrorKind.DEVICE_UNAVAILABLE, "gone"))

    data = status.to_dict()
    assert data["total_printed"] == 2
    assert data["total_errors"] == 1
    assert data["last_token"] == "3"
    assert data["uptime_seconds"] >= 90


def test_system_status_printer_endpoint_cleared_on_disconnect():
    status = SystemStatus()
    status.set_printer(True, PrinterEndpoint.serial("COM3"))
    assert status.printer_endpoint == "serial:COM3"

    status.set_printer(False)
    assert status.printer_connected is False
    assert status.printer_endpoint is None


def test_status_report_serializes_timestamp():
    payload = PrinterStatusReport(connected=True).model_dump(mode="json")
    assert payload["connected"] is True
    assert isinstance(payload["timestamp"], str)
