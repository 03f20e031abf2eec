# tests/test_executor.py

import logging
from datetime import datetime
from unittest.mock import Mock

from token_printer.models import JobErrorKind, PrinterEndpoint
from token_printer.printer.executor import PrintJobExecutor
from token_printer.printer.renderer import ReceiptRenderer
from tests.fakes.fake_printer import FakePrinter

WHEN = datetime(2026, 1, 2, 8, 30, 0)


def make_printer():
    printer = FakePrinter(PrinterEndpoint.network("10.0.0.9"))
    printer.connect()
    return printer


def make_executor(manager=None):
    return PrintJobExecutor(ReceiptRenderer(), manager or Mock(), clock=lambda: WHEN)


def test_print_token_sends_one_complete_job():
    printer = make_printer()
    executor = make_executor()

    outcome = executor.print_token(printer, "042", {"establishment_name": "Clinic X"})

    assert outcome.success is True
    assert outcome.token_number == "042"
    assert outcome.error_kind is None
    assert len(printer.jobs) == 1
    job = printer.jobs[0]
    assert job.startswith(b"\x1b@")
    assert b"SENHA: 042" in job
    assert b"Clinic X" in job
    assert b"02/01/2026 08:30:00" in job


def test_transmission_failure_reports_channel_loss():
    printer = make_printer()
    printer.fail_writes = True
    manager = Mock()
    executor = make_executor(manager)

    outcome = executor.print_token(printer, "7")

    assert outcome.success is False
    assert outcome.error_kind is JobErrorKind.DEVICE_UNAVAILABLE
    assert "device gone" in outcome.error_message
    manager.report_channel_lost.assert_called_once()


def test_format_error_never_reaches_printer():
    printer = make_printer()
    manager = Mock()
    executor = make_executor(manager)

    outcome = executor.print_token(printer, "12", {"establishment_name": "Café ☕"})

    assert outcome.success is False
    assert outcome.error_kind is JobErrorKind.FORMAT_ERROR
    assert printer.jobs == []
    manager.report_channel_lost.assert_not_called()


def test_print_test_slip():
    printer = make_printer()

    outcome = make_executor().print_test(printer)

    assert outcome.success is True
    assert outcome.token_number == "test"
    assert b"TESTE DE CONEXAO" in printer.jobs[0]
    assert b"tcp://10.0.0.9:9100" in printer.jobs[0]


def test_outcome_to_dict():
    outcome = make_executor().print_token(make_printer(), "5")
    data = outcome.to_dict()
    assert data["success"] is True
    assert data["token"] == "5"
    assert data["error_kind"] is None


def test_slip_preview_logged_at_debug_level(caplog):
    with caplog.at_level(logging.DEBUG, logger="token_printer"):
        make_executor().print_token(make_printer(), "042", {"category": "Geral"})

    assert "Token slip:" in caplog.text
    assert "SENHA: 042" in caplog.text
    assert "Categoria: Geral" in caplog.text
