# tests/test_bridge.py

from unittest.mock import Mock

import pytest

from token_printer.bridge import Command, CommandType, ServiceBridge
from token_printer.models import (
    DiscoveryMode,
    JobErrorKind,
    PrinterEndpoint,
    SelfTestMode,
    SystemStatus,
    TokenEvent,
)
from token_printer.printer.connection import SerialPortInfo
from token_printer.printer.discovery import Discovery
from token_printer.printer.executor import PrintJobExecutor
from token_printer.printer.manager import ConnectionManager
from token_printer.printer.probe import TransportProbe
from token_printer.printer.renderer import ReceiptRenderer
from tests.fakes.fake_printer import FakePrinterFactory
from tests.helpers import wait_for

PRINTER = PrinterEndpoint.network("10.0.0.9")


def make_bridge(factory, mode=DiscoveryMode.EXPLICIT, ports=(), establishment_name=None,
                self_test=SelfTestMode.NEVER):
    status = SystemStatus()
    renderer = ReceiptRenderer()
    probe = TransportProbe(renderer, connection_factory=factory)
    discovery = Discovery(
        probe,
        endpoint=PRINTER if mode is DiscoveryMode.EXPLICIT else None,
        serial_lister=lambda: [SerialPortInfo(p) for p in ports],
    )
    manager = ConnectionManager(discovery, mode, status=status, reconnect_delay=0,
                                self_test=self_test, sleep=lambda _d: None)
    executor = PrintJobExecutor(renderer, manager)
    upstream = Mock()
    bridge = ServiceBridge(manager, executor, status, establishment_name=establishment_name,
                           upstream=upstream)
    return bridge, upstream


def token(number, **kwargs):
    return TokenEvent(numero=number, **kwargs)


def test_print_round_trip():
    factory = FakePrinterFactory()
    printer = factory.add(PRINTER)
    bridge, upstream = make_bridge(factory)
    bridge.manager.connect()

    outcome = bridge.handle_token(token("042", estabelecimento="Clinic X"))

    assert outcome.success is True
    assert len(printer.jobs) == 1
    assert b"Clinic X" in printer.jobs[0]
    assert b"SENHA: 042" in printer.jobs[0]
    assert bridge.status.total_printed == 1
    assert bridge.status.total_errors == 0
    assert bridge.status.last_token == "042"
    upstream.report_token_printed.assert_called_once_with("042")


def test_establishment_name_falls_back_to_configured_value():
    factory = FakePrinterFactory()
    printer = factory.add(PRINTER)
    bridge, _ = make_bridge(factory, establishment_name="Posto Central")

    bridge.handle_token(token("3"))

    assert b"Posto Central" in printer.jobs[0]


def test_token_connects_lazily_and_reports_status_change():
    factory = FakePrinterFactory()
    factory.add(PRINTER)
    bridge, upstream = make_bridge(factory)

    outcome = bridge.execute(Command(CommandType.PRINT_TOKEN, token("1")))

    assert outcome.success is True
    assert bridge.manager.is_connected
    upstream.report_printer_status.assert_called_once_with(True)


def test_transmission_failure_path():
    factory = FakePrinterFactory()
    printer = factory.add(PRINTER)
    bridge, upstream = make_bridge(factory)
    bridge.manager.connect()
    printer.fail_writes = True

    outcome = bridge.handle_token(token("8"))

    assert outcome.success is False
    assert outcome.error_kind is JobErrorKind.DEVICE_UNAVAILABLE
    assert not bridge.manager.is_connected
    assert bridge.status.total_errors == 1
    assert bridge.status.printer_connected is False
    upstream.report_print_error.assert_called_once()
    assert upstream.report_print_error.call_args[0][0] == "8"


def test_no_candidates_end_to_end():
    factory = FakePrinterFactory()
    bridge, upstream = make_bridge(factory, mode=DiscoveryMode.SERIAL_SCAN, ports=())

    assert bridge.manager.connect() is False
    outcome = bridge.handle_token(token("7"))

    assert outcome.success is False
    assert outcome.error_kind is JobErrorKind.DEVICE_UNAVAILABLE
    assert outcome.error_message.startswith("Printer unavailable")
    assert factory.probe_count == 0
    assert factory.total_jobs() == 0
    assert bridge.status.total_errors == 1
    assert bridge.status.total_printed == 0


def test_worker_prints_in_arrival_order():
    factory = FakePrinterFactory()
    printer = factory.add(PRINTER)
    bridge, _ = make_bridge(factory)
    bridge.start()

    try:
        futures = [bridge.submit_token(token(str(n))) for n in range(1, 6)]
        wait_for(lambda: all(f.done() for f in futures))
    finally:
        bridge.stop(timeout=5)

    assert [f.result().success for f in futures] == [True] * 5
    order = [job.split(b"SENHA: ")[1].split(b"\n")[0] for job in printer.jobs]
    assert order == [b"1", b"2", b"3", b"4", b"5"]


def test_stop_drains_queued_commands():
    factory = FakePrinterFactory()
    factory.add(PRINTER)
    bridge, _ = make_bridge(factory)

    futures = [bridge.submit_token(token(str(n))) for n in range(3)]
    bridge.start()
    bridge.stop(timeout=5)

    assert all(f.done() for f in futures)
    assert bridge.status.total_printed == 3


def test_submit_after_stop_is_rejected():
    bridge, _ = make_bridge(FakePrinterFactory())
    bridge.start()
    bridge.stop(timeout=5)

    with pytest.raises(RuntimeError):
        bridge.submit_token(token("1"))


def test_unexpected_error_is_set_on_future_and_worker_survives():
    factory = FakePrinterFactory()
    factory.add(PRINTER)
    bridge, _ = make_bridge(factory)
    bridge.executor = Mock()
    bridge.executor.print_token.side_effect = [RuntimeError("boom"), Mock(success=True, token_number="2")]
    bridge.start()

    try:
        first = bridge.submit_token(token("1"))
        second = bridge.submit_token(token("2"))
        wait_for(lambda: first.done() and second.done())
    finally:
        bridge.stop(timeout=5)

    assert isinstance(first.exception(), RuntimeError)
    assert second.result().success is True


def test_status_request():
    factory = FakePrinterFactory()
    factory.add(PRINTER)
    bridge, _ = make_bridge(factory)
    bridge.manager.connect()

    result = bridge.execute(Command(CommandType.STATUS))

    assert result["success"] is True
    assert result["connected"] is True
    assert result["status"]["printer_endpoint"] == "tcp://10.0.0.9:9100"


def test_test_print_request():
    factory = FakePrinterFactory()
    printer = factory.add(PRINTER)
    bridge, _ = make_bridge(factory)

    result = bridge.execute(Command(CommandType.TEST_PRINT))

    assert result == {"success": True, "error": None}
    assert b"TESTE DE CONEXAO" in printer.jobs[-1]


def test_test_print_after_verifying_connect_prints_one_slip():
    factory = FakePrinterFactory()
    printer = factory.add(PRINTER)
    bridge, _ = make_bridge(factory, self_test=SelfTestMode.ALWAYS)

    result = bridge.execute(Command(CommandType.TEST_PRINT))

    assert result == {"success": True, "error": None}
    assert len(printer.jobs) == 1
    assert b"TESTE DE CONEXAO" in printer.jobs[0]


def test_test_print_when_already_connected_prints_again():
    factory = FakePrinterFactory()
    printer = factory.add(PRINTER)
    bridge, _ = make_bridge(factory, self_test=SelfTestMode.ALWAYS)
    bridge.manager.connect()

    bridge.execute(Command(CommandType.TEST_PRINT))

    assert len(printer.jobs) == 2


def test_test_print_without_printer():
    bridge, _ = make_bridge(FakePrinterFactory())

    result = bridge.execute(Command(CommandType.TEST_PRINT))

    assert result["success"] is False


def test_reconnect_request():
    factory = FakePrinterFactory()
    factory.add(PRINTER)
    bridge, upstream = make_bridge(factory)

    result = bridge.execute(Command(CommandType.RECONNECT))

    assert result == {
        "success": True,
        "connected": True,
        "endpoint": "tcp://10.0.0.9:9100",
        "error": None,
    }


def test_upstream_failure_does_not_fail_job():
    factory = FakePrinterFactory()
    factory.add(PRINTER)
    bridge, upstream = make_bridge(factory)
    upstream.report_token_printed.side_effect = ConnectionError("socket closed")

    outcome = bridge.handle_token(token("4"))

    assert outcome.success is True
