import json
import logging
from datetime import datetime, timezone

from token_balance_monitor.logging import ConsoleLog, RunLogEntry, StructuredLog
from token_balance_monitor.models.balance import BalanceRecord, Snapshot


def _snapshot():
    ts = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    return Snapshot(
        records=(
            BalanceRecord("0xaaa", current=250, previous=200, changed=True, observed_at=ts),
            BalanceRecord("0xbbb", current=100, previous=100, changed=False, observed_at=ts),
        ),
        last_checked_at=ts,
        cycle=3,
        failed=("0xbbb",),
    )


def test_structured_log_writes_json(tmp_path):
    log_path = tmp_path / "logs" / "structured.log"
    entry = RunLogEntry.from_snapshot(_snapshot(), "0x2::coin::TEST", decimals=2)

    StructuredLog(str(log_path), enabled=True).write(entry)

    line = log_path.read_text(encoding="utf-8").strip()
    assert line
    payload = json.loads(line)
    assert payload["timestamp"] == "2024-01-01T12:00:00+00:00"
    assert payload["cycle"] == 3
    assert payload["token_type"] == "0x2::coin::TEST"
    assert payload["changed"] == ["0xaaa"]
    assert payload["failed"] == ["0xbbb"]
    assert payload["records"][0]["current"] == "250"
    assert payload["records"][0]["diff_scaled"] == "+0.5"


def test_structured_log_disabled_without_path(tmp_path):
    log = StructuredLog(None, enabled=True)
    assert log.enabled is False
    log.write(RunLogEntry.from_snapshot(_snapshot(), "T", decimals=0))


def test_console_log_quiet_skips_handlers():
    root = logging.getLogger()
    orig_handlers = list(root.handlers)
    orig_level = root.level
    try:
        log = ConsoleLog(level="INFO", quiet=True).setup()
        assert log.name == "token_balance_monitor"
        assert root.handlers == []
    finally:
        root.handlers.clear()
        root.handlers.extend(orig_handlers)
        root.setLevel(orig_level)


def test_console_log_debug_modules():
    root = logging.getLogger()
    orig_handlers = list(root.handlers)
    orig_level = root.level
    target = logging.getLogger("token_balance_monitor.rpc")
    orig_target_level = target.level
    try:
        ConsoleLog(level="warning", debug_modules=["token_balance_monitor.rpc"]).setup()
        assert len(root.handlers) == 1
        assert root.handlers[0].level == logging.WARNING
        assert target.level == logging.DEBUG
    finally:
        root.handlers.clear()
        root.handlers.extend(orig_handlers)
        root.setLevel(orig_level)
        target.setLevel(orig_target_level)


def test_console_log_uses_configured_logger_name_and_quiets_urllib3():
    root = logging.getLogger()
    orig_handlers = list(root.handlers)
    orig_level = root.level
    urllib3 = logging.getLogger("urllib3")
    orig_urllib3_level = urllib3.level
    try:
        log = ConsoleLog(quiet=True, logger_name="custom.monitor").setup()
        assert log.name == "custom.monitor"
        assert urllib3.level == logging.WARNING

        ConsoleLog(quiet=True, debug_modules=["urllib3"]).setup()
        assert urllib3.level == logging.DEBUG
    finally:
        root.handlers.clear()
        root.handlers.extend(orig_handlers)
        root.setLevel(orig_level)
        urllib3.setLevel(orig_urllib3_level)
