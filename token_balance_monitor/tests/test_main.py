import logging

import pytest

from token_balance_monitor.cli import build_parser
from token_balance_monitor.config import AppConfig, LoggingConfig, MonitorConfig, RpcConfig
from token_balance_monitor.logging import StructuredLog
from token_balance_monitor.main import (
    EXIT_CONFIG,
    EXIT_CYCLE_FAILED,
    EXIT_OK,
    attach_observers,
    build_engine,
    main,
    run_check,
    run_watch,
)
from token_balance_monitor.services.scheduler import RefreshScheduler
from token_balance_monitor.tests.fake_fetcher import FAIL, ScriptedFetcher


LOG = logging.getLogger("main-tests")


def _app_config(**monitor_overrides):
    monitor = MonitorConfig(
        addresses=["P", "Q"],
        token_type="TOKEN",
        decimals=0,
        initial_balances={"P": "100", "Q": "200"},
    )
    for key, value in monitor_overrides.items():
        setattr(monitor, key, value)
    return AppConfig(monitor=monitor, rpc=RpcConfig(), logging=LoggingConfig())


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers.clear()
    root.handlers.extend(handlers)
    root.setLevel(level)


def test_check_prints_snapshot_and_writes_structured_log(tmp_path, capsys):
    engine = build_engine(_app_config(), LOG, client=ScriptedFetcher({"P": [100], "Q": [250]}))
    structured = StructuredLog(str(tmp_path / "run.jsonl"), enabled=True)
    attach_observers(engine, structured, quiet=False, as_json=False)

    code = run_check(RefreshScheduler(engine, 30, LOG), LOG)

    assert code == EXIT_OK
    out = capsys.readouterr().out
    assert "[Q] balance=250  previous=200  status=Changed (+50)" in out
    assert (tmp_path / "run.jsonl").read_text().count("\n") == 1


def test_check_reports_total_failure():
    engine = build_engine(_app_config(), LOG, client=ScriptedFetcher({"P": [FAIL], "Q": [FAIL]}))
    attach_observers(engine, StructuredLog(None), quiet=True, as_json=False)

    assert run_check(RefreshScheduler(engine, 30, LOG), LOG) == EXIT_CYCLE_FAILED


class FakeTTY:
    """Interactive stdin stand-in: yields Enter presses, then Ctrl-C."""

    def __init__(self, presses):
        self.presses = presses

    def isatty(self):
        return True

    def __iter__(self):
        for _ in range(self.presses):
            yield "\n"
        raise KeyboardInterrupt


def test_watch_enter_triggers_and_ctrl_c_stops():
    engine = build_engine(_app_config(), LOG, client=ScriptedFetcher({"P": [100], "Q": [200]}))
    scheduler = RefreshScheduler(engine, 30, LOG)
    triggered = []
    original_trigger = scheduler.trigger

    def counting_trigger():
        triggered.append(True)
        original_trigger()

    scheduler.trigger = counting_trigger

    code = run_watch(scheduler, LOG, stdin=FakeTTY(presses=2))

    assert code == EXIT_OK
    assert len(triggered) == 2
    assert scheduler.running is False


def test_main_exits_with_config_error_for_missing_file(tmp_path):
    assert main(["--config", str(tmp_path / "missing.conf"), "check"]) == EXIT_CONFIG


def test_main_exits_with_config_error_for_invalid_file(tmp_path):
    conf = tmp_path / "bad.conf"
    conf.write_text("[monitor]\naddresses =\ntoken_type = T\n")
    assert main(["--config", str(conf), "check"]) == EXIT_CONFIG


def test_main_rejects_non_positive_interval(tmp_path):
    conf = tmp_path / "ok.conf"
    conf.write_text("[monitor]\naddresses = 0xa\ntoken_type = T\n")
    assert main(["--config", str(conf), "--quiet", "watch", "--interval", "0"]) == EXIT_CONFIG


def test_main_rejects_non_finite_interval(tmp_path):
    conf = tmp_path / "ok.conf"
    conf.write_text("[monitor]\naddresses = 0xa\ntoken_type = T\n")
    assert main(["--config", str(conf), "--quiet", "watch", "--interval", "nan"]) == EXIT_CONFIG


def test_parser_structured_log_override():
    args = build_parser().parse_args(["--structured-log", "/tmp/runs.jsonl", "--json", "watch", "--interval", "5"])
    assert args.structured_log == "/tmp/runs.jsonl"
    assert args.json is True
    assert args.command == "watch"
    assert args.interval == 5.0

    args = build_parser().parse_args(["check"])
    assert args.structured_log is None
    assert args.config == "token_balance_monitor.conf"
