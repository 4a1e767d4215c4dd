# token_balance_monitor/main.py

import logging
import math
import sys
import threading

from .cli import build_parser
from .config import AppConfig, Config
from .errors import ConfigurationError, CycleFailure
from .logging import ConsoleLog, StructuredLog, RunLogEntry

from .services.output_formatter import snapshot_printer
from .services.scheduler import RefreshScheduler
from .services.snapshot_engine import SnapshotEngine
from .services.sui_rpc_client import SuiBalanceClient


EXIT_OK = 0
EXIT_CYCLE_FAILED = 1
EXIT_CONFIG = 2


def build_engine(app_cfg: AppConfig, log, *, client=None) -> SnapshotEngine:
    monitor = app_cfg.monitor
    fetcher = client or SuiBalanceClient(app_cfg.rpc, log.getChild("rpc"))
    return SnapshotEngine(
        fetcher,
        monitor.addresses,
        monitor.token_type,
        decimals=monitor.decimals,
        initial_balances=monitor.initial_balances,
        fetch_timeout=monitor.fetch_timeout,
        stale_after_failures=monitor.stale_after_failures,
        log=log.getChild("engine"),
    )


def attach_observers(engine: SnapshotEngine, structured_logger: StructuredLog, *, quiet: bool, as_json: bool) -> None:
    if not quiet:
        engine.subscribe(snapshot_printer(engine.decimals, as_json=as_json))
    if structured_logger.enabled:
        engine.subscribe(
            lambda snap: structured_logger.write(
                RunLogEntry.from_snapshot(snap, engine.token_type, engine.decimals)
            )
        )


def run_check(scheduler: RefreshScheduler, log) -> int:
    try:
        scheduler.run_once()
    except CycleFailure as exc:
        log.error("%s", exc)
        return EXIT_CYCLE_FAILED
    return EXIT_OK


def run_watch(scheduler: RefreshScheduler, log, stdin=None) -> int:
    stream = sys.stdin if stdin is None else stdin
    idle = threading.Event()
    scheduler.start()
    try:
        if stream is not None and stream.isatty():
            log.info("Press Enter to refresh now, Ctrl-C to stop.")
            for _ in stream:
                scheduler.trigger()
        while scheduler.running:
            idle.wait(1.0)
    except KeyboardInterrupt:
        log.info("Interrupted; stopping monitor.")
    finally:
        scheduler.stop()
    return EXIT_OK


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_cfg = Config.load(args.config)
    except (ConfigurationError, FileNotFoundError) as exc:
        logging.basicConfig(level=logging.ERROR, format="%(levelname)s %(message)s")
        logging.getLogger("token_balance_monitor").error("Configuration error: %s", exc)
        return EXIT_CONFIG

    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
        logger_name=app_cfg.logging.logger_name,
        quiet_modules=() if args.debug else ("urllib3",),
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        args.structured_log or app_cfg.logging.structured_path,
        bool(args.structured_log) or app_cfg.logging.structured_enabled,
    )

    try:
        engine = build_engine(app_cfg, log)
    except ConfigurationError as exc:
        log.error("Configuration error: %s", exc)
        return EXIT_CONFIG
    attach_observers(engine, structured_logger, quiet=args.quiet, as_json=args.json)

    interval = getattr(args, "interval", None)
    if interval is None:
        interval = app_cfg.monitor.poll_interval
    elif not math.isfinite(interval) or interval <= 0:
        log.error("Configuration error: --interval must be a positive finite number, got %s", interval)
        return EXIT_CONFIG
    scheduler = RefreshScheduler(engine, interval, log.getChild("scheduler"))

    if args.command == "check":
        return run_check(scheduler, log)
    if args.command == "watch":
        return run_watch(scheduler, log)
    raise ValueError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
