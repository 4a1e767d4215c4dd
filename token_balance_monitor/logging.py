from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Iterable

from token_balance_monitor.models.balance import Snapshot


APP_LOGGER = "token_balance_monitor"


class ConsoleLog:
    """Route monitor logs to stdout and hand back the application logger.

    Refresh cycles run on scheduler and fetch threads, so records carry the
    thread name. ``quiet_modules`` are held at WARNING unless also listed in
    ``debug_modules``.
    """

    FORMAT = "%(asctime)s %(levelname)s [%(name)s|%(threadName)s] %(message)s"

    def __init__(
        self,
        level: str = "INFO",
        quiet: bool = False,
        debug_modules: Iterable[str] | None = None,
        *,
        logger_name: str = APP_LOGGER,
        quiet_modules: Iterable[str] = ("urllib3",),
    ):
        self.level = level.upper()
        self.quiet = quiet
        self.debug_modules = list(debug_modules or [])
        self.logger_name = logger_name or APP_LOGGER
        self.quiet_modules = [m for m in quiet_modules if m not in self.debug_modules]

    def setup(self) -> logging.Logger:
        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(logging.DEBUG)

        if not self.quiet:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(getattr(logging, self.level, logging.INFO))
            handler.setFormatter(logging.Formatter(self.FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            root.addHandler(handler)

        for name in self.quiet_modules:
            logging.getLogger(name).setLevel(logging.WARNING)
        for name in self.debug_modules:
            logging.getLogger(name).setLevel(logging.DEBUG)

        return logging.getLogger(self.logger_name)


@dataclass
class RunLogEntry:
    timestamp: str | None
    cycle: int
    token_type: str
    cycle_failed: bool
    failed: list[str]
    stale: list[str]
    changed: list[str]
    records: list[dict[str, Any]]

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, token_type: str, decimals: int) -> "RunLogEntry":
        return cls(
            timestamp=snapshot.last_checked_at.isoformat() if snapshot.last_checked_at else None,
            cycle=snapshot.cycle,
            token_type=token_type,
            cycle_failed=snapshot.cycle_failed,
            failed=list(snapshot.failed),
            stale=list(snapshot.stale),
            changed=list(snapshot.changed_addresses()),
            records=[r.as_dict(decimals) for r in snapshot.records],
        )


class StructuredLog:
    """Append-only JSONL log with one entry per refresh cycle."""

    def __init__(self, path: str | None, enabled: bool = False):
        self.enabled = enabled and bool(path)
        self.path = Path(path).expanduser() if path else None
        if self.enabled and self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, entry: RunLogEntry) -> None:
        if not self.enabled or not self.path:
            return
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(asdict(entry), default=str) + "\n")
        except OSError as exc:  # pragma: no cover - best-effort logging
            logging.getLogger(__name__).debug("Structured log write skipped: %s", exc)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
