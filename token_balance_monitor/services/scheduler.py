# token_balance_monitor/services/scheduler.py

from __future__ import annotations

import logging
import math
import threading
from typing import Optional

from token_balance_monitor.errors import CycleFailure
from token_balance_monitor.models.balance import Snapshot
from token_balance_monitor.services.snapshot_engine import SnapshotEngine


class RefreshScheduler:
    """
    Drives ``SnapshotEngine.refresh()`` from a periodic timer and from manual
    triggers. A single worker thread runs every cycle, so triggers that arrive
    mid-cycle are queued (and coalesced) rather than run concurrently.
    """

    def __init__(self, engine: SnapshotEngine, interval: float, log=None):
        if not math.isfinite(interval) or interval <= 0:
            raise ValueError(f"Poll interval must be a positive finite number, got {interval!r}")
        self.engine = engine
        self.interval = interval
        self.log = log or logging.getLogger("token_balance_monitor.scheduler")
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles_run = 0
        self.cycle_failures = 0

    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def trigger(self) -> None:
        """Request a refresh as soon as the worker is free."""
        self.log.debug("Manual refresh requested")
        self._wake.set()

    def run_once(self) -> Snapshot:
        """Run one cycle on the calling thread. ``CycleFailure`` propagates."""
        try:
            return self.engine.refresh()
        finally:
            self.cycles_run += 1

    # ------------------------------------------------------------------
    def _cycle(self) -> None:
        try:
            self.run_once()
        except CycleFailure as exc:
            self.cycle_failures += 1
            self.log.error("%s", exc)
        except Exception:
            self.cycle_failures += 1
            self.log.exception("Refresh cycle crashed; continuing with next cycle")

    def _loop(self) -> None:
        self.log.info(
            "Monitoring %d addresses every %ss",
            len(self.engine.addresses),
            self.interval,
        )
        while not self._stopping.is_set():
            # Triggers received from here on queue the next cycle.
            self._wake.clear()
            self._cycle()
            self._wake.wait(self.interval)
        self.log.info("Scheduler stopped after %d cycles", self.cycles_run)

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._loop, name="balance-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stopping.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
