# token_balance_monitor/services/snapshot_engine.py

from __future__ import annotations

import logging
import math
import re
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from token_balance_monitor.errors import ConfigurationError, CycleFailure, FetchError
from token_balance_monitor.models.balance import BalanceRecord, FetchOutcome, Snapshot


class BalanceFetcher(Protocol):
    def fetch(self, address: str, token_type: str) -> int: ...


Observer = Callable[[Snapshot], None]

_DIGITS = re.compile(r"[0-9]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_initial(address: str, raw) -> int:
    if isinstance(raw, bool):
        raise ConfigurationError(f"Initial balance for {address} must be an integer, got {raw!r}")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not _DIGITS.fullmatch(text):
            raise ConfigurationError(f"Initial balance for {address} must be an integer, got {raw!r}")
        value = int(text)
    if value < 0:
        raise ConfigurationError(f"Initial balance for {address} must be non-negative, got {value}")
    return value


class SnapshotEngine:
    """
    Owns the per-address balance table and turns concurrent balance queries
    into one consistent Snapshot per refresh cycle.

    Failed fetches leave their record untouched. Only ``refresh()`` mutates
    the table, and it never runs two cycles at once.
    """

    def __init__(
        self,
        fetcher: BalanceFetcher,
        addresses: Sequence[str],
        token_type: str,
        *,
        decimals: int = 0,
        initial_balances: Optional[Mapping[str, object]] = None,
        fetch_timeout: float = 10.0,
        stale_after_failures: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
        log=None,
    ):
        self.log = log or logging.getLogger("token_balance_monitor.engine")

        addresses = tuple(addresses)
        if not addresses:
            raise ConfigurationError("At least one address must be monitored")
        if len(set(addresses)) != len(addresses):
            raise ConfigurationError("Monitored addresses must be unique")
        if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
            raise ConfigurationError(f"Decimal exponent must be a non-negative integer, got {decimals!r}")
        if not math.isfinite(fetch_timeout) or fetch_timeout <= 0:
            raise ConfigurationError(f"Fetch timeout must be a positive finite number, got {fetch_timeout!r}")
        if stale_after_failures is not None and stale_after_failures < 1:
            raise ConfigurationError(
                f"stale_after_failures must be >= 1 when set, got {stale_after_failures!r}"
            )

        self._fetcher = fetcher
        self._addresses = addresses
        self._token_type = token_type
        self._decimals = decimals
        self._fetch_timeout = fetch_timeout
        self._stale_after = stale_after_failures
        self._clock = clock

        # Serialises whole cycles; held from fan-out to publication.
        self._cycle_lock = threading.Lock()
        # Guards the table and the published snapshot.
        self._state_lock = threading.Lock()
        self._observers: List[Observer] = []

        initial = dict(initial_balances or {})
        unknown = [a for a in initial if a not in addresses]
        if unknown:
            self.log.warning("Ignoring initial balances for unmonitored addresses: %s", ", ".join(unknown))

        now = self._clock()
        self._records: Dict[str, BalanceRecord] = {}
        for address in addresses:
            value = _parse_initial(address, initial.get(address, 0))
            self._records[address] = BalanceRecord(
                address=address,
                current=value,
                previous=value,
                changed=False,
                observed_at=now,
            )
        self._failure_streaks: Dict[str, int] = {address: 0 for address in addresses}
        self._cycle = 0
        self._latest = self._build_snapshot(last_checked_at=None, failed=(), cycle_failed=False)

    # ------------------------------------------------------------------
    @property
    def addresses(self) -> tuple[str, ...]:
        return self._addresses

    @property
    def token_type(self) -> str:
        return self._token_type

    @property
    def decimals(self) -> int:
        return self._decimals

    def latest(self) -> Snapshot:
        with self._state_lock:
            return self._latest

    def is_refreshing(self) -> bool:
        return self._cycle_lock.locked()

    def subscribe(self, observer: Observer) -> None:
        with self._state_lock:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        with self._state_lock:
            if observer in self._observers:
                self._observers.remove(observer)

    # ------------------------------------------------------------------
    def _fetch_one(self, address: str) -> FetchOutcome:
        try:
            balance = self._fetcher.fetch(address, self._token_type)
        except FetchError as exc:
            return FetchOutcome(address=address, error=exc)
        except Exception as exc:
            # Anything a fetcher leaks still only fails its own address.
            return FetchOutcome(address=address, error=FetchError(address, exc))
        if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
            return FetchOutcome(address=address, error=FetchError(address, f"invalid balance {balance!r}"))
        return FetchOutcome(address=address, balance=balance)

    def _fan_out(self, addresses: Sequence[str]) -> List[FetchOutcome]:
        pool = ThreadPoolExecutor(max_workers=len(addresses), thread_name_prefix="balance-fetch")
        try:
            futures = [pool.submit(self._fetch_one, address) for address in addresses]
            wait(futures, timeout=self._fetch_timeout)
            outcomes: List[FetchOutcome] = []
            for address, future in zip(addresses, futures):
                if future.done():
                    outcomes.append(future.result())
                else:
                    future.cancel()
                    outcomes.append(
                        FetchOutcome(
                            address=address,
                            error=FetchError(address, f"timed out after {self._fetch_timeout}s"),
                        )
                    )
            return outcomes
        finally:
            # Abandoned fetches finish in the background, bounded by the HTTP timeout.
            pool.shutdown(wait=False, cancel_futures=True)

    def _merge(self, outcomes: Iterable[FetchOutcome], now: datetime) -> None:
        for outcome in outcomes:
            record = self._records[outcome.address]
            if not outcome.ok:
                self._failure_streaks[outcome.address] += 1
                self.log.warning("Balance fetch failed for %s: %s", outcome.address, outcome.error.cause)
                continue

            self._failure_streaks[outcome.address] = 0
            if outcome.balance == record.current:
                if record.changed:
                    self._records[outcome.address] = replace(record, changed=False)
                continue

            self._records[outcome.address] = BalanceRecord(
                address=record.address,
                current=outcome.balance,
                previous=record.current,
                changed=True,
                observed_at=now,
            )
            self.log.info(
                "Balance changed for %s: %s -> %s (%+d)",
                outcome.address,
                record.current,
                outcome.balance,
                outcome.balance - record.current,
            )

    def _build_snapshot(self, *, last_checked_at, failed, cycle_failed) -> Snapshot:
        stale: tuple[str, ...] = ()
        if self._stale_after is not None:
            stale = tuple(a for a in self._addresses if self._failure_streaks[a] >= self._stale_after)
        return Snapshot(
            records=tuple(self._records[a] for a in self._addresses),
            last_checked_at=last_checked_at,
            cycle=self._cycle,
            failed=tuple(failed),
            stale=stale,
            cycle_failed=cycle_failed,
        )

    def _notify(self, snapshot: Snapshot) -> None:
        with self._state_lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(snapshot)
            except Exception:
                self.log.exception("Snapshot observer %r failed", observer)

    # ------------------------------------------------------------------
    def refresh(self) -> Snapshot:
        """Run one fetch/join/merge/publish cycle and return its snapshot.

        Raises ``CycleFailure`` (after publishing) when every fetch failed.
        Callers arriving while a cycle is in flight block until it finishes.
        """
        with self._cycle_lock:
            addresses = self._addresses
            self.log.debug("Refreshing %d addresses", len(addresses))

            outcomes = self._fan_out(addresses)
            now = self._clock()
            failed = tuple(o.address for o in outcomes if not o.ok)
            cycle_failed = len(failed) == len(addresses)

            with self._state_lock:
                self._merge(outcomes, now)
                self._cycle += 1
                snapshot = self._build_snapshot(last_checked_at=now, failed=failed, cycle_failed=cycle_failed)
                self._latest = snapshot

            self.log.debug(
                "Cycle %d complete: %d ok, %d failed, %d changed",
                snapshot.cycle,
                len(addresses) - len(failed),
                len(failed),
                len(snapshot.changed_addresses()),
            )

        # Observers run outside the cycle lock so a slow or re-entrant one
        # cannot hold up the next cycle.
        self._notify(snapshot)
        if cycle_failed:
            raise CycleFailure(snapshot)
        return snapshot
