# token_balance_monitor/errors.py

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from token_balance_monitor.models.balance import Snapshot


class MonitorError(Exception):
    """Base exception for the balance monitor."""


class ConfigurationError(MonitorError, ValueError):
    """Raised for invalid startup configuration; fatal before the run loop."""


class FetchError(MonitorError):
    """A single address could not be queried this cycle."""

    def __init__(self, address: str, cause: object) -> None:
        super().__init__(f"{address}: {cause}")
        self.address = address
        self.cause = cause


class CycleFailure(MonitorError):
    """Every fetch in a refresh cycle failed.

    Raised after the cycle's snapshot has been published, so ``snapshot`` is
    the same object observers received.
    """

    def __init__(self, snapshot: "Snapshot") -> None:
        super().__init__(
            f"Unable to refresh: all {len(snapshot.records)} balance queries failed "
            f"(cycle {snapshot.cycle})"
        )
        self.snapshot = snapshot
