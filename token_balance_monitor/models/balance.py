# token_balance_monitor/models/balance.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from token_balance_monitor.errors import FetchError


def scale_balance(raw: int, decimals: int) -> Decimal:
    """Convert a smallest-unit integer into the token's display value."""
    # String construction is exact; arithmetic would round to context precision.
    return Decimal(f"{int(raw)}e-{int(decimals)}")


def format_balance(raw: int, decimals: int) -> str:
    value = scale_balance(raw, decimals)
    # Drop trailing zeros without switching to exponent notation.
    text = f"{value:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_diff(diff: int, decimals: int) -> str:
    sign = "+" if diff > 0 else "-" if diff < 0 else ""
    return f"{sign}{format_balance(abs(diff), decimals)}"


@dataclass(frozen=True)
class BalanceRecord:
    address: str
    current: int
    previous: int
    changed: bool
    observed_at: datetime

    @property
    def diff(self) -> int:
        return self.current - self.previous

    @property
    def direction(self) -> str | None:
        if not self.changed or self.diff == 0:
            return None
        return "increase" if self.diff > 0 else "decrease"

    def as_dict(self, decimals: int | None = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "address": self.address,
            "current": str(self.current),
            "previous": str(self.previous),
            "changed": self.changed,
            "diff": str(self.diff),
            "observed_at": self.observed_at.isoformat(),
        }
        if decimals is not None:
            payload["current_scaled"] = format_balance(self.current, decimals)
            payload["previous_scaled"] = format_balance(self.previous, decimals)
            payload["diff_scaled"] = format_diff(self.diff, decimals)
        return payload


@dataclass(frozen=True)
class FetchOutcome:
    address: str
    balance: Optional[int] = None
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.balance is not None


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of every monitored address after one refresh cycle."""

    records: Tuple[BalanceRecord, ...]
    last_checked_at: Optional[datetime]
    cycle: int = 0
    failed: Tuple[str, ...] = ()
    stale: Tuple[str, ...] = ()
    cycle_failed: bool = False

    def get(self, address: str) -> Optional[BalanceRecord]:
        for record in self.records:
            if record.address == address:
                return record
        return None

    def changed_addresses(self) -> Tuple[str, ...]:
        return tuple(r.address for r in self.records if r.changed)

    def as_dict(self, decimals: int | None = None) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "cycle_failed": self.cycle_failed,
            "failed": list(self.failed),
            "stale": list(self.stale),
            "records": [r.as_dict(decimals) for r in self.records],
        }
