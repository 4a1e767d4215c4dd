# token_balance_monitor/services/output_formatter.py

from __future__ import annotations

import json
import sys
from typing import Callable, List, TextIO

from token_balance_monitor.models.balance import BalanceRecord, Snapshot, format_balance, format_diff


def _record_line(record: BalanceRecord, decimals: int, *, failed: bool, stale: bool) -> str:
    status = "Changed" if record.changed else "Stable"
    diff_txt = ""
    if record.changed and record.diff != 0:
        diff_txt = f" ({format_diff(record.diff, decimals)})"
    markers = ""
    if stale:
        markers += " STALE"
    if failed:
        markers += " FAILED"
    return (
        f"[{record.address}] balance={format_balance(record.current, decimals)}  "
        f"previous={format_balance(record.previous, decimals)}  "
        f"status={status}{diff_txt}  observed={record.observed_at.isoformat()}{markers}"
    )


def format_human(snapshot: Snapshot, decimals: int) -> List[str]:
    checked = snapshot.last_checked_at.isoformat() if snapshot.last_checked_at else "never"
    lines = [f"Cycle {snapshot.cycle} @ {checked}"]
    if snapshot.cycle_failed:
        lines.append("Unable to refresh: every balance query failed; showing last known values.")
    failed = set(snapshot.failed)
    stale = set(snapshot.stale)
    for record in snapshot.records:
        lines.append(
            _record_line(
                record,
                decimals,
                failed=record.address in failed,
                stale=record.address in stale,
            )
        )
    return lines


def emit_human(snapshot: Snapshot, decimals: int, stream: TextIO | None = None) -> None:
    out = stream or sys.stdout
    for line in format_human(snapshot, decimals):
        print(line, file=out)


def emit_json(snapshot: Snapshot, decimals: int, stream: TextIO | None = None) -> None:
    out = stream or sys.stdout
    print(json.dumps(snapshot.as_dict(decimals), indent=2), file=out)


def snapshot_printer(decimals: int, *, as_json: bool = False, stream: TextIO | None = None) -> Callable[[Snapshot], None]:
    """Build an engine observer that prints every published snapshot."""
    emit = emit_json if as_json else emit_human

    def _print(snapshot: Snapshot) -> None:
        emit(snapshot, decimals, stream)

    return _print
