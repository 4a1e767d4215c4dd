# token_balance_monitor/cli.py
import argparse

def build_parser():
    parser = argparse.ArgumentParser(
        prog="token-balance-monitor",
        description="On-chain token balance change monitor"
    )

    parser.add_argument(
        "--config",
        default="token_balance_monitor.conf",
        help="Path to configuration file (default: %(default)s)"
    )

    out = parser.add_argument_group("output")
    out.add_argument(
        "--debug",
        action="store_true",
        help="Log every refresh cycle and RPC call at DEBUG level"
    )
    out.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print snapshots or console logs (cron-friendly)"
    )
    out.add_argument(
        "--json",
        action="store_true",
        help="Print each snapshot as one JSON object per line"
    )
    out.add_argument(
        "--structured-log",
        metavar="PATH",
        help="Append one JSONL entry per cycle to PATH (overrides [logging] structured_path)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # One-shot refresh
    sub.add_parser("check", help="Run a single refresh cycle and print the snapshot")

    # Continuous monitoring
    cmd_watch = sub.add_parser(
        "watch",
        help="Poll on a fixed interval; press Enter to refresh immediately",
    )
    cmd_watch.add_argument(
        "--interval",
        type=float,
        help="Override [monitor] poll_interval (seconds)",
    )

    return parser
