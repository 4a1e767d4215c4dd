# token_balance_monitor/config.py
from dataclasses import dataclass, field
from pathlib import Path
import configparser
import math
import re

from token_balance_monitor.errors import ConfigurationError


SUI_NETWORKS = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}


@dataclass
class MonitorConfig:
    addresses: list[str]
    token_type: str
    decimals: int = 9
    poll_interval: float = 30.0
    fetch_timeout: float = 10.0
    stale_after_failures: int | None = None
    initial_balances: dict[str, str] = field(default_factory=dict)


@dataclass
class RpcConfig:
    network: str = "mainnet"
    url: str | None = None
    timeout: float = 10.0

    @property
    def endpoint(self) -> str:
        return resolve_endpoint(self.network, self.url)


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None
    logger_name: str = "token_balance_monitor"


@dataclass
class AppConfig:
    monitor: MonitorConfig
    rpc: RpcConfig
    logging: LoggingConfig


_DIGITS = re.compile(r"[0-9]+")


def resolve_endpoint(network: str, url: str | None = None) -> str:
    if url:
        return url.rstrip("/")
    try:
        return SUI_NETWORKS[network.strip().lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown network '{network}' (expected one of {', '.join(SUI_NETWORKS)})"
        ) from None


def _split_list(raw: str) -> list[str]:
    return [x.strip() for x in re.split(r"[,\n]", raw) if x.strip()]


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        # Addresses are used as option names under [initial_balances].
        self.parser.optionxform = str
        read = self.parser.read(self.path, encoding="utf-8")
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _number(section: str, key: str, raw: str, kind=float, minimum=None, exclusive=True):
            try:
                value = kind(raw.strip())
            except ValueError:
                raise ConfigurationError(f"[{section}] {key} must be a number, got '{raw}'") from None
            if not math.isfinite(value):
                raise ConfigurationError(f"[{section}] {key} must be finite, got '{raw}'")
            if minimum is not None:
                if (exclusive and value <= minimum) or (not exclusive and value < minimum):
                    bound = ">" if exclusive else ">="
                    raise ConfigurationError(f"[{section}] {key} must be {bound} {minimum}, got {value}")
            return value

        # --- Monitor ---
        if "monitor" not in p:
            raise ConfigurationError("[monitor] section missing from config")
        monitor_sec = p["monitor"]

        addresses = _split_list(monitor_sec.get("addresses", ""))
        if not addresses:
            raise ConfigurationError("[monitor] addresses must list at least one address")
        seen: set[str] = set()
        for address in addresses:
            if address in seen:
                raise ConfigurationError(f"[monitor] duplicate address '{address}'")
            seen.add(address)

        token_type = monitor_sec.get("token_type", "").strip()
        if not token_type:
            raise ConfigurationError("[monitor] token_type is required")

        monitor_kwargs = {}
        if "decimals" in monitor_sec:
            monitor_kwargs["decimals"] = _number(
                "monitor", "decimals", monitor_sec["decimals"], kind=int, minimum=0, exclusive=False
            )
        if "poll_interval" in monitor_sec:
            monitor_kwargs["poll_interval"] = _number("monitor", "poll_interval", monitor_sec["poll_interval"], minimum=0)
        if "fetch_timeout" in monitor_sec:
            monitor_kwargs["fetch_timeout"] = _number("monitor", "fetch_timeout", monitor_sec["fetch_timeout"], minimum=0)
        stale_raw = monitor_sec.get("stale_after_failures", "").strip()
        if stale_raw:
            monitor_kwargs["stale_after_failures"] = _number(
                "monitor", "stale_after_failures", stale_raw, kind=int, minimum=1, exclusive=False
            )

        initial_balances: dict[str, str] = {}
        if "initial_balances" in p:
            for address, raw in p["initial_balances"].items():
                raw = raw.strip()
                if not _DIGITS.fullmatch(raw):
                    raise ConfigurationError(
                        f"[initial_balances] {address} must be a non-negative integer, got '{raw}'"
                    )
                initial_balances[address] = raw

        monitor = MonitorConfig(
            addresses=addresses,
            token_type=token_type,
            initial_balances=initial_balances,
            **monitor_kwargs,
        )

        # --- RPC ---
        rpc_kwargs = {}
        if "rpc" in p:
            rpc_sec = p["rpc"]
            if "network" in rpc_sec:
                rpc_kwargs["network"] = rpc_sec["network"].strip().lower()
            url = rpc_sec.get("url", "").strip()
            if url:
                rpc_kwargs["url"] = url
            if "timeout" in rpc_sec:
                rpc_kwargs["timeout"] = _number("rpc", "timeout", rpc_sec["timeout"], minimum=0)
        rpc_cfg = RpcConfig(**rpc_kwargs)
        # Fail at load time rather than on the first cycle.
        resolve_endpoint(rpc_cfg.network, rpc_cfg.url)

        # --- Logging ---
        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                logging_kwargs["debug_modules"] = _split_list(logging_sec["debug_modules"])
            if "structured_enabled" in logging_sec:
                logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
            structured_path = logging_sec.get("structured_path", "").strip()
            if structured_path:
                logging_kwargs["structured_path"] = structured_path
            logger_name = logging_sec.get("logger_name", "").strip()
            if logger_name:
                logging_kwargs["logger_name"] = logger_name
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            monitor=monitor,
            rpc=rpc_cfg,
            logging=logging_cfg,
        )
