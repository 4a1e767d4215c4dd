from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from token_balance_monitor.config import RpcConfig
from token_balance_monitor.errors import FetchError


class SuiBalanceClient:
    """Single-shot `suix_getBalance` queries against a Sui full node.

    Every failure (transport, HTTP status, JSON-RPC error, unusable payload)
    surfaces as ``FetchError`` for the queried address. No retries.
    """

    METHOD = "suix_getBalance"

    def __init__(self, cfg: RpcConfig, log=None, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.log = log or logging.getLogger("token_balance_monitor.rpc")
        self.session = session or requests.Session()
        self.url = cfg.endpoint
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()

    # ------------------------------------------------------------------
    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def _payload(self, params: List[Any]) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": self.METHOD,
            "params": params,
        }

    def _post(self, address: str, payload: Dict[str, Any]) -> Any:
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.cfg.timeout)
        except requests.RequestException as exc:
            raise FetchError(address, exc) from exc

        if resp.status_code != 200:
            raise FetchError(address, f"HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchError(address, "non-JSON payload") from exc

        if not isinstance(data, dict):
            raise FetchError(address, f"unexpected payload type {type(data).__name__}")

        if data.get("error"):
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else err
            raise FetchError(address, f"RPC error: {message}")

        return data.get("result")

    # ------------------------------------------------------------------
    def fetch(self, address: str, token_type: str) -> int:
        """Return the raw balance of ``token_type`` held by ``address``."""
        result = self._post(address, self._payload([address, token_type]))
        if not isinstance(result, dict):
            raise FetchError(address, "missing result")

        raw = result.get("totalBalance")
        if raw is None:
            raise FetchError(address, "missing totalBalance")
        try:
            balance = int(str(raw).strip())
        except ValueError:
            raise FetchError(address, f"non-integer totalBalance {raw!r}") from None
        if balance < 0:
            raise FetchError(address, f"negative totalBalance {balance}")

        self.log.debug("%s balance=%s coin_type=%s", address, balance, result.get("coinType"))
        return balance

    def close(self) -> None:
        self.session.close()
