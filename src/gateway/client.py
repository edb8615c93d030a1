"""Interactive Brokers Client Portal gateway client.

Every call returns a ``GatewayResponse``; transport and HTTP failures are
reported in ``error`` rather than raised, so a dead endpoint degrades one
figure instead of the whole account view.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from src.gateway.cache import ResponseCache, cache_key
from src.metrics import gateway_cache_hits_total, gateway_requests_total

logger = logging.getLogger(__name__)

ACCEPT = "application/json"
READ_TIMEOUT = 10.0
WRITE_TIMEOUT = 15.0


@dataclass
class GatewayResponse:
    url: str
    raw: str | None
    json: Any
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GatewayClient:
    def __init__(
        self,
        base_url: str,
        *,
        verify_ssl: bool = False,
        user_agent: str = "IBKR-Pulse/1.0",
        cache: ResponseCache | None = None,
        cache_ttl: float = 300,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.cache = cache if cache is not None else ResponseCache()
        self.cache_ttl = cache_ttl
        self._http = httpx.Client(
            verify=verify_ssl,
            transport=transport,
            headers={"Accept": ACCEPT, "User-Agent": user_agent},
        )

    @classmethod
    def from_settings(cls, settings) -> GatewayClient:
        return cls(
            settings.gateway_base_url,
            verify_ssl=settings.gateway_verify_ssl,
            user_agent=settings.gateway_user_agent,
            cache_ttl=settings.gateway_cache_ttl,
        )

    def close(self) -> None:
        self._http.close()

    def request(self, method: str, path: str, payload: dict | None = None) -> GatewayResponse:
        method = method.upper()
        url = self.base_url + path
        body = None
        headers = {}
        if payload is not None:
            body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
            headers["Content-Type"] = "application/json"

        key = cache_key(method, url, body, ACCEPT, self.user_agent)
        cached = self.cache.get(key)
        if cached is not None:
            gateway_cache_hits_total.inc()
            return cached

        timeout = WRITE_TIMEOUT if method == "POST" else READ_TIMEOUT
        try:
            resp = self._http.request(method, url, content=body, headers=headers, timeout=timeout)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {path} failed: {exc}")
            gateway_requests_total.labels(method=method, outcome="error").inc()
            return GatewayResponse(url=url, raw=None, json=None, error=str(exc) or type(exc).__name__)

        raw = resp.text
        try:
            parsed = json.loads(raw) if raw else None
        except ValueError:
            logger.warning(f"{method} {path} returned non-JSON body")
            parsed = None

        gateway_requests_total.labels(method=method, outcome="ok").inc()
        response = GatewayResponse(url=url, raw=raw, json=parsed)
        self.cache.put(key, response, self.cache_ttl)
        return response

    # -- endpoints ---------------------------------------------------------

    def auth_status(self) -> GatewayResponse:
        return self.request("GET", "/iserver/auth/status")

    def accounts(self) -> GatewayResponse:
        return self.request("GET", "/iserver/accounts")

    def summary(self, account_id: str) -> GatewayResponse:
        return self.request("GET", f"/portfolio/{quote(account_id, safe='')}/summary")

    def ledger(self, account_id: str) -> GatewayResponse:
        return self.request("GET", f"/portfolio/{quote(account_id, safe='')}/ledger")

    def positions(self, account_id: str) -> GatewayResponse:
        return self.request("GET", f"/portfolio/{quote(account_id, safe='')}/positions")

    def partitioned_pnl(self) -> GatewayResponse:
        return self.request("GET", "/iserver/account/pnl/partitioned")

    def performance(self, account_ids: list[str], period: str) -> GatewayResponse:
        return self.request("POST", "/pa/performance", {"acctIds": account_ids, "period": period})

    def transactions(
        self, account_id: str, conid: int, currency: str, days: int | None = None,
    ) -> GatewayResponse:
        payload: dict[str, Any] = {"acctIds": [account_id], "conids": [conid], "currency": currency}
        if days:
            payload["days"] = days
        return self.request("POST", "/pa/transactions", payload)

    def search_contract(self, symbol: str, sec_type: str) -> GatewayResponse:
        return self.request(
            "GET", f"/iserver/secdef/search?symbol={quote(symbol, safe='')}&secType={quote(sec_type, safe='')}",
        )

    def history(self, conid: int, period: str = "10d", bar: str = "1d") -> GatewayResponse:
        return self.request("GET", f"/iserver/marketdata/history?conid={conid}&period={period}&bar={bar}")
