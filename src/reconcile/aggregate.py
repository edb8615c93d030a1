"""Account-level figures: net liquidation, intraday P&L, cash, account ids."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from src.reconcile.extract import lookup
from src.reconcile.models import CashBalance, NetLiquidation, PartitionedPnl
from src.reconcile.values import JsonKind, children, is_mapping, kind_of

NET_LIQUIDATION_KEYS = (
    "netliquidation",
    "netliquidationvalue",
    "net_liquidation",
    "net_liquidation_value",
    "nlv",
)
SUMMARY_CURRENCY_KEYS = ("currency", "basecurrency")   # later wins
TAG_KEYS = ("tag", "field", "key")
TAG_VALUE_KEYS = ("value", "amount")

PNL_FIELDS = ("dpl", "upl", "nl", "el", "mv")
CORE_SEGMENT = ".Core"

CASH_KEYS = (
    "cashbalance",
    "cashBalance",
    "cash",
    "totalcashvalue",
    "totalcash",
    "availablecash",
)
BASE_LEDGER_KEY = "BASE"
ACCOUNT_ID_KEYS = ("accountId", "id", "account")


def _summary_by_key(summary: dict) -> NetLiquidation | None:
    lowered = {key.lower(): value for key, value in summary.items() if isinstance(key, str)}
    for candidate in NET_LIQUIDATION_KEYS:
        if candidate not in lowered:
            continue
        currency = None
        for key in SUMMARY_CURRENCY_KEYS:
            if isinstance(lowered.get(key), str):
                currency = lowered[key]
        return NetLiquidation(value=lowered[candidate], currency=currency, source="summary")
    return None


def _summary_by_tag(summary: Any) -> NetLiquidation | None:
    for _, item in children(summary):
        if not is_mapping(item):
            continue
        tag = next((item[key] for key in TAG_KEYS if item.get(key) is not None), "")
        if str(tag).lower() not in NET_LIQUIDATION_KEYS:
            continue
        value = next((item[key] for key in TAG_VALUE_KEYS if item.get(key) is not None), None)
        return NetLiquidation(value=value, currency=item.get("currency"), source="summary")
    return None


def _ledger_entry(ledger: Any) -> NetLiquidation | None:
    for currency, entry in children(ledger):
        if not is_mapping(entry):
            continue
        for key, value in entry.items():
            if isinstance(key, str) and key.lower() in NET_LIQUIDATION_KEYS:
                return NetLiquidation(
                    value=value,
                    currency=currency if isinstance(currency, str) else None,
                    source="ledger",
                )
    return None


def net_liquidation(summary: Any, ledger: Any) -> NetLiquidation:
    """Find net liquidation value, preferring the account summary over the ledger.

    The value is returned as found in the payload: a scalar or a nested
    ``{"amount": ..}`` structure (see ``NetLiquidation.flattened``).
    """
    found = None
    if is_mapping(summary):
        found = _summary_by_key(summary)
    if found is None and kind_of(summary) in (JsonKind.MAPPING, JsonKind.SEQUENCE):
        found = _summary_by_tag(summary)
    if found is None:
        found = _ledger_entry(ledger)
    return found or NetLiquidation()


def partitioned_pnl(pnl: Any, account_id: str) -> PartitionedPnl:
    """Pick the account's entry from ``/iserver/account/pnl/partitioned``.

    Keys look like ``U1234567.Core``; the ``.Core`` segment is preferred,
    otherwise the first key for the account in payload order.
    """
    if not is_mapping(pnl) or not is_mapping(pnl.get("upnl")) or not account_id:
        return PartitionedPnl()

    candidates = {
        key: value for key, value in pnl["upnl"].items()
        if isinstance(key, str) and is_mapping(value) and key.startswith(account_id)
    }
    if not candidates:
        return PartitionedPnl()

    selected = next((key for key in candidates if CORE_SEGMENT in key), next(iter(candidates)))
    entry = candidates[selected]
    return PartitionedPnl(key=selected, **{field: lookup(entry, (field,)) for field in PNL_FIELDS})


def extract_cash_balances(ledger: Any) -> list[CashBalance]:
    balances = []
    for currency, entry in children(ledger):
        if not isinstance(currency, str) or not is_mapping(entry):
            continue
        value = lookup(entry, CASH_KEYS)
        if value is not None:
            balances.append(CashBalance(currency=currency, value=value))
    return balances


def extract_base_cash_balance(ledger: Any) -> Decimal | None:
    """Cash across all currencies, converted by the gateway into base."""
    if not is_mapping(ledger):
        return None
    return lookup(ledger.get(BASE_LEDGER_KEY), CASH_KEYS)


def extract_account_ids(accounts: Any) -> list[str]:
    """Account ids from ``/iserver/accounts``, unique, in payload order."""
    if is_mapping(accounts) and kind_of(accounts.get("accounts")) in (JsonKind.MAPPING, JsonKind.SEQUENCE):
        accounts = accounts["accounts"]

    ids: list[str] = []
    for _, item in children(accounts):
        candidate = item
        if is_mapping(item):
            candidate = next((item[key] for key in ACCOUNT_ID_KEYS if item.get(key) is not None), None)
        if isinstance(candidate, str) and candidate and candidate not in ids:
            ids.append(candidate)
    return ids
