"""Transaction normalizer.

Turns a ``/pa/transactions`` payload into per-instrument sequences of
``TransactionRecord`` sorted by trade date. Transactions that cannot be
interpreted are dropped; drops are logged and, when the caller passes a
``Counter``, tallied by reason.
"""
from __future__ import annotations

import logging
import re
from collections import Counter
from decimal import Decimal
from typing import Any

from src.reconcile.extract import lookup, lookup_text
from src.reconcile.models import TransactionRecord
from src.reconcile.values import JsonKind, children, date_key, is_mapping, kind_of, try_parse_decimal

logger = logging.getLogger(__name__)

INSTRUMENT_KEYS = ("conid", "conId", "conidEx")
QUANTITY_KEYS = ("quantity", "qty", "tradeQuantity", "size", "units")
DESCRIPTION_KEYS = ("desc", "description")
SIDE_KEYS = ("side", "action", "buySell", "type")
CURRENCY_KEYS = ("currency", "ccy", "curr", "cur")
PRICE_KEYS = ("pr", "tradePrice", "price", "avgPrice")
TRADE_PRICE_KEYS = ("tradePrice", "price", "avgPrice")
FX_RATE_KEYS = ("fxRate", "fxrate", "fxRateToBase", "exchangeRate")
DATE_KEYS = ("tradeDate", "date", "tradeDateTime", "tdate")

# Amount fallback chain, in priority order. "amt" is already in base currency
# because the request asks the gateway for base-currency amounts.
DIRECT_AMOUNT_KEYS = ("amt",)
BASE_AMOUNT_KEYS = (
    "amountInBase",
    "amountBase",
    "baseAmount",
    "baseValue",
    "baseCurrencyAmount",
    "netBase",
)
NATIVE_AMOUNT_KEYS = (
    "amount",
    "netAmount",
    "proceeds",
    "tradeMoney",
    "tradeAmount",
    "netCash",
    "total",
    "value",
    "cost",
)
AMOUNT_KEYS = DIRECT_AMOUNT_KEYS + BASE_AMOUNT_KEYS + NATIVE_AMOUNT_KEYS

_QUANTITY_RE = re.compile(r"Quantity:\s*([0-9,.]+)", re.IGNORECASE)

DROP_NOT_MAPPING = "not_mapping"
DROP_NO_INSTRUMENT = "no_instrument"
DROP_NO_QUANTITY = "no_quantity"
DROP_NO_AMOUNT = "no_amount"


def unwrap_transactions(payload: Any) -> list:
    """Peel known container keys off a transactions payload.

    Accepts ``{"transactions": [...]}``, ``{"transactions": {"data": [...]}}``,
    ``{"data": [...]}`` and bare lists. Elements are returned as found; the
    caller discards non-mapping ones.
    """
    if is_mapping(payload) and kind_of(payload.get("transactions")) in (JsonKind.MAPPING, JsonKind.SEQUENCE):
        payload = payload["transactions"]
    if is_mapping(payload):
        data = payload.get("data")
        if kind_of(data) in (JsonKind.MAPPING, JsonKind.SEQUENCE):
            return [item for _, item in children(data)]
        return [item for _, item in children(payload) if is_mapping(item)]
    return [item for _, item in children(payload)]


def _instrument_id(tx: dict) -> int | None:
    conid = lookup(tx, INSTRUMENT_KEYS)
    return int(conid) if conid is not None else None


def _quantity(tx: dict) -> Decimal | None:
    quantity = lookup(tx, QUANTITY_KEYS)
    if quantity is not None:
        return quantity
    description = lookup_text(tx, DESCRIPTION_KEYS)
    if description is None:
        return None
    match = _QUANTITY_RE.search(description)
    if match is None:
        return None
    return try_parse_decimal(match.group(1).replace(",", ""))


def _side(tx: dict) -> str | None:
    tag = lookup_text(tx, SIDE_KEYS)
    if tag is None:
        return None
    tag = tag.lower()
    if "buy" in tag:
        return "buy"
    if "sell" in tag:
        return "sell"
    return None


def _amount_base(tx: dict, quantity: Decimal, base_currency: str) -> Decimal | None:
    amount = lookup(tx, AMOUNT_KEYS)
    if amount is not None:
        return abs(amount)

    price = lookup(tx, TRADE_PRICE_KEYS)
    if price is None:
        return None
    amount = abs(price * quantity)
    currency = lookup_text(tx, CURRENCY_KEYS)
    fx_rate = lookup(tx, FX_RATE_KEYS)
    if currency is not None and base_currency and currency != base_currency:
        if fx_rate is not None:
            return amount * fx_rate
        logger.debug(f"Transaction amount left in {currency}: no fx rate to {base_currency}")
    return amount


def _date_key(tx: dict) -> int:
    for key in DATE_KEYS:
        raw = tx.get(key)
        if kind_of(raw) not in (JsonKind.STRING, JsonKind.NUMBER):
            continue
        return date_key(raw)
    return 0


def normalize_transaction(tx: dict, base_currency: str) -> tuple[int, TransactionRecord] | str:
    """Normalize one transaction; returns ``(conid, record)`` or a drop reason."""
    conid = _instrument_id(tx)
    if conid is None:
        return DROP_NO_INSTRUMENT

    quantity = _quantity(tx)
    if quantity is None:
        return DROP_NO_QUANTITY
    side = _side(tx)
    if side == "sell":
        quantity = -abs(quantity)
    elif side == "buy":
        quantity = abs(quantity)

    amount_base = _amount_base(tx, quantity, base_currency)
    if amount_base is None:
        return DROP_NO_AMOUNT

    fx_rate = lookup(tx, FX_RATE_KEYS)
    price = lookup(tx, PRICE_KEYS)
    if price is not None:
        weight = abs(quantity) * price
    elif fx_rate is not None and fx_rate > 0:
        weight = amount_base / fx_rate
    else:
        weight = abs(quantity)

    return conid, TransactionRecord(
        quantity=quantity,
        amount_base=amount_base,
        fx_rate=fx_rate,
        weight=weight,
        date_key=_date_key(tx),
    )


def normalize_transactions(
    payload: Any,
    base_currency: str,
    drops: Counter | None = None,
) -> dict[int, list[TransactionRecord]]:
    """Group normalized transactions by conid, each group sorted by date key.

    The sort is stable: same-day transactions keep their payload order.
    """
    grouped: dict[int, list[TransactionRecord]] = {}
    dropped: Counter = Counter()

    for tx in unwrap_transactions(payload):
        if not is_mapping(tx):
            dropped[DROP_NOT_MAPPING] += 1
            continue
        result = normalize_transaction(tx, base_currency)
        if isinstance(result, str):
            logger.debug(f"Dropped transaction ({result}): {tx}")
            dropped[result] += 1
            continue
        conid, record = result
        grouped.setdefault(conid, []).append(record)

    for conid, records in grouped.items():
        grouped[conid] = sorted(records, key=lambda r: r.date_key)

    if dropped:
        logger.info(f"Dropped {sum(dropped.values())} transactions: {dict(dropped)}")
        if drops is not None:
            drops.update(dropped)
    return grouped
