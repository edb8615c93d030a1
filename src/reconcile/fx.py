"""FX rates to the account base currency.

``spot_rate`` reads the rate the gateway reports on the per-currency ledger.
``weighted_average_rate`` approximates the rate paid historically, averaged
over buy transactions weighted by trade size.
"""
from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from src.reconcile.extract import lookup
from src.reconcile.models import TransactionRecord
from src.reconcile.values import is_mapping, try_parse_decimal

PARITY = Decimal("1.0")

SPOT_RATE_KEYS = (
    "fxRateToBase",
    "fxrateToBase",
    "fxRateToBaseCurrency",
    "fxRate",
    "fxrate",
    "exchangeRate",
    "exchangerate",
)
SPOT_RATE_HINTS = ("fxrate", "exchange")


def spot_rate(ledger: Any, currency: str, base_currency: str | None) -> Decimal | None:
    if not currency or not base_currency:
        return None
    if currency == base_currency:
        return PARITY
    if not is_mapping(ledger):
        return None
    entry = ledger.get(currency)
    if not is_mapping(entry):
        return None

    rate = lookup(entry, SPOT_RATE_KEYS)
    if rate is not None:
        return rate
    for key, value in entry.items():
        number = try_parse_decimal(value)
        if number is None:
            continue
        lowered = str(key).lower()
        if any(hint in lowered for hint in SPOT_RATE_HINTS):
            return number
    return None


def weighted_average_rate(records: Iterable[TransactionRecord]) -> Decimal | None:
    total_weight = Decimal("0")
    weighted = Decimal("0")
    for record in records:
        if record.quantity <= 0 or record.fx_rate is None:
            continue
        weight = record.weight if record.weight > 0 else record.quantity
        weighted += weight * record.fx_rate
        total_weight += weight
    if total_weight <= 0:
        return None
    return weighted / total_weight
