import itertools
from decimal import Decimal

import pytest

from src.reconcile.fx import PARITY, spot_rate, weighted_average_rate
from src.reconcile.models import TransactionRecord


def _rec(qty, rate, weight=None, amount=100):
    return TransactionRecord(
        quantity=Decimal(str(qty)),
        amount_base=Decimal(str(amount)),
        fx_rate=Decimal(str(rate)) if rate is not None else None,
        weight=Decimal(str(weight if weight is not None else abs(qty))),
    )


def test_spot_rate_from_ledger():
    assert spot_rate({"EUR": {"fxRateToBase": 1.08}}, "EUR", "USD") == Decimal("1.08")


@pytest.mark.parametrize("ledger", [None, {}, {"USD": {"fxRateToBase": 7}}, "garbage"])
def test_spot_rate_same_currency_is_parity(ledger):
    assert spot_rate(ledger, "USD", "USD") == PARITY


def test_spot_rate_scans_hint_keys():
    ledger = {"GBP": {"cashbalance": 10, "ExchangeRateGBP": "1.17"}}
    assert spot_rate(ledger, "GBP", "EUR") == Decimal("1.17")


def test_spot_rate_explicit_key_wins_over_hint():
    ledger = {"GBP": {"myfxrate": 2, "exchangeRate": 1.5}}
    assert spot_rate(ledger, "GBP", "EUR") == Decimal("1.5")


@pytest.mark.parametrize("ledger", [{}, {"GBP": {"cashbalance": 1}}, {"GBP": "x"}, None])
def test_spot_rate_missing(ledger):
    assert spot_rate(ledger, "GBP", "EUR") is None


def test_weighted_average():
    records = [_rec(10, "1.1", weight=1000), _rec(10, "1.2", weight=3000)]
    assert weighted_average_rate(records) == Decimal("1.175")


def test_weighted_average_ignores_sells_and_missing_rates():
    records = [_rec(10, "1.1"), _rec(-5, "9.9"), _rec(3, None)]
    assert weighted_average_rate(records) == Decimal("1.1")


def test_non_positive_weight_defaults_to_quantity():
    records = [_rec(1, "1.0", weight=0), _rec(3, "2.0", weight=3)]
    assert weighted_average_rate(records) == Decimal("1.75")


def test_weighted_average_none_without_eligible_buys():
    assert weighted_average_rate([]) is None
    assert weighted_average_rate([_rec(-1, "1.1"), _rec(2, None)]) is None


def test_weighted_average_order_invariant():
    records = [_rec(10, "1.1", 1000), _rec(5, "1.3", 700), _rec(2, "0.9", 150), _rec(-4, "1.0")]
    results = {weighted_average_rate(list(p)) for p in itertools.permutations(records)}
    assert len(results) == 1
