from decimal import Decimal

from src.reconcile.models import PositionSnapshot, TransactionRecord
from src.reconcile.positions import convert_position_pnl

D = Decimal
LEDGER = {"USD": {"exchangerate": "0.9"}}


def _snapshot(**overrides):
    row = {
        "conid": 265598,
        "contractDesc": "AAPL",
        "currency": "USD",
        "position": 10,
        "mktPrice": 200,
        "mktValue": 2000,
        "avgCost": 150,
        "unrealizedPnl": 500,
        "realizedPnl": 30,
        "assetClass": "STK",
    }
    row.update(overrides)
    return PositionSnapshot.from_row(row, "EUR")


def test_snapshot_from_row():
    snap = _snapshot()
    assert snap.instrument_id == 265598
    assert snap.symbol == "AAPL"
    assert snap.cost_basis == D("1500")
    assert snap.unrealized_pct == D("500") / D("1500") * 100
    assert snap.asset_class == "STK"


def test_snapshot_defaults():
    snap = PositionSnapshot.from_row({"position": "n/a"}, "EUR")
    assert snap.instrument_id is None
    assert snap.symbol == "n/a"
    assert snap.currency == "EUR"
    assert snap.quantity is None
    assert snap.cost_basis is None
    assert snap.unrealized_pct is None


def test_same_currency_uses_native_figures():
    pnl = convert_position_pnl(_snapshot(currency="EUR"), {}, [], "EUR")
    assert pnl.source == "native"
    assert pnl.fx_rate == D("1.0")
    assert pnl.market_value_base == D("2000")
    assert pnl.unrealized_base == D("500")
    assert pnl.realized_base == D("30")


def test_average_fx_path():
    records = [
        TransactionRecord(D("6"), D("800"), D("0.8"), D("900")),
        TransactionRecord(D("4"), D("600"), D("1.0"), D("600")),
    ]
    pnl = convert_position_pnl(_snapshot(), LEDGER, records, "EUR")
    # (900*0.8 + 600*1.0) / 1500
    assert pnl.average_fx_rate == D("0.88")
    assert pnl.market_value_base == D("1800.0")
    assert pnl.cost_basis_base == D("1320.00")
    assert pnl.unrealized_base == D("480.00")
    assert pnl.realized_base == D("26.40")
    assert pnl.source == "average_fx"


def test_transaction_replay_without_fx_rates():
    records = [
        TransactionRecord(D("15"), D("1800"), None, D("15")),
        TransactionRecord(D("-5"), D("700"), None, D("5")),
    ]
    pnl = convert_position_pnl(_snapshot(), LEDGER, records, "EUR")
    assert pnl.source == "transactions"
    assert pnl.cost_basis_base == D("1200")
    assert pnl.realized_base == D("100")
    assert pnl.unrealized_base == D("600.0")


def test_no_records_only_converts_value():
    pnl = convert_position_pnl(_snapshot(), LEDGER, [], "EUR")
    assert pnl.market_value_base == D("1800.0")
    assert pnl.cost_basis_base is None
    assert pnl.source is None


def test_missing_spot_rate():
    pnl = convert_position_pnl(_snapshot(), {}, [], "EUR")
    assert pnl.fx_rate is None
    assert pnl.market_value_base is None
