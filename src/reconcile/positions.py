"""Position P&L in the account base currency.

The gateway reports position P&L in the instrument's own currency. For a
position held in another currency the base-currency figures are derived:

1. market value is converted at the ledger's spot rate;
2. cost is converted at the historical, trade-weighted FX rate of the buys
   (``average_fx``), using the broker's own average cost;
3. when no buy carries an FX rate, cost comes from replaying the base-currency
   transaction amounts through the average-cost ledger (``transactions``).
"""
from __future__ import annotations

from collections.abc import Sequence

from src.reconcile.fx import PARITY, spot_rate, weighted_average_rate
from src.reconcile.ledger import reconcile
from src.reconcile.models import HUNDRED, BasePnl, PositionSnapshot, TransactionRecord


def convert_position_pnl(
    snapshot: PositionSnapshot,
    ledger,
    records: Sequence[TransactionRecord],
    base_currency: str,
) -> BasePnl:
    if base_currency and snapshot.currency == base_currency:
        return BasePnl(
            fx_rate=PARITY,
            market_value_base=snapshot.market_value,
            cost_basis_base=snapshot.cost_basis,
            unrealized_base=snapshot.unrealized_pnl,
            unrealized_pct_base=snapshot.unrealized_pct,
            realized_base=snapshot.realized_pnl,
            realized_pct_base=snapshot.realized_pct,
            source="native",
        )

    rate = spot_rate(ledger, snapshot.currency, base_currency)
    value_base = None
    if snapshot.market_value is not None and rate is not None:
        value_base = snapshot.market_value * rate

    average_rate = weighted_average_rate(records)
    if average_rate is not None:
        return _from_average_rate(snapshot, rate, average_rate, value_base)
    if records:
        return _from_transactions(snapshot, rate, records, value_base)
    return BasePnl(fx_rate=rate, market_value_base=value_base)


def _from_average_rate(snapshot, rate, average_rate, value_base) -> BasePnl:
    cost_native = snapshot.cost_basis
    if cost_native is None or value_base is None:
        return BasePnl(fx_rate=rate, average_fx_rate=average_rate, market_value_base=value_base)

    cost_base = cost_native * average_rate
    unrealized = unrealized_pct = None
    if cost_base != 0:
        unrealized = value_base - cost_base
        unrealized_pct = unrealized / cost_base * HUNDRED

    realized = realized_pct = None
    if snapshot.realized_pnl is not None:
        realized = snapshot.realized_pnl * average_rate
        realized_pct = snapshot.realized_pct

    return BasePnl(
        fx_rate=rate,
        average_fx_rate=average_rate,
        market_value_base=value_base,
        cost_basis_base=cost_base,
        unrealized_base=unrealized,
        unrealized_pct_base=unrealized_pct,
        realized_base=realized,
        realized_pct_base=realized_pct,
        source="average_fx",
    )


def _from_transactions(snapshot, rate, records, value_base) -> BasePnl:
    state = reconcile(records, snapshot.quantity, value_base)
    if state.cost_basis_base is None and state.cost_sold_base == 0:
        return BasePnl(fx_rate=rate, market_value_base=value_base)
    return BasePnl(
        fx_rate=rate,
        market_value_base=value_base,
        cost_basis_base=state.cost_basis_base,
        unrealized_base=state.unrealized_base,
        unrealized_pct_base=state.unrealized_pct_base,
        realized_base=state.realized_base,
        realized_pct_base=state.realized_pct_base,
        source="transactions",
    )
