"""Average-cost ledger.

Replays a position's transactions in date order keeping a single running
quantity and cost. Buys add to both; sells remove cost at the running
average and realize the difference against the sale proceeds. Sells with no
lots to sell against, and the part of a sell that exceeds the held quantity,
are ignored.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from src.reconcile.models import HUNDRED, CostBasisState, TransactionRecord
from src.reconcile.values import try_parse_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
QUANTITY_EPSILON = Decimal("0.0001")


def reconcile(
    records: Iterable[TransactionRecord],
    current_quantity: Any = None,
    current_value_base: Any = None,
) -> CostBasisState:
    """Derive cost basis and P&L in base currency from *records*.

    *current_quantity* is the live position size; when it exceeds what the
    transactions account for (history shorter than the position's life),
    the replayed cost is scaled up to cover it. *current_value_base* is the
    live market value in base currency, needed for unrealized figures.
    """
    live_quantity = try_parse_decimal(current_quantity)
    live_value = try_parse_decimal(current_value_base)

    quantity = ZERO
    cost = ZERO
    realized = ZERO
    cost_sold = ZERO
    unmatched = 0

    for record in records:
        if record.amount_base == 0 or record.quantity == 0:
            continue
        if record.quantity > 0:
            cost += record.amount_base
            quantity += record.quantity
            continue

        if quantity <= 0:
            unmatched += 1
            continue
        sold = min(abs(record.quantity), quantity)
        # a full close takes all remaining cost, leaving no rounding residue
        cost_removed = cost if sold == quantity else cost / quantity * sold
        realized += record.amount_base - cost_removed
        cost_sold += cost_removed
        cost -= cost_removed
        quantity -= sold

    if unmatched:
        logger.debug(f"{unmatched} sells had no open lots to sell against")

    # a full close leaves no cost, so only an open replay is scaled
    if live_quantity is not None and quantity > 0 and live_quantity - quantity > QUANTITY_EPSILON:
        cost *= live_quantity / quantity
        quantity = live_quantity

    unrealized = None
    unrealized_pct = None
    if live_value is not None and cost > 0:
        unrealized = live_value - cost
        unrealized_pct = unrealized / cost * HUNDRED

    return CostBasisState(
        remaining_quantity=quantity,
        remaining_cost_base=cost,
        cost_basis_base=cost if cost > 0 else None,
        unrealized_base=unrealized,
        unrealized_pct_base=unrealized_pct,
        realized_base=realized,
        realized_pct_base=realized / cost_sold * HUNDRED if cost_sold > 0 else None,
        cost_sold_base=cost_sold,
        unmatched_sells=unmatched,
    )
