from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from src.reconcile.extract import extract_currency, extract_scalar, lookup, lookup_text
from src.reconcile.values import is_container

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TransactionRecord:
    quantity: Decimal              # buys positive, sells negative
    amount_base: Decimal           # absolute, account base currency
    fx_rate: Decimal | None
    weight: Decimal                # trade size used for FX averaging
    date_key: int = 0              # YYYYMMDD, 0 when unknown


@dataclass(frozen=True)
class CostBasisState:
    remaining_quantity: Decimal
    remaining_cost_base: Decimal
    cost_basis_base: Decimal | None
    unrealized_base: Decimal | None
    unrealized_pct_base: Decimal | None
    realized_base: Decimal
    realized_pct_base: Decimal | None
    cost_sold_base: Decimal
    unmatched_sells: int = 0       # sells seen with no lots to sell against


@dataclass(frozen=True)
class NetLiquidation:
    value: Any = None
    currency: str | None = None
    source: str | None = None      # "summary" | "ledger" | None

    def flattened(self) -> NetLiquidation:
        """Collapse a nested value (``{"amount": .., "currency": ..}``) to a scalar."""
        if not is_container(self.value):
            return self
        currency = self.currency if self.currency is not None else extract_currency(self.value)
        return replace(self, value=extract_scalar(self.value), currency=currency)


@dataclass(frozen=True)
class PartitionedPnl:
    dpl: Decimal | None = None     # daily P&L
    upl: Decimal | None = None     # unrealized P&L
    nl: Decimal | None = None      # net liquidation
    el: Decimal | None = None      # excess liquidity
    mv: Decimal | None = None      # market value
    key: str | None = None


@dataclass(frozen=True)
class CashBalance:
    currency: str
    value: Decimal


_SYMBOL_KEYS = ("contractDesc", "symbol", "name")


@dataclass(frozen=True)
class PositionSnapshot:
    instrument_id: int | None
    symbol: str
    currency: str
    quantity: Decimal | None
    market_price: Decimal | None
    market_value: Decimal | None
    average_cost: Decimal | None
    unrealized_pnl: Decimal | None
    realized_pnl: Decimal | None
    asset_class: str

    @classmethod
    def from_row(cls, row: dict, default_currency: str) -> PositionSnapshot:
        """Build a snapshot from one ``/portfolio/{id}/positions`` row."""
        conid = lookup(row, ("conid",))
        return cls(
            instrument_id=int(conid) if conid is not None else None,
            symbol=str(lookup_text(row, _SYMBOL_KEYS) or "n/a"),
            currency=lookup_text(row, ("currency",)) or default_currency,
            quantity=lookup(row, ("position",)),
            market_price=lookup(row, ("mktPrice",)),
            market_value=lookup(row, ("mktValue",)),
            average_cost=lookup(row, ("avgCost",)),
            unrealized_pnl=lookup(row, ("unrealizedPnl",)),
            realized_pnl=lookup(row, ("realizedPnl",)),
            asset_class=lookup_text(row, ("assetClass",)) or "n/a",
        )

    @property
    def cost_basis(self) -> Decimal | None:
        if self.quantity is None or self.average_cost is None:
            return None
        return self.quantity * self.average_cost

    @property
    def unrealized_pct(self) -> Decimal | None:
        return _pct_of_cost(self.unrealized_pnl, self.cost_basis)

    @property
    def realized_pct(self) -> Decimal | None:
        return _pct_of_cost(self.realized_pnl, self.cost_basis)


def _pct_of_cost(amount: Decimal | None, cost: Decimal | None) -> Decimal | None:
    if amount is None or cost is None or cost == 0:
        return None
    return amount / cost * HUNDRED


@dataclass(frozen=True)
class BasePnl:
    """Position P&L expressed in the account base currency."""
    fx_rate: Decimal | None = None
    average_fx_rate: Decimal | None = None
    market_value_base: Decimal | None = None
    cost_basis_base: Decimal | None = None
    unrealized_base: Decimal | None = None
    unrealized_pct_base: Decimal | None = None
    realized_base: Decimal | None = None
    realized_pct_base: Decimal | None = None
    source: str | None = None      # "native" | "average_fx" | "transactions" | None
