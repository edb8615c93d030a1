from dataclasses import dataclass, field
from decimal import Decimal

from src.performance.nav import NavSeries
from src.reconcile.models import BasePnl, CashBalance, NetLiquidation, PartitionedPnl, PositionSnapshot


@dataclass
class PositionView:
    snapshot: PositionSnapshot
    base: BasePnl
    transactions: int = 0          # normalized transactions behind the base figures


@dataclass
class AccountView:
    account_id: str
    base_currency: str
    net_liquidation: NetLiquidation = field(default_factory=NetLiquidation)
    cash_balances: list[CashBalance] = field(default_factory=list)
    base_cash_balance: Decimal | None = None
    intraday_pnl: PartitionedPnl = field(default_factory=PartitionedPnl)
    nav: NavSeries = field(default_factory=NavSeries)
    positions: list[PositionView] = field(default_factory=list)
    positions_error: str | None = None

    @property
    def has_performance_data(self) -> bool:
        return bool(self.nav.labels) and bool(self.nav.values)
