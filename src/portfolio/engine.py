import logging
from collections import Counter
from decimal import Decimal

from src.gateway.client import GatewayClient
from src.metrics import account_build_seconds, transactions_dropped_total
from src.performance.nav import extract_nav_series
from src.portfolio.models import AccountView, PositionView
from src.reconcile.aggregate import (
    extract_account_ids,
    extract_base_cash_balance,
    extract_cash_balances,
    net_liquidation,
    partitioned_pnl,
)
from src.reconcile.models import PositionSnapshot
from src.reconcile.positions import convert_position_pnl
from src.reconcile.transactions import normalize_transactions
from src.reconcile.values import is_mapping

logger = logging.getLogger(__name__)
DEFAULT_BASE = "USD"


class AccountEngine:
    def __init__(
        self,
        client: GatewayClient,
        transaction_days: int | None = None,
        performance_period: str = "30D",
        fallback_period: str = "1M",
    ):
        self.client = client
        self.transaction_days = transaction_days
        self.performance_period = performance_period
        self.fallback_period = fallback_period

    def list_accounts(self) -> list[str]:
        return extract_account_ids(self.client.accounts().json)

    def get_accounts(self) -> list[AccountView]:
        pnl = self.client.partitioned_pnl().json
        views = []
        for account_id in self.list_accounts():
            try:
                views.append(self.get_account(account_id, pnl))
            except Exception as e:
                logger.error(f"Error building account {account_id}: {e}")
        return views

    def get_account(self, account_id: str, partitioned=None) -> AccountView:
        if partitioned is None:
            partitioned = self.client.partitioned_pnl().json
        with account_build_seconds.time():
            return self._build(account_id, partitioned)

    def _build(self, account_id: str, partitioned) -> AccountView:
        summary = self.client.summary(account_id).json
        ledger = self.client.ledger(account_id).json

        nav = extract_nav_series(self.client.performance([account_id], self.performance_period).json)
        if not nav.labels:
            nav = extract_nav_series(self.client.performance([account_id], self.fallback_period).json)

        nlv = net_liquidation(summary, ledger).flattened()
        base_currency = nav.currency or nlv.currency or DEFAULT_BASE

        positions = self.client.positions(account_id)
        rows = [row for row in positions.json if is_mapping(row)] if isinstance(positions.json, list) else []
        snapshots = [PositionSnapshot.from_row(row, base_currency) for row in rows]

        records_by_conid = self._foreign_transactions(account_id, snapshots, base_currency)
        views = []
        for snapshot in snapshots:
            records = records_by_conid.get(snapshot.instrument_id, [])
            views.append(PositionView(
                snapshot=snapshot,
                base=convert_position_pnl(snapshot, ledger, records, base_currency),
                transactions=len(records),
            ))
        views.sort(key=lambda v: v.snapshot.market_value or Decimal("0"), reverse=True)

        return AccountView(
            account_id=account_id,
            base_currency=base_currency,
            net_liquidation=nlv,
            cash_balances=extract_cash_balances(ledger),
            base_cash_balance=extract_base_cash_balance(ledger),
            intraday_pnl=partitioned_pnl(partitioned, account_id),
            nav=nav,
            positions=views,
            positions_error=positions.error,
        )

    def _foreign_transactions(self, account_id: str, snapshots, base_currency: str) -> dict:
        """Transactions for every instrument not held in the base currency, one request each."""
        conids = []
        for snapshot in snapshots:
            if snapshot.currency != base_currency and snapshot.instrument_id is not None:
                if snapshot.instrument_id not in conids:
                    conids.append(snapshot.instrument_id)

        records_by_conid = {}
        drops: Counter = Counter()
        for conid in conids:
            response = self.client.transactions(account_id, conid, base_currency, self.transaction_days)
            grouped = normalize_transactions(response.json, base_currency, drops)
            if conid in grouped:
                records_by_conid[conid] = grouped[conid]

        for reason, count in drops.items():
            transactions_dropped_total.labels(reason=reason).inc(count)
        return records_by_conid
