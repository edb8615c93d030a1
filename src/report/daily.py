"""Daily portfolio report.

Builds yesterday's summary across all accounts: daily P&L against the prior
NAV point, total NAV, YTD return, benchmark comparison, biggest movers among
the largest positions and the last week of daily returns. Rendered as
Telegram MarkdownV2.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from src.gateway.client import GatewayClient
from src.performance.nav import (
    NavSeries,
    daily_returns,
    extract_nav_series,
    extract_ytd_return,
    find_index_on_or_before,
    history_change,
)
from src.reconcile.aggregate import extract_account_ids
from src.reconcile.models import PositionSnapshot
from src.reconcile.values import children, is_mapping, try_parse_decimal
from src.utils.text import (
    emoji_for_change,
    format_money,
    format_percent,
    md_bold,
    md_code,
    md_escape,
    trend_emoji,
)

logger = logging.getLogger(__name__)


class ReportError(RuntimeError):
    """The gateway did not return enough data to build the report."""


@dataclass
class Mover:
    symbol: str
    currency: str
    pct: float
    price: float


@dataclass
class BenchmarkResult:
    label: str
    emoji: str
    pct: float | None = None


@dataclass
class DailyReport:
    date_label: str
    base_currency: str
    nav: float
    daily_pnl: float
    daily_pct: float | None
    ytd_return: float | None = None
    benchmarks: list[BenchmarkResult] = field(default_factory=list)
    top_movers: list[Mover] = field(default_factory=list)
    worst_movers: list[Mover] = field(default_factory=list)
    last_returns: list[tuple[str, float]] = field(default_factory=list)


def pick_conid(search_data, symbol: str) -> int | None:
    """Choose a conid from ``/iserver/secdef/search`` results.

    Prefers entries whose symbol matches case-insensitively (entries without
    a symbol count as matches), else the first entry with a numeric conid.
    """
    fallback = None
    for _, item in children(search_data):
        if not is_mapping(item):
            continue
        conid = try_parse_decimal(item.get("conid"))
        if conid is None:
            continue
        if fallback is None:
            fallback = int(conid)
        item_symbol = item.get("symbol")
        if item_symbol is None:
            item_symbol = item.get("ticker")
        if item_symbol is None or str(item_symbol).lower() == symbol.lower():
            return int(conid)
    return fallback


class DailyReportBuilder:
    def __init__(self, client: GatewayClient, config: dict):
        self.client = client
        self.config = config
        self.tz = ZoneInfo(config.get("timezone", "Europe/Amsterdam"))

    def build(self, now: datetime | None = None) -> DailyReport:
        account_ids = extract_account_ids(self.client.accounts().json)
        if not account_ids:
            raise ReportError("No IBKR accounts found.")

        nav = self._nav_series(account_ids)
        if len(nav.values) < 2:
            raise ReportError("Insufficient performance data for daily report.")

        now = now.astimezone(self.tz) if now else datetime.now(self.tz)
        target_key = int((now - timedelta(days=1)).strftime("%Y%m%d"))
        index = find_index_on_or_before(nav.raw_dates, target_key)
        if index is None or index < 1:
            raise ReportError("Unable to find yesterday in performance data.")

        last_nav, prev_nav = nav.values[index], nav.values[index - 1]
        daily_pnl = last_nav - prev_nav
        ytd = self.client.performance(account_ids, self.config.get("ytd_period", "YTD")).json

        top, worst = self._movers(account_ids, nav.currency or "USD")
        return DailyReport(
            date_label=nav.labels[index],
            base_currency=nav.currency or "USD",
            nav=last_nav,
            daily_pnl=daily_pnl,
            daily_pct=daily_pnl / prev_nav * 100 if prev_nav != 0 else None,
            ytd_return=extract_ytd_return(ytd),
            benchmarks=[self._benchmark(b) for b in self.config.get("benchmarks", [])],
            top_movers=top,
            worst_movers=worst,
            last_returns=daily_returns(nav, index),
        )

    def _nav_series(self, account_ids: list[str]) -> NavSeries:
        nav = extract_nav_series(self.client.performance(account_ids, self.config.get("period", "7D")).json)
        if len(nav.values) < self.config.get("min_points", 8):
            fallback = self.config.get("fallback_period", "1M")
            logger.debug(f"Only {len(nav.values)} NAV points, retrying with {fallback}")
            nav = extract_nav_series(self.client.performance(account_ids, fallback).json)
        return nav

    def _movers(self, account_ids: list[str], base_currency: str) -> tuple[list[Mover], list[Mover]]:
        held: dict[int, PositionSnapshot] = {}
        totals: dict[int, Decimal] = {}
        for account_id in account_ids:
            rows = self.client.positions(account_id).json
            for _, row in children(rows if isinstance(rows, list) else []):
                if not is_mapping(row):
                    continue
                snapshot = PositionSnapshot.from_row(row, base_currency)
                if snapshot.instrument_id is None:
                    continue
                held.setdefault(snapshot.instrument_id, snapshot)
                totals[snapshot.instrument_id] = (
                    totals.get(snapshot.instrument_id, Decimal("0")) + (snapshot.market_value or Decimal("0"))
                )

        largest = sorted(totals, key=lambda conid: abs(totals[conid]), reverse=True)
        movers = []
        for conid in largest[: self.config.get("movers_universe", 12)]:
            change = history_change(self.client.history(conid).json)
            if change is None:
                continue
            snapshot = held[conid]
            movers.append(Mover(snapshot.symbol, snapshot.currency, change.pct, change.price))

        shown = self.config.get("movers_shown", 2)
        top = sorted(movers, key=lambda m: m.pct, reverse=True)[:shown]
        worst = sorted(movers, key=lambda m: m.pct)[:shown]
        return top, worst

    def _benchmark(self, benchmark: dict) -> BenchmarkResult:
        result = BenchmarkResult(label=benchmark["label"], emoji=benchmark.get("emoji", ""))
        for symbol, sec_type in benchmark.get("candidates", []):
            conid = pick_conid(self.client.search_contract(symbol, sec_type).json, symbol)
            if conid is None:
                continue
            change = history_change(self.client.history(conid).json)
            result.pct = change.pct if change else None
            break
        return result


def _compare_label(portfolio: float | None, market: float | None) -> str:
    if portfolio is None or market is None:
        return ""
    if portfolio > market:
        outcome = "✅ You won"
    elif portfolio < market:
        outcome = "❌ You lost"
    else:
        outcome = "⚪ Tie"
    return f" \\({md_escape(outcome)}\\)"


def _mover_lines(movers: list[Mover]) -> list[str]:
    if not movers:
        return [f"• {md_escape('n/a')}"]
    return [
        f"• {emoji_for_change(m.pct)} {md_escape(m.symbol)}: "
        f"{md_code(format_money(m.price, m.currency))} \\({md_code(format_percent(m.pct, 1, True))}\\)"
        for m in movers
    ]


def render_daily_report(report: DailyReport) -> str:
    ccy = report.base_currency
    ytd_emoji = trend_emoji(report.ytd_return)
    ytd_label = md_escape("n/a") if report.ytd_return is None else md_code(format_percent(report.ytd_return, 1, True))

    lines = [
        md_bold(f"📉 Portfolio Report: {report.date_label}"),
        "",
        md_bold("Overview"),
        f"• Daily P&L: {md_code(format_money(report.daily_pnl, ccy, True))} "
        f"\\({emoji_for_change(report.daily_pct)} {md_code(format_percent(report.daily_pct, 2, True))}\\)",
        f"• Total NAV: {md_code(format_money(report.nav, ccy))}",
        f"• YTD Return: {ytd_label}" + (f" {ytd_emoji}" if ytd_emoji else ""),
        "",
        md_bold("vs. Market"),
    ]
    for b in report.benchmarks:
        if b.pct is None:
            lines.append(f"• {b.emoji} {md_escape(b.label)}: {md_escape('n/a')}")
        else:
            lines.append(
                f"• {b.emoji} {md_escape(b.label)}: {md_code(format_percent(b.pct, 1, True))}"
                + _compare_label(report.daily_pct, b.pct)
            )

    lines += ["", md_bold("Top Movers"), *_mover_lines(report.top_movers)]
    lines += ["", md_bold("Worst Movers"), *_mover_lines(report.worst_movers)]
    lines += ["", md_bold("Last 7 Days")]
    if not report.last_returns:
        lines.append(f"• {md_escape('n/a')}")
    for date_label, pct in report.last_returns:
        lines.append(f"• {md_code(date_label)}: {md_code(format_percent(pct, 1, True) + ' ' + emoji_for_change(pct))}")
    return "\n".join(lines)
