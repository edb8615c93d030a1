"""Daily report: data selection, error paths and MarkdownV2 rendering."""
from datetime import datetime
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from src.gateway.client import GatewayResponse
from src.report.daily import (
    BenchmarkResult,
    DailyReport,
    DailyReportBuilder,
    Mover,
    ReportError,
    pick_conid,
    render_daily_report,
)

AMS = ZoneInfo("Europe/Amsterdam")
NOW = datetime(2024, 3, 6, 8, 0, tzinfo=AMS)

CONFIG = {
    "timezone": "Europe/Amsterdam",
    "period": "7D",
    "fallback_period": "1M",
    "min_points": 8,
    "ytd_period": "YTD",
    "movers_universe": 12,
    "movers_shown": 2,
    "benchmarks": [
        {"label": "S&P 500", "emoji": "🏛️", "candidates": [["SPX", "IND"], ["SPY", "STK"]]},
        {"label": "Nasdaq", "emoji": "💻", "candidates": [["NDX", "IND"], ["QQQ", "STK"]]},
    ],
}


def _resp(data):
    return GatewayResponse(url="https://gw.test", raw=None, json=data)


def _performance(dates, navs):
    return {"nav": {"dates": dates, "data": [{"navs": navs, "baseCurrency": "EUR"}]}}


WEEK = _performance(
    ["20240227", "20240228", "20240229", "20240301", "20240304", "20240305", "20240306", "20240307"],
    [100, 101, 102, 103, 104, 105, 106, 107],
)
YTD = {"cps": {"data": [{"returns": [0.01, 0.05]}]}}

POSITIONS = {
    "U1": [
        {"conid": 1, "contractDesc": "AAA", "currency": "USD", "mktValue": 1000},
        {"conid": 2, "contractDesc": "BBB", "currency": "EUR", "mktValue": -5000},
    ],
    "U2": [
        {"conid": 1, "contractDesc": "AAA", "currency": "USD", "mktValue": 500},
        {"conid": 3, "contractDesc": "CCC", "currency": "EUR", "mktValue": 10},
    ],
}

HISTORY = {
    1: {"data": [{"c": 100}, {"c": 102}]},
    2: {"data": [{"c": 100}, {"c": 97}]},
    3: {"data": []},
    416904: {"data": [{"c": 200}, {"c": 201}]},
    320227571: {"data": [{"c": 100}, {"c": 101.2}]},
}

SEARCH = {
    "SPX": [{"conid": "416904", "symbol": "SPX"}],
    "NDX": [],
    "QQQ": [{"conid": 320227571, "symbol": "QQQ"}],
}


def _make_client(week=WEEK, month=None):
    client = MagicMock()
    client.accounts.return_value = _resp(["U1", "U2"])
    periods = {"7D": week, "1M": month, "YTD": YTD}
    client.performance.side_effect = lambda ids, period: _resp(periods.get(period))
    client.positions.side_effect = lambda account_id: _resp(POSITIONS.get(account_id))
    client.history.side_effect = lambda conid, *a, **kw: _resp(HISTORY.get(conid))
    client.search_contract.side_effect = lambda symbol, sec_type: _resp(SEARCH.get(symbol))
    return client


def test_build_daily_figures():
    report = DailyReportBuilder(_make_client(), CONFIG).build(NOW)

    assert report.date_label == "Mar 5"
    assert report.base_currency == "EUR"
    assert report.nav == 105
    assert report.daily_pnl == pytest.approx(1.0)
    assert report.daily_pct == pytest.approx(1 / 104 * 100)
    assert report.ytd_return == pytest.approx(5.0)
    assert [label for label, _ in report.last_returns] == [
        "2024-02-28", "2024-02-29", "2024-03-01", "2024-03-04", "2024-03-05",
    ]


def test_movers_from_largest_positions():
    report = DailyReportBuilder(_make_client(), CONFIG).build(NOW)

    assert [m.symbol for m in report.top_movers] == ["AAA", "BBB"]
    assert [m.symbol for m in report.worst_movers] == ["BBB", "AAA"]
    assert report.top_movers[0].pct == pytest.approx(2.0)
    assert report.top_movers[0].currency == "USD"


def test_benchmarks_try_candidates_in_order():
    client = _make_client()
    report = DailyReportBuilder(client, CONFIG).build(NOW)

    sp, nasdaq = report.benchmarks
    assert sp.label == "S&P 500"
    assert sp.pct == pytest.approx(0.5)
    assert nasdaq.pct == pytest.approx(1.2)
    searched = [c.args[0] for c in client.search_contract.call_args_list]
    assert searched == ["SPX", "NDX", "QQQ"]


def test_short_week_falls_back_to_month():
    short = _performance(["20240304", "20240305"], [100, 101])
    client = _make_client(week=short, month=WEEK)
    report = DailyReportBuilder(client, CONFIG).build(NOW)
    assert report.nav == 105
    periods = [c.args[1] for c in client.performance.call_args_list]
    assert periods[:2] == ["7D", "1M"]


def test_no_accounts():
    client = _make_client()
    client.accounts.return_value = _resp([])
    with pytest.raises(ReportError, match="No IBKR accounts"):
        DailyReportBuilder(client, CONFIG).build(NOW)


def test_insufficient_history():
    single = _performance(["20240305"], [100])
    with pytest.raises(ReportError, match="Insufficient"):
        DailyReportBuilder(_make_client(week=single, month=single), CONFIG).build(NOW)


def test_yesterday_not_found():
    late = datetime(2024, 2, 28, 8, 0, tzinfo=AMS)   # yesterday is the first point
    with pytest.raises(ReportError, match="yesterday"):
        DailyReportBuilder(_make_client(), CONFIG).build(late)


def test_pick_conid():
    results = [{"conid": "x"}, {"conid": 5, "symbol": "SPY"}, {"conid": 6, "symbol": "SPX"}]
    assert pick_conid(results, "spx") == 6
    assert pick_conid(results, "ZZZ") == 5
    assert pick_conid([{"conid": 7}], "SPX") == 7
    assert pick_conid([{"conid": 8, "ticker": "QQQ"}], "QQQ") == 8
    assert pick_conid([{"conid": 9, "symbol": None, "ticker": "QQQ"}, {"conid": 10, "symbol": "SPY"}], "SPY") == 10
    assert pick_conid(None, "SPX") is None


def test_render_daily_report():
    report = DailyReport(
        date_label="Mar 5",
        base_currency="EUR",
        nav=105000.0,
        daily_pnl=1000.0,
        daily_pct=0.96,
        ytd_return=5.0,
        top_movers=[Mover("AAA", "USD", 2.0, 102.0)],
        worst_movers=[],
        last_returns=[("2024-03-05", -0.5)],
    )
    report.benchmarks = [BenchmarkResult("S&P 500", "🏛️", 0.5), BenchmarkResult("Nasdaq", "💻", None)]

    text = render_daily_report(report)
    assert text.startswith("*📉 Portfolio Report: Mar 5*")
    assert "`+€1,000.00`" in text
    assert "`€105,000.00`" in text
    assert "`+5.0%` 📈" in text
    assert "S&P 500: `+0.5%` \\(✅ You won\\)" in text
    assert "Nasdaq: n/a" in text
    assert "🟢 AAA: `$102.00` \\(`+2.0%`\\)" in text
    assert "`2024-03-05`: `-0.5% 🔴`" in text


def test_render_compare_labels():
    base = dict(date_label="Mar 5", base_currency="USD", nav=1.0, daily_pnl=0.0)
    lost = render_daily_report(DailyReport(daily_pct=0.1, **base, benchmarks=[
        BenchmarkResult("X", "", 0.2),
    ]))
    assert "❌ You lost" in lost
