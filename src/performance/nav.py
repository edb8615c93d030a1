"""NAV series and return helpers for ``/pa/performance`` and market history payloads."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from src.reconcile.values import JsonKind, date_key, is_mapping, kind_of, try_parse_decimal


@dataclass
class NavSeries:
    labels: list[str] = field(default_factory=list)     # "Mar 5"
    values: list[float] = field(default_factory=list)
    raw_dates: list[str] = field(default_factory=list)  # "20240305"
    currency: str | None = None


@dataclass
class HistoryChange:
    pct: float
    price: float


def _number(value) -> float | None:
    number = try_parse_decimal(value)
    return float(number) if number is not None else None


def format_ibkr_date(value) -> str | None:
    """``"20240305"`` → ``"Mar 5"``."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.strptime(value, "%Y%m%d")
    except ValueError:
        return None
    return f"{parsed:%b} {parsed.day}"


def iso_date_label(value) -> str:
    """``"20240305"`` → ``"2024-03-05"``; unparseable input is returned as text."""
    key = date_key(value)
    if key:
        try:
            return datetime.strptime(str(key), "%Y%m%d").strftime("%Y-%m-%d")
        except ValueError:
            pass
    return str(value) if value else "n/a"


def extract_nav_series(performance) -> NavSeries:
    series = NavSeries()
    if not is_mapping(performance) or not is_mapping(performance.get("nav")):
        return series
    nav = performance["nav"]
    dates, data = nav.get("dates"), nav.get("data")
    if kind_of(dates) is not JsonKind.SEQUENCE or kind_of(data) is not JsonKind.SEQUENCE:
        return series
    if not data or not is_mapping(data[0]):
        return series
    navs = data[0].get("navs")
    if kind_of(navs) is not JsonKind.SEQUENCE:
        return series

    for raw_date, raw_nav in zip(dates, navs):
        label = format_ibkr_date(raw_date)
        value = _number(raw_nav)
        if label is None or value is None:
            continue
        series.labels.append(label)
        series.values.append(round(value, 2))
        series.raw_dates.append(str(raw_date))

    currency = data[0].get("baseCurrency")
    if isinstance(currency, str) and currency:
        series.currency = currency
    return series


def extract_ytd_return(performance) -> float | None:
    """YTD return in percent: last cumulative return, else first vs last NAV."""
    if not is_mapping(performance):
        return None

    try:
        returns = performance["cps"]["data"][0]["returns"]
    except (KeyError, IndexError, TypeError):
        returns = None
    if kind_of(returns) is JsonKind.SEQUENCE and returns:
        last = _number(returns[-1])
        if last is not None:
            return last * 100

    try:
        nav = performance["nav"]["data"][0]
        start = _number(nav["startNAV"]["val"])
        navs = nav["navs"]
    except (KeyError, IndexError, TypeError):
        return None
    if kind_of(navs) is not JsonKind.SEQUENCE or not navs:
        return None
    last = _number(navs[-1])
    if start is None or last is None or start == 0:
        return None
    return (last - start) / start * 100


def _closes(history) -> list[float]:
    if not is_mapping(history) or kind_of(history.get("data")) is not JsonKind.SEQUENCE:
        return []
    closes = []
    for bar in history["data"]:
        close = _number(bar.get("c")) if is_mapping(bar) else None
        if close is not None:
            closes.append(close)
    return closes


def history_change(history) -> HistoryChange | None:
    """Change between the last two daily closes of ``/iserver/marketdata/history``."""
    closes = _closes(history)
    if len(closes) < 2 or closes[-2] == 0:
        return None
    last, prev = closes[-1], closes[-2]
    return HistoryChange(pct=(last - prev) / prev * 100, price=last)


def find_index_on_or_before(raw_dates: list[str], target_key: int) -> int | None:
    """Index of the last date not after *target_key* (YYYYMMDD)."""
    found = None
    for index, raw in enumerate(raw_dates):
        key = date_key(raw)
        if key and key <= target_key:
            found = index
    return found


def daily_returns(series: NavSeries, end_index: int, count: int = 7) -> list[tuple[str, float]]:
    """Up to *count* day-over-day NAV returns ending at *end_index*."""
    returns = []
    for index in range(max(1, end_index - count + 1), end_index + 1):
        prev, curr = series.values[index - 1], series.values[index]
        if prev == 0:
            continue
        returns.append((iso_date_label(series.raw_dates[index]), (curr - prev) / prev * 100))
    return returns
