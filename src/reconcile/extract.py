"""Schema-tolerant lookups over gateway payloads.

A lookup is a ranked sequence of ``(predicate, extractor)`` rules: the first
rule whose predicate accepts the value and whose extractor returns something
other than None wins. Candidate key lists are plain tuples so a new upstream
field name is a one-line addition.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from src.reconcile.values import children, is_container, is_mapping, is_scalar, try_parse_decimal

Rule = tuple[Callable[[Any], bool], Callable[[Any], Any]]

MAX_DEPTH = 16

SCALAR_KEYS = (
    "value",
    "amount",
    "val",
    "v",
    "number",
    "netliquidation",
    "netLiquidation",
    "nlv",
    "balance",
)

CURRENCY_KEYS = (
    "currency",
    "curr",
    "ccy",
    "baseCurrency",
    "base_currency",
)


def resolve(value: Any, rules: Iterable[Rule]) -> Any:
    """Return the first non-None extraction among *rules*, or None."""
    for applies, extract in rules:
        if not applies(value):
            continue
        found = extract(value)
        if found is not None:
            return found
    return None


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _keyed(mapping: Mapping, keys: Sequence[str], accept: Callable[[Any], bool]) -> Any:
    for key in keys:
        if key in mapping and accept(mapping[key]):
            return mapping[key]
    return None


def _scalar_rules(keys: Sequence[str], depth: int) -> tuple[Rule, ...]:
    def nested(mapping: Mapping) -> Any:
        for key in keys:
            if key in mapping and is_container(mapping[key]):
                found = extract_scalar(mapping[key], keys, depth + 1)
                if found is not None:
                    return found
        return None

    def any_child(container: Any) -> Any:
        for _, item in children(container):
            found = extract_scalar(item, keys, depth + 1)
            if found is not None:
                return found
        return None

    return (
        (is_scalar, lambda v: v),
        (is_mapping, lambda m: _keyed(m, keys, is_scalar)),
        (is_mapping, nested),
        (is_container, any_child),
    )


def extract_scalar(value: Any, candidate_keys: Sequence[str] = SCALAR_KEYS, _depth: int = 0) -> Any:
    """Hunt for a usable scalar inside an arbitrarily nested value.

    Order: the value itself if scalar; the first candidate key holding a
    scalar; the first candidate key holding a container that yields one;
    finally every child in iteration order. Returns None past ``MAX_DEPTH``.
    """
    if _depth > MAX_DEPTH:
        return None
    return resolve(value, _scalar_rules(candidate_keys, _depth))


def extract_currency(value: Any, _depth: int = 0) -> str | None:
    """Find a currency tag in a nested value; bare scalars carry none."""
    if _depth > MAX_DEPTH:
        return None

    def any_child(container: Any) -> str | None:
        for _, item in children(container):
            found = extract_currency(item, _depth + 1)
            if found is not None:
                return found
        return None

    return resolve(value, (
        (is_mapping, lambda m: _keyed(m, CURRENCY_KEYS, _is_text)),
        (is_container, any_child),
    ))


def lookup(mapping: Any, keys: Sequence[str]) -> Decimal | None:
    """First value under *keys* that parses as a number."""
    if not is_mapping(mapping):
        return None
    for key in keys:
        if key in mapping:
            number = try_parse_decimal(mapping[key])
            if number is not None:
                return number
    return None


def lookup_text(mapping: Any, keys: Sequence[str]) -> str | None:
    """First non-empty string under *keys*."""
    if not is_mapping(mapping):
        return None
    return _keyed(mapping, keys, _is_text)
