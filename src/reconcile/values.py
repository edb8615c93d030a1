"""JSON value model for gateway payloads.

Gateway responses arrive as parsed JSON whose shape varies by endpoint and
gateway version. Everything in ``src.reconcile`` classifies values through
``kind_of`` instead of scattering isinstance checks, and coerces numbers
through ``try_parse_decimal``.
"""
from __future__ import annotations

import enum
import math
import re
from collections.abc import Iterator, Mapping
from decimal import Decimal, DecimalException
from typing import Any


class JsonKind(enum.Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OTHER = "other"


SCALAR_KINDS = frozenset({JsonKind.BOOL, JsonKind.NUMBER, JsonKind.STRING})
CONTAINER_KINDS = frozenset({JsonKind.SEQUENCE, JsonKind.MAPPING})

# Plain and exponent notation, optional sign, surrounding whitespace tolerated.
# Thousands separators are not numeric.
_NUMERIC_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")

# Products of a few accepted values must stay inside the default decimal
# context, and conids must convert to int cheaply.
MAX_EXPONENT = 100


def kind_of(value: Any) -> JsonKind:
    if value is None:
        return JsonKind.NULL
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return JsonKind.BOOL
    if isinstance(value, (int, float, Decimal)):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, Mapping):
        return JsonKind.MAPPING
    if isinstance(value, (list, tuple)):
        return JsonKind.SEQUENCE
    return JsonKind.OTHER


def is_scalar(value: Any) -> bool:
    return kind_of(value) in SCALAR_KINDS


def is_mapping(value: Any) -> bool:
    return kind_of(value) is JsonKind.MAPPING


def is_container(value: Any) -> bool:
    return kind_of(value) in CONTAINER_KINDS


def children(value: Any) -> Iterator[tuple[Any, Any]]:
    """Yield ``(key, child)`` pairs of a container in iteration order.

    Sequences yield their index as key. Scalars and nulls yield nothing.
    """
    kind = kind_of(value)
    if kind is JsonKind.MAPPING:
        yield from value.items()
    elif kind is JsonKind.SEQUENCE:
        yield from enumerate(value)


def _in_range(number: Decimal) -> bool:
    if not number.is_finite():
        return False
    return number.is_zero() or abs(number.adjusted()) <= MAX_EXPONENT


def try_parse_decimal(value: Any) -> Decimal | None:
    """Coerce a numeric-like value to Decimal.

    Accepts ints, finite floats, Decimals and numeric strings such as
    ``"12345.67"``, ``" -3 "`` or ``"1e3"``. Rejects booleans, empty or
    non-numeric strings (``"1,000"``, ``"n/a"``), NaN/infinity, magnitudes
    beyond ``1e±MAX_EXPONENT`` and containers.
    """
    kind = kind_of(value)
    if kind is JsonKind.NUMBER:
        if isinstance(value, float):
            if not math.isfinite(value):
                return None
            number = Decimal(str(value))
        else:
            number = Decimal(value)
    elif kind is JsonKind.STRING and _NUMERIC_RE.match(value):
        try:
            number = Decimal(value.strip())
        except DecimalException:
            return None
    else:
        return None
    return number if _in_range(number) else None


def date_key(value: Any) -> int:
    """Digits of a date-like value read as YYYYMMDD; 0 with fewer than 8 digits."""
    digits = re.sub(r"\D+", "", str(value if value is not None else ""))
    return int(digits[:8]) if len(digits) >= 8 else 0
