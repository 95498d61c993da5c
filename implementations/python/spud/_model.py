"""SPUD value model and decode/encode limits.

A SPUD value is a tree of plain Python objects.  The set of kinds is
closed; each maps to exactly one wire tag:

    None               NULL
    bool               BOOL      (checked before int, bool subclasses int)
    int                INT       (signed 64-bit)
    float              FLOAT
    decimal.Decimal    DECIMAL   (finite, scale 0..28, 96-bit magnitude)
    datetime.datetime  DATETIME  (aware, stored as UTC microseconds)
    datetime.date      DATE      (checked after datetime, its subclass)
    datetime.time      TIME      (naive)
    str                STRING
    bytes              BINARY
    SpudId             ID
    list               ARRAY     (tuples are rejected, they would decode as list)
    dict               MAP       (str keys, insertion order is significant)

Python dicts keep insertion order, so a decoded MAP reproduces the wire
order exactly.  Note that ``==`` on dicts ignores order; compare
``list(d)`` when order matters.
"""

from __future__ import annotations

import datetime
import decimal
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

from ._constants import (
    DECIMAL_MAX_SCALE,
    DECIMAL_MAX_UNSCALED,
    MAX_COLLECTION_LEN,
    MAX_DEPTH,
    MAX_STRING_LEN,
)
from ._ids import SpudId

Scalar = Union[
    None,
    bool,
    int,
    float,
    decimal.Decimal,
    datetime.datetime,
    datetime.date,
    datetime.time,
    str,
    bytes,
    SpudId,
]

# Recursive aliases are spelled with Any to keep older type checkers happy.
Value = Union[Scalar, List[Any], Dict[str, Any]]

UTC = datetime.timezone.utc
EPOCH = datetime.datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class Limits:
    """Resource limits applied while decoding and encoding.

    max_depth           deepest allowed ARRAY/MAP nesting (root container = 1)
    max_collection_len  most elements in one ARRAY or entries in one MAP
    max_string_len      most bytes in one STRING or BINARY payload
    """

    max_depth: int = MAX_DEPTH
    max_collection_len: int = MAX_COLLECTION_LEN
    max_string_len: int = MAX_STRING_LEN

    def __post_init__(self) -> None:
        for name in ("max_depth", "max_collection_len", "max_string_len"):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, int) or val < 1:
                raise ValueError("{} must be a positive integer, got {!r}".format(name, val))


DEFAULT_LIMITS = Limits()


# ── Decimal and timestamp conversions ────────────────────────
# Shared by the encoder, decoder and JSON bridge.  They raise ValueError;
# callers turn that into the error class for their operation.

def decimal_to_parts(value: decimal.Decimal) -> Tuple[int, int]:
    """Split a Decimal into (scale, signed unscaled integer) without rounding."""
    if not value.is_finite():
        raise ValueError("decimal {} is not finite".format(value))
    sign, digits, exponent = value.as_tuple()
    unscaled = int("".join(map(str, digits))) if digits else 0
    if exponent > 0:
        if len(digits) + exponent > 30:
            raise ValueError("decimal {} needs more than 96 bits".format(value))
        unscaled *= 10 ** exponent
        scale = 0
    else:
        scale = -exponent
    if scale > DECIMAL_MAX_SCALE:
        raise ValueError("decimal scale {} exceeds {}".format(scale, DECIMAL_MAX_SCALE))
    if unscaled > DECIMAL_MAX_UNSCALED:
        raise ValueError("decimal {} needs more than 96 bits".format(value))
    return scale, -unscaled if sign else unscaled


def decimal_from_parts(scale: int, unscaled: int) -> decimal.Decimal:
    """Rebuild a Decimal exactly; the default context is never consulted."""
    if scale > DECIMAL_MAX_SCALE:
        raise ValueError("decimal scale {} exceeds {}".format(scale, DECIMAL_MAX_SCALE))
    if abs(unscaled) > DECIMAL_MAX_UNSCALED:
        raise ValueError("decimal mantissa needs more than 96 bits")
    digits = tuple(int(c) for c in str(abs(unscaled)))
    return decimal.Decimal((1 if unscaled < 0 else 0, digits, -scale))


def check_decimal(value: decimal.Decimal) -> decimal.Decimal:
    decimal_to_parts(value)
    return value


def datetime_to_utc(value: datetime.datetime) -> datetime.datetime:
    """Normalize an aware datetime to UTC.

    The UTC instant must still fall in years 1..9999, otherwise it could
    be written but never read back.
    """
    try:
        return value.astimezone(UTC)
    except OverflowError as exc:
        raise ValueError("{} is outside the datetime range in UTC".format(value.isoformat())) from exc


def datetime_to_ticks(value: datetime.datetime) -> int:
    """Microseconds since the Unix epoch.  ``value`` must be aware."""
    delta = datetime_to_utc(value) - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def datetime_from_ticks(ticks: int) -> datetime.datetime:
    try:
        return EPOCH + datetime.timedelta(microseconds=ticks)
    except OverflowError as exc:
        raise ValueError("{} microseconds is outside the datetime range".format(ticks)) from exc
