"""SPUD JSON bridge — lossless, order-preserving value ↔ JSON text.

Type mapping:

    None / bool        null / true / false
    int                integer token                  42
    float              number token with an exponent  1.5e0, 1e+16
    Decimal (scale>0)  plain number token             12.50
    str                string

Values JSON has no native form for travel as tagged strings:

    "$spud:dec:<digits>"   Decimal with scale 0 (an integer token would read back as int)
    "$spud:f64:nan|inf|-inf"
    "$spud:dt:2024-05-01T12:00:00.000000Z"
    "$spud:date:2024-05-01"
    "$spud:time:12:00:00.000000"
    "$spud:bin:<base64>"
    "$spud:id:<base58>"
    "$spud:str:<text>"     a plain string that itself starts with "$spud:"

The number rules are what make the bridge lossless: on the way back in, a
token with an exponent is a float, a token with only a fraction is a
Decimal with exactly the digits written, and a bare integer is an int.
Python's json.loads would otherwise turn "12.50" into a float and lose
both the trailing zero and, for long values, digits.  We intercept at the
token level with parse_float/parse_int hooks.

Output is produced by hand (strings still go through json.dumps for
escaping) because json.dumps can't emit a Decimal as a number.
"""

from __future__ import annotations

import base64
import binascii
import datetime
import decimal
import json
import math
import re
from typing import Any, Dict, List, Optional, Union

from ._constants import INT64_MAX, INT64_MIN, JSON_TAG_PREFIX
from ._errors import (
    ERR_DATE_OUT_OF_RANGE,
    ERR_DECIMAL_OVERFLOW,
    ERR_DEPTH_EXCEEDED,
    ERR_DUPLICATE_KEY,
    ERR_INVALID_UTF8,
    ERR_JSON_BRIDGE,
    ERR_UNSUPPORTED_VALUE,
    IdError,
    JsonBridgeError,
    SpudError,
)
from ._ids import SpudId
from ._model import UTC, DEFAULT_LIMITS, Limits, check_decimal, datetime_to_utc, decimal_to_parts

# strftime/strptime disagree on zero-padding years below 1000, so these
# fixed-width forms are built and matched by hand.  ASCII digits only.
_DT_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\.(\d{6})Z\Z", re.ASCII)
_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})\Z", re.ASCII)
_TIME_RE = re.compile(r"(\d{2}):(\d{2}):(\d{2})\.(\d{6})\Z", re.ASCII)

_FLOAT_SPECIALS = {"nan": math.nan, "inf": math.inf, "-inf": -math.inf}


def _ensure_no_surrogates(s: str) -> None:
    # A JSON "\ud800" escape survives json.loads as a lone surrogate,
    # which no UTF-8 encoder will accept.
    for ch in s:
        cp = ord(ch)
        if 0xD800 <= cp <= 0xDFFF:
            raise JsonBridgeError(ERR_INVALID_UTF8, "surrogate U+{:04X} in JSON string".format(cp))


# ── Value → JSON ──────────────────────────────────────────────

def _tagged(kind: str, payload: str) -> str:
    return json.dumps(JSON_TAG_PREFIX + kind + ":" + payload, ensure_ascii=False)


def _float_token(value: float) -> str:
    if math.isnan(value):
        return _tagged("f64", "nan")
    if math.isinf(value):
        return _tagged("f64", "inf" if value > 0 else "-inf")
    text = repr(value)
    # The exponent is what tells a float apart from a Decimal on the way back.
    if "e" not in text and "E" not in text:
        text += "e0"
    return text


def _decimal_token(value: decimal.Decimal) -> str:
    try:
        scale, _ = decimal_to_parts(value)
    except ValueError as exc:
        raise JsonBridgeError(ERR_DECIMAL_OVERFLOW, str(exc)) from None
    text = format(value, "f")
    if scale == 0:
        return _tagged("dec", text)
    return text


def _scalar_to_json(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        if value < INT64_MIN or value > INT64_MAX:
            raise JsonBridgeError(ERR_UNSUPPORTED_VALUE, "integer {} outside int64 range".format(value))
        return str(value)
    if isinstance(value, float):
        return _float_token(value)
    if isinstance(value, decimal.Decimal):
        return _decimal_token(value)
    if isinstance(value, datetime.datetime):
        if value.utcoffset() is None:
            raise JsonBridgeError(ERR_UNSUPPORTED_VALUE, "DATETIME values must be timezone-aware")
        try:
            v = datetime_to_utc(value)
        except ValueError as exc:
            raise JsonBridgeError(ERR_DATE_OUT_OF_RANGE, str(exc)) from None
        return _tagged("dt", "{:04d}-{:02d}-{:02d}T{:02d}:{:02d}:{:02d}.{:06d}Z".format(
            v.year, v.month, v.day, v.hour, v.minute, v.second, v.microsecond))
    if isinstance(value, datetime.date):
        return _tagged("date", "{:04d}-{:02d}-{:02d}".format(value.year, value.month, value.day))
    if isinstance(value, datetime.time):
        if value.tzinfo is not None:
            raise JsonBridgeError(ERR_UNSUPPORTED_VALUE, "TIME values must be naive")
        return _tagged("time", "{:02d}:{:02d}:{:02d}.{:06d}".format(
            value.hour, value.minute, value.second, value.microsecond))
    if isinstance(value, str):
        _ensure_no_surrogates(value)
        if value.startswith(JSON_TAG_PREFIX):
            return _tagged("str", value)
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _tagged("bin", base64.b64encode(bytes(value)).decode("ascii"))
    if isinstance(value, SpudId):
        return _tagged("id", value.to_text())
    raise JsonBridgeError(ERR_UNSUPPORTED_VALUE, "unsupported type: {}".format(type(value).__name__))


def _write(value: Any, depth: int, limits: Limits, indent: Optional[int],
           level: int, out: List[str]) -> None:
    is_list = isinstance(value, list)
    if not is_list and not isinstance(value, dict):
        out.append(_scalar_to_json(value))
        return

    if depth + 1 > limits.max_depth:
        raise JsonBridgeError(ERR_DEPTH_EXCEEDED, "nesting exceeds max_depth {}".format(limits.max_depth))

    opener, closer = ("[", "]") if is_list else ("{", "}")
    if not value:
        out.append(opener + closer)
        return

    if indent is None:
        sep, inner, outer = ",", "", ""
    else:
        inner = "\n" + " " * (indent * (level + 1))
        outer = "\n" + " " * (indent * level)
        sep = ","

    out.append(opener)
    first = True
    items = enumerate(value) if is_list else value.items()
    for key, child in items:
        if not first:
            out.append(sep)
        first = False
        out.append(inner)
        if not is_list:
            if not isinstance(key, str):
                raise JsonBridgeError(ERR_UNSUPPORTED_VALUE, "map key must be str")
            _ensure_no_surrogates(key)
            out.append(json.dumps(key, ensure_ascii=False))
            out.append(":" if indent is None else ": ")
        _write(child, depth + 1, limits, indent, level + 1, out)
    out.append(outer)
    out.append(closer)


def to_json(value: Any, *, indent: Optional[int] = None, limits: Optional[Limits] = None) -> str:
    """Render a value as JSON text.  ``indent`` pretty-prints."""
    out: List[str] = []
    try:
        _write(value, 0, limits or DEFAULT_LIMITS, indent, 0, out)
    except RecursionError:
        raise JsonBridgeError(ERR_DEPTH_EXCEEDED, "value nesting too deep to render") from None
    return "".join(out)


# ── JSON → Value ──────────────────────────────────────────────

def _intercept_int(token: str) -> int:
    """Called by json.loads for integer-shaped number tokens."""
    val = int(token)
    if val < INT64_MIN or val > INT64_MAX:
        raise JsonBridgeError(ERR_JSON_BRIDGE, "integer {} outside int64 range".format(token))
    return val


def _intercept_float(token: str) -> Union[float, decimal.Decimal]:
    """Called by json.loads for any number with '.' or 'e'/'E'."""
    if "e" in token or "E" in token:
        return float(token)
    try:
        return check_decimal(decimal.Decimal(token))
    except ValueError as exc:
        raise JsonBridgeError(ERR_DECIMAL_OVERFLOW, "decimal {}: {}".format(token, exc)) from None


def _reject_constant(name: str) -> Any:
    raise JsonBridgeError(ERR_JSON_BRIDGE, "JSON constant {} not allowed".format(name))


def _pairs_hook(pairs: List[Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        _ensure_no_surrogates(key)
        if key in result:
            raise JsonBridgeError(ERR_DUPLICATE_KEY, "duplicate key {!r} in JSON object".format(key))
        result[key] = value
    return result


def _fields(pattern: "re.Pattern[str]", payload: str) -> List[int]:
    m = pattern.match(payload)
    if m is None:
        raise ValueError("does not match {}".format(pattern.pattern))
    return [int(g) for g in m.groups()]


def _untag(text: str) -> Any:
    """Turn a "$spud:<kind>:<payload>" string back into its value."""
    kind, sep, payload = text[len(JSON_TAG_PREFIX):].partition(":")
    if not sep:
        raise JsonBridgeError(ERR_JSON_BRIDGE, "malformed tagged string {!r}".format(text))
    try:
        if kind == "str":
            return payload
        if kind == "bin":
            return base64.b64decode(payload.encode("ascii"), validate=True)
        if kind == "id":
            return SpudId.from_text(payload)
        if kind == "dec":
            # Decimal() also accepts non-ASCII digits.
            if not payload.isascii():
                raise ValueError("non-ASCII decimal payload")
            value = decimal.Decimal(payload)
            decimal_to_parts(value)
            return value
        if kind == "f64":
            return _FLOAT_SPECIALS[payload]
        if kind == "dt":
            return datetime.datetime(*_fields(_DT_RE, payload), tzinfo=UTC)
        if kind == "date":
            return datetime.date(*_fields(_DATE_RE, payload))
        if kind == "time":
            return datetime.time(*_fields(_TIME_RE, payload))
    except (ValueError, KeyError, UnicodeEncodeError, binascii.Error,
            decimal.InvalidOperation, IdError) as exc:
        raise JsonBridgeError(ERR_JSON_BRIDGE, "malformed {} payload {!r}".format(kind, payload)) from exc
    raise JsonBridgeError(ERR_JSON_BRIDGE, "unknown tagged kind {!r}".format(kind))


def _from_plain(x: Any, depth: int, limits: Limits) -> Any:
    """Convert what json.loads produced into a SPUD value."""
    if isinstance(x, dict):
        if depth + 1 > limits.max_depth:
            raise JsonBridgeError(ERR_DEPTH_EXCEEDED, "nesting exceeds max_depth {}".format(limits.max_depth))
        return {k: _from_plain(v, depth + 1, limits) for k, v in x.items()}

    if isinstance(x, list):
        if depth + 1 > limits.max_depth:
            raise JsonBridgeError(ERR_DEPTH_EXCEEDED, "nesting exceeds max_depth {}".format(limits.max_depth))
        return [_from_plain(v, depth + 1, limits) for v in x]

    if isinstance(x, str):
        _ensure_no_surrogates(x)
        if x.startswith(JSON_TAG_PREFIX):
            return _untag(x)
        return x

    # Everything else (None, bool, int, float, Decimal) was already
    # produced in final form by the parse hooks.
    return x


def from_json(text: Union[str, bytes], limits: Optional[Limits] = None) -> Any:
    """Parse JSON text into a SPUD value."""
    limits = limits or DEFAULT_LIMITS
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError:
            raise JsonBridgeError(ERR_INVALID_UTF8, "invalid UTF-8 in JSON input") from None

    try:
        parsed = json.loads(
            text,
            object_pairs_hook=_pairs_hook,
            parse_float=_intercept_float,
            parse_int=_intercept_int,
            parse_constant=_reject_constant,
        )
        return _from_plain(parsed, 0, limits)
    except SpudError:
        raise
    except json.JSONDecodeError as exc:
        raise JsonBridgeError(ERR_JSON_BRIDGE, "JSON parse error: {}".format(exc.msg), offset=exc.pos) from None
    except RecursionError:
        raise JsonBridgeError(ERR_DEPTH_EXCEEDED, "JSON nesting too deep to parse") from None
