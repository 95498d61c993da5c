"""SPUD decoder — bytes to value tree.

The byte-level algorithm is written once, as a generator that yields the
number of bytes it needs next and is sent exactly that many bytes back
(see ``_io``).  ``decode_buffer`` drives it over an in-memory buffer and
``decode_stream`` over an ``asyncio.StreamReader``; neither adds any
parsing logic of its own, which is what keeps the two modes equivalent.

Every value starts with a one-byte tag:

    NULL, BOOL, INT, FLOAT, DECIMAL, DATE, TIME, DATETIME, ID
        fixed-width payload
    STRING, BINARY
        u64 length, then that many bytes
    ARRAY
        u64 count, then that many values
    MAP
        u64 count, then that many (STRING key, value) pairs

Safety rules, all checked before anything is allocated or descended into:

  - a container one level deeper than ``max_depth`` fails as soon as its
    tag is read, before its count;
  - counts above ``max_collection_len`` and lengths above
    ``max_string_len`` fail right after the prefix is read;
  - when the total input size is known, a field that runs past it fails
    with UnexpectedEof without being read.

Nesting is tracked on an explicit stack of open containers rather than by
Python recursion, so a large ``max_depth`` can't overflow the call stack.
"""

from __future__ import annotations

import asyncio
import datetime
import struct
from typing import Any, Dict, List, Optional, Union

from ._constants import (
    BOOL_WIDTH,
    DATE_WIDTH,
    DATETIME_WIDTH,
    DECIMAL_WIDTH,
    FLOAT_WIDTH,
    ID_WIDTH,
    INT_WIDTH,
    LEN_WIDTH,
    RESERVED_TAGS,
    TIME_WIDTH,
    Tag,
)
from ._errors import (
    ERR_DATE_OUT_OF_RANGE,
    ERR_DECIMAL_OVERFLOW,
    ERR_DEPTH_EXCEEDED,
    ERR_DUPLICATE_KEY,
    ERR_INVALID_TAG,
    ERR_INVALID_UTF8,
    ERR_INVALID_VALUE,
    ERR_LENGTH_OVERFLOW,
    ERR_TRAILING_BYTES,
    ERR_UNEXPECTED_EOF,
    DecodeError,
    format_path,
)
from ._ids import SpudId
from ._io import BufferSource, ReadSteps, StreamSource, run, run_async
from ._model import Limits, datetime_from_ticks, decimal_from_parts

_I64 = struct.Struct("<q")
_U64 = struct.Struct("<Q")
_F64 = struct.Struct("<d")
_DATE = struct.Struct("<HBB")
_TIME = struct.Struct("<BBBI")


class _Open:
    """A container whose elements are still being read."""

    __slots__ = ("items", "remaining", "label")

    def __init__(self, items: Union[List[Any], Dict[str, Any]], count: int) -> None:
        self.items = items
        self.remaining = count
        # Index (ARRAY) or key (MAP) of the element being read; feeds error paths.
        self.label: Optional[Union[int, str]] = None

    def add(self, value: Any) -> None:
        if isinstance(self.items, dict):
            self.items[self.label] = value
        else:
            self.items.append(value)
        self.remaining -= 1


class _Decoder:
    """Transient state for one decode call: position and open containers."""

    def __init__(self, limits: Limits, size: Optional[int] = None) -> None:
        self._limits = limits
        self._size = size
        self._open: List[_Open] = []
        self.pos = 0
        self._item_start = 0

    # ── error context ────────────────────────────────────────

    def _error(self, code: str, msg: str) -> DecodeError:
        path = [c.label for c in self._open if c.label is not None]
        return DecodeError(code, msg, offset=self._item_start, path=format_path(path))

    # ── primitive reads ──────────────────────────────────────

    def _take(self, n: int) -> ReadSteps:
        if n == 0:
            return b""
        if self._size is not None and self.pos + n > self._size:
            raise self._error(
                ERR_UNEXPECTED_EOF,
                "needed {} bytes at offset {}, input has {} left".format(
                    n, self.pos, self._size - self.pos),
            )
        try:
            data = yield n
        except EOFError:
            raise self._error(
                ERR_UNEXPECTED_EOF,
                "input ended while reading {} bytes at offset {}".format(n, self.pos),
            ) from None
        self.pos += n
        return data

    def _length(self, what: str, limit: int) -> ReadSteps:
        n = _U64.unpack((yield from self._take(LEN_WIDTH)))[0]
        if n > limit:
            raise self._error(
                ERR_LENGTH_OVERFLOW, "{} length {} exceeds limit {}".format(what, n, limit))
        return n

    def _string_payload(self) -> ReadSteps:
        n = yield from self._length("string", self._limits.max_string_len)
        raw = yield from self._take(n)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise self._error(ERR_INVALID_UTF8, "invalid UTF-8 in string: {}".format(exc.reason)) from None

    # ── values ───────────────────────────────────────────────

    def steps(self) -> ReadSteps:
        """Read one complete value; the generator's return value is the value."""
        stack = self._open
        result = yield from self._item(0)
        while True:
            if isinstance(result, _Open):
                stack.append(result)
            elif not stack:
                return result
            else:
                stack[-1].add(result)

            while stack and stack[-1].remaining == 0:
                done = stack.pop()
                if not stack:
                    return done.items
                stack[-1].add(done.items)

            top = stack[-1]
            if isinstance(top.items, dict):
                top.label = None
                top.label = yield from self._key(top)
            else:
                top.label = len(top.items)
            result = yield from self._item(len(stack))

    def _key(self, container: _Open) -> ReadSteps:
        self._item_start = self.pos
        tag = (yield from self._take(1))[0]
        if tag != Tag.STRING:
            raise self._error(ERR_INVALID_TAG, "map key must be a STRING, got tag 0x{:02x}".format(tag))
        key = yield from self._string_payload()
        if key in container.items:
            raise self._error(ERR_DUPLICATE_KEY, "duplicate map key {!r}".format(key))
        return key

    def _item(self, depth: int) -> ReadSteps:
        """Read one tagged item at nesting ``depth``.

        Scalars come back as values; containers come back as an ``_Open``
        for the caller to fill.
        """
        self._item_start = self.pos
        raw_tag = (yield from self._take(1))[0]
        try:
            tag = Tag(raw_tag)
        except ValueError:
            kind = "reserved" if raw_tag in RESERVED_TAGS else "unknown"
            raise self._error(ERR_INVALID_TAG, "{} tag 0x{:02x}".format(kind, raw_tag)) from None

        if tag == Tag.NULL:
            return None

        if tag == Tag.BOOL:
            payload = (yield from self._take(BOOL_WIDTH))[0]
            if payload not in (0x00, 0x01):
                raise self._error(ERR_INVALID_VALUE, "invalid BOOL payload 0x{:02x}".format(payload))
            return payload == 0x01

        if tag == Tag.INT:
            return _I64.unpack((yield from self._take(INT_WIDTH)))[0]

        if tag == Tag.FLOAT:
            return _F64.unpack((yield from self._take(FLOAT_WIDTH)))[0]

        if tag == Tag.DECIMAL:
            scale = (yield from self._take(1))[0]
            raw = yield from self._take(DECIMAL_WIDTH)
            try:
                return decimal_from_parts(scale, int.from_bytes(raw, "little", signed=True))
            except ValueError as exc:
                raise self._error(ERR_DECIMAL_OVERFLOW, str(exc)) from None

        if tag == Tag.DATETIME:
            ticks = _I64.unpack((yield from self._take(DATETIME_WIDTH)))[0]
            try:
                return datetime_from_ticks(ticks)
            except ValueError as exc:
                raise self._error(ERR_DATE_OUT_OF_RANGE, str(exc)) from None

        if tag == Tag.DATE:
            year, month, day = _DATE.unpack((yield from self._take(DATE_WIDTH)))
            try:
                return datetime.date(year, month, day)
            except ValueError as exc:
                raise self._error(ERR_DATE_OUT_OF_RANGE, "invalid DATE: {}".format(exc)) from None

        if tag == Tag.TIME:
            hour, minute, second, micro = _TIME.unpack((yield from self._take(TIME_WIDTH)))
            try:
                return datetime.time(hour, minute, second, micro)
            except ValueError as exc:
                raise self._error(ERR_DATE_OUT_OF_RANGE, "invalid TIME: {}".format(exc)) from None

        if tag == Tag.ID:
            return SpudId((yield from self._take(ID_WIDTH)))

        if tag == Tag.STRING:
            return (yield from self._string_payload())

        if tag == Tag.BINARY:
            n = yield from self._length("binary", self._limits.max_string_len)
            return (yield from self._take(n))

        # ARRAY and MAP: depth is checked before the count is even read.
        if depth + 1 > self._limits.max_depth:
            raise self._error(
                ERR_DEPTH_EXCEEDED,
                "nesting depth {} exceeds max_depth {}".format(depth + 1, self._limits.max_depth))
        if tag == Tag.ARRAY:
            count = yield from self._length("array", self._limits.max_collection_len)
            return _Open([], count)
        count = yield from self._length("map", self._limits.max_collection_len)
        return _Open({}, count)


# ── Entry points ─────────────────────────────────────────────

def decode_buffer(data: bytes, limits: Limits) -> Any:
    """Decode exactly one value that must fill ``data`` completely."""
    source = BufferSource(data)
    value = run(_Decoder(limits, size=source.size).steps(), source)
    if source.remaining:
        raise DecodeError(
            ERR_TRAILING_BYTES,
            "{} bytes after the root value".format(source.remaining),
            offset=source.position,
        )
    return value


async def decode_stream(reader: "asyncio.StreamReader", limits: Limits,
                        expect_eof: bool = True) -> Any:
    """Decode one value from a stream.

    With ``expect_eof`` the stream must end right after the value, which
    mirrors the whole-buffer rule of ``decode_buffer``.  Without it the
    reader is left positioned after the value.
    """
    source = StreamSource(reader)
    value = await run_async(_Decoder(limits).steps(), source)
    if expect_eof and not await source.at_eof():
        raise DecodeError(
            ERR_TRAILING_BYTES, "data after the root value", offset=source.position - 1)
    return value
