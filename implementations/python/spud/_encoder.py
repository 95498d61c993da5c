"""SPUD encoder — value tree to bytes.

The encoder is a generator of byte chunks; ``_io`` drains it into a
buffer or an asyncio stream.  Output is canonical: the same tree always
produces the same bytes.  In particular MAP entries are written in the
dict's insertion order, never sorted.

Limits mirror the decoder's so that anything this encoder accepts, a
decoder with the same ``Limits`` accepts too.  Nothing is truncated or
rounded: a value that does not fit fails with an EncodeError.
"""

from __future__ import annotations

import datetime
import decimal
import struct
from typing import Any, Iterator, List, Optional, Tuple, Union

from ._constants import INT64_MAX, INT64_MIN, Tag
from ._errors import (
    ERR_DATE_OUT_OF_RANGE,
    ERR_DECIMAL_OVERFLOW,
    ERR_DEPTH_EXCEEDED,
    ERR_INVALID_UTF8,
    ERR_LENGTH_OVERFLOW,
    ERR_UNSUPPORTED_VALUE,
    EncodeError,
    format_path,
)
from ._ids import SpudId
from ._model import Limits, datetime_to_ticks, decimal_to_parts

_I64 = struct.Struct("<q")
_U64 = struct.Struct("<Q")
_F64 = struct.Struct("<d")
_DATE = struct.Struct("<HBB")
_TIME = struct.Struct("<BBBI")

_TAG_NULL = bytes([Tag.NULL])
_TAG_TRUE = bytes([Tag.BOOL, 0x01])
_TAG_FALSE = bytes([Tag.BOOL, 0x00])


class _Pending:
    """A container whose elements are still being written."""

    __slots__ = ("entries", "is_map", "label")

    def __init__(self, entries: Iterator[Tuple[Any, Any]], is_map: bool) -> None:
        self.entries = entries
        self.is_map = is_map
        self.label: Optional[Union[int, str]] = None


class _Encoder:
    def __init__(self, limits: Limits) -> None:
        self._limits = limits
        self._pending: List[_Pending] = []
        self.pos = 0
        self._item_start = 0

    def _error(self, code: str, msg: str) -> EncodeError:
        path = [p.label for p in self._pending[1:] if p.label is not None]
        return EncodeError(code, msg, offset=self._item_start, path=format_path(path))

    def _emit(self, chunk: bytes) -> bytes:
        self.pos += len(chunk)
        return chunk

    def chunks(self, root: Any) -> Iterator[bytes]:
        # The bottom entry is a pseudo-container holding only the root, so
        # len(stack) is the depth a container found on top would open at.
        stack = self._pending
        stack.append(_Pending(iter(((None, root),)), is_map=False))
        while stack:
            top = stack[-1]
            try:
                label, value = next(top.entries)
            except StopIteration:
                stack.pop()
                continue
            top.label = label
            self._item_start = self.pos

            if top.is_map:
                if not isinstance(label, str):
                    raise self._error(
                        ERR_UNSUPPORTED_VALUE,
                        "map key must be str, got {}".format(type(label).__name__))
                yield self._emit(self._string(label))
                self._item_start = self.pos

            if isinstance(value, list):
                self._check_container(len(value), len(stack))
                yield self._emit(bytes([Tag.ARRAY]) + _U64.pack(len(value)))
                stack.append(_Pending(enumerate(value), is_map=False))
            elif isinstance(value, dict):
                self._check_container(len(value), len(stack))
                yield self._emit(bytes([Tag.MAP]) + _U64.pack(len(value)))
                stack.append(_Pending(iter(value.items()), is_map=True))
            else:
                yield self._emit(self._scalar(value))

    def _check_container(self, count: int, depth: int) -> None:
        if depth > self._limits.max_depth:
            raise self._error(
                ERR_DEPTH_EXCEEDED,
                "nesting depth {} exceeds max_depth {}".format(depth, self._limits.max_depth))
        if count > self._limits.max_collection_len:
            raise self._error(
                ERR_LENGTH_OVERFLOW,
                "collection of {} exceeds max_collection_len {}".format(
                    count, self._limits.max_collection_len))

    def _sized(self, tag: Tag, raw: bytes, what: str) -> bytes:
        if len(raw) > self._limits.max_string_len:
            raise self._error(
                ERR_LENGTH_OVERFLOW,
                "{} of {} bytes exceeds max_string_len {}".format(
                    what, len(raw), self._limits.max_string_len))
        return bytes([tag]) + _U64.pack(len(raw)) + raw

    def _string(self, value: str) -> bytes:
        try:
            raw = value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise self._error(ERR_INVALID_UTF8, "string is not valid UTF-8: {}".format(exc.reason)) from None
        return self._sized(Tag.STRING, raw, "string")

    def _scalar(self, value: Any) -> bytes:
        if value is None:
            return _TAG_NULL

        # bool before int: isinstance(True, int) is True.
        if isinstance(value, bool):
            return _TAG_TRUE if value else _TAG_FALSE

        if isinstance(value, int):
            if value < INT64_MIN or value > INT64_MAX:
                raise self._error(ERR_UNSUPPORTED_VALUE, "integer {} outside int64 range".format(value))
            return bytes([Tag.INT]) + _I64.pack(value)

        if isinstance(value, float):
            return bytes([Tag.FLOAT]) + _F64.pack(value)

        if isinstance(value, decimal.Decimal):
            try:
                scale, unscaled = decimal_to_parts(value)
            except ValueError as exc:
                raise self._error(ERR_DECIMAL_OVERFLOW, str(exc)) from None
            return bytes([Tag.DECIMAL, scale]) + unscaled.to_bytes(16, "little", signed=True)

        # datetime before date: datetime subclasses date.
        if isinstance(value, datetime.datetime):
            if value.utcoffset() is None:
                raise self._error(ERR_UNSUPPORTED_VALUE, "DATETIME values must be timezone-aware")
            try:
                ticks = datetime_to_ticks(value)
            except ValueError as exc:
                raise self._error(ERR_DATE_OUT_OF_RANGE, str(exc)) from None
            return bytes([Tag.DATETIME]) + _I64.pack(ticks)

        if isinstance(value, datetime.date):
            return bytes([Tag.DATE]) + _DATE.pack(value.year, value.month, value.day)

        if isinstance(value, datetime.time):
            if value.tzinfo is not None:
                raise self._error(ERR_UNSUPPORTED_VALUE, "TIME values must be naive")
            return bytes([Tag.TIME]) + _TIME.pack(
                value.hour, value.minute, value.second, value.microsecond)

        if isinstance(value, str):
            return self._string(value)

        if isinstance(value, (bytes, bytearray, memoryview)):
            return self._sized(Tag.BINARY, bytes(value), "binary")

        if isinstance(value, SpudId):
            return bytes([Tag.ID]) + value.raw

        raise self._error(ERR_UNSUPPORTED_VALUE, "unsupported type: {}".format(type(value).__name__))


def encode_chunks(value: Any, limits: Limits) -> Iterator[bytes]:
    """Yield the canonical encoding of ``value`` in chunks."""
    return _Encoder(limits).chunks(value)
