"""spud — SPUD binary document codec.

Encode a tree of Python values into the SPUD tagged binary format, decode
it back (from a buffer or an asyncio stream), and bridge it to JSON
without losing precision or key order.

Quick start:
    >>> from spud import decode, encode
    >>> data = encode({"n": -5, "ok": True})
    >>> data[:1]
    b'\\x12'
    >>> decode(data)
    {'n': -5, 'ok': True}

Decoding untrusted input is bounded by ``Limits`` (nesting depth,
collection size, string/binary size); every failure raises a
``SpudError`` subclass whose ``.code`` names what went wrong.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from ._constants import FILE_HDR, FILE_TRAILER, RESERVED_TAGS, Tag, __format_version__
from ._decoder import decode_buffer, decode_stream
from ._encoder import encode_chunks
from ._errors import (
    ERR_DATE_OUT_OF_RANGE,
    ERR_DECIMAL_OVERFLOW,
    ERR_DEPTH_EXCEEDED,
    ERR_DUPLICATE_KEY,
    ERR_INVALID_FRAME,
    ERR_INVALID_ID_TEXT,
    ERR_INVALID_TAG,
    ERR_INVALID_UTF8,
    ERR_INVALID_VALUE,
    ERR_JSON_BRIDGE,
    ERR_LENGTH_OVERFLOW,
    ERR_RANDOM_SOURCE,
    ERR_TRAILING_BYTES,
    ERR_UNEXPECTED_EOF,
    ERR_UNSUPPORTED_VALUE,
    DecodeError,
    EncodeError,
    IdError,
    JsonBridgeError,
    SpudError,
)
from ._files import dump, frame, load, unframe
from ._ids import IdGenerator, SpudId, generate_id
from ._io import BufferSink, StreamSink, drain_into, drain_into_async
from ._json_adapter import from_json, to_json
from ._model import DEFAULT_LIMITS, Limits, Value

__version__ = "0.9.0"

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

__all__ = [
    # Codec
    "decode",
    "decode_async",
    "encode",
    "encode_async",
    # JSON bridge
    "to_json",
    "from_json",
    # Identifiers
    "SpudId",
    "IdGenerator",
    "generate_id",
    # Files
    "frame",
    "unframe",
    "load",
    "dump",
    # Model / configuration
    "Value",
    "Limits",
    "DEFAULT_LIMITS",
    "Tag",
    "RESERVED_TAGS",
    "FILE_HDR",
    "FILE_TRAILER",
    # Exceptions
    "SpudError",
    "DecodeError",
    "EncodeError",
    "JsonBridgeError",
    "IdError",
    # Error codes
    "ERR_UNEXPECTED_EOF",
    "ERR_INVALID_TAG",
    "ERR_INVALID_UTF8",
    "ERR_LENGTH_OVERFLOW",
    "ERR_DEPTH_EXCEEDED",
    "ERR_DUPLICATE_KEY",
    "ERR_DECIMAL_OVERFLOW",
    "ERR_DATE_OUT_OF_RANGE",
    "ERR_RANDOM_SOURCE",
    "ERR_INVALID_ID_TEXT",
    "ERR_JSON_BRIDGE",
    "ERR_INVALID_VALUE",
    "ERR_TRAILING_BYTES",
    "ERR_UNSUPPORTED_VALUE",
    "ERR_INVALID_FRAME",
]


def _log_failure(op: str, exc: SpudError) -> None:
    logger.debug("%s failed: code=%s offset=%s path=%s: %s",
                 op, exc.code, exc.offset, exc.path or "/", exc.reason)


# ── Synchronous API ───────────────────────────────────────────

def decode(data: bytes, limits: Optional[Limits] = None) -> Any:
    """Decode one SPUD document that occupies all of ``data``.

    Raises DecodeError on malformed, truncated or over-limit input, and
    on bytes left over after the root value.
    """
    try:
        return decode_buffer(data, limits or DEFAULT_LIMITS)
    except DecodeError as exc:
        _log_failure("decode", exc)
        raise


def encode(value: Any, limits: Optional[Limits] = None) -> bytes:
    """Return the canonical SPUD encoding of ``value``."""
    sink = BufferSink()
    try:
        drain_into(encode_chunks(value, limits or DEFAULT_LIMITS), sink)
    except EncodeError as exc:
        _log_failure("encode", exc)
        raise
    return sink.getvalue()


# ── Asynchronous API ──────────────────────────────────────────
# Same algorithm as the synchronous calls; the only suspension points are
# stream reads, writes and drains.  A cancelled call leaves the stream at
# an unspecified position, so don't reuse it without re-establishing
# framing.  There is no built-in timeout; wrap in asyncio.wait_for().

async def decode_async(reader: "asyncio.StreamReader", limits: Optional[Limits] = None,
                       *, expect_eof: bool = True) -> Any:
    """Decode one SPUD document from an asyncio stream.

    With ``expect_eof`` (the default) the stream must end right after the
    document, matching ``decode``.  Pass ``expect_eof=False`` to read
    several documents back to back from one stream.
    """
    try:
        return await decode_stream(reader, limits or DEFAULT_LIMITS, expect_eof)
    except DecodeError as exc:
        _log_failure("decode_async", exc)
        raise


async def encode_async(value: Any, writer: "asyncio.StreamWriter",
                       limits: Optional[Limits] = None) -> None:
    """Encode ``value`` onto an asyncio stream, draining as it goes.

    On failure some bytes may already have been written.
    """
    try:
        await drain_into_async(encode_chunks(value, limits or DEFAULT_LIMITS), StreamSink(writer))
    except EncodeError as exc:
        _log_failure("encode_async", exc)
        raise
