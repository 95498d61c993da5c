"""SPUD error codes and exception classes.

Every failure carries a stable ``code`` string (one of the ``ERR_*``
constants below).  Tests and callers compare codes, never messages.

The exception subclass tells you which operation failed:

    DecodeError      bytes → value
    EncodeError      value → bytes
    JsonBridgeError  value ↔ JSON text
    IdError          identifier generation / parsing

All errors are terminal for the call that raised them.  The only code
worth retrying unchanged is ``ERR_RANDOM_SOURCE``.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union

# ── Error codes ──────────────────────────────────────────────

ERR_UNEXPECTED_EOF: str = "UnexpectedEof"      # input ended mid-value
ERR_INVALID_TAG: str = "InvalidTag"            # unknown or reserved tag byte
ERR_INVALID_UTF8: str = "InvalidUtf8"          # string bytes are not UTF-8
ERR_LENGTH_OVERFLOW: str = "LengthOverflow"    # length/count above the limit
ERR_DEPTH_EXCEEDED: str = "DepthExceeded"      # nesting above max_depth
ERR_DUPLICATE_KEY: str = "DuplicateKey"        # repeated map key
ERR_DECIMAL_OVERFLOW: str = "DecimalOverflow"  # outside scale 0..28 / 96 bits
ERR_DATE_OUT_OF_RANGE: str = "DateOutOfRange"  # not a representable date/time
ERR_RANDOM_SOURCE: str = "RandomSourceError"   # secure random source failed
ERR_INVALID_ID_TEXT: str = "InvalidIdText"     # bad base58 identifier text
ERR_JSON_BRIDGE: str = "JsonBridgeError"       # JSON text cannot map to a value
ERR_INVALID_VALUE: str = "InvalidValue"        # malformed fixed-width payload
ERR_TRAILING_BYTES: str = "TrailingBytes"      # data after the root value
ERR_UNSUPPORTED_VALUE: str = "UnsupportedValue"  # Python object outside the model
ERR_INVALID_FRAME: str = "InvalidFrame"        # bad file header or end marker

PathItem = Union[str, int]


def _escape_token(token: str) -> str:
    # RFC 6901: "~" must be escaped before "/", or "~1" round-trips wrong.
    return token.replace("~", "~0").replace("/", "~1")


def format_path(path: Sequence[PathItem]) -> str:
    """Render container positions as an RFC 6901 JSON Pointer.

    >>> format_path(["items", 3, "a/b"])
    '/items/3/a~1b'
    """
    return "".join("/" + _escape_token(str(p)) for p in path)


class SpudError(Exception):
    """Base exception for every SPUD failure.

    ``offset`` is the byte offset of the item being read or written when
    the failure happened; ``path`` is the JSON Pointer of the container
    position (empty string for the root).  Either may be None when no
    byte stream is involved.
    """

    def __init__(
        self,
        code: str,
        msg: str = "",
        *,
        offset: Optional[int] = None,
        path: Optional[str] = None,
    ) -> None:
        self.code = code
        self.reason = msg or code
        self.offset = offset
        self.path = path
        super().__init__(self._render())

    def _render(self) -> str:
        parts: List[str] = [self.reason]
        if self.offset is not None:
            parts.append("at offset {}".format(self.offset))
        if self.path:
            parts.append("(path {})".format(self.path))
        return " ".join(parts)


class DecodeError(SpudError):
    """Raised when bytes cannot be decoded into a value."""


class EncodeError(SpudError):
    """Raised when a value cannot be encoded."""


class JsonBridgeError(SpudError):
    """Raised when a value cannot be translated to or from JSON."""


class IdError(SpudError):
    """Raised by the identifier service."""
