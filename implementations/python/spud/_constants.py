"""SPUD constants — wire tags, reserved tags, payload widths and default limits.

The tag byte values follow the SPUD type table.  Several bytes are
reserved: they were used by earlier SPUD revisions (narrow integer widths,
explicit container end markers, the field-name table) and are never
emitted.  A decoder that meets one reports ``InvalidTag`` just like any
other unknown byte.
"""

from __future__ import annotations

import enum

__format_version__ = 1


class Tag(enum.IntEnum):
    """One-byte wire tag for each value kind."""

    NULL = 0x03
    BOOL = 0x04
    INT = 0x08
    FLOAT = 0x0E
    STRING = 0x0F
    ARRAY = 0x10
    MAP = 0x12
    BINARY = 0x14
    DECIMAL = 0x15
    DATE = 0x16
    TIME = 0x17
    DATETIME = 0x18
    ID = 0x19


RESERVED_TAGS = frozenset(
    [0x00, 0x01, 0x02, 0x05, 0x06, 0x07, 0x09, 0x0A, 0x0B, 0x0C, 0x0D, 0x11, 0x13]
)

# ── Payload widths (bytes) ───────────────────────────────────
# Every multi-byte field is little-endian.
BOOL_WIDTH: int = 1
INT_WIDTH: int = 8
FLOAT_WIDTH: int = 8
LEN_WIDTH: int = 8         # u64 length / count prefix
DECIMAL_WIDTH: int = 16    # int128 unscaled value, after the 1-byte scale
DATE_WIDTH: int = 4        # u16 year, u8 month, u8 day
TIME_WIDTH: int = 7        # u8 hour, u8 minute, u8 second, u32 microsecond
DATETIME_WIDTH: int = 8    # int64 microseconds since the Unix epoch
ID_WIDTH: int = 16

# ── Numeric ranges ───────────────────────────────────────────
# Python ints are arbitrary-precision, so the int64 range is checked by hand.
INT64_MIN: int = -(2**63)
INT64_MAX: int = 2**63 - 1

# Decimal range: 96-bit unsigned magnitude with a scale of 0..28.
# That is 28 to 29 significant digits, the same envelope as the
# fixed-point decimal types the format was designed around.
DECIMAL_MAX_SCALE: int = 28
DECIMAL_MAX_UNSCALED: int = 2**96 - 1

# ── Default decode/encode limits ─────────────────────────────
MAX_DEPTH: int = 64
MAX_COLLECTION_LEN: int = 1_048_576
MAX_STRING_LEN: int = 16 * 1024 * 1024

# ── File framing ─────────────────────────────────────────────
# "SPUD" + NUL + format version, then the document, then the end marker.
FILE_HDR = b"SPUD\x00" + bytes([__format_version__])
FILE_TRAILER = b"\xde\xad\xbe\xef"

# ── JSON bridge ──────────────────────────────────────────────
# Strings with this prefix carry values JSON has no native type for.
JSON_TAG_PREFIX = "$spud:"

# Pending bytes before the async encoder awaits drain().
STREAM_FLUSH_THRESHOLD: int = 64 * 1024
