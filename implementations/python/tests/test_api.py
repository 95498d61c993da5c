"""Unit tests for the spud public codec API.

Organized by feature area.  Conformance testing against golden vectors
is in test_conformance.py; async behaviour in test_async.py.  These tests
exercise the wire format, the limits and the error contract.
"""

from __future__ import annotations

import datetime
import decimal
import math
import os
import struct
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from spud import (
    DEFAULT_LIMITS,
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
    ERR_UNSUPPORTED_VALUE,
    RESERVED_TAGS,
    DecodeError,
    EncodeError,
    Limits,
    SpudError,
    SpudId,
    Tag,
    decode,
    encode,
)

UTC = datetime.timezone.utc


def u64(n: int) -> bytes:
    return struct.pack("<Q", n)


def nested_arrays(depth: int) -> bytes:
    """Hand-built ARRAY nesting ``depth`` levels deep, innermost empty."""
    return (bytes([Tag.ARRAY]) + u64(1)) * (depth - 1) + bytes([Tag.ARRAY]) + u64(0)


def nested_value(depth: int):
    v: list = []
    for _ in range(depth - 1):
        v = [v]
    return v


SAMPLE = {
    "null": None,
    "flags": [True, False],
    "n": -5,
    "big": 2 ** 63 - 1,
    "pi": 3.25,
    "price": decimal.Decimal("12.50"),
    "when": datetime.datetime(2024, 5, 1, 12, 30, 0, 250, tzinfo=UTC),
    "day": datetime.date(2024, 5, 1),
    "at": datetime.time(23, 59, 59, 999999),
    "name": "spud ✓",
    "blob": b"\x00\x01\xff",
    "id": SpudId(bytes(range(16))),
    "nested": {"empty_list": [], "empty_map": {}, "deep": [[1, [2, {"x": "y"}]]]},
}


# ── Wire format ───────────────────────────────────────────────

class TestWireFormat(unittest.TestCase):
    def test_null(self):
        self.assertEqual(encode(None), b"\x03")

    def test_bools(self):
        self.assertEqual(encode(True), b"\x04\x01")
        self.assertEqual(encode(False), b"\x04\x00")

    def test_int_is_little_endian_int64(self):
        self.assertEqual(encode(-5), b"\x08" + b"\xfb" + b"\xff" * 7)
        self.assertEqual(encode(1), b"\x08\x01" + b"\x00" * 7)

    def test_float(self):
        self.assertEqual(encode(1.5), b"\x0e" + b"\x00" * 6 + b"\xf8\x3f")

    def test_string_has_u64_length(self):
        self.assertEqual(encode("hi"), b"\x0f" + u64(2) + b"hi")

    def test_string_length_counts_utf8_bytes(self):
        self.assertEqual(encode("é"), b"\x0f" + u64(2) + "é".encode("utf-8"))

    def test_binary(self):
        self.assertEqual(encode(b"\x00\xff"), b"\x14" + u64(2) + b"\x00\xff")

    def test_bytearray_and_memoryview_encode_as_binary(self):
        self.assertEqual(encode(bytearray(b"ab")), encode(b"ab"))
        self.assertEqual(encode(memoryview(b"ab")), encode(b"ab"))

    def test_empty_containers(self):
        self.assertEqual(encode([]), b"\x10" + u64(0))
        self.assertEqual(encode({}), b"\x12" + u64(0))

    def test_decimal(self):
        # 12.50 -> scale 2, unscaled 1250 (0x04e2)
        expected = b"\x15\x02" + b"\xe2\x04" + b"\x00" * 14
        self.assertEqual(encode(decimal.Decimal("12.50")), expected)

    def test_negative_decimal_is_twos_complement(self):
        expected = b"\x15\x01" + (-15).to_bytes(16, "little", signed=True)
        self.assertEqual(encode(decimal.Decimal("-1.5")), expected)

    def test_date(self):
        self.assertEqual(encode(datetime.date(2024, 5, 1)), b"\x16\xe8\x07\x05\x01")

    def test_time(self):
        self.assertEqual(encode(datetime.time(12, 0, 0, 5)),
                         b"\x17\x0c\x00\x00\x05\x00\x00\x00")

    def test_datetime_is_microseconds_since_epoch(self):
        dt = datetime.datetime(1970, 1, 1, 0, 0, 1, tzinfo=UTC)
        self.assertEqual(encode(dt), b"\x18" + struct.pack("<q", 1_000_000))

    def test_datetime_before_epoch(self):
        dt = datetime.datetime(1969, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)
        self.assertEqual(encode(dt), b"\x18" + struct.pack("<q", -1))

    def test_offset_near_the_range_edge_normalizes(self):
        west = datetime.timezone(datetime.timedelta(hours=-5))
        late = datetime.datetime(9999, 12, 31, 18, 59, 59, 999999, tzinfo=west)
        self.assertEqual(decode(encode(late)),
                         datetime.datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=UTC))

    def test_other_timezones_normalize_to_utc(self):
        plus2 = datetime.timezone(datetime.timedelta(hours=2))
        local = datetime.datetime(2024, 5, 1, 14, 0, tzinfo=plus2)
        self.assertEqual(encode(local), encode(datetime.datetime(2024, 5, 1, 12, 0, tzinfo=UTC)))

    def test_id(self):
        self.assertEqual(encode(SpudId(bytes(16))), b"\x19" + bytes(16))

    def test_id_and_int_map(self):
        value = {"id": SpudId(bytes(16)), "n": -5}
        expected = (
            b"\x12" + u64(2)
            + b"\x0f" + u64(2) + b"id" + b"\x19" + bytes(16)
            + b"\x0f" + u64(1) + b"n" + b"\x08" + struct.pack("<q", -5)
        )
        data = encode(value)
        self.assertEqual(data, expected)
        back = decode(data)
        self.assertEqual(back, value)
        self.assertEqual(list(back), ["id", "n"])

    def test_map_keeps_insertion_order(self):
        a = encode({"b": 1, "a": 2})
        b = encode({"a": 2, "b": 1})
        self.assertNotEqual(a, b)
        self.assertEqual(list(decode(a)), ["b", "a"])

    def test_tag_values(self):
        self.assertEqual(Tag.NULL, 0x03)
        self.assertEqual(Tag.MAP, 0x12)
        self.assertEqual(Tag.ID, 0x19)
        for tag in Tag:
            self.assertNotIn(int(tag), RESERVED_TAGS)


# ── Round trip and canonical form ─────────────────────────────

class TestRoundTrip(unittest.TestCase):
    def test_sample_document(self):
        data = encode(SAMPLE)
        back = decode(data)
        self.assertEqual(back, SAMPLE)
        self.assertEqual(list(back), list(SAMPLE))

    def test_canonical_reencode(self):
        data = encode(SAMPLE)
        self.assertEqual(encode(decode(data)), data)

    def test_encode_is_deterministic(self):
        self.assertEqual(encode(SAMPLE), encode(SAMPLE))

    def test_scalars(self):
        for v in [None, True, False, 0, -1, 2 ** 63 - 1, -2 ** 63, 0.0, -0.5, 1e300,
                  "", "x" * 300, b"", decimal.Decimal("0"), decimal.Decimal("-0.001")]:
            with self.subTest(v=v):
                self.assertEqual(decode(encode(v)), v)

    def test_decimal_keeps_trailing_zeros(self):
        back = decode(encode(decimal.Decimal("12.50")))
        self.assertEqual(str(back), "12.50")

    def test_decimal_extremes(self):
        biggest = decimal.Decimal(2 ** 96 - 1)
        smallest = decimal.Decimal("1e-28")
        self.assertEqual(decode(encode(biggest)), biggest)
        self.assertEqual(decode(encode(-biggest)), -biggest)
        self.assertEqual(decode(encode(smallest)), smallest)

    def test_decimal_positive_exponent_is_expanded(self):
        back = decode(encode(decimal.Decimal("1E+2")))
        self.assertEqual(back, 100)
        self.assertEqual(str(back), "100")

    def test_decoded_decimal_ignores_context_precision(self):
        long_value = decimal.Decimal("1234567890123456789012345.678")
        with decimal.localcontext() as ctx:
            ctx.prec = 5
            back = decode(encode(long_value))
        self.assertEqual(str(back), "1234567890123456789012345.678")

    def test_float_specials(self):
        self.assertTrue(math.isnan(decode(encode(float("nan")))))
        self.assertEqual(decode(encode(float("inf"))), float("inf"))
        self.assertEqual(decode(encode(float("-inf"))), float("-inf"))

    def test_negative_zero_float_keeps_sign(self):
        self.assertEqual(math.copysign(1.0, decode(encode(-0.0))), -1.0)

    def test_decoded_datetime_is_aware_utc(self):
        plus2 = datetime.timezone(datetime.timedelta(hours=2))
        back = decode(encode(datetime.datetime(2000, 1, 1, 2, 0, tzinfo=plus2)))
        self.assertEqual(back.tzinfo, UTC)
        self.assertEqual(back, datetime.datetime(2000, 1, 1, tzinfo=UTC))

    def test_datetime_extremes(self):
        lo = datetime.datetime(1, 1, 1, tzinfo=UTC)
        hi = datetime.datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)
        self.assertEqual(decode(encode(lo)), lo)
        self.assertEqual(decode(encode(hi)), hi)

    def test_binary_comes_back_as_bytes(self):
        self.assertIsInstance(decode(encode(bytearray(b"xy"))), bytes)

    def test_accepts_bytearray_and_memoryview_input(self):
        data = encode([1, "a"])
        self.assertEqual(decode(bytearray(data)), [1, "a"])
        self.assertEqual(decode(memoryview(data)), [1, "a"])


# ── Decode errors ─────────────────────────────────────────────

class TestDecodeErrors(unittest.TestCase):
    def assertDecodeError(self, data, code, limits=None):
        with self.assertRaises(DecodeError) as ctx:
            decode(data, limits)
        self.assertEqual(ctx.exception.code, code)
        return ctx.exception

    def test_empty_input(self):
        exc = self.assertDecodeError(b"", ERR_UNEXPECTED_EOF)
        self.assertEqual(exc.offset, 0)

    def test_reserved_tags(self):
        for tag in sorted(RESERVED_TAGS):
            with self.subTest(tag=tag):
                self.assertDecodeError(bytes([tag]), ERR_INVALID_TAG)

    def test_unknown_tag(self):
        self.assertDecodeError(b"\xff", ERR_INVALID_TAG)
        self.assertDecodeError(b"\x1a", ERR_INVALID_TAG)

    def test_bad_bool_payload(self):
        self.assertDecodeError(b"\x04\x02", ERR_INVALID_VALUE)

    def test_truncated_int(self):
        self.assertDecodeError(b"\x08\x01\x00", ERR_UNEXPECTED_EOF)

    def test_trailing_bytes(self):
        exc = self.assertDecodeError(b"\x03\x03", ERR_TRAILING_BYTES)
        self.assertEqual(exc.offset, 1)

    def test_invalid_utf8(self):
        self.assertDecodeError(b"\x0f" + u64(1) + b"\xff", ERR_INVALID_UTF8)

    def test_encoded_surrogate_is_invalid_utf8(self):
        self.assertDecodeError(b"\x0f" + u64(3) + b"\xed\xa0\x80", ERR_INVALID_UTF8)

    def test_string_length_above_limit(self):
        self.assertDecodeError(b"\x0f" + b"\xff" * 8, ERR_LENGTH_OVERFLOW)

    def test_binary_length_above_limit(self):
        self.assertDecodeError(b"\x14" + u64(5) + b"abcde", ERR_LENGTH_OVERFLOW,
                               Limits(max_string_len=4))

    def test_string_longer_than_input(self):
        self.assertDecodeError(b"\x0f" + u64(16) + b"hi", ERR_UNEXPECTED_EOF)

    def test_collection_count_above_limit(self):
        count = DEFAULT_LIMITS.max_collection_len + 1
        self.assertDecodeError(b"\x10" + u64(count), ERR_LENGTH_OVERFLOW)
        self.assertDecodeError(b"\x12" + u64(count), ERR_LENGTH_OVERFLOW)

    def test_collection_count_larger_than_input(self):
        self.assertDecodeError(b"\x10" + u64(1000) + b"\x03", ERR_UNEXPECTED_EOF)

    def test_huge_count_fails_without_allocating(self):
        self.assertDecodeError(b"\x10" + b"\xff" * 8, ERR_LENGTH_OVERFLOW)

    def test_duplicate_key(self):
        entry = b"\x0f" + u64(1) + b"a" + b"\x03"
        exc = self.assertDecodeError(b"\x12" + u64(2) + entry + entry, ERR_DUPLICATE_KEY)
        self.assertEqual(exc.offset, 9 + len(entry))

    def test_non_string_key(self):
        exc = self.assertDecodeError(b"\x12" + u64(1) + b"\x08" + u64(1) + b"\x03", ERR_INVALID_TAG)
        self.assertEqual(exc.offset, 9)

    def test_decimal_scale_too_large(self):
        self.assertDecodeError(b"\x15\x1d" + bytes(16), ERR_DECIMAL_OVERFLOW)

    def test_decimal_mantissa_too_large(self):
        self.assertDecodeError(b"\x15\x00" + (2 ** 96).to_bytes(16, "little"), ERR_DECIMAL_OVERFLOW)
        self.assertDecodeError(b"\x15\x00" + (-2 ** 96).to_bytes(16, "little", signed=True),
                               ERR_DECIMAL_OVERFLOW)

    def test_invalid_date(self):
        self.assertDecodeError(b"\x16\xe8\x07\x0d\x01", ERR_DATE_OUT_OF_RANGE)
        self.assertDecodeError(b"\x16\xe8\x07\x02\x1e", ERR_DATE_OUT_OF_RANGE)
        self.assertDecodeError(b"\x16\x00\x00\x01\x01", ERR_DATE_OUT_OF_RANGE)

    def test_invalid_time(self):
        self.assertDecodeError(b"\x17\x18\x00\x00" + bytes(4), ERR_DATE_OUT_OF_RANGE)
        self.assertDecodeError(b"\x17\x00\x00\x00" + struct.pack("<I", 1_000_000),
                               ERR_DATE_OUT_OF_RANGE)

    def test_datetime_outside_calendar(self):
        self.assertDecodeError(b"\x18" + struct.pack("<q", 2 ** 62), ERR_DATE_OUT_OF_RANGE)
        self.assertDecodeError(b"\x18" + struct.pack("<q", -2 ** 63), ERR_DATE_OUT_OF_RANGE)

    def test_error_carries_path_and_offset(self):
        data = bytearray(encode({"a": [1, None]}))
        data[-1] = 0x00
        exc = self.assertDecodeError(bytes(data), ERR_INVALID_TAG)
        self.assertEqual(exc.path, "/a/1")
        self.assertEqual(exc.offset, len(data) - 1)
        self.assertIn("/a/1", str(exc))

    def test_path_escapes_pointer_characters(self):
        data = bytearray(encode({"a/b": None}))
        data[-1] = 0x00
        exc = self.assertDecodeError(bytes(data), ERR_INVALID_TAG)
        self.assertEqual(exc.path, "/a~1b")

    def test_errors_share_base_class(self):
        with self.assertRaises(SpudError):
            decode(b"")


# ── Truncation ────────────────────────────────────────────────

class TestTruncation(unittest.TestCase):
    def test_every_proper_prefix_fails(self):
        data = encode(SAMPLE)
        for end in range(len(data)):
            with self.assertRaises(DecodeError) as ctx:
                decode(data[:end])
            self.assertEqual(ctx.exception.code, ERR_UNEXPECTED_EOF, "prefix of {} bytes".format(end))


# ── Limits ────────────────────────────────────────────────────

class TestDepthLimit(unittest.TestCase):
    def test_max_depth_decodes(self):
        depth = DEFAULT_LIMITS.max_depth
        value = decode(nested_arrays(depth))
        self.assertEqual(value, nested_value(depth))

    def test_max_depth_plus_one_fails_before_count(self):
        depth = DEFAULT_LIMITS.max_depth + 1
        # Drop the innermost count: the error must come from the tag alone.
        data = nested_arrays(depth)[:-8]
        with self.assertRaises(DecodeError) as ctx:
            decode(data)
        self.assertEqual(ctx.exception.code, ERR_DEPTH_EXCEEDED)
        self.assertEqual(ctx.exception.offset, (depth - 1) * 9)

    def test_maps_count_toward_depth(self):
        data = encode({"a": {"b": 1}})
        self.assertEqual(decode(data, Limits(max_depth=2)), {"a": {"b": 1}})
        with self.assertRaises(DecodeError) as ctx:
            decode(data, Limits(max_depth=1))
        self.assertEqual(ctx.exception.code, ERR_DEPTH_EXCEEDED)

    def test_scalar_root_has_no_depth(self):
        self.assertEqual(decode(encode(5), Limits(max_depth=1)), 5)

    def test_large_configured_depth_does_not_recurse(self):
        depth = 5000
        limits = Limits(max_depth=depth)
        data = nested_arrays(depth)
        self.assertEqual(encode(decode(data, limits), limits), data)

    def test_encode_depth(self):
        depth = DEFAULT_LIMITS.max_depth
        self.assertEqual(encode(nested_value(depth)), nested_arrays(depth))
        with self.assertRaises(EncodeError) as ctx:
            encode(nested_value(depth + 1))
        self.assertEqual(ctx.exception.code, ERR_DEPTH_EXCEEDED)


class TestLimits(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(DEFAULT_LIMITS.max_depth, 64)
        self.assertEqual(DEFAULT_LIMITS.max_collection_len, 1_048_576)
        self.assertEqual(DEFAULT_LIMITS.max_string_len, 16 * 1024 * 1024)

    def test_rejects_non_positive(self):
        for kwargs in ({"max_depth": 0}, {"max_collection_len": -1}, {"max_string_len": 0}):
            with self.subTest(**kwargs):
                with self.assertRaises(ValueError):
                    Limits(**kwargs)

    def test_rejects_non_int(self):
        with self.assertRaises(ValueError):
            Limits(max_depth=True)
        with self.assertRaises(ValueError):
            Limits(max_depth=2.5)

    def test_collection_limit_is_inclusive(self):
        limits = Limits(max_collection_len=3)
        self.assertEqual(decode(encode([1, 2, 3], limits), limits), [1, 2, 3])
        with self.assertRaises(EncodeError) as ctx:
            encode([1, 2, 3, 4], limits)
        self.assertEqual(ctx.exception.code, ERR_LENGTH_OVERFLOW)

    def test_string_limit_counts_bytes(self):
        limits = Limits(max_string_len=2)
        self.assertEqual(encode("é", limits), b"\x0f" + u64(2) + "é".encode("utf-8"))
        with self.assertRaises(EncodeError) as ctx:
            encode("éa", limits)
        self.assertEqual(ctx.exception.code, ERR_LENGTH_OVERFLOW)

    def test_limits_are_immutable(self):
        with self.assertRaises(AttributeError):
            DEFAULT_LIMITS.max_depth = 1


# ── Encode errors ─────────────────────────────────────────────

class TestEncodeErrors(unittest.TestCase):
    def assertEncodeError(self, value, code):
        with self.assertRaises(EncodeError) as ctx:
            encode(value)
        self.assertEqual(ctx.exception.code, code)
        return ctx.exception

    def test_int_out_of_range(self):
        self.assertEncodeError(2 ** 63, ERR_UNSUPPORTED_VALUE)
        self.assertEncodeError(-2 ** 63 - 1, ERR_UNSUPPORTED_VALUE)

    def test_unsupported_types(self):
        for value in (object(), {1, 2}, 1j):
            with self.subTest(value=value):
                self.assertEncodeError(value, ERR_UNSUPPORTED_VALUE)

    def test_non_string_key(self):
        self.assertEncodeError({1: "a"}, ERR_UNSUPPORTED_VALUE)

    def test_decimal_not_finite(self):
        self.assertEncodeError(decimal.Decimal("NaN"), ERR_DECIMAL_OVERFLOW)
        self.assertEncodeError(decimal.Decimal("Infinity"), ERR_DECIMAL_OVERFLOW)

    def test_decimal_out_of_range(self):
        self.assertEncodeError(decimal.Decimal("1e-29"), ERR_DECIMAL_OVERFLOW)
        self.assertEncodeError(decimal.Decimal(2 ** 96), ERR_DECIMAL_OVERFLOW)
        self.assertEncodeError(decimal.Decimal("1e+1000000"), ERR_DECIMAL_OVERFLOW)

    def test_aware_time(self):
        self.assertEncodeError(datetime.time(1, 2, tzinfo=UTC), ERR_UNSUPPORTED_VALUE)

    def test_naive_datetime(self):
        self.assertEncodeError(datetime.datetime(2024, 5, 1, 12, 0), ERR_UNSUPPORTED_VALUE)

    def test_datetime_outside_range_once_in_utc(self):
        east = datetime.timezone(datetime.timedelta(hours=5))
        west = datetime.timezone(datetime.timedelta(hours=-5))
        for value in (datetime.datetime(1, 1, 1, tzinfo=east),
                      datetime.datetime(9999, 12, 31, 23, tzinfo=west)):
            with self.subTest(value=value):
                self.assertEncodeError(value, ERR_DATE_OUT_OF_RANGE)

    def test_out_of_range_datetime_reports_its_path(self):
        east = datetime.timezone(datetime.timedelta(hours=5))
        exc = self.assertEncodeError({"at": datetime.datetime(1, 1, 1, tzinfo=east)},
                                     ERR_DATE_OUT_OF_RANGE)
        self.assertEqual(exc.path, "/at")

    def test_tuple(self):
        self.assertEncodeError((1, 2), ERR_UNSUPPORTED_VALUE)
        self.assertEncodeError({"t": ()}, ERR_UNSUPPORTED_VALUE)

    def test_lone_surrogate(self):
        self.assertEncodeError("\ud800", ERR_INVALID_UTF8)
        self.assertEncodeError({"\udfff": 1}, ERR_INVALID_UTF8)

    def test_error_path(self):
        exc = self.assertEncodeError({"a": [1, object()]}, ERR_UNSUPPORTED_VALUE)
        self.assertEqual(exc.path, "/a/1")


# ── Logging ───────────────────────────────────────────────────

class TestLogging(unittest.TestCase):
    def test_decode_failure_is_logged_at_debug(self):
        with self.assertLogs("spud", level="DEBUG") as logs:
            with self.assertRaises(DecodeError):
                decode(b"\x00")
        self.assertTrue(any(ERR_INVALID_TAG in line for line in logs.output))

    def test_encode_failure_is_logged_at_debug(self):
        with self.assertLogs("spud", level="DEBUG") as logs:
            with self.assertRaises(EncodeError):
                encode(object())
        self.assertTrue(any(ERR_UNSUPPORTED_VALUE in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
