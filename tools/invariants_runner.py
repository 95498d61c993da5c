#!/usr/bin/env python3
# tools/invariants_runner.py
#
# Codec invariants (property tests) over random SPUD documents.
#
# This runner:
# - generates random value trees covering every value kind within limits
# - checks the binary codec: round trip, key order, canonical re-encode
# - checks the JSON bridge: round trip, key order, stable re-render
# - checks framed files: frame/unframe round trip
#
# Exit code:
#   0 -> all checks passed
#   1 -> invariant violation

import datetime, decimal, math, os, random, sys
from typing import Any, Dict

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "implementations", "python"))

import spud

SEED = int(os.environ.get("SPUD_SEED", "1337"))
TRIALS = int(os.environ.get("SPUD_TRIALS", "2000"))
MAX_GEN_DEPTH = int(os.environ.get("SPUD_GEN_MAX_DEPTH", "6"))
MAX_KEYS = int(os.environ.get("SPUD_GEN_MAX_KEYS", "6"))
MAX_LIST = int(os.environ.get("SPUD_GEN_MAX_LIST", "6"))
MAX_STR = int(os.environ.get("SPUD_GEN_MAX_STR", "24"))
MAX_BYTES = int(os.environ.get("SPUD_GEN_MAX_BYTES", "32"))

random.seed(SEED)

UTC = datetime.timezone.utc

def rand_utf8_string() -> str:
    # Generate scalars excluding surrogate range; include tricky chars occasionally.
    out = []
    n = random.randint(0, MAX_STR)
    for _ in range(n):
        r = random.random()
        if r < 0.70:
            out.append(chr(random.randint(0x20, 0x7E)))
        elif r < 0.85:
            out.append(chr(random.randint(0xA0, 0xFF)))
        elif r < 0.95:
            cp = random.randint(0x0100, 0xD7FF)  # exclude surrogates
            out.append(chr(cp))
        else:
            cp = random.randint(0x10000, 0x10FFFF)
            out.append(chr(cp))
    s = "".join(out)
    # Exercise the "$spud:" escape now and then.
    if random.random() < 0.05:
        s = "$spud:" + s
    return s

def rand_bytes() -> bytes:
    return bytes(random.getrandbits(8) for _ in range(random.randint(0, MAX_BYTES)))

def rand_float() -> float:
    r = random.random()
    if r < 0.05:
        return random.choice([math.inf, -math.inf, -0.0, 5e-324, 1.7976931348623157e308])
    return random.uniform(-1e6, 1e6) * 10 ** random.randint(-30, 30)

def rand_decimal() -> decimal.Decimal:
    digits = random.randint(1, 28)
    unscaled = random.randint(-(10 ** digits - 1), 10 ** digits - 1)
    scale = random.randint(0, min(28, digits))
    return decimal.Decimal((1 if unscaled < 0 else 0,
                            tuple(int(c) for c in str(abs(unscaled))), -scale))

def rand_scalar() -> Any:
    r = random.randint(0, 12)
    if r == 0:
        return None
    if r == 1:
        return random.random() < 0.5
    if r == 2:
        return random.randint(-(2**63), 2**63 - 1)
    if r == 3:
        return rand_float()
    if r == 4:
        return rand_decimal()
    if r == 5:
        return datetime.datetime(1, 1, 1, tzinfo=UTC) + datetime.timedelta(
            microseconds=random.randint(0, 315_537_897_599_999_999))
    if r == 6:
        return datetime.date.fromordinal(random.randint(1, 3_652_059))
    if r == 7:
        return datetime.time(random.randint(0, 23), random.randint(0, 59),
                             random.randint(0, 59), random.randint(0, 999_999))
    if r == 8:
        return rand_bytes()
    if r == 9:
        return spud.generate_id()
    return rand_utf8_string()

def gen_value(depth: int) -> Any:
    if depth >= MAX_GEN_DEPTH:
        return rand_scalar()
    r = random.random()
    if r < 0.35:
        n = random.randint(0, MAX_KEYS)
        keys = [rand_utf8_string() for _ in range(n)]
        keys = list(dict.fromkeys(keys))  # de-dup
        d: Dict[str, Any] = {}
        for k in keys:
            d[k] = gen_value(depth + 1)
        return d
    if r < 0.60:
        n = random.randint(0, MAX_LIST)
        return [gen_value(depth + 1) for _ in range(n)]
    return rand_scalar()

def same(a: Any, b: Any) -> bool:
    # Like ==, but dict key order matters and NaN-free floats compare by sign too.
    if isinstance(a, dict):
        return isinstance(b, dict) and list(a) == list(b) and all(same(a[k], b[k]) for k in a)
    if isinstance(a, list):
        return isinstance(b, list) and len(a) == len(b) and all(same(x, y) for x, y in zip(a, b))
    if isinstance(a, float):
        return isinstance(b, float) and a == b and math.copysign(1, a) == math.copysign(1, b)
    if isinstance(a, decimal.Decimal):
        return isinstance(b, decimal.Decimal) and a.as_tuple() == b.as_tuple()
    return type(a) is type(b) and a == b

def fail(label: str, trial: int, value: Any) -> int:
    print("INVARIANT FAIL:", label)
    print("CTX:", {"trial": trial, "value": repr(value)[:2000]})
    return 1

def main() -> int:
    for t in range(TRIALS):
        v = gen_value(0)

        # (1) Encode stability (encode twice same bytes)
        b1 = spud.encode(v)
        b2 = spud.encode(v)
        if b1 != b2:
            return fail("encode stability", t, v)

        # (2) Binary round trip, key order included
        back = spud.decode(b1)
        if not same(v, back):
            return fail("binary round trip", t, v)

        # (3) Canonical form: decoded documents re-encode to the same bytes
        if spud.encode(back) != b1:
            return fail("canonical re-encode", t, v)

        # (4) JSON round trip and stable rendering
        text = spud.to_json(v)
        from_text = spud.from_json(text)
        if not same(v, from_text):
            return fail("json round trip", t, v)
        if spud.to_json(from_text) != text:
            return fail("json rendering stability", t, v)

        # (5) Pretty-printed JSON carries the same value
        if not same(spud.from_json(spud.to_json(v, indent=2)), v):
            return fail("json indent round trip", t, v)

        # (6) Framing
        if spud.unframe(spud.frame(b1)) != b1:
            return fail("frame round trip", t, v)

    print(f"OK: invariants passed for TRIALS={TRIALS} seed={SEED}")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
