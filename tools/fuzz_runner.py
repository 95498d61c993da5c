#!/usr/bin/env python3
# tools/fuzz_runner.py
#
# Differential fuzzing of the SPUD decoder: buffer decode vs stream decode.
#
# Generates three fuzz categories:
#   A) random VALID documents -> bytes, fed to the stream in random chunks
#   B) valid documents with random byte flips / insertions / deletions
#   C) proper prefixes of valid documents (must fail, never decode)
#
# Sync and async results (value, or error code + offset + path) must agree.
# Any mismatch prints a minimal repro payload and exits non-zero.

import asyncio, datetime, decimal, os, random, sys
from typing import Any, Dict, List, Tuple

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "implementations", "python"))

import spud

SEED = int(os.environ.get("SPUD_SEED", "4242"))
ROUNDS = int(os.environ.get("SPUD_FUZZ_ROUNDS", "5000"))

random.seed(SEED)

UTC = datetime.timezone.utc

def value_or_err_sync(data: bytes) -> Tuple[str, Any]:
    try:
        return ("ok", repr(spud.decode(data)))
    except spud.DecodeError as e:
        return ("err", (e.code, e.offset, e.path))

async def _feed(reader: asyncio.StreamReader, data: bytes, sizes: List[int]) -> None:
    i = 0
    for n in sizes:
        reader.feed_data(data[i:i + n])
        i += n
        await asyncio.sleep(0)
    if i < len(data):
        reader.feed_data(data[i:])
    reader.feed_eof()

async def value_or_err_async(data: bytes, sizes: List[int]) -> Tuple[str, Any]:
    reader = asyncio.StreamReader()
    feeder = asyncio.ensure_future(_feed(reader, data, sizes))
    try:
        return ("ok", repr(await spud.decode_async(reader)))
    except spud.DecodeError as e:
        return ("err", (e.code, e.offset, e.path))
    finally:
        await feeder

def mismatch(label: str, sync: Any, stream: Any, ctx: Dict[str, Any]) -> None:
    print("MISMATCH:", label)
    print("SYNC :", sync)
    print("ASYNC:", stream)
    print("CTX:", ctx)
    raise SystemExit(1)

# --- generators ---

def rand_text(nmax: int) -> str:
    n = random.randint(0, nmax)
    return "".join(chr(random.randint(0x20, 0x7E)) for _ in range(n))

def rand_scalar() -> Any:
    r = random.randint(0, 11)
    if r == 0:
        return None
    if r == 1:
        return random.random() < 0.5
    if r == 2:
        return random.randint(-(2**63), 2**63 - 1)
    if r == 3:
        return random.uniform(-1e9, 1e9)
    if r == 4:
        return decimal.Decimal(random.randint(-10**20, 10**20)).scaleb(-random.randint(0, 28))
    if r == 5:
        return datetime.datetime(2000, 1, 1, tzinfo=UTC) + datetime.timedelta(
            microseconds=random.randint(-10**15, 10**15))
    if r == 6:
        return datetime.date.fromordinal(random.randint(1, 3_652_059))
    if r == 7:
        return datetime.time(random.randint(0, 23), random.randint(0, 59),
                             random.randint(0, 59), random.randint(0, 999_999))
    if r == 8:
        return bytes(random.getrandbits(8) for _ in range(random.randint(0, 24)))
    if r == 9:
        return spud.SpudId(bytes(random.getrandbits(8) for _ in range(16)))
    return rand_text(18)

def rand_doc() -> Any:
    def gen(depth: int):
        if depth > 5 or random.random() < 0.4:
            return rand_scalar()
        if random.random() < 0.5:
            return {rand_text(10): gen(depth + 1) for _ in range(random.randint(0, 5))}
        return [gen(depth + 1) for _ in range(random.randint(0, 5))]
    return gen(0)

def rand_chunks(total: int) -> List[int]:
    sizes = []
    left = total
    while left > 0:
        n = random.randint(1, 17)
        sizes.append(n)
        left -= n
    return sizes

def mutate(data: bytes) -> bytes:
    b = bytearray(data)
    for _ in range(random.randint(1, 4)):
        op = random.random()
        if op < 0.6 and b:
            b[random.randrange(len(b))] = random.getrandbits(8)
        elif op < 0.8:
            b.insert(random.randint(0, len(b)), random.getrandbits(8))
        elif b:
            del b[random.randrange(len(b))]
    return bytes(b)

def main() -> int:
    loop = asyncio.new_event_loop()
    try:
        for i in range(ROUNDS):
            data = spud.encode(rand_doc())
            r = random.random()

            # A) valid documents, random chunking
            if r < 0.40:
                sizes = rand_chunks(len(data))
                sync = value_or_err_sync(data)
                stream = loop.run_until_complete(value_or_err_async(data, sizes))
                if sync[0] != "ok" or sync != stream:
                    mismatch("A valid", sync, stream, {"round": i, "hex": data.hex(), "chunks": sizes})
                continue

            # B) corrupted documents
            if r < 0.80:
                bad = mutate(data)
                sizes = rand_chunks(len(bad))
                sync = value_or_err_sync(bad)
                stream = loop.run_until_complete(value_or_err_async(bad, sizes))
                if sync != stream:
                    mismatch("B corrupted", sync, stream, {"round": i, "hex": bad.hex(), "chunks": sizes})
                continue

            # C) truncated documents
            if len(data) < 2:
                continue
            cut = data[:random.randrange(len(data))]
            sizes = rand_chunks(len(cut))
            sync = value_or_err_sync(cut)
            stream = loop.run_until_complete(value_or_err_async(cut, sizes))
            if sync[0] != "err" or sync != stream:
                mismatch("C truncated", sync, stream, {"round": i, "hex": cut.hex(), "chunks": sizes})
    finally:
        loop.close()

    print(f"OK: fuzz rounds={ROUNDS} seed={SEED} (no mismatches)")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
