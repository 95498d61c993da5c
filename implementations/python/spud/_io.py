"""Byte sources, byte sinks and the two drivers that connect them to the codec.

The decoder and encoder never touch I/O themselves.  The decoder is a
generator that yields "I need N bytes" and is sent exactly N bytes back;
the encoder is a generator of byte chunks.  The same generator runs under
either driver:

    run(steps, BufferSource(data))               blocking, in-memory
    await run_async(steps, StreamSource(reader))  suspending, asyncio

A short read is reported by throwing ``EOFError`` into the generator at
the point where it asked for bytes, so position and path context for the
resulting ``UnexpectedEof`` come from the decoder, not from the source.
``asyncio.IncompleteReadError`` already subclasses ``EOFError``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Generator, Iterable

from ._constants import STREAM_FLUSH_THRESHOLD

ReadSteps = Generator[int, bytes, Any]


# ── Sources ──────────────────────────────────────────────────

class BufferSource:
    """Blocking cursor over an in-memory buffer."""

    def __init__(self, data: bytes) -> None:
        self._view = memoryview(data).cast("B")
        self._pos = 0

    @property
    def size(self) -> int:
        return len(self._view)

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._view) - self._pos

    def read_exact(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._view):
            raise EOFError("needed {} bytes, {} left".format(n, self.remaining))
        chunk = self._view[self._pos:end].tobytes()
        self._pos = end
        return chunk


class StreamSource:
    """Suspending reader over an ``asyncio.StreamReader``.

    Anything with an awaitable ``readexactly(n)`` that raises ``EOFError``
    (or ``IncompleteReadError``) on a short read will do.
    """

    def __init__(self, reader: "asyncio.StreamReader") -> None:
        self._reader = reader
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    async def read_exact(self, n: int) -> bytes:
        chunk = await self._reader.readexactly(n)
        self._pos += n
        return chunk

    async def at_eof(self) -> bool:
        """Consume one byte if there is one; True when the stream has ended."""
        extra = await self._reader.read(1)
        if extra:
            self._pos += len(extra)
            return False
        return True


# ── Sinks ────────────────────────────────────────────────────

class BufferSink:
    """Collects written chunks in memory."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def write(self, data: bytes) -> None:
        self._buf += data

    def getvalue(self) -> bytes:
        return bytes(self._buf)


class StreamSink:
    """Writes chunks to an ``asyncio.StreamWriter``, draining under backpressure."""

    def __init__(self, writer: "asyncio.StreamWriter",
                 flush_threshold: int = STREAM_FLUSH_THRESHOLD) -> None:
        self._writer = writer
        self._threshold = flush_threshold
        self._pending = 0

    async def write(self, data: bytes) -> None:
        self._writer.write(data)
        self._pending += len(data)
        if self._pending >= self._threshold:
            await self.flush()

    async def flush(self) -> None:
        await self._writer.drain()
        self._pending = 0


# ── Drivers ──────────────────────────────────────────────────

def run(steps: ReadSteps, source: BufferSource) -> Any:
    """Drive a read-step generator to completion over a blocking source."""
    try:
        need = next(steps)
        while True:
            try:
                chunk = source.read_exact(need)
            except EOFError as exc:
                need = steps.throw(exc)
            else:
                need = steps.send(chunk)
    except StopIteration as stop:
        return stop.value


async def run_async(steps: ReadSteps, source: StreamSource) -> Any:
    """Drive a read-step generator to completion over a suspending source.

    The only awaits are the reads themselves, so other tasks interleave
    only at I/O boundaries.
    """
    try:
        need = next(steps)
        while True:
            try:
                chunk = await source.read_exact(need)
            except EOFError as exc:
                need = steps.throw(exc)
            else:
                need = steps.send(chunk)
    except StopIteration as stop:
        return stop.value


def drain_into(chunks: Iterable[bytes], sink: BufferSink) -> None:
    for chunk in chunks:
        sink.write(chunk)


async def drain_into_async(chunks: Iterable[bytes], sink: StreamSink) -> None:
    for chunk in chunks:
        await sink.write(chunk)
    await sink.flush()
