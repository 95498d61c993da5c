"""SPUD identifiers — 16 random bytes with a base58 text form.

The random source is injected into ``IdGenerator`` so tests can pin it.
The default generator draws from ``secrets.token_bytes`` (the OS CSPRNG)
and never falls back to a weaker source: if the OS source is missing the
call fails with ``RandomSourceError``.
"""

from __future__ import annotations

import logging
import secrets
from typing import Callable, Optional

import base58

from ._constants import ID_WIDTH
from ._errors import ERR_INVALID_ID_TEXT, ERR_RANDOM_SOURCE, IdError

logger = logging.getLogger(__name__)

RandomSource = Callable[[int], bytes]


class SpudId:
    """An immutable 16-byte identifier."""

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes) -> None:
        raw = bytes(raw)
        if len(raw) != ID_WIDTH:
            raise ValueError("SpudId needs exactly {} bytes, got {}".format(ID_WIDTH, len(raw)))
        self._raw = raw

    @classmethod
    def generate(cls) -> "SpudId":
        """Mint a fresh identifier from the default generator."""
        return default_generator.generate()

    @classmethod
    def from_text(cls, text: str) -> "SpudId":
        """Parse the base58 form produced by ``to_text``."""
        if not isinstance(text, str) or not text:
            raise IdError(ERR_INVALID_ID_TEXT, "identifier text must be a non-empty string")
        try:
            raw = base58.b58decode(text)
        except ValueError as exc:
            raise IdError(ERR_INVALID_ID_TEXT, "invalid base58 text: {}".format(exc)) from exc
        if len(raw) != ID_WIDTH:
            raise IdError(
                ERR_INVALID_ID_TEXT,
                "identifier text decodes to {} bytes, expected {}".format(len(raw), ID_WIDTH),
            )
        return cls(raw)

    def to_text(self) -> str:
        return base58.b58encode(self._raw).decode("ascii")

    @property
    def raw(self) -> bytes:
        return self._raw

    def __bytes__(self) -> bytes:
        return self._raw

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpudId):
            return NotImplemented
        return self._raw == other._raw

    def __lt__(self, other: "SpudId") -> bool:
        if not isinstance(other, SpudId):
            return NotImplemented
        return self._raw < other._raw

    def __hash__(self) -> int:
        return hash((SpudId, self._raw))

    def __repr__(self) -> str:
        return "SpudId({!r})".format(self.to_text())

    def __str__(self) -> str:
        return self.to_text()


class IdGenerator:
    """Mints ``SpudId`` values from an injected random source.

    The source is any callable taking a byte count and returning that many
    random bytes.  The generator keeps no state of its own, so one
    instance can be shared across threads and tasks as long as the source
    itself is thread-safe (``secrets.token_bytes`` is).
    """

    def __init__(self, random_source: Optional[RandomSource] = None) -> None:
        self._source: RandomSource = random_source or secrets.token_bytes

    def generate(self) -> SpudId:
        try:
            raw = self._source(ID_WIDTH)
        except (OSError, NotImplementedError) as exc:
            logger.error("random source unavailable: %s", exc)
            raise IdError(ERR_RANDOM_SOURCE, "random source failed: {}".format(exc)) from exc
        if not isinstance(raw, (bytes, bytearray)) or len(raw) != ID_WIDTH:
            logger.error("random source returned %r instead of %d bytes", type(raw).__name__, ID_WIDTH)
            raise IdError(ERR_RANDOM_SOURCE, "random source returned a short or invalid result")
        return SpudId(raw)


default_generator = IdGenerator()


def generate_id() -> SpudId:
    """Mint a fresh identifier from the process-wide default generator."""
    return default_generator.generate()
