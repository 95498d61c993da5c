"""SPUD files — one framed document per ``.spud`` file.

A file is ``FILE_HDR`` (``b"SPUD\\x00"`` + format version byte), the
canonical encoding of one value, then the ``DE AD BE EF`` end marker.
The end marker catches files cut short at a value boundary, which the
decoder alone would accept.
"""

from __future__ import annotations

import os
from typing import Any, Optional, Union

from ._constants import FILE_HDR, FILE_TRAILER
from ._decoder import decode_buffer
from ._encoder import encode_chunks
from ._errors import ERR_INVALID_FRAME, DecodeError
from ._model import DEFAULT_LIMITS, Limits

PathLike = Union[str, "os.PathLike[str]"]


def frame(body: bytes) -> bytes:
    """Wrap an encoded document in the file header and end marker."""
    return FILE_HDR + body + FILE_TRAILER


def unframe(data: bytes) -> bytes:
    """Strip and validate the file header and end marker."""
    data = bytes(data)
    if not data.startswith(FILE_HDR):
        if data[:5] == FILE_HDR[:5] and len(data) >= len(FILE_HDR):
            raise DecodeError(
                ERR_INVALID_FRAME,
                "unsupported SPUD format version {}".format(data[len(FILE_HDR) - 1]),
                offset=len(FILE_HDR) - 1,
            )
        raise DecodeError(ERR_INVALID_FRAME, "missing SPUD file header", offset=0)
    if len(data) < len(FILE_HDR) + len(FILE_TRAILER) or not data.endswith(FILE_TRAILER):
        raise DecodeError(
            ERR_INVALID_FRAME, "missing end marker", offset=max(len(data) - len(FILE_TRAILER), 0))
    return data[len(FILE_HDR):len(data) - len(FILE_TRAILER)]


def dump(value: Any, path: PathLike, limits: Optional[Limits] = None) -> None:
    """Encode ``value`` and write it to ``path`` as a framed SPUD file."""
    body = b"".join(encode_chunks(value, limits or DEFAULT_LIMITS))
    with open(path, "wb") as f:
        f.write(frame(body))


def load(path: PathLike, limits: Optional[Limits] = None) -> Any:
    """Read a framed SPUD file and decode its document."""
    with open(path, "rb") as f:
        data = f.read()
    # Decode error offsets are relative to the document, not the file.
    return decode_buffer(unframe(data), limits or DEFAULT_LIMITS)
