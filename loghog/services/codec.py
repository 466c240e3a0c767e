# =============================================================================
# Body Codec — Lossless Compression of Structured Log Bodies
# =============================================================================
#
# FORMAT ("zlib-json/1"):
#   body dict → JSON text (UTF-8, ensure_ascii=False, allow_nan=False)
#             → zlib stream (includes an adler-32 checksum)
#
# LAW: decompress(compress(b)) == b for every JSON-like mapping b.
# Equality is structural; key order carries no meaning.
#
# FAIL CLOSED: any failure while restoring a body (unknown codec name, bad
# zlib stream, checksum mismatch, invalid UTF-8, invalid JSON, or a top level
# that is not an object) raises CorruptBodyError. Partial data is never
# returned.
# =============================================================================

from __future__ import annotations

import json
import logging
import zlib
from dataclasses import dataclass
from typing import Any

from loghog.errors import CorruptBodyError, WrongTypeError

logger = logging.getLogger(__name__)

CODEC_NAME = "zlib-json/1"
DEFAULT_LEVEL = 6


@dataclass
class CompressedBody:
    data: bytes
    codec: str
    original_size: int
    compressed_size: int

    @property
    def ratio(self) -> float:
        return self.original_size / self.compressed_size if self.compressed_size else 1.0


def encode_body(body: dict[str, Any], level: int = DEFAULT_LEVEL) -> CompressedBody:
    """Serialise and compress a body, keeping size stats for the record."""
    try:
        text = json.dumps(
            body,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
        raw = text.encode("utf-8")
    except UnicodeEncodeError as e:
        # Unpaired surrogate; validation normally rejects these first
        raise WrongTypeError("body", "valid Unicode text (no unpaired surrogates)") from e
    except (TypeError, ValueError) as e:
        # Validation normally rejects these before we get here
        raise WrongTypeError("body", "JSON-serialisable") from e

    data = zlib.compress(raw, level=max(1, min(9, level)))
    return CompressedBody(
        data=data,
        codec=CODEC_NAME,
        original_size=len(raw),
        compressed_size=len(data),
    )


def compress(body: dict[str, Any], level: int = DEFAULT_LEVEL) -> bytes:
    return encode_body(body, level).data


def decompress(data: bytes, codec: str = CODEC_NAME) -> dict[str, Any]:
    """Restore a body. Raises CorruptBodyError instead of returning bad data."""
    if codec != CODEC_NAME:
        raise CorruptBodyError(f"Unsupported body codec '{codec}'.")

    try:
        raw = zlib.decompress(data)
        body = json.loads(raw.decode("utf-8"))
    except (zlib.error, UnicodeDecodeError, ValueError, TypeError) as e:
        logger.error("Stored body failed to decode: %s", e)
        raise CorruptBodyError("Stored log body is unreadable.") from e

    if not isinstance(body, dict):
        logger.error("Stored body decoded to %s, expected object", type(body).__name__)
        raise CorruptBodyError("Stored log body is unreadable.")
    return body
