"""Deflate and inflate helpers for message bodies."""

from __future__ import annotations

import zlib

CHUNK = 16384
WINDOW_BITS = 15
GZIP_ENCODING = 16


def deflate_write(data: bytes, gzip: bool = False) -> bytes:
    """Compress data with a zlib wrapper, or a gzip wrapper when gzip is true."""
    wbits = WINDOW_BITS | GZIP_ENCODING if gzip else WINDOW_BITS
    compressor = zlib.compressobj(
        zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, wbits, 8, zlib.Z_DEFAULT_STRATEGY
    )
    return compressor.compress(bytes(data)) + compressor.flush(zlib.Z_FINISH)


def inflate_read(data: bytes, gzip: bool = False) -> bytes:
    """Decompress a zlib stream, or a raw deflate stream when gzip is true.

    Raise ValueError if the input is corrupt or ends before the stream does.
    """
    wbits = -zlib.MAX_WBITS if gzip else zlib.MAX_WBITS
    decompressor = zlib.decompressobj(wbits)
    try:
        result = decompressor.decompress(bytes(data)) + decompressor.flush()
    except zlib.error as exc:
        raise ValueError(f"inflate failed: {exc}") from exc
    if not decompressor.eof:
        raise ValueError("inflate failed: compressed stream is incomplete")
    return result