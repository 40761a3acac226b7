"""
Compression primitives for the content codings we emit.
"""
import gzip
import zlib
from types import MappingProxyType
from typing import Callable, Mapping

import brotli

try:
    from compression import zstd
except ImportError:
    from backports import zstd

Compressor = Callable[[bytes, int], bytes]
Decompressor = Callable[[bytes], bytes]

# Levels used when a config does not override them.
DEFAULT_LEVELS: Mapping[str, int] = MappingProxyType({
    "zstd": 3,
    "br": 11,
    "gzip": 6,
    "deflate": 6,
})


def compress_zstd(data: bytes, level: int) -> bytes:
    return zstd.compress(data, level=level)


def compress_brotli(data: bytes, level: int) -> bytes:
    return brotli.compress(data, quality=level)


def compress_gzip(data: bytes, level: int) -> bytes:
    # mtime=0 keeps the output identical for identical input
    return gzip.compress(data, compresslevel=level, mtime=0)


def compress_deflate(data: bytes, level: int) -> bytes:
    # HTTP "deflate" is the zlib container, not a raw DEFLATE stream
    return zlib.compress(data, level)


COMPRESSORS: Mapping[str, Compressor] = MappingProxyType({
    "zstd": compress_zstd,
    "br": compress_brotli,
    "gzip": compress_gzip,
    "deflate": compress_deflate,
})

DECOMPRESSORS: Mapping[str, Decompressor] = MappingProxyType({
    "zstd": zstd.decompress,
    "br": brotli.decompress,
    "gzip": gzip.decompress,
    "deflate": zlib.decompress,
})


def compress(encoding: str, data: bytes, level: int | None = None) -> bytes:
    """
    Compresses `data` with the primitive registered for `encoding`.
    Errors raised by the underlying library are not caught here.
    """
    if level is None:
        level = DEFAULT_LEVELS[encoding]
    return COMPRESSORS[encoding](data, level)


def decompress(encoding: str, data: bytes) -> bytes:
    return DECOMPRESSORS[encoding](data)
