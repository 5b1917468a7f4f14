from __future__ import annotations

import lzma
import zlib
from typing import Optional

import zstandard

from .constants import CODEC_NONE, CODEC_ZSTD, CODEC_DEFLATE, CODEC_XZ, CODEC_NAMES
from .errors import ConfigError, DecodeError, EncodeError


def codec_id_for(name: str) -> int:
    try:
        return CODEC_NAMES[name.lower()]
    except KeyError:
        raise ConfigError(f"unknown codec {name!r} (choose from {', '.join(sorted(CODEC_NAMES))})") from None


class Codec:
    def __init__(self, codec_id: int, level: Optional[int] = None):
        if codec_id not in CODEC_NAMES.values():
            raise DecodeError(f"unsupported codec id: {codec_id}")
        self.codec_id = codec_id
        self.level = level

    def compress(self, data: bytes) -> bytes:
        if self.codec_id == CODEC_NONE:
            return data
        if self.codec_id == CODEC_DEFLATE:
            return zlib.compress(data, self.level if self.level is not None else 6)
        if self.codec_id == CODEC_XZ:
            try:
                return lzma.compress(data, format=lzma.FORMAT_XZ, preset=self.level if self.level is not None else 6)
            except lzma.LZMAError as e:
                raise EncodeError(f"xz compression failed: {e}") from e
        try:
            c = zstandard.ZstdCompressor(level=self.level if self.level is not None else 3)
            return c.compress(data)
        except zstandard.ZstdError as e:
            raise EncodeError(f"zstd compression failed: {e}") from e

    def decompress(self, data: bytes) -> bytes:
        if self.codec_id == CODEC_NONE:
            return data
        try:
            if self.codec_id == CODEC_DEFLATE:
                return zlib.decompress(data)
            if self.codec_id == CODEC_XZ:
                return lzma.decompress(data, format=lzma.FORMAT_XZ)
            if self.codec_id == CODEC_ZSTD:
                return zstandard.ZstdDecompressor().decompress(data)
        except (zlib.error, lzma.LZMAError, zstandard.ZstdError) as e:
            raise DecodeError(f"decompression failed: {e}") from e
        raise DecodeError(f"unsupported codec id: {self.codec_id}")
