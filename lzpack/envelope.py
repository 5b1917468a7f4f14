from __future__ import annotations

import struct
from dataclasses import dataclass

from .constants import SEALED_MAGIC, SEALED_VERSION, KDF_ARGON2ID
from .errors import ConfigError, DecodeError
from .kdf import KdfParams


_HEADER_STRUCT = struct.Struct("<8sHH16sIII24s")
# Fields (little endian):
# magic[8], version u16, kdf_id u16, kdf_salt[16],
# argon_mem u32, argon_time u32, argon_lanes u32, nonce[24]

HEADER_SIZE = _HEADER_STRUCT.size
NONCE_SIZE = 24


@dataclass
class SealedHeader:
    version: int
    kdf_id: int
    salt: bytes
    kdf: KdfParams
    nonce: bytes

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            SEALED_MAGIC,
            self.version,
            self.kdf_id,
            self.salt,
            self.kdf.memory_cost_kib,
            self.kdf.time_cost,
            self.kdf.parallelism,
            self.nonce,
        )


def new_header(salt: bytes, kdf: KdfParams, nonce: bytes) -> SealedHeader:
    return SealedHeader(version=SEALED_VERSION, kdf_id=KDF_ARGON2ID, salt=salt, kdf=kdf, nonce=nonce)


def read_header(blob: bytes) -> SealedHeader:
    if len(blob) < HEADER_SIZE:
        raise DecodeError("artifact too short for header")
    magic, version, kdf_id, salt, amem, atime, alanes, nonce = _HEADER_STRUCT.unpack_from(blob, 0)
    if magic != SEALED_MAGIC:
        raise DecodeError("bad artifact magic")
    if version != SEALED_VERSION:
        raise DecodeError(f"unsupported artifact version {version}")
    if kdf_id != KDF_ARGON2ID:
        raise DecodeError(f"unsupported kdf id {kdf_id}")
    kdf = KdfParams(time_cost=atime, memory_cost_kib=amem, parallelism=alanes)
    try:
        kdf.validate()
    except ConfigError as exc:
        raise DecodeError(f"unsupported Argon2 parameters in artifact: {exc}") from exc
    return SealedHeader(version=version, kdf_id=kdf_id, salt=salt, kdf=kdf, nonce=nonce)
