import uuid


# Magic and version
CONTAINER_MAGIC = b"LZBNDL"          # 6 bytes, leads every decrypted bundle
SEALED_MAGIC = b"LZSEAL\x00\x01"     # 8 bytes, leads every artifact on disk

CONTAINER_VERSION = 1
SEALED_VERSION = 1

# File name suffix of pipeline artifacts
SUFFIX = ".lzpk"
PART_PREFIX = ".lzpk-"
PART_SUFFIX = ".part"


# Codec IDs (0=none, 1=deflate/zlib, 2=zstd, 3=xz/lzma)
CODEC_NONE = 0
CODEC_DEFLATE = 1
CODEC_ZSTD = 2
CODEC_XZ = 3

CODEC_NAMES = {
    "none": CODEC_NONE,
    "deflate": CODEC_DEFLATE,
    "zstd": CODEC_ZSTD,
    "xz": CODEC_XZ,
}

DEFAULT_CODEC_ID = CODEC_XZ


# KDF identifiers
KDF_ARGON2ID = 1


DEFAULT_BUNDLE_COUNT = 2
DEFAULT_BUNDLE_SIZE = 1_048_576  # 1 MiB


def new_artifact_name() -> str:
    return uuid.uuid4().hex + SUFFIX
