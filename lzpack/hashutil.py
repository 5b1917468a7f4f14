from __future__ import annotations

import hashlib
import hmac


def blake2s_32(data: bytes) -> bytes:
    # Use hashlib.blake2s to provide a 32-byte digest without extra deps.
    return hashlib.blake2s(data, digest_size=32).digest()


def digest_matches(data: bytes, expected32: bytes) -> bool:
    return hmac.compare_digest(blake2s_32(data), expected32)
