"""Authenticated encryption of whole bundles with XChaCha20-Poly1305.

Artifact layout::

    SealedHeader (64 bytes, bound as associated data) | ciphertext | tag[16]

Every artifact gets a fresh random 24-byte nonce. The header also carries the
Argon2id salt and parameters needed to re-derive the key from the password.
"""

from __future__ import annotations

import os

from Cryptodome.Cipher import ChaCha20_Poly1305

from .envelope import HEADER_SIZE, NONCE_SIZE, new_header, read_header
from .errors import AuthenticationError, DecodeError
from .kdf import KEY_SIZE, KdfParams


TAG_SIZE = 16


def _check_key(key: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValueError("Key must be 32 bytes for XChaCha20-Poly1305")


def seal(key: bytes, plaintext: bytes, *, salt: bytes, kdf: KdfParams) -> bytes:
    """Encrypt and authenticate ``plaintext``; returns header + ciphertext + tag."""
    _check_key(key)
    header = new_header(salt, kdf, os.urandom(NONCE_SIZE)).pack()
    cipher = ChaCha20_Poly1305.new(key=key, nonce=header[-NONCE_SIZE:])
    cipher.update(header)
    ciphertext, tag = cipher.encrypt_and_digest(plaintext)
    return header + ciphertext + tag


def open_blob(key: bytes, blob: bytes) -> bytes:
    """Verify and decrypt an artifact produced by :func:`seal`.

    Raises:
        DecodeError: The blob is not an artifact (bad magic, unknown version, too short).
        AuthenticationError: The tag did not verify (wrong key, tampering, corruption).
    """
    _check_key(key)
    header = read_header(blob)
    if len(blob) < HEADER_SIZE + TAG_SIZE:
        raise DecodeError("artifact truncated: missing authentication tag")
    cipher = ChaCha20_Poly1305.new(key=key, nonce=header.nonce)
    cipher.update(blob[:HEADER_SIZE])
    try:
        return cipher.decrypt_and_verify(blob[HEADER_SIZE:-TAG_SIZE], blob[-TAG_SIZE:])
    except ValueError as exc:
        raise AuthenticationError("authentication failed: wrong password or corrupted artifact") from exc
