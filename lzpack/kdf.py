from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from argon2.low_level import Type as _ArgonType, hash_secret_raw as _argon_hash

from .errors import ConfigError


KEY_SIZE = 32
SALT_SIZE = 16

# Default Argon2id parameters (chosen for strong defaults)
ARGON_TIME_COST = 3
ARGON_MEMORY_COST_KIB = 256 * 1024  # 256 MiB
ARGON_PARALLELISM = 4

# Upper bounds accepted from an artifact header
MAX_TIME_COST = 64
MAX_MEMORY_COST_KIB = 4 * 1024 * 1024  # 4 GiB
MAX_PARALLELISM = 64


class Password:
    """Opaque holder for the user's password; never shows its value."""

    __slots__ = ("_secret",)

    def __init__(self, secret: str):
        if not isinstance(secret, str):
            raise TypeError("password must be a str")
        if not secret:
            raise ConfigError("password must not be empty")
        self._secret = secret

    def expose(self) -> str:
        return self._secret

    def __repr__(self) -> str:
        return "Password(***)"

    __str__ = __repr__


@dataclass(frozen=True)
class KdfParams:
    time_cost: int = ARGON_TIME_COST
    memory_cost_kib: int = ARGON_MEMORY_COST_KIB
    parallelism: int = ARGON_PARALLELISM

    def validate(self) -> "KdfParams":
        if not 1 <= self.time_cost <= MAX_TIME_COST:
            raise ConfigError(f"kdf time_cost must be in 1..{MAX_TIME_COST}")
        if not 1 <= self.parallelism <= MAX_PARALLELISM:
            raise ConfigError(f"kdf parallelism must be in 1..{MAX_PARALLELISM}")
        if not 8 * self.parallelism <= self.memory_cost_kib <= MAX_MEMORY_COST_KIB:
            raise ConfigError(
                f"kdf memory_cost_kib must be in {8 * self.parallelism}..{MAX_MEMORY_COST_KIB}"
            )
        return self


def new_salt() -> bytes:
    return os.urandom(SALT_SIZE)


def derive_key(password: Password, salt: bytes, params: KdfParams) -> bytes:
    """Derive the 32-byte symmetric key for ``password`` under ``salt``/``params``.

    Deterministic: the same inputs always give the same key.
    """
    if len(salt) != SALT_SIZE:
        raise ValueError(f"salt must be {SALT_SIZE} bytes")
    params.validate()
    return _argon_hash(
        password.expose().encode("utf-8"),
        salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost_kib,
        parallelism=params.parallelism,
        hash_len=KEY_SIZE,
        type=_ArgonType.ID,
    )


class KeyRing:
    """Derived keys for one run, cached per (salt, params).

    A pack run uses a single salt, so every worker shares one key. A load run
    meets one salt per pack run that produced its artifacts; each is derived
    once. Keys are read-only once derived and safe to share across threads.
    """

    def __init__(self, password: Password, params: Optional[KdfParams] = None):
        self._password = password
        self.params = (params or KdfParams()).validate()
        self._keys: Dict[Tuple[bytes, KdfParams], bytes] = {}
        self._lock = threading.Lock()
        self._deriving: Dict[Tuple[bytes, KdfParams], threading.Lock] = {}
        self._pack_salt: Optional[bytes] = None

    def key_for(self, salt: bytes, params: KdfParams) -> bytes:
        cache_key = (bytes(salt), params)
        with self._lock:
            key = self._keys.get(cache_key)
            if key is not None:
                return key
            slot = self._deriving.setdefault(cache_key, threading.Lock())
        # one derivation per (salt, params); different salts derive concurrently
        with slot:
            with self._lock:
                key = self._keys.get(cache_key)
            if key is None:
                key = derive_key(self._password, salt, params)
                with self._lock:
                    self._keys[cache_key] = key
                    self._deriving.pop(cache_key, None)
            return key

    def pack_key(self) -> Tuple[bytes, bytes]:
        """Return (salt, key) used for every artifact written in this run."""
        with self._lock:
            if self._pack_salt is None:
                self._pack_salt = new_salt()
            salt = self._pack_salt
        return salt, self.key_for(salt, self.params)
