from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .chunker import ChunkPolicy
from .codec import codec_id_for
from .constants import DEFAULT_BUNDLE_COUNT, DEFAULT_BUNDLE_SIZE
from .errors import ConfigError
from .kdf import KdfParams


EXISTS_POLICIES = ("rename", "overwrite", "skip", "fail")

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMG]?)(?:I?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


def parse_size(value: Any) -> int:
    """Parse a byte quantity such as ``512``, ``64K``, ``1M`` or ``2G`` (binary units)."""
    if isinstance(value, bool):
        raise ConfigError(f"invalid size {value!r}")
    if isinstance(value, int):
        n = value
    else:
        m = _SIZE_RE.match(str(value))
        if not m:
            raise ConfigError(f"invalid size {value!r} (expected <number>[K|M|G])")
        n = int(m.group(1)) * _SIZE_UNITS[m.group(2).upper()]
    if n <= 0:
        raise ConfigError(f"size must be positive, got {value!r}")
    return n


@dataclass(frozen=True)
class Options:
    keep_name: bool = False
    bundle_count: int = DEFAULT_BUNDLE_COUNT
    bundle_size: int = DEFAULT_BUNDLE_SIZE
    strict_size: bool = False
    codec: str = "xz"
    verify: bool = True
    exists: str = "rename"
    jobs: Optional[int] = None
    fail_fast: bool = False
    quiet: bool = False
    verbose: bool = False
    kdf: KdfParams = field(default_factory=KdfParams)

    def validate(self) -> "Options":
        if isinstance(self.bundle_count, bool) or not isinstance(self.bundle_count, int) or self.bundle_count < 1:
            raise ConfigError(f"bundle_count must be a positive integer, got {self.bundle_count!r}")
        parse_size(self.bundle_size)
        codec_id_for(self.codec)
        if self.exists not in EXISTS_POLICIES:
            raise ConfigError(f"exists must be one of {', '.join(EXISTS_POLICIES)}, got {self.exists!r}")
        if self.jobs is not None and (isinstance(self.jobs, bool) or not isinstance(self.jobs, int) or self.jobs < 1):
            raise ConfigError(f"jobs must be a positive integer, got {self.jobs!r}")
        self.kdf.validate()
        return self

    @property
    def codec_id(self) -> int:
        return codec_id_for(self.codec)

    @property
    def workers(self) -> int:
        return self.jobs or os.cpu_count() or 1

    def chunk_policy(self) -> ChunkPolicy:
        return ChunkPolicy(
            bundle_count=self.bundle_count,
            bundle_size=parse_size(self.bundle_size),
            keep_name=self.keep_name,
            strict_size=self.strict_size,
        )

    def merged(self, **overrides: Any) -> "Options":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


# Config file tables and the Options fields each one may set
_TABLES: Dict[str, tuple] = {
    "pack": ("bundle_count", "bundle_size", "keep_name", "strict_size", "codec", "verify"),
    "load": ("exists",),
    "runtime": ("jobs", "fail_fast", "quiet", "verbose"),
}
_KDF_KEYS = tuple(f.name for f in fields(KdfParams))


def options_from_mapping(data: Dict[str, Any], base: Optional[Options] = None) -> Options:
    opts = base or Options()
    values: Dict[str, Any] = {}
    for table, data_value in data.items():
        if not isinstance(data_value, dict):
            raise ConfigError(f"config: [{table}] must be a table")
        if table == "kdf":
            unknown = set(data_value) - set(_KDF_KEYS)
            if unknown:
                raise ConfigError(f"config: unknown key(s) in [kdf]: {', '.join(sorted(unknown))}")
            for key, val in data_value.items():
                if isinstance(val, bool) or not isinstance(val, int):
                    raise ConfigError(f"config: kdf.{key} must be an integer")
            values["kdf"] = replace(opts.kdf, **data_value)
            continue
        allowed = _TABLES.get(table)
        if allowed is None:
            raise ConfigError(f"config: unknown table [{table}]")
        for key, val in data_value.items():
            if key not in allowed:
                raise ConfigError(f"config: unknown key {table}.{key}")
            values[key] = val
    for key in ("keep_name", "strict_size", "verify", "fail_fast", "quiet", "verbose"):
        if key in values and not isinstance(values[key], bool):
            raise ConfigError(f"config: {key} must be true or false")
    if "bundle_size" in values:
        values["bundle_size"] = parse_size(values["bundle_size"])
    return replace(opts, **values).validate()


def load_config(path: str | os.PathLike) -> Options:
    """Read a TOML config file into Options (CLI flags are applied on top by the caller)."""
    p = Path(path)
    try:
        with p.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {p}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid config file {p}: {exc}") from exc
    return options_from_mapping(data)
