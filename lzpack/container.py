"""Bundle container: several sibling files in one compressed byte stream.

Layout (before encryption)::

    CONTAINER_MAGIC[6] | version u8 | codec_id u16 | codec(stream)

    stream = varint(count) || { varint(len(hdr)) || hdr || payload[size] } * count

``hdr`` is the TLV member header from :mod:`lzpack.tlv`. Every payload is
checked against its recorded size and BLAKE2s-256 digest when unpacking.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional

from . import tlv
from .codec import Codec
from .constants import CONTAINER_MAGIC, CONTAINER_VERSION, DEFAULT_CODEC_ID
from .entries import PathEntry
from .errors import DecodeError, EncodeError, io_error
from .hashutil import blake2s_32, digest_matches


_PREFIX_STRUCT = struct.Struct("<6sBH")


@dataclass
class BundleMember:
    name: str
    data: bytes
    mode: Optional[int] = None
    mtime_ns: Optional[int] = None


def check_member_name(name: str) -> str:
    """Return ``name`` if it is a plain base name, else raise ValueError.

    Rules:
    - Non-empty, not '.' or '..'
    - No '/' or '\\' separators, no NUL
    """
    if not name or name in (".", ".."):
        raise ValueError(f"invalid member name {name!r}")
    if "/" in name or "\\" in name or "\x00" in name:
        raise ValueError(f"member name may not contain a path separator: {name!r}")
    return name


def _read_member(entry: PathEntry) -> BundleMember:
    name = entry.name
    try:
        check_member_name(name)
        name.encode("utf-8")
    except (ValueError, UnicodeEncodeError) as exc:
        raise EncodeError(f"cannot store file name {name!r}: {exc}") from exc
    try:
        with open(entry.path, "rb") as fh:
            data = fh.read()
            st = os.fstat(fh.fileno())
    except OSError as exc:
        raise io_error(exc, "cannot read", entry.path) from exc
    mtime_ns = st.st_mtime_ns if st.st_mtime_ns >= 0 else None
    return BundleMember(name=name, data=data, mode=st.st_mode & 0o7777, mtime_ns=mtime_ns)


def pack_members(members: Iterable[BundleMember], codec_id: int = DEFAULT_CODEC_ID) -> bytes:
    members = list(members)
    stream = bytearray(tlv._varint_encode(len(members)))
    for m in members:
        try:
            hdr = tlv.dumps_member(
                {
                    "name": check_member_name(m.name),
                    "size": len(m.data),
                    "hash32": blake2s_32(m.data),
                    "mode": m.mode,
                    "mtime_ns": m.mtime_ns,
                }
            )
        except (ValueError, UnicodeEncodeError) as exc:
            raise EncodeError(f"cannot build header for {m.name!r}: {exc}") from exc
        stream += tlv._varint_encode(len(hdr))
        stream += hdr
        stream += m.data
    compressed = Codec(codec_id).compress(bytes(stream))
    return _PREFIX_STRUCT.pack(CONTAINER_MAGIC, CONTAINER_VERSION, codec_id) + compressed


def bundle(entries: Iterable[PathEntry], codec_id: int = DEFAULT_CODEC_ID) -> bytes:
    """Read every entry and pack them, in order, into one compressed container."""
    return pack_members((_read_member(e) for e in entries), codec_id)


def unbundle(container: bytes) -> List[BundleMember]:
    """Decompress and parse a container back into its members, in original order."""
    if len(container) < _PREFIX_STRUCT.size:
        raise DecodeError("container too short")
    magic, version, codec_id = _PREFIX_STRUCT.unpack_from(container, 0)
    if magic != CONTAINER_MAGIC:
        raise DecodeError("bad container magic")
    if version != CONTAINER_VERSION:
        raise DecodeError(f"unsupported container version {version}")
    stream = Codec(codec_id).decompress(container[_PREFIX_STRUCT.size :])

    members: List[BundleMember] = []
    try:
        count, pos = tlv._varint_decode(stream, 0)
        for _ in range(count):
            hlen, pos = tlv._varint_decode(stream, pos)
            if pos + hlen > len(stream):
                raise ValueError("member header out of range")
            hdr = tlv.loads_member(stream[pos : pos + hlen])
            pos += hlen
            size = hdr["size"]
            if pos + size > len(stream):
                raise ValueError(f"payload of {hdr['name']!r} truncated")
            data = stream[pos : pos + size]
            pos += size
            if not digest_matches(data, hdr["hash32"]):
                raise ValueError(f"checksum mismatch for {hdr['name']!r}")
            members.append(
                BundleMember(
                    name=check_member_name(hdr["name"]),
                    data=data,
                    mode=hdr["mode"],
                    mtime_ns=hdr["mtime_ns"],
                )
            )
    except (ValueError, UnicodeDecodeError) as exc:
        raise DecodeError(f"malformed container: {exc}") from exc
    if pos != len(stream):
        raise DecodeError("trailing bytes after last member")
    return members
