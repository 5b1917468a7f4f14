from __future__ import annotations

"""
Minimal TLV encoder/decoder for bundle member headers.

Encoding
- TLV: varint(tag) || varint(length) || payload
- Integers: unsigned LEB128 varint
- Bytes: raw payload (length provided by TLV len)
- Strings: UTF-8 bytes (length provided by TLV len)

Member header tags
- 1: name (utf8, base name only)
- 2: size (varint)
- 3: blake2s_32 of the payload (bytes[32])
- 4: mode (varint, optional)
- 5: mtime (payload: varint sec || varint nsec, optional)

Unknown tags are skipped so newer writers can add fields.
"""

from typing import Dict, List, Tuple


def _varint_encode(n: int) -> bytes:
    if n < 0:
        raise ValueError("varint: negative not supported")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            break
    return bytes(out)


def _varint_decode(data: bytes, pos: int) -> Tuple[int, int]:
    shift = 0
    result = 0
    while True:
        if pos >= len(data):
            raise ValueError("varint: truncated")
        b = data[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        if not (b & 0x80):
            return result, pos
        shift += 7
        if shift > 63:
            raise ValueError("varint: too large")


def _tlv(tag: int, payload: bytes) -> bytes:
    return _varint_encode(tag) + _varint_encode(len(payload)) + payload


def _iter_tlvs(data: bytes) -> List[Tuple[int, bytes]]:
    items: List[Tuple[int, bytes]] = []
    pos = 0
    n = len(data)
    while pos < n:
        tag, pos = _varint_decode(data, pos)
        ln, pos = _varint_decode(data, pos)
        if pos + ln > n:
            raise ValueError("TLV length out of range")
        items.append((tag, data[pos : pos + ln]))
        pos += ln
    return items


def dumps_member(hdr: Dict) -> bytes:
    """Encode a member header dict (name, size, hash32, optional mode/mtime)."""
    out = bytearray()
    out += _tlv(1, hdr["name"].encode("utf-8"))
    out += _tlv(2, _varint_encode(int(hdr["size"])))
    out += _tlv(3, bytes(hdr["hash32"]))
    if hdr.get("mode") is not None:
        out += _tlv(4, _varint_encode(int(hdr["mode"])))
    if hdr.get("mtime_ns") is not None:
        sec, nsec = divmod(int(hdr["mtime_ns"]), 1_000_000_000)
        out += _tlv(5, _varint_encode(sec) + _varint_encode(nsec))
    return bytes(out)


def loads_member(data: bytes) -> Dict:
    hdr: Dict = {"mode": None, "mtime_ns": None}
    for tag, val in _iter_tlvs(data):
        if tag == 1:
            hdr["name"] = val.decode("utf-8")
        elif tag == 2:
            hdr["size"], _ = _varint_decode(val, 0)
        elif tag == 3:
            if len(val) != 32:
                raise ValueError("member hash must be 32 bytes")
            hdr["hash32"] = val
        elif tag == 4:
            hdr["mode"], _ = _varint_decode(val, 0)
        elif tag == 5:
            sec, pos = _varint_decode(val, 0)
            nsec, _ = _varint_decode(val, pos)
            hdr["mtime_ns"] = sec * 1_000_000_000 + nsec
    for required in ("name", "size", "hash32"):
        if required not in hdr:
            raise ValueError(f"member header missing {required}")
    return hdr
