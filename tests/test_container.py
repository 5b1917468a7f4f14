from __future__ import annotations

import os
import struct
import tempfile
import unittest
from pathlib import Path

from lzpack.codec import Codec, codec_id_for
from lzpack.constants import CODEC_DEFLATE, CODEC_NONE, CODEC_XZ, CODEC_ZSTD, CONTAINER_MAGIC
from lzpack.container import BundleMember, bundle, check_member_name, pack_members, unbundle
from lzpack.entries import EntryKind, PathEntry, classify, list_directory
from lzpack.errors import ConfigError, DecodeError, EncodeError, PipelineIOError


def _file_entry(path: Path) -> PathEntry:
    return PathEntry(str(path), EntryKind.FILE, path.stat().st_size)


class CodecTests(unittest.TestCase):
    def test_every_codec_roundtrips(self):
        data = b"hello world\n" * 200 + os.urandom(300)
        for codec_id in (CODEC_NONE, CODEC_DEFLATE, CODEC_ZSTD, CODEC_XZ):
            c = Codec(codec_id)
            self.assertEqual(c.decompress(c.compress(data)), data, f"codec {codec_id}")

    def test_corrupt_stream_is_decode_error(self):
        for codec_id in (CODEC_DEFLATE, CODEC_ZSTD, CODEC_XZ):
            with self.assertRaises(DecodeError):
                Codec(codec_id).decompress(b"definitely not compressed")

    def test_unknown_codec(self):
        with self.assertRaises(DecodeError):
            Codec(99)
        with self.assertRaises(ConfigError):
            codec_id_for("brotli")
        self.assertEqual(codec_id_for("XZ"), CODEC_XZ)


class ContainerTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_single_file_roundtrip(self):
        def scenario(tmp: Path):
            for payload in (b"", b"x", os.urandom(5000)):
                p = tmp / "one.bin"
                p.write_bytes(payload)
                members = unbundle(bundle([_file_entry(p)]))
                self.assertEqual([(m.name, m.data) for m in members], [("one.bin", payload)])

        self.run_with_tmpdir(scenario)

    def test_order_names_and_metadata_preserved(self):
        def scenario(tmp: Path):
            names = ["b.txt", "a.txt", "ünïcode.dat"]
            for i, n in enumerate(names):
                (tmp / n).write_bytes(f"content {i}".encode() * (i + 1))
            os.chmod(tmp / "a.txt", 0o640)
            when = 1_600_000_000
            os.utime(tmp / "a.txt", (when, when))
            members = unbundle(bundle([_file_entry(tmp / n) for n in names], CODEC_ZSTD))
            self.assertEqual([m.name for m in members], names)
            for i, m in enumerate(members):
                self.assertEqual(m.data, f"content {i}".encode() * (i + 1))
            a = members[1]
            self.assertEqual(a.mode, 0o640)
            self.assertEqual(a.mtime_ns, when * 1_000_000_000)

        self.run_with_tmpdir(scenario)

    def test_missing_file_is_io_error(self):
        def scenario(tmp: Path):
            ghost = PathEntry(str(tmp / "gone.txt"), EntryKind.FILE, 3)
            with self.assertRaises(PipelineIOError):
                bundle([ghost])

        self.run_with_tmpdir(scenario)

    def test_unrepresentable_name_is_encode_error(self):
        with self.assertRaises(EncodeError):
            pack_members([BundleMember(name="bad\udcffname", data=b"x")])
        with self.assertRaises(EncodeError):
            pack_members([BundleMember(name="dir/evil", data=b"x")])

    def test_bad_magic_and_truncation(self):
        blob = pack_members([BundleMember(name="a", data=b"abc" * 100)], CODEC_NONE)
        self.assertTrue(blob.startswith(CONTAINER_MAGIC))
        with self.assertRaises(DecodeError):
            unbundle(b"NOTLZB" + blob[6:])
        with self.assertRaises(DecodeError):
            unbundle(blob[:-10])
        with self.assertRaises(DecodeError):
            unbundle(blob[:4])

    def test_checksum_mismatch(self):
        blob = bytearray(pack_members([BundleMember(name="a", data=b"abcdef")], CODEC_NONE))
        blob[-1] ^= 0xFF
        with self.assertRaises(DecodeError):
            unbundle(bytes(blob))

    def test_unsafe_member_name_rejected_on_unpack(self):
        # Hand-build a stream that names its member "../x"
        from lzpack import tlv
        from lzpack.hashutil import blake2s_32

        hdr = tlv._tlv(1, b"../x") + tlv._tlv(2, tlv._varint_encode(1)) + tlv._tlv(3, blake2s_32(b"y"))
        stream = tlv._varint_encode(1) + tlv._varint_encode(len(hdr)) + hdr + b"y"
        blob = struct.pack("<6sBH", CONTAINER_MAGIC, 1, CODEC_NONE) + stream
        with self.assertRaises(DecodeError):
            unbundle(blob)

    def test_check_member_name(self):
        self.assertEqual(check_member_name("ok.txt"), "ok.txt")
        for bad in ("", ".", "..", "a/b", "a\\b"):
            with self.assertRaises(ValueError):
                check_member_name(bad)


class EntryListingTests(unittest.TestCase):
    def test_list_directory_kinds(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "f.txt").write_bytes(b"12345")
            (root / "sub").mkdir()
            if hasattr(os, "symlink"):
                try:
                    os.symlink("f.txt", root / "link")
                except OSError:
                    pass
            kinds = {Path(e.path).name: (e.kind, e.size) for e in list_directory(str(root))}
            self.assertEqual(kinds["f.txt"], (EntryKind.FILE, 5))
            self.assertEqual(kinds["sub"][0], EntryKind.DIRECTORY)
            if "link" in kinds:
                self.assertEqual(kinds["link"][0], EntryKind.OTHER)
            self.assertEqual(classify(str(root)).kind, EntryKind.DIRECTORY)
            with self.assertRaises(FileNotFoundError):
                classify(str(root / "missing"))


if __name__ == "__main__":
    unittest.main()
