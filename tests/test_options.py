from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from lzpack.errors import ConfigError
from lzpack.kdf import KdfParams
from lzpack.options import Options, load_config, options_from_mapping, parse_size


class SizeParsingTests(unittest.TestCase):
    def test_units(self):
        self.assertEqual(parse_size("512"), 512)
        self.assertEqual(parse_size("64K"), 64 * 1024)
        self.assertEqual(parse_size("1M"), 1024 * 1024)
        self.assertEqual(parse_size("2g"), 2 * 1024 ** 3)
        self.assertEqual(parse_size("3MiB"), 3 * 1024 ** 2)
        self.assertEqual(parse_size(4096), 4096)

    def test_rejects_garbage(self):
        for bad in ("", "M", "1T", "-1K", "0", "1.5M", True, 0):
            with self.assertRaises(ConfigError, msg=repr(bad)):
                parse_size(bad)


class OptionsTests(unittest.TestCase):
    def test_defaults(self):
        o = Options().validate()
        self.assertFalse(o.keep_name)
        self.assertEqual(o.bundle_count, 2)
        self.assertEqual(o.bundle_size, 1024 * 1024)
        self.assertEqual(o.codec, "xz")
        self.assertGreaterEqual(o.workers, 1)

    def test_invalid_values(self):
        for kwargs in (
            {"bundle_count": 0},
            {"bundle_count": True},
            {"codec": "rar"},
            {"exists": "clobber"},
            {"jobs": 0},
            {"kdf": KdfParams(parallelism=0)},
        ):
            with self.assertRaises(ConfigError, msg=repr(kwargs)):
                Options(**kwargs).validate()

    def test_keep_name_policy(self):
        policy = Options(keep_name=True, bundle_count=5).chunk_policy()
        self.assertEqual(policy.per_bundle, 1)

    def test_merged_ignores_none(self):
        o = Options(bundle_count=3).merged(bundle_count=None, codec="zstd")
        self.assertEqual((o.bundle_count, o.codec), (3, "zstd"))


class ConfigFileTests(unittest.TestCase):
    def _write(self, text: str) -> Path:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        p = Path(tmp.name) / "lz.toml"
        p.write_text(text, encoding="utf-8")
        return p

    def test_full_config(self):
        p = self._write(
            """
[pack]
bundle_count = 4
bundle_size = "2M"
keep_name = true
strict_size = true
codec = "zstd"
verify = false

[load]
exists = "skip"

[runtime]
jobs = 3
fail_fast = true

[kdf]
time_cost = 1
memory_cost_kib = 1024
parallelism = 1
"""
        )
        o = load_config(p)
        self.assertEqual(o.bundle_count, 4)
        self.assertEqual(o.bundle_size, 2 * 1024 * 1024)
        self.assertTrue(o.keep_name and o.strict_size and o.fail_fast)
        self.assertFalse(o.verify)
        self.assertEqual((o.codec, o.exists, o.jobs), ("zstd", "skip", 3))
        self.assertEqual(o.kdf, KdfParams(time_cost=1, memory_cost_kib=1024, parallelism=1))

    def test_errors(self):
        with self.assertRaises(ConfigError):
            load_config(self._write("[pack]\nbundle_count = \n"))
        with self.assertRaises(ConfigError):
            load_config(self._write("[pack]\ncolour = 'red'\n"))
        with self.assertRaises(ConfigError):
            load_config(self._write("[extras]\nx = 1\n"))
        with self.assertRaises(ConfigError):
            load_config(Path(tempfile.gettempdir()) / "no-such-lzpack-config.toml")
        with self.assertRaises(ConfigError):
            options_from_mapping({"pack": {"keep_name": "yes"}})
        with self.assertRaises(ConfigError):
            options_from_mapping({"kdf": {"time_cost": "3"}})


if __name__ == "__main__":
    unittest.main()
