"""
lzpack — compress and encrypt every file under a path, in place, and back again.

Features:

- Sibling files are grouped into bundles (count policy, optional byte cap).
- Each bundle becomes one artifact: a compressed container (xz by default,
  deflate/zstd available) sealed with XChaCha20-Poly1305 under an Argon2id key.
- Sources are deleted only after their artifact is durably written and,
  by default, verified by reading it back.
- Bundles across a whole tree are processed on a shared thread pool.

Artifacts carry the ``.lzpk`` suffix; loading recognises exactly that suffix and
restores the original files (names, bytes, mode and mtime) next to the artifact.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "codec",
    "container",
    "cipher",
    "kdf",
    "chunker",
    "scheduler",
    "pipeline",
    "options",
]

# Programmatic API: lzpack.pipeline.pack / lzpack.pipeline.load, or the CLI
# functions in lzpack.cli (cmd_compress/cmd_decompress) which take normal parameters.
