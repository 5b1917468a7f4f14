from __future__ import annotations

import enum
import os
import stat
from dataclasses import dataclass
from typing import List

from .errors import io_error


class EntryKind(enum.IntEnum):
    FILE = 0
    DIRECTORY = 1
    OTHER = 2  # symlinks, sockets, fifos, devices: never transformed


@dataclass(frozen=True)
class PathEntry:
    path: str
    kind: EntryKind
    size: int = 0

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def parent(self) -> str:
        return os.path.dirname(self.path) or "."


def classify(path: str) -> PathEntry:
    """Describe a single path without following symlinks.

    Raises FileNotFoundError when nothing exists at ``path``.
    """
    st = os.lstat(path)
    return _entry_from_mode(path, st.st_mode, st.st_size)


def _entry_from_mode(path: str, mode: int, size: int) -> PathEntry:
    if stat.S_ISREG(mode):
        return PathEntry(path, EntryKind.FILE, size)
    if stat.S_ISDIR(mode):
        return PathEntry(path, EntryKind.DIRECTORY)
    return PathEntry(path, EntryKind.OTHER)


def list_directory(path: str) -> List[PathEntry]:
    """Snapshot the children of ``path`` in listing order.

    The whole listing is materialised before returning so callers can delete
    or create entries in ``path`` without disturbing the iteration.
    """
    out: List[PathEntry] = []
    try:
        with os.scandir(path) as it:
            for de in it:
                try:
                    st = de.stat(follow_symlinks=False)
                except FileNotFoundError:
                    continue
                out.append(_entry_from_mode(de.path, st.st_mode, st.st_size))
    except OSError as exc:
        raise io_error(exc, "cannot list directory", path) from exc
    return out
