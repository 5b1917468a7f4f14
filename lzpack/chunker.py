from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .constants import DEFAULT_BUNDLE_COUNT, DEFAULT_BUNDLE_SIZE
from .entries import EntryKind, PathEntry


Bundle = List[PathEntry]


@dataclass(frozen=True)
class ChunkPolicy:
    bundle_count: int = DEFAULT_BUNDLE_COUNT
    bundle_size: int = DEFAULT_BUNDLE_SIZE
    keep_name: bool = False
    # bundle_size is advisory unless strict_size is set
    strict_size: bool = False

    @property
    def per_bundle(self) -> int:
        return 1 if self.keep_name else max(1, self.bundle_count)


def partition(entries: Iterable[PathEntry], policy: ChunkPolicy) -> Tuple[List[Bundle], List[PathEntry]]:
    """Split one directory's entries into file bundles and subdirectories.

    Files keep their listing order and are grouped ``policy.per_bundle`` at a
    time. With ``strict_size`` a file that would take the running total of the
    current bundle past ``bundle_size`` starts a new bundle; a file larger than
    the cap on its own still gets a bundle of its own. Entries of any other
    kind are dropped.
    """
    bundles: List[Bundle] = []
    subdirs: List[PathEntry] = []
    current: Bundle = []
    current_bytes = 0
    limit = policy.per_bundle
    for e in entries:
        if e.kind == EntryKind.DIRECTORY:
            subdirs.append(e)
            continue
        if e.kind != EntryKind.FILE:
            continue
        over_cap = policy.strict_size and current and current_bytes + e.size > policy.bundle_size
        if len(current) >= limit or over_cap:
            bundles.append(current)
            current, current_bytes = [], 0
        current.append(e)
        current_bytes += e.size
    if current:
        bundles.append(current)
    return bundles, subdirs
