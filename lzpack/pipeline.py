from __future__ import annotations

import errno
import os
import sys
import tempfile
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from .chunker import Bundle, partition
from .cipher import open_blob, seal
from .constants import PART_PREFIX, PART_SUFFIX, SUFFIX, new_artifact_name
from .container import BundleMember, bundle, unbundle
from .entries import EntryKind, PathEntry, classify, list_directory
from .envelope import read_header
from .errors import (
    AuthenticationError,
    BatchError,
    DecodeError,
    LzpackError,
    OutputConflictError,
    io_error,
)
from .kdf import KeyRing, Password
from .options import Options
from .scheduler import Outcome, Scheduler, Unit


@dataclass
class UnitResult:
    written: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    kept: bool = False  # load: artifact left in place because a member was skipped


@dataclass
class Report:
    action: str
    outcomes: List[Outcome] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def failures(self) -> List[Outcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def succeeded(self) -> List[Outcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def written(self) -> List[str]:
        return [p for o in self.succeeded for p in o.value.written]

    @property
    def removed(self) -> List[str]:
        return [p for o in self.succeeded for p in o.value.removed]

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        failures = self.failures
        if failures:
            raise BatchError(f"{self.action}: {len(failures)} of {len(self.outcomes)} unit(s) failed", failures)


def _say(message: str, *, quiet: bool) -> None:
    if not quiet:
        print(message, flush=True)


def _warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr, flush=True)


def _raiser(exc: BaseException):
    def _fail():
        raise exc

    return _fail


# link(2) is refused by some filesystems; those fall back to an O_EXCL placeholder
_NO_HARDLINK_ERRNOS = {errno.EPERM, errno.EACCES, errno.EXDEV, errno.EMLINK, errno.ENOTSUP, errno.EOPNOTSUPP}


def _claim(tmp: str, path: str) -> None:
    """Move ``tmp`` to ``path`` only if nothing exists there; FileExistsError otherwise."""
    try:
        os.link(tmp, path)
    except FileExistsError:
        raise
    except OSError as exc:
        if exc.errno not in _NO_HARDLINK_ERRNOS:
            raise
        os.close(os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600))
        try:
            os.replace(tmp, path)
        except OSError:
            _unlink_quietly(path)
            raise
    else:
        os.unlink(tmp)


def _write_atomic(path: str, data: bytes, *, exists: str = "fail") -> str:
    """Write ``data`` to ``path`` through a fsync'ed temp file in the same directory.

    ``exists`` decides what happens when ``path`` is taken at commit time:
    ``fail`` raises OutputConflictError, ``rename`` moves on to the next free
    ``name (n).ext`` and ``overwrite`` replaces it. Claiming a new name is a
    single link (or O_EXCL create), so concurrent writers never clobber each
    other. Returns the path actually written.
    """
    parent = os.path.dirname(path) or "."
    try:
        fd, tmp = tempfile.mkstemp(prefix=PART_PREFIX, suffix=PART_SUFFIX, dir=parent)
    except OSError as exc:
        raise io_error(exc, "cannot create temp file", parent) from exc
    dst = path
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if exists == "overwrite":
            os.replace(tmp, dst)
            return dst
        while True:
            try:
                _claim(tmp, dst)
                return dst
            except FileExistsError:
                if exists != "rename":
                    raise OutputConflictError(errno.EEXIST, "refusing to overwrite existing file", dst) from None
                dst = _next_nonconflicting_path(path)
    except OutputConflictError:
        _unlink_quietly(tmp)
        raise
    except OSError as exc:
        _unlink_quietly(tmp)
        raise io_error(exc, "cannot write", dst) from exc


def _unlink_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        _warn(f"failed to remove {path}: {exc}")


def _next_nonconflicting_path(path: str) -> str:
    if not os.path.lexists(path):
        return path
    base_dir = os.path.dirname(path)
    name = os.path.basename(path)
    root, ext = os.path.splitext(name)
    i = 1
    while True:
        candidate = os.path.join(base_dir, f"{root} ({i}){ext}")
        if not os.path.lexists(candidate):
            return candidate
        i += 1


def _restore_metadata(path: str, member: BundleMember) -> None:
    """Best-effort chmod/utime that never raises."""
    if member.mode is not None:
        try:
            os.chmod(path, member.mode)
        except OSError as exc:
            _warn(f"failed to set mode on {path}: {exc}")
    if member.mtime_ns is not None:
        try:
            os.utime(path, ns=(member.mtime_ns, member.mtime_ns))
        except OSError as exc:
            _warn(f"failed to set timestamps on {path}: {exc}")


def is_artifact_name(name: str) -> bool:
    return name.endswith(SUFFIX)


def _distinct_roots(paths: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split ``paths`` into roots to walk and roots already reached through another one.

    A root is covered when it resolves to the same place as an earlier root,
    or lies inside any other root. Order of the kept roots is preserved.
    """
    given = [os.fspath(p) for p in paths]
    real = [os.path.realpath(p) for p in given]
    keep: List[str] = []
    covered: List[str] = []
    for i, p in enumerate(given):
        dup = real[i] in real[:i]
        inside = any(j != i and real[i] != r and _is_within(real[i], r) for j, r in enumerate(real))
        (covered if dup or inside else keep).append(p)
    return keep, covered


def _is_within(path: str, ancestor: str) -> bool:
    try:
        return os.path.commonpath([path, ancestor]) == ancestor
    except ValueError:  # different drives
        return False


class Pipeline:
    """Pack or load every file under a set of root paths.

    Walking happens on the calling thread; each directory is listed in full
    before any of its bundles is handed to the scheduler, and only bundle (or
    artifact) units run on the worker pool.
    """

    def __init__(
        self,
        password: Password,
        options: Optional[Options] = None,
        *,
        scheduler: Optional[Scheduler] = None,
    ):
        self.options = (options or Options()).validate()
        self.keys = KeyRing(password, self.options.kdf)
        self.scheduler = scheduler

    # -------- shared driver --------

    def _run(self, action: str, units: Iterable[Unit], report: Report) -> Report:
        t0 = time.time()
        if self.scheduler is not None:
            report.outcomes = self.scheduler.run(units)
        else:
            with Scheduler(self.options.workers, fail_fast=self.options.fail_fast) as sched:
                report.outcomes = sched.run(units)
        report.elapsed = time.time() - t0
        for o in report.failures:
            if o.cancelled:
                continue
            msg = str(o.error)
            if isinstance(o.error, AuthenticationError):
                msg = f"{msg} (check the password)"
            print(f"Error: {action} {o.label}: {msg}", file=sys.stderr, flush=True)
        return report

    def _walk(self, paths: Iterable[str], report: Report, on_dir, on_file) -> Iterator[Unit]:
        roots, covered = _distinct_roots(paths)
        for root in covered:
            _say(f"  skipping: {root} (already covered by another path)", quiet=not self.options.verbose)
            report.skipped.append(root)
        for root in roots:
            try:
                entry = classify(root)
            except FileNotFoundError:
                _say(f"   nothing at: {root}", quiet=not self.options.verbose)
                report.skipped.append(root)
                continue
            except OSError as exc:
                yield root, _raiser(io_error(exc, "cannot stat", root))
                continue
            if entry.kind == EntryKind.FILE:
                yield from on_file(entry, report)
                continue
            if entry.kind != EntryKind.DIRECTORY:
                _say(f"  skipping: {root} (not a regular file)", quiet=not self.options.verbose)
                report.skipped.append(root)
                continue
            stack = [root]
            while stack:
                current = stack.pop()
                try:
                    children = list_directory(current)
                except LzpackError as exc:
                    yield current, _raiser(exc)
                    continue
                subdirs = yield from on_dir(current, children, report)
                stack.extend(reversed([d.path for d in subdirs]))

    # -------- pack --------

    def pack(self, paths: Iterable[str]) -> Report:
        report = Report("pack")
        return self._run("packing", self._walk(paths, report, self._pack_dir_units, self._pack_file_units), report)

    def _pack_file_units(self, entry: PathEntry, report: Report) -> Iterator[Unit]:
        yield entry.path, partial(self._pack_bundle, [entry])

    def _pack_dir_units(self, path: str, children: List[PathEntry], report: Report):
        bundles, subdirs = partition(children, self.options.chunk_policy())
        for e in children:
            if e.kind == EntryKind.OTHER:
                _say(f"  skipping: {e.path} (not a regular file)", quiet=not self.options.verbose)
                report.skipped.append(e.path)
        for b in bundles:
            label = b[0].path if len(b) == 1 else f"{b[0].path} (+{len(b) - 1})"
            yield label, partial(self._pack_bundle, b)
        return subdirs

    def _output_path(self, b: Bundle) -> str:
        parent = b[0].parent
        if self.options.keep_name:
            return os.path.join(parent, b[0].name + SUFFIX)
        while True:
            candidate = os.path.join(parent, new_artifact_name())
            if not os.path.lexists(candidate):
                return candidate

    def _pack_bundle(self, b: Bundle) -> UnitResult:
        container = bundle(b, self.options.codec_id)
        salt, key = self.keys.pack_key()
        blob = seal(key, container, salt=salt, kdf=self.keys.params)
        out = self._output_path(b)
        _write_atomic(out, blob)
        if self.options.verify:
            try:
                self._verify_artifact(out, key, container)
            except LzpackError:
                _unlink_quietly(out)
                raise
        result = UnitResult(written=[out])
        for e in b:
            try:
                os.remove(e.path)
            except OSError as exc:
                raise io_error(exc, f"artifact {os.path.basename(out)} written but cannot delete source", e.path) from exc
            result.removed.append(e.path)
        names = ", ".join(e.name for e in b)
        _say(f"   packing: {names} -> {out}", quiet=self.options.quiet)
        return result

    def _verify_artifact(self, path: str, key: bytes, container: bytes) -> None:
        try:
            with open(path, "rb") as fh:
                blob = fh.read()
        except OSError as exc:
            raise io_error(exc, "cannot read back artifact", path) from exc
        if open_blob(key, blob) != container:
            raise DecodeError(f"verification failed: {path} does not match its sources")
        unbundle(container)

    # -------- load --------

    def load(self, paths: Iterable[str]) -> Report:
        report = Report("load")
        return self._run("loading", self._walk(paths, report, self._load_dir_units, self._load_file_units), report)

    def _load_file_units(self, entry: PathEntry, report: Report) -> Iterator[Unit]:
        if is_artifact_name(entry.name):
            yield entry.path, partial(self._load_artifact, entry)
        else:
            _say(f"  skipping: {entry.path} (no {SUFFIX} suffix)", quiet=not self.options.verbose)
            report.skipped.append(entry.path)

    def _load_dir_units(self, path: str, children: List[PathEntry], report: Report):
        subdirs: List[PathEntry] = []
        for e in children:
            if e.kind == EntryKind.DIRECTORY:
                subdirs.append(e)
            elif e.kind == EntryKind.FILE:
                yield from self._load_file_units(e, report)
            else:
                _say(f"  skipping: {e.path} (not a regular file)", quiet=not self.options.verbose)
                report.skipped.append(e.path)
        return subdirs

    def _restore_member(self, parent: str, m: BundleMember) -> Optional[str]:
        """Write one member next to its artifact; None when skipped because the name is taken."""
        dst = os.path.join(parent, m.name)
        policy = self.options.exists
        try:
            return _write_atomic(dst, m.data, exists="fail" if policy == "skip" else policy)
        except OutputConflictError:
            if policy != "skip":
                raise
            return None

    def _load_artifact(self, entry: PathEntry) -> UnitResult:
        try:
            with open(entry.path, "rb") as fh:
                blob = fh.read()
        except OSError as exc:
            raise io_error(exc, "cannot read", entry.path) from exc
        header = read_header(blob)
        key = self.keys.key_for(header.salt, header.kdf)
        members = unbundle(open_blob(key, blob))

        result = UnitResult()
        parent = entry.parent
        try:
            for m in members:
                dst = self._restore_member(parent, m)
                if dst is None:
                    _say(f"  skipping: {os.path.join(parent, m.name)} (exists)", quiet=self.options.quiet)
                    result.kept = True
                    continue
                result.written.append(dst)
                _restore_metadata(dst, m)
        except LzpackError:
            for p in result.written:
                _unlink_quietly(p)
            raise

        names = ", ".join(os.path.basename(p) for p in result.written) or "nothing"
        if result.kept:
            _say(f"   loading: {entry.path} -> {names}; kept artifact (members skipped)", quiet=self.options.quiet)
            return result
        try:
            os.remove(entry.path)
        except OSError as exc:
            raise io_error(exc, "files restored but cannot delete artifact", entry.path) from exc
        result.removed.append(entry.path)
        _say(f"   loading: {entry.path} -> {names}", quiet=self.options.quiet)
        return result


def _as_password(password: Union[str, Password]) -> Password:
    return password if isinstance(password, Password) else Password(password)


def pack(
    paths: Iterable[str],
    password: Union[str, Password],
    options: Optional[Options] = None,
    *,
    scheduler: Optional[Scheduler] = None,
) -> Report:
    """Pack every file under ``paths`` into encrypted artifacts.

    Raises:
        ConfigError: Invalid options; raised before anything on disk changes.
        BatchError: One or more bundles failed. Bundles that succeeded stay packed.
    """
    report = Pipeline(_as_password(password), options, scheduler=scheduler).pack(paths)
    report.raise_for_failures()
    return report


def load(
    paths: Iterable[str],
    password: Union[str, Password],
    options: Optional[Options] = None,
    *,
    scheduler: Optional[Scheduler] = None,
) -> Report:
    """Restore every ``.lzpk`` artifact under ``paths``; other files are left alone.

    Raises:
        ConfigError: Invalid options; raised before anything on disk changes.
        BatchError: One or more artifacts failed (``.first`` is e.g. an
            AuthenticationError for a wrong password). Failed artifacts stay on disk.
    """
    report = Pipeline(_as_password(password), options, scheduler=scheduler).load(paths)
    report.raise_for_failures()
    return report
