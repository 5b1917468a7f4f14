from __future__ import annotations

import errno
from typing import List, Optional


class LzpackError(Exception):
    """Base class for lzpack-specific errors."""


# Filesystem
class PipelineIOError(LzpackError, OSError):
    """Reading, writing, renaming or deleting a file failed."""


class OutputConflictError(PipelineIOError):
    pass


# Container / artifact format
class EncodeError(LzpackError):
    pass


class DecodeError(LzpackError):
    pass


class AuthenticationError(LzpackError):
    """Tag check failed: wrong password, or the artifact was tampered with or corrupted."""


# Options
class ConfigError(LzpackError, ValueError):
    pass


class Cancelled(LzpackError):
    """The unit never ran because an earlier unit failed under fail-fast."""


class BatchError(LzpackError):
    """One or more units of a pack/load run failed.

    ``failures`` holds the failed outcomes in submission order; ``first`` is
    the first error that is not a fail-fast cancellation.
    """

    def __init__(self, message: str, failures: List) -> None:
        super().__init__(message)
        self.failures = list(failures)

    @property
    def errors(self) -> List[BaseException]:
        return [o.error for o in self.failures if o.error is not None]

    @property
    def first(self) -> Optional[BaseException]:
        errs = [e for e in self.errors if not isinstance(e, Cancelled)] or self.errors
        return errs[0] if errs else None


def io_error(exc: OSError, action: str, path: str) -> PipelineIOError:
    """Wrap ``exc`` as a PipelineIOError naming what was attempted on ``path``."""
    return PipelineIOError(exc.errno or errno.EIO, f"{action}: {exc.strerror or exc}", path)
