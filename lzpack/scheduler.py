from __future__ import annotations

import concurrent.futures as _fut
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .errors import BatchError, Cancelled


@dataclass
class Outcome:
    label: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, Cancelled)


Unit = Tuple[str, Callable[[], Any]]


class Scheduler:
    """Fixed-size worker pool for independent units of work.

    Units are submitted as the caller's iterable produces them, so a caller
    may keep walking a tree while earlier units already run. ``run`` returns
    only after every submitted unit has finished.

    With ``fail_fast`` the first failure sets a cancellation flag: queued
    units are cancelled, units about to start are skipped, and no further
    units are taken from the iterable. Units already running finish normally.
    """

    def __init__(self, jobs: Optional[int] = None, *, fail_fast: bool = False):
        self.jobs = max(1, int(jobs or os.cpu_count() or 1))
        self.fail_fast = fail_fast
        self._executor: Optional[_fut.ThreadPoolExecutor] = None
        self._cancel = threading.Event()

    def __enter__(self) -> "Scheduler":
        self._ensure_executor()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close(cancel_pending=exc_type is not None)

    def _ensure_executor(self) -> _fut.ThreadPoolExecutor:
        if self._executor is None:
            self._executor = _fut.ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="lzpack")
        return self._executor

    def close(self, *, cancel_pending: bool = False) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=cancel_pending)
            self._executor = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _guard(self, fn: Callable[[], Any]) -> Any:
        if self._cancel.is_set():
            raise Cancelled("skipped after an earlier failure")
        return fn()

    def run(self, units: Iterable[Unit]) -> List[Outcome]:
        """Run every unit on the pool and return one Outcome per unit, in submission order."""
        ex = self._ensure_executor()
        self._cancel.clear()
        submitted: List[Tuple[str, _fut.Future]] = []
        lock = threading.Lock()

        def _on_done(f: _fut.Future) -> None:
            if not self.fail_fast or f.cancelled() or f.exception() is None:
                return
            self._cancel.set()
            with lock:
                pending = [p for _, p in submitted]
            for p in pending:
                p.cancel()

        for label, fn in units:
            if self._cancel.is_set():
                break
            fut = ex.submit(self._guard, fn)
            with lock:
                submitted.append((label, fut))
            fut.add_done_callback(_on_done)

        _fut.wait([f for _, f in submitted])
        outcomes: List[Outcome] = []
        for label, f in submitted:
            if f.cancelled():
                outcomes.append(Outcome(label, error=Cancelled("cancelled after an earlier failure")))
                continue
            err = f.exception()
            outcomes.append(Outcome(label, value=None if err else f.result(), error=err))
        return outcomes

    def map(self, fn: Callable[[Any], Any], items: Iterable[Any]) -> List[Any]:
        """Apply ``fn`` to every item in parallel; results in input order.

        Raises:
            BatchError: When any call failed. Every call has finished by then.
        """
        items = list(items)
        outcomes = self.run((repr(it), (lambda it=it: fn(it))) for it in items)
        failures = [o for o in outcomes if not o.ok]
        if failures:
            raise BatchError(f"{len(failures)} of {len(outcomes)} unit(s) failed", failures)
        return [o.value for o in outcomes]
