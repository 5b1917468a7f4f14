from __future__ import annotations

import threading
import time
import unittest

from lzpack.errors import BatchError, Cancelled
from lzpack.scheduler import Scheduler


class SchedulerTests(unittest.TestCase):
    def test_map_preserves_order(self):
        with Scheduler(4) as s:
            self.assertEqual(s.map(lambda x: x * x, range(20)), [x * x for x in range(20)])

    def test_runs_in_parallel(self):
        barrier = threading.Barrier(3, timeout=5)

        def unit():
            barrier.wait()
            return True

        with Scheduler(3) as s:
            outcomes = s.run((f"u{i}", unit) for i in range(3))
        self.assertTrue(all(o.ok and o.value for o in outcomes))

    def test_collects_every_failure_and_keeps_going(self):
        done = []

        def make(i):
            def unit():
                if i % 3 == 0:
                    raise ValueError(f"boom {i}")
                done.append(i)
                return i

            return unit

        with Scheduler(2) as s:
            outcomes = s.run((f"u{i}", make(i)) for i in range(9))
        failed = [o for o in outcomes if not o.ok]
        self.assertEqual([o.label for o in failed], ["u0", "u3", "u6"])
        self.assertEqual(sorted(done), [1, 2, 4, 5, 7, 8])
        self.assertFalse(any(o.cancelled for o in outcomes))

    def test_map_raises_batch_error_after_all_finish(self):
        finished = []

        def fn(x):
            if x == 0:
                raise KeyError("first")
            time.sleep(0.01)
            finished.append(x)
            return x

        with Scheduler(2) as s:
            with self.assertRaises(BatchError) as ctx:
                s.map(fn, range(5))
        self.assertIsInstance(ctx.exception.first, KeyError)
        self.assertEqual(sorted(finished), [1, 2, 3, 4])

    def test_fail_fast_cancels_queued_work(self):
        started = []
        all_queued = threading.Event()

        def failing():
            # fail only once every other unit sits in the queue behind this one
            all_queued.wait(5)
            raise RuntimeError("stop")

        def later(i):
            def unit():
                started.append(i)
                return i

            return unit

        def units():
            yield "fail", failing
            for i in range(10):
                yield f"later{i}", later(i)
            all_queued.set()

        with Scheduler(1, fail_fast=True) as s:
            outcomes = s.run(units())
        self.assertTrue(s.cancelled)
        self.assertEqual(len(outcomes), 11)
        self.assertEqual(outcomes[0].label, "fail")
        self.assertIsInstance(outcomes[0].error, RuntimeError)
        self.assertEqual(started, [])
        for o in outcomes[1:]:
            self.assertTrue(o.cancelled, o.label)
            self.assertIsInstance(o.error, Cancelled)

    def test_fail_fast_stops_taking_new_units(self):
        offered = []

        def failing():
            raise RuntimeError("stop")

        def units():
            yield "fail", failing
            # let the failure land before offering more work
            time.sleep(0.2)
            for i in range(5):
                offered.append(i)
                yield f"later{i}", (lambda: None)

        with Scheduler(1, fail_fast=True) as s:
            outcomes = s.run(units())
        self.assertEqual([o.label for o in outcomes], ["fail"])
        self.assertEqual(offered, [0])

    def test_unit_started_after_cancellation_is_skipped(self):
        ran = []
        with Scheduler(1, fail_fast=True) as s:
            s._cancel.set()
            with self.assertRaises(Cancelled):
                s._guard(lambda: ran.append(1))
        self.assertEqual(ran, [])

    def test_without_fail_fast_everything_runs(self):
        def failing():
            raise RuntimeError("stop")

        with Scheduler(1) as s:
            outcomes = s.run([("fail", failing)] + [(f"u{i}", (lambda i=i: i)) for i in range(5)])
        self.assertFalse(s.cancelled)
        self.assertEqual([o.value for o in outcomes[1:]], list(range(5)))

    def test_default_jobs(self):
        self.assertGreaterEqual(Scheduler().jobs, 1)


if __name__ == "__main__":
    unittest.main()
