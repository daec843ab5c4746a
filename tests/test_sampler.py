"""
Unit tests for the fixed-interval capture sampler.
"""

import threading
import time
import unittest

from qr_transfer.core.errors import PersistFailure
from qr_transfer.core.sampler import CaptureSampler

from fakes import FakeClock


class TestSamplerTick(unittest.TestCase):

    def setUp(self):
        self.received = []
        self.ticks = 0

    def on_tick(self):
        self.ticks += 1

    def make(self, capture, **kwargs):
        return CaptureSampler(capture, lambda img: img, self.received.append, 0.01,
                              on_tick=self.on_tick, **kwargs)

    def test_tick_hands_decoded_strings_over(self):
        sampler = self.make(lambda: ['a', 'b', 'a'])
        self.assertEqual(sampler.tick(), 2)
        self.assertEqual(self.received, [{'a', 'b'}])
        self.assertEqual(self.ticks, 1)

    def test_capture_error_does_not_stop_sampling(self):
        calls = iter([RuntimeError('screen locked'), ['x']])

        def capture():
            item = next(calls)
            if isinstance(item, Exception):
                raise item
            return item

        sampler = self.make(capture)
        self.assertEqual(sampler.tick(), 0)
        self.assertEqual(sampler.tick(), 1)
        self.assertEqual(self.received, [set(), {'x'}])
        self.assertEqual(self.ticks, 2)

    def test_no_image(self):
        sampler = self.make(lambda: None)
        self.assertEqual(sampler.tick(), 0)
        self.assertEqual(self.received, [set()])

    def test_escalated_errors_propagate(self):
        def failing_tick():
            raise PersistFailure('out', OSError('disk full'))

        sampler = CaptureSampler(lambda: [], lambda img: img, self.received.append, 0.01,
                                 on_tick=failing_tick)
        with self.assertRaises(PersistFailure):
            sampler.tick()

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            CaptureSampler(lambda: [], lambda img: img, self.received.append, 0)


class TestSamplerLoop(unittest.TestCase):

    def test_ticks_never_overlap(self):
        active = []
        max_active = []
        lock = threading.Lock()
        stop = threading.Event()

        def slow_capture():
            with lock:
                active.append(1)
                max_active.append(len(active))
            time.sleep(0.02)  # longer than the interval
            with lock:
                active.pop()
            return []

        def on_tick():
            if len(max_active) >= 5:
                stop.set()

        sampler = CaptureSampler(slow_capture, lambda img: img, lambda s: None, 0.005, on_tick=on_tick)
        worker = threading.Thread(target=sampler.run, args=(stop,))
        worker.start()
        worker.join(5)
        self.assertFalse(worker.is_alive())
        self.assertEqual(max(max_active), 1)
        self.assertEqual(sampler.ticks, 5)

    def test_overrun_skips_slots(self):
        clock = FakeClock()
        stop = threading.Event()

        def capture():
            clock.advance(0.035)
            return []

        def on_tick():
            if sampler.ticks >= 3:
                stop.set()

        sampler = CaptureSampler(capture, lambda img: img, lambda s: None, 0.01,
                                 on_tick=on_tick, clock=clock)
        sampler.run(stop)
        self.assertEqual(sampler.ticks, 3)
        self.assertGreater(sampler.skipped, 0)

    def test_start_and_stop(self):
        seen = threading.Event()
        sampler = CaptureSampler(lambda: ['x'], lambda img: img, lambda s: seen.set(), 0.01)
        sampler.start()
        self.assertTrue(seen.wait(2))
        with self.assertRaises(RuntimeError):
            sampler.start()
        sampler.stop(timeout=2)
        self.assertTrue(sampler.stopped)


if __name__ == '__main__':
    unittest.main()
