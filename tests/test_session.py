import asyncio
import time
import unittest

from debridcache.core.background import BackgroundTasks
from debridcache.core.session import SearchSession
from debridcache.services.api.gate import CallGate


class TestSearchSession(unittest.IsolatedAsyncioTestCase):
    async def test_begin_cancels_previous_token(self):
        session = SearchSession()
        first = session.begin()
        task = first.track(asyncio.sleep(10))

        second = session.begin()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertTrue(first.cancelled)
        self.assertFalse(second.cancelled)
        self.assertIs(session.current, second)

    async def test_finish_releases_only_current(self):
        session = SearchSession()
        first = session.begin()
        second = session.begin()
        session.finish(first)
        self.assertIs(session.current, second)
        session.finish(second)
        self.assertIsNone(session.current)

    async def test_track_after_cancel(self):
        session = SearchSession()
        token = session.begin()
        session.cancel_previous()
        task = token.track(asyncio.sleep(10))
        with self.assertRaises(asyncio.CancelledError):
            await task


class TestBackgroundTasks(unittest.IsolatedAsyncioTestCase):
    async def test_spawn_does_not_block(self):
        done = []

        async def work():
            done.append(True)

        background = BackgroundTasks()
        background.spawn(work())
        self.assertEqual(done, [])

        await background.drain()
        self.assertEqual(done, [True])
        self.assertEqual(background.pending, 0)

    async def test_failures_are_contained(self):
        async def broken():
            raise RuntimeError("boom")

        background = BackgroundTasks()
        background.spawn(broken(), name="broken")
        await background.drain()
        self.assertEqual(background.pending, 0)

    async def test_bounded_concurrency(self):
        running = 0
        peak = 0

        async def work():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        background = BackgroundTasks(max_concurrent=2)
        for _ in range(6):
            background.spawn(work())
        await background.drain()
        self.assertEqual(peak, 2)


class TestCallGate(unittest.IsolatedAsyncioTestCase):
    async def test_errors_pass_through(self):
        gate = CallGate(min_interval=0)

        async def failing():
            raise ValueError("bad")

        with self.assertRaises(ValueError):
            await gate.schedule(failing)

    async def test_spacing_between_calls(self):
        gate = CallGate(max_concurrent=4, min_interval=0.05)
        starts = []

        async def call():
            starts.append(time.monotonic())
            return len(starts)

        results = await asyncio.gather(*(gate.schedule(call) for _ in range(3)))
        self.assertEqual(sorted(results), [1, 2, 3])
        self.assertGreaterEqual(starts[2] - starts[0], 0.09)


if __name__ == '__main__':
    unittest.main()
