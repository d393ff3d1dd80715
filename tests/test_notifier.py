from __future__ import annotations

import asyncio
import threading
import unittest

from groupstream.notifier import CoalescingNotifier


class TestCoalescingNotifier(unittest.IsolatedAsyncioTestCase):
    async def test_wait_suspends_until_post(self) -> None:
        notifier = CoalescingNotifier()
        waiter = asyncio.create_task(notifier.wait())
        await asyncio.sleep(0.01)
        self.assertFalse(waiter.done())
        notifier.post()
        await asyncio.wait_for(waiter, timeout=1.0)
        self.assertFalse(notifier.pending)

    async def test_many_posts_collapse_into_one_wake(self) -> None:
        notifier = CoalescingNotifier()
        for _ in range(25):
            notifier.post()
        self.assertTrue(notifier.pending)

        await asyncio.wait_for(notifier.wait(), timeout=1.0)
        self.assertFalse(notifier.pending)
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(notifier.wait(), timeout=0.05)

    async def test_post_after_consumption_wakes_again(self) -> None:
        notifier = CoalescingNotifier()
        notifier.post()
        await notifier.wait()
        notifier.post()
        await asyncio.wait_for(notifier.wait(), timeout=1.0)

    async def test_posts_from_other_threads(self) -> None:
        notifier = CoalescingNotifier()
        waiter = asyncio.create_task(notifier.wait())
        await asyncio.sleep(0)
        threads = [threading.Thread(target=notifier.post_threadsafe) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=1.0)
        await asyncio.wait_for(waiter, timeout=1.0)
        await asyncio.sleep(0.01)
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(notifier.wait(), timeout=0.05)

    async def test_post_threadsafe_on_owning_loop_is_immediate(self) -> None:
        notifier = CoalescingNotifier()
        notifier.post_threadsafe()
        self.assertTrue(notifier.pending)


if __name__ == "__main__":
    unittest.main()
