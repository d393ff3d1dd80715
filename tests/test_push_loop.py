from __future__ import annotations

import asyncio
import unittest
from typing import Any, Dict, List, Optional

from groupstream.codec import EMPTY_FRAME, decode_groups
from groupstream.engine import GroupService, Outbound, Router, Selector
from groupstream.errors import ConnectionClosedError
from groupstream.notifier import CoalescingNotifier
from groupstream.server import ConnectionLiveness, push_groups


def _service() -> GroupService:
    return GroupService(
        router=Router(
            [
                Outbound("us", "vmess"),
                Outbound("jp", "trojan"),
                Selector("proxy", ["us", "jp"]),
            ]
        )
    )


class _FrameSink:
    def __init__(self) -> None:
        self.frames: "asyncio.Queue[bytes]" = asyncio.Queue()

    async def send(self, frame: bytes) -> None:
        await self.frames.put(frame)

    async def next_frame(self, timeout: float = 1.0) -> bytes:
        return await asyncio.wait_for(self.frames.get(), timeout=timeout)


class TestPushLoop(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.sink = _FrameSink()
        self.liveness = ConnectionLiveness()
        self.notifier = CoalescingNotifier()
        self.holder: Dict[str, Optional[GroupService]] = {"service": None}
        self.loop_task: Optional[asyncio.Task[Any]] = None

    async def asyncTearDown(self) -> None:
        if self.loop_task is not None and not self.loop_task.done():
            self.loop_task.cancel()
            await asyncio.gather(self.loop_task, return_exceptions=True)

    def _start(self) -> asyncio.Task[Any]:
        self.loop_task = asyncio.create_task(
            push_groups(self.sink.send, self.liveness, self.notifier, lambda: self.holder["service"])
        )
        return self.loop_task

    async def test_idle_pushes_empty_frame(self) -> None:
        self._start()
        self.assertEqual(await self.sink.next_frame(), EMPTY_FRAME)

    async def test_idle_to_active_next_push_has_groups(self) -> None:
        self._start()
        self.assertEqual(await self.sink.next_frame(), EMPTY_FRAME)

        self.holder["service"] = _service()
        self.notifier.post()
        groups = await decode_groups(await self.sink.next_frame())
        self.assertEqual([group.tag for group in groups], ["proxy"])
        self.assertEqual([item.tag for item in groups[0].items], ["us", "jp"])

    async def test_burst_of_notifications_triggers_one_push(self) -> None:
        self.holder["service"] = _service()
        self._start()
        await self.sink.next_frame()

        for _ in range(50):
            self.notifier.post()
        await self.sink.next_frame()
        with self.assertRaises(asyncio.TimeoutError):
            await self.sink.next_frame(timeout=0.1)

    async def test_no_push_without_notification(self) -> None:
        self.holder["service"] = _service()
        self._start()
        await self.sink.next_frame()
        with self.assertRaises(asyncio.TimeoutError):
            await self.sink.next_frame(timeout=0.1)

    async def test_liveness_close_ends_loop_with_cause(self) -> None:
        task = self._start()
        await self.sink.next_frame()
        cause = EOFError("peer went away")
        self.liveness.close(cause)
        with self.assertRaises(ConnectionClosedError) as ctx:
            await asyncio.wait_for(task, timeout=1.0)
        self.assertIs(ctx.exception.__cause__, cause)

    async def test_liveness_wins_over_pending_wake(self) -> None:
        task = self._start()
        await self.sink.next_frame()
        self.notifier.post()
        self.liveness.close()
        with self.assertRaises(ConnectionClosedError):
            await asyncio.wait_for(task, timeout=1.0)

    async def test_write_error_propagates(self) -> None:
        sent: List[bytes] = []

        async def failing_send(frame: bytes) -> None:
            sent.append(frame)
            raise ConnectionResetError("broken pipe")

        with self.assertRaises(ConnectionResetError):
            await asyncio.wait_for(
                push_groups(failing_send, self.liveness, self.notifier, lambda: _service()),
                timeout=1.0,
            )
        self.assertEqual(len(sent), 1)

    async def test_pushes_are_sequential(self) -> None:
        in_flight = 0
        max_in_flight = 0
        count = 0
        release = asyncio.Event()

        async def slow_send(frame: bytes) -> None:
            nonlocal in_flight, max_in_flight, count
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            count += 1
            if count == 1:
                await release.wait()
            in_flight -= 1

        self.holder["service"] = _service()
        self.loop_task = asyncio.create_task(
            push_groups(slow_send, self.liveness, self.notifier, lambda: self.holder["service"])
        )
        await asyncio.sleep(0.01)
        for _ in range(5):
            self.notifier.post()
        await asyncio.sleep(0.01)
        self.assertEqual(count, 1)
        release.set()
        await asyncio.sleep(0.05)
        self.assertEqual(count, 2)
        self.assertEqual(max_in_flight, 1)


if __name__ == "__main__":
    unittest.main()
