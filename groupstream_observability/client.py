from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import websockets

from groupstream.client import GroupsHandler, receive_groups
from groupstream.codec import decode_groups
from groupstream.errors import FrameDecodeError
from groupstream.types import GroupIterator


class WebSocketGroupClient:
    """Receives group snapshots from ``/ws/groups``; one binary message per frame."""

    def __init__(self, uri: str, handler: GroupsHandler, *, open_timeout: float = 5.0) -> None:
        self.uri = uri
        self.handler = handler
        self.open_timeout = float(open_timeout)
        self._ws: Optional[Any] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._logger = logging.getLogger("groupstream.observability.client")

    @property
    def connected(self) -> bool:
        return self._task is not None and not self._task.done()

    async def connect(self) -> None:
        if self.connected:
            return
        self._ws = await websockets.connect(self.uri, open_timeout=self.open_timeout)
        self._task = asyncio.create_task(self._run(self._ws), name="group-ws-client")
        self._logger.info("GROUP_WS_CLIENT_CONNECTED uri=%s", self.uri)

    async def _read_frame(self, ws: Any) -> GroupIterator:
        message = await ws.recv()
        if isinstance(message, str):
            raise FrameDecodeError("expected a binary frame, got text")
        return GroupIterator(await decode_groups(message))

    async def _run(self, ws: Any) -> None:
        try:
            await receive_groups(lambda: self._read_frame(ws), self.handler)
        finally:
            await ws.close()
            self._logger.info("GROUP_WS_CLIENT_DISCONNECTED uri=%s", self.uri)

    async def disconnect(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        await self.wait_closed()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
