from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol

from .codec import read_groups
from .commands import COMMAND_GROUP, DEFAULT_HOST, DEFAULT_PORT
from .server import close_writer
from .types import GroupIterator

ReadFrame = Callable[[], Awaitable[GroupIterator]]

logger = logging.getLogger("groupstream.client")


class GroupsHandler(Protocol):
    """Consumer callbacks, invoked from the receive task.

    Either method may be a coroutine function.
    """

    def write_groups(self, groups: GroupIterator) -> Any: ...

    def disconnected(self, message: str) -> Any: ...


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def receive_groups(read_frame: ReadFrame, handler: GroupsHandler) -> None:
    """Forward every decoded snapshot to ``handler`` until the first failure.

    A read error or an exception from ``handler.write_groups`` is reported
    through ``handler.disconnected`` exactly once and the loop returns; it
    never reconnects.
    """
    while True:
        try:
            groups = await read_frame()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await _invoke(handler.disconnected, describe_error(exc))
            return
        try:
            await _invoke(handler.write_groups, groups)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("GROUP_CLIENT_HANDLER_ERROR")
            await _invoke(handler.disconnected, describe_error(exc))
            return


class CommandClient:
    """Subscribes to group status on a command server."""

    def __init__(
        self,
        handler: GroupsHandler,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        unix_path: Optional[str | Path] = None,
        close_timeout: float = 5.0,
    ) -> None:
        self.handler = handler
        self.host = host
        self.port = int(port)
        self.unix_path = Path(unix_path) if unix_path is not None else None
        self.close_timeout = max(0.1, float(close_timeout))
        self._writer: Optional[asyncio.StreamWriter] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._logger = logger

    @property
    def connected(self) -> bool:
        return self._task is not None and not self._task.done()

    async def connect(self) -> None:
        if self.connected:
            return
        if self.unix_path is not None:
            reader, writer = await asyncio.open_unix_connection(str(self.unix_path))
        else:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        try:
            writer.write(bytes([COMMAND_GROUP]))
            await writer.drain()
        except BaseException:
            await close_writer(writer)
            raise
        self._writer = writer
        self._task = asyncio.create_task(self._handle_group_conn(reader, writer), name="group-client")
        self._logger.info("GROUP_CLIENT_CONNECTED target=%s", self.unix_path or f"{self.host}:{self.port}")

    async def _handle_group_conn(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            await receive_groups(lambda: read_groups(reader), self.handler)
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.exception("GROUP_CLIENT_HANDLER_ERROR")
            raise
        finally:
            await close_writer(writer)
            self._logger.info("GROUP_CLIENT_DISCONNECTED")

    async def disconnect(self) -> None:
        """Close the connection; the handler sees a single ``disconnected`` call."""
        task = self._task
        writer = self._writer
        if writer is not None:
            writer.close()
        if task is None:
            return
        _, pending = await asyncio.wait({task}, timeout=self.close_timeout)
        if pending:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
