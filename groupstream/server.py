from __future__ import annotations

import asyncio
import contextlib
import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Set, Tuple

from .adapters import GroupServiceLike
from .codec import EMPTY_FRAME, encode_groups
from .commands import COMMAND_GROUP, DEFAULT_HOST, DEFAULT_PORT
from .errors import ConnectionClosedError, UnknownCommandError
from .log import build_logger, close_logger
from .notifier import CoalescingNotifier
from .snapshot import build_groups

Send = Callable[[bytes], Awaitable[None]]
ServiceProvider = Callable[[], Optional[GroupServiceLike]]


class ConnectionLiveness:
    """Cancellation signal tied to the lifetime of one connection."""

    __slots__ = ("_done", "cause")

    def __init__(self) -> None:
        self._done = asyncio.Event()
        self.cause: Optional[BaseException] = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def close(self, cause: Optional[BaseException] = None) -> None:
        if self._done.is_set():
            return
        self.cause = cause
        self._done.set()

    async def wait(self) -> None:
        await self._done.wait()

    def error(self) -> ConnectionClosedError:
        if self.cause is None:
            return ConnectionClosedError("connection closed")
        error = ConnectionClosedError(str(self.cause) or type(self.cause).__name__)
        error.__cause__ = self.cause
        return error


async def keep_alive(reader: asyncio.StreamReader, liveness: ConnectionLiveness) -> None:
    """Drain the peer side of a connection and close liveness when it ends."""
    try:
        while True:
            data = await reader.read(1024)
            if not data:
                liveness.close(EOFError("connection closed by peer"))
                return
    except asyncio.CancelledError:
        liveness.close()
        raise
    except (ConnectionError, OSError) as exc:
        liveness.close(exc)


async def push_groups(
    send: Send,
    liveness: ConnectionLiveness,
    notifier: CoalescingNotifier,
    service_provider: ServiceProvider,
) -> None:
    """Push a full snapshot now and after every change wake.

    Runs until the liveness closes, then raises ``ConnectionClosedError``.
    Errors from ``send`` propagate unchanged.
    """
    closed = asyncio.ensure_future(liveness.wait())
    try:
        while True:
            service = service_provider()
            if service is None:
                frame = EMPTY_FRAME
            else:
                frame = encode_groups(build_groups(service))
            await send(frame)

            wake = asyncio.ensure_future(notifier.wait())
            try:
                await asyncio.wait({closed, wake}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not wake.done():
                    wake.cancel()
                    await asyncio.gather(wake, return_exceptions=True)
            if liveness.done:
                raise liveness.error()
    finally:
        if not closed.done():
            closed.cancel()
            await asyncio.gather(closed, return_exceptions=True)


async def close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(ConnectionError, OSError):
        await writer.wait_closed()


class CommandServer:
    """Local command listener serving live outbound group status."""

    def __init__(
        self,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        unix_path: Optional[str | Path] = None,
        service: Optional[GroupServiceLike] = None,
        log_path: Optional[str | Path] = None,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.unix_path = Path(unix_path) if unix_path is not None else None
        self._service: Optional[GroupServiceLike] = None
        self._subscribers: Set[CoalescingNotifier] = set()
        self._subscribers_lock = threading.Lock()
        self._conn_tasks: Set[asyncio.Task[Any]] = set()
        self._server: Optional[asyncio.AbstractServer] = None
        self._owns_logger = log_path is not None
        self._logger = build_logger("groupstream.server", log_path)
        if service is not None:
            self.set_service(service)

    @property
    def service(self) -> Optional[GroupServiceLike]:
        return self._service

    @service.setter
    def service(self, service: Optional[GroupServiceLike]) -> None:
        self.set_service(service)

    def set_service(self, service: Optional[GroupServiceLike]) -> None:
        previous = self._service
        if previous is not None:
            self._set_update_hooks(previous, None)
        self._service = service
        if service is not None:
            self._set_update_hooks(service, self.notify_url_test_update)
        self._logger.info("SERVICE_%s", "ATTACHED" if service is not None else "DETACHED")
        self.notify_url_test_update()

    def subscribe(self) -> CoalescingNotifier:
        notifier = CoalescingNotifier()
        with self._subscribers_lock:
            self._subscribers.add(notifier)
        return notifier

    def unsubscribe(self, notifier: CoalescingNotifier) -> None:
        with self._subscribers_lock:
            self._subscribers.discard(notifier)

    @property
    def subscriber_count(self) -> int:
        with self._subscribers_lock:
            return len(self._subscribers)

    def notify_url_test_update(self) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for notifier in subscribers:
            notifier.post_threadsafe()

    @property
    def address(self) -> Optional[Tuple[Any, ...] | str]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()

    async def start(self) -> None:
        if self._server is not None:
            return
        if self.unix_path is not None:
            self.unix_path.parent.mkdir(parents=True, exist_ok=True)
            with contextlib.suppress(FileNotFoundError):
                self.unix_path.unlink()
            self._server = await asyncio.start_unix_server(self._on_conn, path=str(self.unix_path))
        else:
            self._server = await asyncio.start_server(self._on_conn, self.host, self.port)
        self._logger.info("COMMAND_SERVER_START address=%s", self.address)

    async def stop(self) -> None:
        server = self._server
        if server is None:
            return
        self._server = None
        server.close()
        tasks = list(self._conn_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await server.wait_closed()
        if self.unix_path is not None:
            with contextlib.suppress(FileNotFoundError):
                self.unix_path.unlink()
        self._logger.info("COMMAND_SERVER_STOP")
        if self._owns_logger:
            close_logger(self._logger)

    async def _on_conn(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._conn_tasks.add(task)
        peer = writer.get_extra_info("peername") or "local"
        try:
            command = (await reader.readexactly(1))[0]
            if command != COMMAND_GROUP:
                raise UnknownCommandError(command)
            self._logger.info("GROUP_CONN_OPEN peer=%s", peer)
            await self.handle_group_conn(reader, writer)
        except ConnectionClosedError as exc:
            self._logger.info("GROUP_CONN_CLOSED peer=%s reason=%s", peer, exc)
        except asyncio.IncompleteReadError:
            self._logger.info("COMMAND_CONN_CLOSED peer=%s reason=no command", peer)
        except (ConnectionError, OSError) as exc:
            self._logger.info("GROUP_CONN_CLOSED peer=%s reason=%r", peer, exc)
        except UnknownCommandError as exc:
            self._logger.warning("COMMAND_REJECTED peer=%s command=%s", peer, exc.command)
        except Exception:
            self._logger.exception("GROUP_CONN_ERROR peer=%s", peer)
        finally:
            if task is not None:
                self._conn_tasks.discard(task)
            await close_writer(writer)

    async def handle_group_conn(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        liveness = ConnectionLiveness()
        notifier = self.subscribe()
        watcher = asyncio.create_task(keep_alive(reader, liveness), name="group-conn-keepalive")

        async def send(frame: bytes) -> None:
            writer.write(frame)
            await writer.drain()

        try:
            await push_groups(send, liveness, notifier, lambda: self._service)
        finally:
            self.unsubscribe(notifier)
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            await close_writer(writer)

    @staticmethod
    def _set_update_hooks(service: GroupServiceLike, hook: Optional[Callable[[], None]]) -> None:
        for source in (getattr(service, "history", None), getattr(service, "router", None)):
            set_update_hook = getattr(source, "set_update_hook", None)
            if callable(set_update_hook):
                set_update_hook(hook)
