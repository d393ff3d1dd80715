from __future__ import annotations

import asyncio
from typing import Any

from groupstream.errors import ConnectionClosedError
from groupstream.server import CommandServer, ConnectionLiveness, push_groups

WEBSOCKET_DISCONNECT = "websocket.disconnect"


async def watch_websocket(websocket: Any, liveness: ConnectionLiveness) -> None:
    """Consume inbound websocket messages until the peer disconnects."""
    try:
        while True:
            message = await websocket.receive()
            if message.get("type") == WEBSOCKET_DISCONNECT:
                liveness.close(EOFError(f"websocket closed: code={message.get('code')}"))
                return
    except asyncio.CancelledError:
        liveness.close()
        raise
    except Exception as exc:
        liveness.close(exc)


class GroupStreamBridge:
    """Runs the group push loop over accepted websockets."""

    def __init__(self, command_server: CommandServer) -> None:
        self._command_server = command_server

    @property
    def subscriber_count(self) -> int:
        return self._command_server.subscriber_count

    async def serve(self, websocket: Any) -> None:
        """Push binary snapshot frames until the websocket goes away."""
        liveness = ConnectionLiveness()
        notifier = self._command_server.subscribe()
        watcher = asyncio.create_task(watch_websocket(websocket, liveness), name="group-ws-keepalive")
        try:
            await push_groups(
                websocket.send_bytes,
                liveness,
                notifier,
                lambda: self._command_server.service,
            )
        except ConnectionClosedError:
            return
        finally:
            self._command_server.unsubscribe(notifier)
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
