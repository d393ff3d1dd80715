from __future__ import annotations

import argparse
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from groupstream.commands import DEFAULT_HOST, DEFAULT_PORT
from groupstream.config import build_service, load_engine_config
from groupstream.log import build_logger, close_logger
from groupstream.server import CommandServer
from groupstream.snapshot import build_groups

from .broadcaster import GroupStreamBridge
from .models import GroupsResponse, HealthResponse


def create_app(
    *,
    command_server: Optional[CommandServer] = None,
    manage_command_server: bool = False,
    log_path: Optional[str | Path] = None,
) -> FastAPI:
    resolved_server = command_server or CommandServer()
    bridge = GroupStreamBridge(resolved_server)
    logger = build_logger("groupstream.observability", log_path)

    @asynccontextmanager
    async def _lifespan(_: FastAPI):
        if manage_command_server:
            await resolved_server.start()
        try:
            yield
        finally:
            if manage_command_server:
                await resolved_server.stop()
            if log_path is not None:
                close_logger(logger)

    app = FastAPI(
        title="Outbound Group Status Backend",
        description="Read-only snapshot and live stream of routing engine outbound groups.",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.state.command_server = resolved_server
    app.state.bridge = bridge

    @app.get("/api/groups", response_model=GroupsResponse)
    async def groups() -> GroupsResponse:
        service = resolved_server.service
        if service is None:
            return GroupsResponse.from_groups(None)
        return GroupsResponse.from_groups(build_groups(service))

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            service_attached=resolved_server.service is not None,
            subscribers=bridge.subscriber_count,
        )

    @app.websocket("/ws/groups")
    async def ws_groups(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("GROUP_WS_OPEN client=%s", websocket.client)
        try:
            await bridge.serve(websocket)
        except WebSocketDisconnect:
            return
        finally:
            logger.info("GROUP_WS_CLOSED client=%s", websocket.client)

    return app


def http_log_path(log_path: str | Path) -> Path:
    """Log file for the HTTP app next to the command server log."""
    path = Path(log_path)
    return path.with_name(f"{path.stem}_http{path.suffix}")


def build_standalone_app(
    *,
    config_path: Optional[str] = None,
    command_host: str = DEFAULT_HOST,
    command_port: int = DEFAULT_PORT,
    unix_path: Optional[str] = None,
    log_path: Optional[str] = None,
) -> FastAPI:
    service = build_service(load_engine_config(config_path)) if config_path else None
    command_server = CommandServer(
        host=command_host,
        port=command_port,
        unix_path=unix_path,
        service=service,
        log_path=log_path,
    )
    return create_app(
        command_server=command_server,
        manage_command_server=True,
        log_path=http_log_path(log_path) if log_path else None,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the outbound group status backend.")
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8010)
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--command-host", type=str, default=DEFAULT_HOST)
    parser.add_argument("--command-port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--unix-path", type=str, default=None)
    parser.add_argument("--log-path", type=str, default=None)
    parser.add_argument("--log-level", type=str, default="info")
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    app = build_standalone_app(
        config_path=args.config,
        command_host=args.command_host,
        command_port=args.command_port,
        unix_path=args.unix_path,
        log_path=args.log_path,
    )
    import uvicorn

    uvicorn.run(
        app,
        host=args.host,
        port=max(1, int(args.port)),
        log_level=str(args.log_level),
    )


if __name__ == "__main__":
    main()
