from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from groupstream.client import CommandClient
from groupstream.commands import DEFAULT_HOST, DEFAULT_PORT
from groupstream.config import build_service, load_engine_config
from groupstream.log import LOG_FORMAT
from groupstream.server import CommandServer
from groupstream.types import GroupIterator


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve or watch live outbound group status.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run a command server over an engine config.")
    serve.add_argument("--config", type=str, default=None, help="Engine JSON config; idle when omitted.")
    serve.add_argument("--host", type=str, default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument("--unix-path", type=str, default=None)
    serve.add_argument("--log-path", type=str, default=None)

    watch = sub.add_parser("watch", help="Print every snapshot pushed by a command server.")
    watch.add_argument("--host", type=str, default=DEFAULT_HOST)
    watch.add_argument("--port", type=int, default=DEFAULT_PORT)
    watch.add_argument("--unix-path", type=str, default=None)
    return parser


class _PrintHandler:
    def __init__(self) -> None:
        self.reason: Optional[str] = None

    def write_groups(self, groups: GroupIterator) -> None:
        print("--- snapshot")
        for group in groups:
            marker = "*" if group.selectable else " "
            print(f"{marker} {group.tag} [{group.type}] -> {group.selected or '-'}")
            for item in group.get_items():
                delay = f"{item.url_test_delay}ms" if item.url_test_time else "untested"
                print(f"    {item.tag} [{item.type}] {delay}")

    def disconnected(self, message: str) -> None:
        self.reason = message
        print(f"disconnected: {message}")


async def _serve(args: argparse.Namespace) -> None:
    service = build_service(load_engine_config(args.config)) if args.config else None
    server = CommandServer(
        host=args.host,
        port=args.port,
        unix_path=args.unix_path,
        service=service,
        log_path=args.log_path,
    )
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


async def _watch(args: argparse.Namespace) -> None:
    client = CommandClient(_PrintHandler(), host=args.host, port=args.port, unix_path=args.unix_path)
    await client.connect()
    try:
        await client.wait_closed()
    finally:
        await client.disconnect()


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    runner = _serve if args.command == "serve" else _watch
    try:
        asyncio.run(runner(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
