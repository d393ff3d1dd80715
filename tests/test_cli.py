from __future__ import annotations

import io
import unittest
from contextlib import redirect_stderr, redirect_stdout

from groupstream.__main__ import _build_parser, _PrintHandler
from groupstream.types import GroupIterator, OutboundGroup, OutboundGroupItem


class TestCommandLine(unittest.TestCase):
    def test_serve_defaults(self) -> None:
        args = _build_parser().parse_args(["serve"])
        self.assertEqual(args.command, "serve")
        self.assertEqual(args.host, "127.0.0.1")
        self.assertEqual(args.port, 8964)
        self.assertIsNone(args.config)
        self.assertIsNone(args.log_path)

    def test_watch_over_unix_socket(self) -> None:
        args = _build_parser().parse_args(["watch", "--unix-path", "/tmp/command.sock", "--port", "9000"])
        self.assertEqual(args.command, "watch")
        self.assertEqual(args.unix_path, "/tmp/command.sock")
        self.assertEqual(args.port, 9000)

    def test_subcommand_is_required(self) -> None:
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            _build_parser().parse_args([])


class TestPrintHandler(unittest.TestCase):
    def test_snapshot_is_printed_per_group_and_item(self) -> None:
        groups = [
            OutboundGroup(
                tag="proxy",
                type="selector",
                selectable=True,
                selected="jp",
                items=[
                    OutboundGroupItem(tag="us", type="vmess"),
                    OutboundGroupItem(tag="jp", type="trojan", url_test_time=1700000000, url_test_delay=42),
                ],
            ),
            OutboundGroup(tag="auto", type="urltest"),
        ]
        out = io.StringIO()
        with redirect_stdout(out):
            _PrintHandler().write_groups(GroupIterator(groups))

        self.assertEqual(
            out.getvalue().splitlines(),
            [
                "--- snapshot",
                "* proxy [selector] -> jp",
                "    us [vmess] untested",
                "    jp [trojan] 42ms",
                "  auto [urltest] -> -",
            ],
        )

    def test_disconnect_reason_is_kept_and_printed(self) -> None:
        handler = _PrintHandler()
        out = io.StringIO()
        with redirect_stdout(out):
            handler.disconnected("connection closed by peer")

        self.assertEqual(handler.reason, "connection closed by peer")
        self.assertEqual(out.getvalue(), "disconnected: connection closed by peer\n")
