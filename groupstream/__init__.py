"""Live outbound group status streaming between a routing engine and its monitors."""

from .client import CommandClient, receive_groups
from .codec import decode_groups, encode_groups, read_groups, write_empty, write_groups
from .engine import GroupService, Outbound, Router, Selector, URLTest, URLTestHistoryStorage
from .errors import (
    ConnectionClosedError,
    FrameDecodeError,
    FrameEncodeError,
    GroupStreamError,
    UnknownCommandError,
)
from .notifier import CoalescingNotifier
from .server import CommandServer, ConnectionLiveness, push_groups
from .snapshot import build_groups
from .types import GroupIterator, ItemIterator, OutboundGroup, OutboundGroupItem

__all__ = [
    "CoalescingNotifier",
    "CommandClient",
    "CommandServer",
    "ConnectionClosedError",
    "ConnectionLiveness",
    "FrameDecodeError",
    "FrameEncodeError",
    "GroupIterator",
    "GroupService",
    "GroupStreamError",
    "ItemIterator",
    "Outbound",
    "OutboundGroup",
    "OutboundGroupItem",
    "Router",
    "Selector",
    "URLTest",
    "URLTestHistoryStorage",
    "UnknownCommandError",
    "build_groups",
    "decode_groups",
    "encode_groups",
    "push_groups",
    "read_groups",
    "receive_groups",
    "write_empty",
    "write_groups",
]
