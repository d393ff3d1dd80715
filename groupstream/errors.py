from __future__ import annotations


class GroupStreamError(Exception):
    """Base error for group status streaming."""


class FrameDecodeError(GroupStreamError):
    """A snapshot frame was truncated or malformed."""


class FrameEncodeError(GroupStreamError, ValueError):
    """A snapshot cannot be represented in the wire format."""


class ConnectionClosedError(GroupStreamError):
    """The connection liveness ended while a loop was waiting."""


class UnknownCommandError(GroupStreamError):
    def __init__(self, command: int) -> None:
        super().__init__(f"unknown command: {command}")
        self.command = command
