"""Interfaces the group stream consumes from the routing engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Protocol, Sequence


@dataclass(frozen=True, slots=True)
class URLTestHistory:
    time: datetime
    delay: int


class Outbound(Protocol):
    @property
    def tag(self) -> str: ...

    @property
    def type(self) -> str: ...


class OutboundGroup(Outbound, Protocol):
    def now(self) -> str: ...

    def all(self) -> List[str]: ...


class Router(Protocol):
    def outbounds(self) -> Sequence[Outbound]: ...

    def outbound(self, tag: str) -> Optional[Outbound]: ...


class HistoryStorage(Protocol):
    def load_url_test_history(self, tag: str) -> Optional[URLTestHistory]: ...


class GroupServiceLike(Protocol):
    router: Router
    history: Optional[HistoryStorage]


def is_outbound_group(outbound: Any) -> bool:
    return callable(getattr(outbound, "now", None)) and callable(getattr(outbound, "all", None))


def is_selectable(group: Any) -> bool:
    return bool(getattr(group, "selectable", False))


def real_tag(outbound: Any) -> str:
    """Tag that history is recorded under: a group's active member, else its own tag."""
    if is_outbound_group(outbound):
        return str(outbound.now())
    return str(outbound.tag)
