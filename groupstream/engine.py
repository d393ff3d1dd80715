"""In-memory routing engine used to serve group status without a real router."""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .adapters import URLTestHistory

TYPE_DIRECT = "direct"
TYPE_SELECTOR = "selector"
TYPE_URLTEST = "urltest"


UpdateHook = Callable[[], None]


@dataclass(slots=True)
class Outbound:
    tag: str
    type: str = TYPE_DIRECT


class Selector:
    """Manually selected group."""

    selectable = True

    def __init__(self, tag: str, outbounds: Iterable[str], default: Optional[str] = None) -> None:
        self.tag = tag
        self.type = TYPE_SELECTOR
        self._outbounds: List[str] = [str(item) for item in outbounds]
        if not self._outbounds:
            raise ValueError(f"selector {tag!r} requires at least one outbound.")
        if default is not None and default not in self._outbounds:
            raise ValueError(f"selector {tag!r} default {default!r} is not one of its outbounds.")
        self._selected = default or self._outbounds[0]
        self._update_hook: Optional[UpdateHook] = None

    def set_update_hook(self, hook: Optional[UpdateHook]) -> None:
        self._update_hook = hook

    def now(self) -> str:
        return self._selected

    def all(self) -> List[str]:
        return list(self._outbounds)

    def select(self, tag: str) -> bool:
        if tag not in self._outbounds:
            return False
        changed = tag != self._selected
        self._selected = tag
        hook = self._update_hook
        if changed and hook is not None:
            hook()
        return True


class URLTest:
    """Group that follows the member with the lowest recorded delay."""

    selectable = False

    def __init__(self, tag: str, outbounds: Iterable[str], history: "URLTestHistoryStorage") -> None:
        self.tag = tag
        self.type = TYPE_URLTEST
        self._outbounds: List[str] = [str(item) for item in outbounds]
        if not self._outbounds:
            raise ValueError(f"urltest {tag!r} requires at least one outbound.")
        self._history = history

    def now(self) -> str:
        best_tag = self._outbounds[0]
        best_delay: Optional[int] = None
        for tag in self._outbounds:
            history = self._history.load_url_test_history(tag)
            if history is None:
                continue
            if best_delay is None or history.delay < best_delay:
                best_tag = tag
                best_delay = history.delay
        return best_tag

    def all(self) -> List[str]:
        return list(self._outbounds)


class Router:
    """Ordered outbound registry.

    The update hook fires when an outbound is added or removed, and when a
    registered group reports a change of its own (a manual selection).
    """

    def __init__(self, outbounds: Iterable[object] = ()) -> None:
        self._outbounds: "OrderedDict[str, object]" = OrderedDict()
        self._lock = threading.Lock()
        self._update_hook: Optional[UpdateHook] = None
        for outbound in outbounds:
            self.add(outbound)

    def set_update_hook(self, hook: Optional[UpdateHook]) -> None:
        self._update_hook = hook

    def outbounds(self) -> List[object]:
        with self._lock:
            return list(self._outbounds.values())

    def outbound(self, tag: str) -> Optional[object]:
        with self._lock:
            return self._outbounds.get(tag)

    def add(self, outbound: object) -> None:
        tag = str(getattr(outbound, "tag", "")).strip()
        if not tag:
            raise ValueError("outbound requires a non-empty tag.")
        with self._lock:
            if tag in self._outbounds:
                raise ValueError(f"duplicate outbound tag: {tag!r}")
            self._outbounds[tag] = outbound
        _attach_hook(outbound, self._notify_updated)
        self._notify_updated()

    def remove(self, tag: str) -> bool:
        with self._lock:
            removed = self._outbounds.pop(tag, None)
        if removed is None:
            return False
        _attach_hook(removed, None)
        self._notify_updated()
        return True

    def _notify_updated(self) -> None:
        hook = self._update_hook
        if hook is not None:
            hook()


def _attach_hook(outbound: object, hook: Optional[UpdateHook]) -> None:
    set_update_hook = getattr(outbound, "set_update_hook", None)
    if callable(set_update_hook):
        set_update_hook(hook)


class URLTestHistoryStorage:
    """Latest URL test result per outbound tag.

    The update hook fires on every store or delete; the command server uses it
    to wake its group connections.
    """

    def __init__(self) -> None:
        self._history: Dict[str, URLTestHistory] = {}
        self._lock = threading.Lock()
        self._update_hook: Optional[UpdateHook] = None

    def set_update_hook(self, hook: Optional[UpdateHook]) -> None:
        self._update_hook = hook

    def load_url_test_history(self, tag: str) -> Optional[URLTestHistory]:
        with self._lock:
            return self._history.get(tag)

    def store_url_test_history(self, tag: str, history: URLTestHistory) -> None:
        with self._lock:
            self._history[tag] = history
        self._notify_updated()

    def record(self, tag: str, delay: int, *, at: Optional[datetime] = None) -> URLTestHistory:
        history = URLTestHistory(time=at or datetime.now(timezone.utc), delay=int(delay))
        self.store_url_test_history(tag, history)
        return history

    def delete_url_test_history(self, tag: str) -> None:
        with self._lock:
            removed = self._history.pop(tag, None)
        if removed is not None:
            self._notify_updated()

    def _notify_updated(self) -> None:
        hook = self._update_hook
        if hook is not None:
            hook()


@dataclass(slots=True)
class GroupService:
    """A running engine instance a command server can attach."""

    router: Router
    history: URLTestHistoryStorage = field(default_factory=URLTestHistoryStorage)
