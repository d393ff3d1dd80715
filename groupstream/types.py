from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class OutboundGroupItem:
    """One member outbound inside a group."""

    tag: str
    type: str
    url_test_time: int = 0
    url_test_delay: int = 0

    @property
    def has_history(self) -> bool:
        return self.url_test_time != 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "type": self.type,
            "url_test_time": self.url_test_time,
            "url_test_delay": self.url_test_delay,
        }


@dataclass(slots=True)
class OutboundGroup:
    """A routing-engine outbound group as seen by a status consumer."""

    tag: str
    type: str
    selectable: bool = False
    selected: str = ""
    items: List[OutboundGroupItem] = field(default_factory=list)

    def get_items(self) -> "ItemIterator":
        return ItemIterator(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "type": self.type,
            "selectable": self.selectable,
            "selected": self.selected,
            "items": [item.to_dict() for item in self.items],
        }


class _ForwardIterator(Generic[T]):
    """Single-pass iterator over a fixed sequence.

    Mirrors the ``HasNext``/``Next`` shape consumers bind against, and also
    speaks the Python iterator protocol. Once exhausted it stays exhausted.
    """

    __slots__ = ("_values", "_position")

    def __init__(self, values: Iterable[T]) -> None:
        self._values: List[T] = list(values)
        self._position = 0

    def has_next(self) -> bool:
        return self._position < len(self._values)

    def next(self) -> Optional[T]:
        if not self.has_next():
            return None
        value = self._values[self._position]
        self._position += 1
        return value

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        if not self.has_next():
            raise StopIteration
        value = self._values[self._position]
        self._position += 1
        return value

    def __len__(self) -> int:
        return len(self._values) - self._position


class GroupIterator(_ForwardIterator[OutboundGroup]):
    pass


class ItemIterator(_ForwardIterator[OutboundGroupItem]):
    pass
