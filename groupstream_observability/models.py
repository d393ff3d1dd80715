from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from groupstream.types import OutboundGroup, OutboundGroupItem


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unix_to_iso(value: int) -> Optional[str]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None


class GroupItemResponse(BaseModel):
    tag: str
    type: str
    url_test_time: int = 0
    url_test_delay: int = 0
    tested_at: Optional[str] = None

    class Config:
        extra = "ignore"

    @classmethod
    def from_item(cls, item: OutboundGroupItem) -> "GroupItemResponse":
        return cls(
            tag=item.tag,
            type=item.type,
            url_test_time=item.url_test_time,
            url_test_delay=item.url_test_delay if item.url_test_time else 0,
            tested_at=_unix_to_iso(item.url_test_time),
        )


class GroupResponse(BaseModel):
    tag: str
    type: str
    selectable: bool = False
    selected: str = ""
    items: List[GroupItemResponse] = Field(default_factory=list)

    class Config:
        extra = "ignore"

    @classmethod
    def from_group(cls, group: OutboundGroup) -> "GroupResponse":
        return cls(
            tag=group.tag,
            type=group.type,
            selectable=group.selectable,
            selected=group.selected,
            items=[GroupItemResponse.from_item(item) for item in group.items],
        )


class GroupsResponse(BaseModel):
    available: bool = False
    groups: List[GroupResponse] = Field(default_factory=list)
    timestamp: str = Field(default_factory=utc_now_iso)

    class Config:
        extra = "ignore"

    @classmethod
    def from_groups(cls, groups: Optional[Iterable[OutboundGroup]]) -> "GroupsResponse":
        if groups is None:
            return cls(available=False)
        return cls(available=True, groups=[GroupResponse.from_group(group) for group in groups])


class HealthResponse(BaseModel):
    status: str = "ok"
    service_attached: bool = False
    subscribers: int = 0
    timestamp: str = Field(default_factory=utc_now_iso)
