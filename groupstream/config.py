from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from .engine import (
    TYPE_DIRECT,
    TYPE_SELECTOR,
    GroupService,
    Outbound,
    Router,
    Selector,
    URLTest,
    URLTestHistoryStorage,
)


class OutboundConfig(BaseModel):
    tag: str = Field(min_length=1)
    type: str = TYPE_DIRECT

    class Config:
        extra = "ignore"


class GroupConfig(BaseModel):
    tag: str = Field(min_length=1)
    type: Literal["selector", "urltest"]
    outbounds: List[str] = Field(min_length=1)
    default: Optional[str] = None

    class Config:
        extra = "ignore"


class EngineConfig(BaseModel):
    outbounds: List[OutboundConfig] = Field(default_factory=list)
    groups: List[GroupConfig] = Field(default_factory=list)

    class Config:
        extra = "ignore"


def parse_engine_config(raw: Mapping[str, Any]) -> EngineConfig:
    return EngineConfig.model_validate(dict(raw))


def load_engine_config(path: str | Path) -> EngineConfig:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"engine config {path} must be a JSON object.")
    return parse_engine_config(payload)


def build_service(config: EngineConfig) -> GroupService:
    """Build the in-memory engine described by ``config``.

    Plain outbounds are registered before groups, each in document order.
    """
    history = URLTestHistoryStorage()
    router = Router()
    for outbound in config.outbounds:
        router.add(Outbound(tag=outbound.tag, type=outbound.type))
    for group in config.groups:
        if group.type == TYPE_SELECTOR:
            router.add(Selector(group.tag, group.outbounds, default=group.default))
        else:
            router.add(URLTest(group.tag, group.outbounds, history))
    return GroupService(router=router, history=history)
