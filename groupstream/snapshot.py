from __future__ import annotations

from typing import Any, List

from .adapters import GroupServiceLike, is_outbound_group, is_selectable, real_tag
from .types import OutboundGroup, OutboundGroupItem

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def build_groups(service: GroupServiceLike) -> List[OutboundGroup]:
    """Project the live engine state into a snapshot of its outbound groups.

    Groups keep the router's enumeration order and items keep each group's
    declared member order. Member tags that no longer resolve are skipped.
    """
    router = service.router
    history_storage = getattr(service, "history", None)

    groups: List[OutboundGroup] = []
    for outbound in router.outbounds():
        if not is_outbound_group(outbound):
            continue
        group = OutboundGroup(
            tag=str(outbound.tag),
            type=str(outbound.type),
            selectable=is_selectable(outbound),
            selected=str(outbound.now() or ""),
        )
        for item_tag in outbound.all():
            item_outbound = router.outbound(item_tag)
            if item_outbound is None:
                continue
            item = OutboundGroupItem(tag=str(item_tag), type=str(item_outbound.type))
            _apply_history(item, item_outbound, history_storage)
            group.items.append(item)
        groups.append(group)
    return groups


def _apply_history(item: OutboundGroupItem, outbound: Any, history_storage: Any) -> None:
    if history_storage is None:
        return
    history = history_storage.load_url_test_history(real_tag(outbound))
    if history is None:
        return
    item.url_test_time = int(history.time.timestamp())
    item.url_test_delay = max(INT32_MIN, min(INT32_MAX, int(history.delay)))
