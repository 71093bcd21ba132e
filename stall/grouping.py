"""Car-visit groups derived from the flat order list.

A separator closes the group before it. Groups are recomputed from the full
snapshot every time; nothing about them is stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .models import Order
from .pricing import money
from .shifts import as_aware

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Group:
    items: List[Order] = field(default_factory=list)
    separator_id: Optional[str] = None
    anchor_id: Optional[str] = None

    @property
    def id(self) -> Optional[str]:
        if self.anchor_id:
            return self.anchor_id
        return self.items[0].id if self.items else self.separator_id

    @property
    def license_plate(self) -> Optional[str]:
        return next((item.license_plate for item in self.items if item.license_plate), None)

    @property
    def notes(self) -> Optional[str]:
        return next((item.notes for item in self.items if item.notes), None)


def sort_key(order: Order):
    created = as_aware(order.created_at) if order.created_at else _EPOCH
    return (created, order.id)


def sort_orders(orders: Iterable[Order]) -> List[Order]:
    return sorted(orders, key=sort_key)


def build_groups(orders: Sequence[Order]) -> List[Group]:
    """Split an ordered list on separators. The trailing group is always kept, even empty."""
    groups: List[Group] = []
    current = Group()
    for order in orders:
        if order.type == "separator":
            current.separator_id = order.id
            groups.append(current)
            current = Group()
            continue
        current.items.append(order)
    groups.append(current)
    return groups


def group_total(items: Iterable[Order]) -> float:
    """Sum of persisted line totals; prices are never re-derived here."""
    return money(sum(item.total_price or 0 for item in items))


def visible_groups(orders: Iterable[Order], view: str) -> List[Group]:
    """Groups to show on the ``preparing`` or ``ready`` board column.

    Only items in the view's status with a positive total are kept, and a
    group needs at least one of them. Groups run newest first; preparing
    items newest first, ready items oldest first (pickup order).
    """
    if view not in ("preparing", "ready"):
        raise ValueError(f"unknown view: {view}")
    shown: List[Group] = []
    for group in reversed(build_groups(sort_orders(orders))):
        items = [item for item in group.items if item.status == view and (item.total_price or 0) > 0]
        if not items or group_total(items) <= 0:
            continue
        if view == "preparing":
            items.reverse()
        shown.append(Group(items=items, separator_id=group.separator_id, anchor_id=group.id))
    return shown
