"""Views derived from an order snapshot.

Everything here is a pure function of the orders passed in (plus the
shared day-key rule); callers recompute from a fresh snapshot on every
change instead of keeping running totals.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .models import Order
from .pricing import money
from .menu_data import MILK_CANS_PER_KARAK
from .shifts import RUSH_BIN_COUNT, as_aware, logical_day_key, rush_bin_index

LOG_LIMIT = 200


def event_time(order: Order) -> Optional[datetime]:
    """Timestamp used for money and day bucketing: completion, else creation."""
    ts = order.completed_at or order.created_at
    return as_aware(ts) if ts else None


def completed_items(orders: Iterable[Order]) -> List[Order]:
    return [o for o in orders if o.type == "item" and o.status == "completed"]


def kanban_buckets(orders: Iterable[Order]) -> Dict[str, List[Order]]:
    buckets: Dict[str, List[Order]] = {"preparing": [], "ready": []}
    for order in orders:
        if order.type == "item" and order.status in buckets:
            buckets[order.status].append(order)
    return buckets


def financial_summary(orders: Iterable[Order], shift_start: Optional[datetime] = None) -> dict:
    completed = completed_items(orders)
    if shift_start is not None:
        start = as_aware(shift_start)
        completed = [o for o in completed if event_time(o) and event_time(o) >= start]

    total = 0.0
    cost = 0.0
    by_pay: Dict[str, float] = defaultdict(float)
    for item in completed:
        total += item.total_price or 0
        cost += item.total_cost or 0
        by_pay[item.payment_method or "Unknown"] += item.total_price or 0

    completed.sort(key=lambda o: event_time(o) or datetime.min, reverse=True)
    return {
        "total": money(total),
        "total_cost": money(cost),
        "count": len(completed),
        "by_pay": {method: money(amount) for method, amount in by_pay.items()},
        "logs": completed[:LOG_LIMIT],
    }


def rush_histogram(orders: Iterable[Order], reset_at: Optional[datetime] = None) -> List[int]:
    counts = [0] * RUSH_BIN_COUNT
    since = as_aware(reset_at) if reset_at else None
    for order in orders:
        if order.type != "item" or not order.created_at:
            continue
        created = as_aware(order.created_at)
        if since is not None and created < since:
            continue
        index = rush_bin_index(created)
        if 0 <= index < RUSH_BIN_COUNT:
            counts[index] += 1
    return counts


def consumables(orders: Iterable[Order]) -> Dict[str, int]:
    """Estimated consumables behind a set of sold items.

    Ratios are business-tuned guesses, not measured stock.
    """
    small = big = lids = sugar = seven_up = 0
    milk = 0.0
    for order in orders:
        if order.type != "item":
            continue
        qty = order.quantity or 0
        if order.cup_type == "Glass Cup (Small)":
            small += qty
        elif order.cup_type == "Glass Cup (Large)":
            big += qty
        elif order.cup_type == "Paper Cup (Regular)":
            lids += qty
        if order.drink_type in ("Karak", "Almohib"):
            sugar += qty
        if order.drink_type == "Karak":
            milk += qty * MILK_CANS_PER_KARAK
        if order.drink_type == "Cold Drink":
            name = order.cold_drink_name or ""
            if "Karkadeh" in name:
                sugar += qty
            if "Mojito" in name:
                seven_up += qty
    return {
        "small_glasses": small,
        "big_glasses": big,
        "cup_lids": lids,
        "sugar_sachets": sugar,
        "seven_up_cans": seven_up,
        # rounded to 6 places first so 0.35 * 20 does not ceil to 8
        "milk_cans": math.ceil(round(milk, 6)),
    }


def orders_for_day(orders: Iterable[Order], date_key: str) -> List[Order]:
    result = []
    for order in completed_items(orders):
        ts = event_time(order)
        if ts is not None and logical_day_key(ts) == date_key:
            result.append(order)
    return result


def day_report(orders: Iterable[Order], date_key: str) -> dict:
    day_orders = orders_for_day(orders, date_key)
    by_pay: Dict[str, dict] = {}
    for order in day_orders:
        entry = by_pay.setdefault(order.payment_method or "Unknown", {"count": 0, "amount": 0.0})
        entry["count"] += 1
        entry["amount"] = money(entry["amount"] + (order.total_price or 0))
    return {
        "date_key": date_key,
        "count": len(day_orders),
        "total": money(sum(o.total_price or 0 for o in day_orders)),
        "by_pay": by_pay,
    }


def net_profit(revenue: float, cogs: float, operational_expenses: float) -> float:
    return money(revenue - (cogs or 0) - operational_expenses)
