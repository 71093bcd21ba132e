"""Thermos, inventory and loyalty counters.

Each counter is one keyed store value shared by every device at the stall,
so every mutation here goes through ``store.atomic_update``. Nothing in this
module exposes a plain read-then-write.

Persisted shapes::

    stats/thermos/{karak|almohib|otherTeas}
        {"currentLevel_ml": 2400, "maxCapacity_ml": 3000, "refills": 1, "lastReheatedAt": 1718000000000}
    stats/inventory/{key}      signed float, may go negative
    loyalty/{plate}            {"count": 3, "lastVisitShift": "2024-06-10"}
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlmodel import Session

from . import store
from .config import get_settings
from .menu_data import (
    CUP_SIZES_ML,
    PAPER_CUP_DRINKS,
    PAPER_CUPS_KEY,
    SYRUP_BOTTLE_PER_CUP,
    SYRUP_DRINKS,
    SYRUPS_ITEM,
    THERMOS_BY_DRINK,
    THERMOS_CATEGORIES,
    restock_items,
    safe_id,
)
from .shifts import from_epoch_ms, to_epoch_ms

logger = logging.getLogger(__name__)

THERMOS_PREFIX = "stats/thermos"
INVENTORY_PREFIX = "stats/inventory"
LOYALTY_PREFIX = "loyalty"


# -------------------------
# Thermos
# -------------------------

def thermos_path(category: str) -> str:
    if category not in THERMOS_CATEGORIES:
        raise KeyError(category)
    return f"{THERMOS_PREFIX}/{category}"


def default_thermos(refills: int = 0) -> Dict[str, Any]:
    capacity = get_settings().thermos_capacity_ml
    return {"currentLevel_ml": capacity, "maxCapacity_ml": capacity, "refills": refills}


def _is_current_schema(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("currentLevel_ml"), (int, float))


def coerce_thermos(value: Any, category: str = "") -> Dict[str, Any]:
    """Current-schema thermos state for whatever is stored at the path.

    The old cup-count schema (``remaining`` cups) is not converted: it is
    replaced by a full default keeping only the refill counter.
    """
    if _is_current_schema(value):
        state = dict(value)
        state.setdefault("maxCapacity_ml", get_settings().thermos_capacity_ml)
        state.setdefault("refills", 0)
        return state
    if isinstance(value, dict) and isinstance(value.get("remaining"), (int, float)):
        logger.warning("Thermos %s uses the cup-count schema, migration skipped: reset to full", category)
        return default_thermos(refills=int(value.get("refills") or 0))
    if value is not None:
        logger.warning("Unrecognised thermos record for %s, migration skipped: reset to full", category)
    return default_thermos()


def _clamp(level: float, capacity: float) -> float:
    return max(0, min(capacity, level))


def ensure_thermos(session: Session) -> Dict[str, Dict[str, Any]]:
    """Initialise or migrate every thermos record; returns the current states."""
    states = {}
    for category in THERMOS_CATEGORIES:

        def migrate(cur, category=category):
            if _is_current_schema(cur):
                return None
            return coerce_thermos(cur, category)

        states[category] = store.atomic_update(session, thermos_path(category), migrate)
    return states


def adjust_level(session: Session, category: str, delta_ml: float) -> Dict[str, Any]:
    def apply(cur):
        state = coerce_thermos(cur, category)
        state["currentLevel_ml"] = _clamp(state["currentLevel_ml"] + delta_ml, state["maxCapacity_ml"])
        return state

    return store.atomic_update(session, thermos_path(category), apply)


def log_refill_and_reheat(session: Session, category: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    stamp = to_epoch_ms(now or store.server_now())

    def apply(cur):
        state = coerce_thermos(cur, category)
        state["refills"] = int(state.get("refills") or 0) + 1
        state["lastReheatedAt"] = stamp
        return state

    return store.atomic_update(session, thermos_path(category), apply)


def log_reheat_only(session: Session, category: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    stamp = to_epoch_ms(now or store.server_now())

    def apply(cur):
        state = coerce_thermos(cur, category)
        state["lastReheatedAt"] = stamp
        return state

    return store.atomic_update(session, thermos_path(category), apply)


def reset_refill_counters(session: Session) -> None:
    for category in THERMOS_CATEGORIES:

        def apply(cur, category=category):
            state = coerce_thermos(cur, category)
            state["refills"] = 0
            return state

        store.atomic_update(session, thermos_path(category), apply)


def decrement_by_consumption(session: Session, ml_used: Mapping[str, float]) -> None:
    for category, amount in ml_used.items():
        if amount <= 0:
            continue

        def apply(cur, category=category, amount=amount):
            state = coerce_thermos(cur, category)
            state["currentLevel_ml"] = _clamp(state["currentLevel_ml"] - amount, state["maxCapacity_ml"])
            return state

        store.atomic_update(session, thermos_path(category), apply)


def is_stale(state: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    last = state.get("lastReheatedAt")
    if not isinstance(last, (int, float)):
        return False
    now = now or store.server_now()
    limit = timedelta(minutes=get_settings().thermos_stale_minutes)
    return now - from_epoch_ms(last) > limit


def consumption_for_items(items: Iterable[Any]) -> Tuple[Dict[str, float], int, float]:
    """Thermos ml per category, paper cups and syrup bottles used by a batch of items."""
    ml_used: Dict[str, float] = defaultdict(float)
    cups = 0
    syrups = 0.0
    for item in items:
        qty = item.quantity or 0
        category = THERMOS_BY_DRINK.get(item.drink_type)
        if category and item.cup_type:
            ml_used[category] += CUP_SIZES_ML.get(item.cup_type, 0) * qty
        if item.drink_type in PAPER_CUP_DRINKS:
            cups += qty
        if item.drink_type == "Cold Drink" and item.cold_drink_name in SYRUP_DRINKS:
            syrups += SYRUP_BOTTLE_PER_CUP * qty
    return dict(ml_used), cups, syrups


# -------------------------
# Inventory
# -------------------------

def inventory_path(key: str) -> str:
    return f"{INVENTORY_PREFIX}/{key}"


def adjust_inventory(session: Session, key: str, delta: float, *, floor: Optional[float] = None) -> float:
    def apply(cur):
        base = cur if isinstance(cur, (int, float)) else 0
        value = base + delta
        if floor is not None:
            value = max(floor, value)
        return round(value, 3)

    return store.atomic_update(session, inventory_path(key), apply)


def record_consumption(session: Session, items: Iterable[Any]) -> None:
    """Ledger side of a cart submission: thermos ml, paper cups, syrup bottles."""
    ml_used, cups, syrups = consumption_for_items(list(items))
    decrement_by_consumption(session, ml_used)
    if syrups > 0:
        adjust_inventory(session, safe_id(SYRUPS_ITEM), -syrups, floor=0)
    if cups > 0:
        # deficit is kept, there is no alarm wired to this counter
        adjust_inventory(session, PAPER_CUPS_KEY, -cups)


def inventory_levels(session: Session) -> Dict[str, float]:
    return {
        key: float(value)
        for key, value in store.children(session, INVENTORY_PREFIX).items()
        if isinstance(value, (int, float))
    }


def low_stock_keys(levels: Mapping[str, float]) -> List[str]:
    """Catalog items under the restock threshold. Paper cups are not watched."""
    threshold = get_settings().low_stock_threshold
    return [key for key in map(safe_id, restock_items()) if levels.get(key, 0) < threshold]


# -------------------------
# Loyalty
# -------------------------

MILESTONES = {2: "second visit", 3: "third visit"}


def loyalty_path(plate: str) -> str:
    return f"{LOYALTY_PREFIX}/{plate}"


def record_visit(session: Session, plate: str, shift: str) -> int:
    """Count one visit per plate per logical shift; returns the stored count."""

    def apply(cur):
        if not isinstance(cur, dict):
            return {"count": 1, "lastVisitShift": shift}
        if cur.get("lastVisitShift") == shift:
            return None
        return {"count": int(cur.get("count") or 0) + 1, "lastVisitShift": shift}

    store.atomic_update(session, loyalty_path(plate), apply)
    return loyalty_count(session, plate)


def loyalty_count(session: Session, plate: str) -> int:
    record = store.get(session, loyalty_path(plate))
    if isinstance(record, dict):
        return int(record.get("count") or 0)
    return 0


def milestone_for(count: int) -> Optional[str]:
    if count >= 5:
        return "loyal customer"
    return MILESTONES.get(count)


def loyalty_map(session: Session) -> Dict[str, Dict[str, Any]]:
    return {plate: rec for plate, rec in store.children(session, LOYALTY_PREFIX).items() if isinstance(rec, dict)}


def thermos_snapshot(session: Session, now: Optional[datetime] = None) -> Dict[str, Dict[str, Any]]:
    states = ensure_thermos(session)
    now = now or store.server_now()
    result = {}
    for category, state in states.items():
        state = coerce_thermos(state, category)
        capacity = state["maxCapacity_ml"] or 1
        result[category] = {
            **state,
            "percent": round(state["currentLevel_ml"] / capacity * 100, 1),
            "stale": is_stale(state, now),
        }
    return result
