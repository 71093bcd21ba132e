"""Back-office state around the order flow.

Unit costs, expenses, waste, breakeven target, shift start and hand-over,
ingredient brew timers and the rush-chart reset. Orders themselves are
handled in ``crud``; this module only reads them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, unquote

from sqlmodel import Session, select

from . import aggregates, crud, ledger, store
from .config import get_settings
from .errors import InvalidInput
from .menu_data import DEFAULT_UNIT_COSTS, INGREDIENT_TIMERS, THERMOS_CATEGORIES, safe_id
from .models import Expense, Order, WasteLog
from .pricing import money
from .schemas import ExpenseCreate, RestockRequest, WasteCreate
from .shifts import from_epoch_ms, logical_day_key, to_epoch_ms

logger = logging.getLogger(__name__)

COSTS_PREFIX = "settings/costs"
BREAKEVEN_TARGET_KEY = "stats/breakeven/target"
SHIFT_START_KEY = "stats/shift/startAt"
OPENING_CASH_KEY = "stats/shift/openingCash"
RUSH_RESET_KEY = "stats/rush/resetAt"
TIMERS_PREFIX = "stats/ingredientTimers"

# target used when a carry-over arrives before any target was ever set
IMPORT_BASE_TARGET = 25


# -------------------------
# Unit costs
# -------------------------

def unit_costs(session: Session) -> Dict[str, float]:
    costs = dict(DEFAULT_UNIT_COSTS)
    for key, value in store.children(session, COSTS_PREFIX).items():
        if isinstance(value, (int, float)):
            costs[unquote(key)] = float(value)
    return costs


def cost_path(item: str) -> str:
    # catalog names like "Biscuit / Other (0.100)" carry slashes
    if not item.strip():
        raise InvalidInput(f"Invalid cost item: {item!r}")
    return f"{COSTS_PREFIX}/{quote(item, safe='')}"


def set_unit_cost(session: Session, item: str, cost: float) -> float:
    path = cost_path(item)
    value = round(cost, 3)
    store.write(session, path, value)
    return value


# -------------------------
# Expenses and waste
# -------------------------

def list_expenses(session: Session, day: Optional[str] = None) -> List[Expense]:
    expenses = list(session.exec(select(Expense).order_by(Expense.timestamp.desc(), Expense.id.desc())))
    if day is not None:
        expenses = [e for e in expenses if logical_day_key(e.timestamp) == day]
    return expenses


def log_expense(session: Session, payload: ExpenseCreate, now: Optional[datetime] = None) -> Expense:
    """Record money going out.

    With a quantity, a non-``Daily`` purchase also restocks the inventory
    ledger and may replace the item's unit cost with ``cost / quantity``.
    """
    qty = payload.quantity or 0
    if payload.update_unit_cost and qty > 0:
        cost_path(payload.name_en)

    expense = Expense(
        category=payload.category,
        name_en=payload.name_en,
        name_ar=payload.name_ar,
        cost=payload.cost,
        quantity=payload.quantity,
        type=payload.type,
        notes=payload.notes,
        timestamp=now or store.server_now(),
    )
    session.add(expense)
    session.commit()
    session.refresh(expense)

    if payload.update_unit_cost and qty > 0:
        set_unit_cost(session, payload.name_en, payload.cost / qty)
    if qty > 0 and payload.category != "Daily":
        ledger.adjust_inventory(session, safe_id(payload.name_en), qty)
    return expense


def delete_expense(session: Session, expense_id: int) -> bool:
    expense = session.get(Expense, expense_id)
    if expense is None:
        return False
    session.delete(expense)
    session.commit()
    return True


def restock(session: Session, payload: RestockRequest, now: Optional[datetime] = None) -> float:
    """Add stock for a catalog item; a purchase cost is logged as an inventory expense."""
    key = safe_id(payload.item)
    if payload.cost and payload.update_unit_cost:
        cost_path(payload.item)
    level = ledger.adjust_inventory(session, key, payload.quantity)
    if payload.cost:
        session.add(
            Expense(
                category=payload.category,
                name_en=payload.item,
                cost=payload.cost,
                quantity=payload.quantity,
                type="inventory",
                timestamp=now or store.server_now(),
            )
        )
        session.commit()
        if payload.update_unit_cost:
            set_unit_cost(session, payload.item, payload.cost / payload.quantity)
    logger.info("Restocked %s by %s (now %s)", key, payload.quantity, level)
    return level


def operational_expenses_for_day(session: Session, day: str) -> float:
    return money(sum(e.cost for e in list_expenses(session, day) if e.type != "inventory"))


def log_waste(session: Session, payload: WasteCreate, now: Optional[datetime] = None) -> WasteLog:
    unit = unit_costs(session).get(payload.item) or 0
    entry = WasteLog(
        item=payload.item,
        qty=payload.qty,
        cost=money(unit * payload.qty),
        note=payload.note,
        timestamp=now or store.server_now(),
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def list_waste(session: Session) -> List[WasteLog]:
    return list(session.exec(select(WasteLog).order_by(WasteLog.timestamp.desc(), WasteLog.id.desc())))


def profit_for_day(session: Session, orders: List[Order], day: str) -> dict:
    day_orders = aggregates.orders_for_day(orders, day)
    revenue = money(sum(o.total_price or 0 for o in day_orders))
    cogs = money(sum(o.total_cost or 0 for o in day_orders))
    operational = operational_expenses_for_day(session, day)
    return {
        "revenue": revenue,
        "cogs": cogs,
        "operational_expenses": operational,
        "net_profit": aggregates.net_profit(revenue, cogs, operational),
    }


# -------------------------
# Breakeven
# -------------------------

def breakeven_target(session: Session) -> float:
    value = store.get(session, BREAKEVEN_TARGET_KEY)
    if isinstance(value, (int, float)):
        return float(value)
    return float(get_settings().breakeven_default_target)


def set_breakeven_target(session: Session, target: float) -> float:
    store.write(session, BREAKEVEN_TARGET_KEY, money(target))
    return money(target)


def breakeven(session: Session, revenue: float) -> dict:
    target = breakeven_target(session)
    return {"target": target, "revenue": money(revenue), "remaining": max(0.0, money(target - revenue))}


# -------------------------
# Shift
# -------------------------

def shift_start(session: Session) -> Optional[datetime]:
    value = store.get(session, SHIFT_START_KEY)
    if isinstance(value, (int, float)):
        return from_epoch_ms(value)
    return None


def opening_cash(session: Session) -> float:
    value = store.get(session, OPENING_CASH_KEY)
    return float(value) if isinstance(value, (int, float)) else 0.0


def start_shift(session: Session, cash: float, now: Optional[datetime] = None) -> dict:
    """New shift: every thermos back to full, new start time and opening cash.

    The breakeven target is left alone.
    """
    now = now or store.server_now()
    values: Dict[str, Any] = {
        ledger.thermos_path(category): ledger.default_thermos() for category in THERMOS_CATEGORIES
    }
    values[SHIFT_START_KEY] = to_epoch_ms(now)
    values[OPENING_CASH_KEY] = money(cash)
    store.update(session, values)
    logger.info("Shift started with opening cash %.3f", cash)
    return {"start_at": from_epoch_ms(values[SHIFT_START_KEY]), "opening_cash": values[OPENING_CASH_KEY]}


def in_drawer(cash: float, by_pay: Mapping[str, float]) -> float:
    return money(cash + (by_pay.get("Cash") or 0))


def export_shift(session: Session, now: Optional[datetime] = None) -> dict:
    orders = crud.list_orders(session)
    summary = aggregates.financial_summary(orders)
    target = breakeven_target(session)
    revenue = summary["total"]
    completed = aggregates.completed_items(orders)
    return {
        "exportedAt": to_epoch_ms(now or store.server_now()),
        "breakeven": {
            "target": target,
            "revenue": revenue,
            "carryOver": max(0.0, money(target - revenue)),
        },
        "payments": summary["by_pay"],
        "completedOrders": [o.model_dump(mode="json") for o in completed],
        "loyalty": ledger.loyalty_map(session),
        "thermos": store.children(session, ledger.THERMOS_PREFIX),
    }


def import_shift(session: Session, data: Mapping[str, Any]) -> dict:
    """Restore loyalty from an export and roll its carry-over into the target."""
    loyalty = data.get("loyalty") or {}
    if not isinstance(loyalty, dict):
        raise InvalidInput("loyalty must be an object keyed by plate")
    restored = {
        ledger.loyalty_path(plate): record
        for plate, record in loyalty.items()
        if isinstance(record, dict) and "/" not in plate
    }
    if restored:
        store.update(session, restored)

    breakeven_data = data.get("breakeven") or {}
    try:
        carry = float(breakeven_data.get("carryOver") or 0)
    except (TypeError, ValueError, AttributeError):
        carry = 0.0
    if carry > 0:

        def add_carry(cur):
            base = cur if isinstance(cur, (int, float)) else IMPORT_BASE_TARGET
            return money(base + carry)

        store.atomic_update(session, BREAKEVEN_TARGET_KEY, add_carry)
    return {"plates": len(restored), "carry_over": money(max(carry, 0)), "target": breakeven_target(session)}


# -------------------------
# Rush chart
# -------------------------

def rush_reset_at(session: Session) -> Optional[datetime]:
    value = store.get(session, RUSH_RESET_KEY)
    return from_epoch_ms(value) if isinstance(value, (int, float)) else None


def reset_rush(session: Session, now: Optional[datetime] = None) -> datetime:
    now = now or store.server_now()
    store.write(session, RUSH_RESET_KEY, to_epoch_ms(now))
    return from_epoch_ms(to_epoch_ms(now))


# -------------------------
# Ingredient timers
# -------------------------

def _timer_path(timer_type: str) -> str:
    if timer_type not in INGREDIENT_TIMERS:
        raise InvalidInput(f"Unknown timer: {timer_type}")
    return f"{TIMERS_PREFIX}/{timer_type}"


def _timer_view(timer_type: str, value: Any, now: datetime) -> dict:
    value = value if isinstance(value, dict) else {}
    end_ms = value.get("endTime")
    end_time = from_epoch_ms(end_ms) if isinstance(end_ms, (int, float)) else None
    remaining = max(0, int((end_time - now).total_seconds())) if end_time else 0
    return {
        "type": timer_type,
        "name": value.get("name") or INGREDIENT_TIMERS[timer_type],
        "end_time": end_time,
        "duration": int(value.get("duration") or 0),
        "remaining_seconds": remaining,
    }


def list_timers(session: Session, now: Optional[datetime] = None) -> List[dict]:
    now = now or store.server_now()
    stored = store.children(session, TIMERS_PREFIX)
    return [_timer_view(t, stored.get(t), now) for t in INGREDIENT_TIMERS]


def start_timer(session: Session, timer_type: str, minutes: int, now: Optional[datetime] = None) -> dict:
    path = _timer_path(timer_type)
    if not 1 <= minutes <= 100:
        raise InvalidInput("Timer minutes must be between 1 and 100")
    now = now or store.server_now()
    value = {
        "name": INGREDIENT_TIMERS[timer_type],
        "endTime": to_epoch_ms(now + timedelta(minutes=minutes)),
        "duration": minutes,
    }
    store.write(session, path, value)
    return _timer_view(timer_type, value, now)


def stop_timer(session: Session, timer_type: str, now: Optional[datetime] = None) -> dict:
    path = _timer_path(timer_type)
    value = {"name": INGREDIENT_TIMERS[timer_type], "endTime": None, "duration": 0}
    store.write(session, path, value)
    return _timer_view(timer_type, value, now or store.server_now())


# -------------------------
# Day report text
# -------------------------

def _money_text(value: float) -> str:
    return f"{value or 0:.3f} BHD"


def _item_details(order: Order) -> str:
    if order.drink_type == "Cold Drink":
        return order.cold_drink_name or ""
    if order.drink_type == "Sweets":
        price = f" @ {_money_text(order.custom_price)}" if order.custom_price is not None else ""
        return f"{order.sweets_option or ''}{price}"
    parts = [order.cup_type, order.sugar]
    if order.drink_type == "Red Tea":
        parts.insert(0, order.tea_type)
    return " | ".join(p for p in parts if p)


def day_report_text(session: Session, orders: List[Order], day: str) -> str:
    """Plain-text day sheet that staff paste into the owner's chat."""
    day_orders = aggregates.orders_for_day(orders, day)
    day_orders.sort(key=lambda o: aggregates.event_time(o))
    loyalty = ledger.loyalty_map(session)
    cash = opening_cash(session)

    date = datetime.strptime(day, "%Y-%m-%d")
    lines = [f"=== {date:%A, %B} {date.day}, {date.year} ===", ""]
    for index, order in enumerate(day_orders, start=1):
        lines.append(f"#{index}")
        lines.append(f"{order.drink_type} x {order.quantity}")
        details = _item_details(order)
        if details:
            lines.append(details)
        lines.append(f"Plate: {order.license_plate or '-'} | Notes: {order.notes or '-'}")
        record = loyalty.get(order.license_plate or "")
        if record:
            lines.append(f"Stars: {'*' * min(int(record.get('count') or 0), 5)}")
        lines.append(f"Price: {_money_text(order.total_price)}")
        lines.append(f"Payment: {order.payment_method or '-'}")
        lines.append("")

    report = aggregates.day_report(orders, day)
    by_pay = {method: entry["amount"] for method, entry in report["by_pay"].items()}
    lines.append(f"TOTAL: {_money_text(report['total'])}")
    lines.append(
        " | ".join(f"{method}: {_money_text(by_pay.get(method, 0))}" for method in ("Benefit", "Cash", "Machine", "Mixed"))
    )
    lines.append("-" * 20)
    lines.append(f"Opening Cash: {_money_text(cash)}")
    lines.append(f"In Drawer: {_money_text(in_drawer(cash, by_pay))}")
    return "\n".join(lines) + "\n"


def today_key(now: Optional[datetime] = None) -> str:
    return logical_day_key(now or store.server_now())
