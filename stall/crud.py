from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

from sqlmodel import Session, select

from . import ledger, notifier, store
from .config import get_settings
from .errors import InvalidTransition, OrderNotFound
from .grouping import group_total, sort_key
from .models import ArchivedOrder, Order
from .pricing import price_for_item
from .schemas import CartItem, CartSeparator, ItemAttributes
from .shifts import as_aware, shift_key, to_epoch_ms, week_key

logger = logging.getLogger(__name__)

PLATE_NOTES_PREFIX = "plateNotes"
LAST_AUTO_SEPARATOR_KEY = "stats/lastAutoSeparatorAt"


# -------------------------
# Order store
# -------------------------

def list_orders(session: Session) -> List[Order]:
    orders = list(session.exec(select(Order)))
    orders.sort(key=sort_key)
    return orders


def get_order(session: Session, order_id: str) -> Order:
    order = session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return order


def _batch_members(session: Session, order: Order) -> List[Order]:
    if not order.batch_id:
        return [order]
    statement = select(Order).where(Order.batch_id == order.batch_id)
    return list(session.exec(statement))


# -------------------------
# Lifecycle
# -------------------------

def create_batch(
    session: Session,
    entries: Sequence[CartItem | CartSeparator],
    license_plate: Optional[str] = None,
    notes: Optional[str] = None,
    costs: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None,
) -> List[Order]:
    """Persist one cart as a batch of orders sharing a ``batch_id``.

    Every item is priced before anything is written, so an invalid line
    rejects the whole cart. Ledger and notification side effects run after
    the commit and never undo it.
    """
    now = now or store.server_now()
    batch_id = uuid4().hex

    records: List[Order] = []
    items: List[ItemAttributes] = []
    for position, entry in enumerate(entries):
        # cart order survives the sort on created_at
        created_at = now + timedelta(microseconds=position)
        if isinstance(entry, CartSeparator):
            records.append(
                Order(
                    type="separator",
                    batch_id=batch_id,
                    created_at=created_at,
                    license_plate=license_plate,
                    notes=notes,
                )
            )
            continue
        item = entry.item
        quote = price_for_item(item, costs)
        records.append(
            Order(
                type="item",
                status="preparing",
                batch_id=batch_id,
                created_at=created_at,
                drink_type=item.drink_type,
                cup_type=getattr(item, "cup_type", None),
                sugar=getattr(item, "sugar", None),
                tea_type=getattr(item, "tea_type", None),
                cold_drink_name=getattr(item, "cold_drink_name", None),
                sweets_option=getattr(item, "sweets_option", None),
                custom_price=getattr(item, "custom_price", None),
                quantity=item.quantity,
                unit_price=quote.unit_price,
                total_price=quote.total_price,
                total_cost=quote.total_cost,
                license_plate=license_plate,
                notes=notes,
            )
        )
        items.append(item)

    session.add_all(records)
    session.commit()
    for record in records:
        session.refresh(record)
    logger.info("Batch %s placed: %d items, %d entries", batch_id, len(items), len(records))

    if license_plate and notes:
        try:
            save_plate_note(session, license_plate, notes, now)
        except Exception:
            logger.exception("Could not save weekly note for plate %s", license_plate)
    if items:
        try:
            ledger.record_consumption(session, items)
        except Exception:
            logger.exception("Ledger update failed for batch %s", batch_id)
        try:
            total = group_total(r for r in records if r.type == "item")
            plate = f" (plate {license_plate})" if license_plate else ""
            notifier.publish_alert(session, "placed", f"New order{plate}: {len(items)} items, {total:.3f} BHD")
        except Exception:
            logger.exception("Could not publish alert for batch %s", batch_id)
    return records


def mark_ready(session: Session, order_id: str) -> Order:
    order = get_order(session, order_id)
    if order.type != "item" or order.status != "preparing":
        raise InvalidTransition(f"Order {order_id} is {order.status or order.type}, not preparing")
    order.status = "ready"
    session.add(order)
    session.commit()
    session.refresh(order)
    logger.info("Order %s ready", order_id)
    try:
        label = order.drink_type or "Order"
        plate = f" for plate {order.license_plate}" if order.license_plate else ""
        notifier.publish_alert(session, "ready", f"{label} x{order.quantity} ready{plate}")
    except Exception:
        logger.exception("Could not publish ready alert for %s", order_id)
    return order


def delete_order(session: Session, order_id: str) -> None:
    """Remove a preparing order. Ledger decrements made at submission stay."""
    order = get_order(session, order_id)
    if order.type == "item" and order.status != "preparing":
        raise InvalidTransition(f"Order {order_id} is {order.status}, only preparing orders can be deleted")
    session.delete(order)
    session.commit()
    logger.info("Order %s deleted", order_id)


def complete_group(
    session: Session,
    order_ids: Iterable[str],
    payment_method: str,
    now: Optional[datetime] = None,
) -> dict:
    """Settle a ready group under one payment method.

    All orders are checked before anything changes; one commit then stamps
    them with the same ``completed_at``. Loyalty is counted afterwards, once
    per plate per shift, and a plate that fails does not block the others.
    """
    now = now or store.server_now()
    ids = list(dict.fromkeys(order_ids))
    orders = [get_order(session, order_id) for order_id in ids]
    for order in orders:
        if order.type != "item":
            raise InvalidTransition(f"Order {order.id} is a separator")
        if order.status != "ready":
            raise InvalidTransition(f"Order {order.id} is {order.status}, not ready")

    for order in orders:
        order.status = "completed"
        order.completed_at = now
        order.payment_method = payment_method
        session.add(order)
    session.commit()
    for order in orders:
        session.refresh(order)
    logger.info("Completed %d orders via %s", len(orders), payment_method)

    shift = shift_key(now)
    visits = []
    for plate in dict.fromkeys(o.license_plate for o in orders if o.license_plate):
        try:
            count = ledger.record_visit(session, plate, shift)
        except Exception:
            logger.exception("Loyalty update failed for plate %s", plate)
            continue
        visits.append({"plate": plate, "count": count, "milestone": ledger.milestone_for(count)})

    return {"orders": orders, "group_total": group_total(orders), "loyalty": visits}


def update_plate_notes(
    session: Session,
    order_id: str,
    license_plate: Optional[str],
    notes: Optional[str],
) -> List[Order]:
    """Set plate and notes on every record of the order's batch."""
    order = get_order(session, order_id)
    members = _batch_members(session, order)
    for member in members:
        member.license_plate = license_plate or None
        member.notes = notes or None
        session.add(member)
    session.commit()
    for member in members:
        session.refresh(member)
    return sorted(members, key=sort_key)


# -------------------------
# Plate notes
# -------------------------

def save_plate_note(session: Session, plate: str, note: str, now: Optional[datetime] = None) -> None:
    now = now or store.server_now()
    path = f"{PLATE_NOTES_PREFIX}/{plate}/{week_key(now)}"
    store.write(session, path, {"note": note.strip(), "updatedAt": to_epoch_ms(now)})


def latest_plate_note(session: Session, plate: str) -> Optional[str]:
    weeks = store.children(session, f"{PLATE_NOTES_PREFIX}/{plate}")
    latest, latest_at = None, 0
    for entry in weeks.values():
        if not isinstance(entry, dict) or not entry.get("note") or not entry.get("updatedAt"):
            continue
        if entry["updatedAt"] > latest_at:
            latest, latest_at = entry["note"], entry["updatedAt"]
    return latest


# -------------------------
# Maintenance
# -------------------------

def insert_idle_separator(session: Session, now: Optional[datetime] = None) -> Optional[Order]:
    """Close the current car group after a quiet spell.

    Inserts an ``auto`` separator when the newest item is older than the idle
    window, no separator follows it yet and no auto separator went in within
    the same window.
    """
    now = now or store.server_now()
    window = timedelta(minutes=get_settings().idle_separator_minutes)
    last_item = session.exec(
        select(Order).where(Order.type == "item").order_by(Order.created_at.desc()).limit(1)
    ).first()
    if last_item is None:
        return None
    last_separator = session.exec(
        select(Order).where(Order.type == "separator").order_by(Order.created_at.desc()).limit(1)
    ).first()

    item_at = as_aware(last_item.created_at)
    if now - item_at <= window:
        return None
    if last_separator is not None and as_aware(last_separator.created_at) >= item_at:
        return None
    last_auto = store.get(session, LAST_AUTO_SEPARATOR_KEY)
    if isinstance(last_auto, (int, float)) and to_epoch_ms(now) - last_auto <= window.total_seconds() * 1000:
        return None

    separator = Order(type="separator", batch_id=uuid4().hex, created_at=now, auto=True)
    session.add(separator)
    session.commit()
    session.refresh(separator)
    store.write(session, LAST_AUTO_SEPARATOR_KEY, to_epoch_ms(now))
    logger.info("Idle separator %s inserted", separator.id)
    return separator


def archive_completed(
    session: Session,
    days: Optional[int] = None,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> int:
    """Move completed orders older than ``days`` into ``order_archive``."""
    settings = get_settings()
    days = settings.archive_after_days if days is None else days
    limit = limit or settings.archive_batch_limit
    cutoff = (now or store.server_now()) - timedelta(days=days)
    statement = (
        select(Order)
        .where(Order.status == "completed", Order.completed_at.is_not(None), Order.completed_at <= cutoff)
        .order_by(Order.completed_at)
        .limit(limit)
    )
    moved = 0
    for order in session.exec(statement).all():
        session.add(ArchivedOrder(**order.model_dump()))
        session.delete(order)
        moved += 1
    session.commit()
    if moved:
        logger.info("Archived %d completed orders older than %d days", moved, days)
    return moved


def backfill_completed_at(session: Session) -> int:
    """Give completed orders that predate ``completed_at`` their creation time."""
    statement = select(Order).where(Order.status == "completed", Order.completed_at.is_(None))
    fixed = 0
    for order in session.exec(statement).all():
        order.completed_at = order.created_at
        session.add(order)
        fixed += 1
    session.commit()
    logger.info("Backfilled completed_at on %d orders", fixed)
    return fixed
