from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return uuid4().hex


class OrderFields(SQLModel):
    id: str = Field(default_factory=new_order_id, primary_key=True)
    type: str = Field(default="item", index=True)
    batch_id: Optional[str] = Field(default=None, index=True)
    status: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=_utcnow, index=True)
    completed_at: Optional[datetime] = Field(default=None, index=True)
    drink_type: Optional[str] = None
    cup_type: Optional[str] = None
    sugar: Optional[str] = None
    tea_type: Optional[str] = None
    cold_drink_name: Optional[str] = None
    sweets_option: Optional[str] = None
    custom_price: Optional[float] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    total_cost: Optional[float] = None
    license_plate: Optional[str] = Field(default=None, index=True)
    notes: Optional[str] = None
    payment_method: Optional[str] = None
    auto: bool = False


class Order(OrderFields, table=True):
    """Live order record: one line item or one separator marker."""


class ArchivedOrder(OrderFields, table=True):
    __tablename__ = "order_archive"


class StoreEntry(SQLModel, table=True):
    """One keyed value of the shared store (thermos, inventory, loyalty, settings).

    ``version`` is bumped on every write; ``store.atomic_update`` only writes
    when the version it read is still current.
    """

    __tablename__ = "store_entry"

    path: str = Field(primary_key=True)
    value: Any = Field(default=None, sa_column=Column(JSON))
    version: int = Field(default=1)
    updated_at: datetime = Field(default_factory=_utcnow)


class Expense(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    category: str
    name_en: str
    name_ar: Optional[str] = None
    cost: float = Field(gt=0)
    quantity: Optional[float] = None
    type: str = Field(default="operational", index=True)
    notes: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow, index=True)


class WasteLog(SQLModel, table=True):
    __tablename__ = "waste_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    item: str
    qty: float
    cost: float = 0
    note: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow, index=True)


class Alert(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    type: str
    message: str
    created_at: datetime = Field(default_factory=_utcnow, index=True)


__all__ = ["Order", "ArchivedOrder", "StoreEntry", "Expense", "WasteLog", "Alert", "new_order_id"]
