from __future__ import annotations

from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .shifts import as_aware

DrinkType = Literal["Karak", "Almohib", "Red Tea", "Lemon", "Cold Drink", "Sweets"]
CupType = Literal["Paper Cup (Regular)", "Glass Cup (Small)", "Glass Cup (Large)"]
SugarLevel = Literal["No Sugar", "Light Sugar", "Medium Sugar (Standard)", "Extra Sugar"]
TeaType = Literal["Standard Red Tea", "Habak with mint Tea", "Habak Tea", "Mint Tea"]
ColdDrinkName = Literal["Passion Fruit Mojito", "Blue Mojito", "Hibiscus (Karkadeh)", "Drinking Water"]
SweetsOption = Literal["Biscuit / Other (0.100)", "Castir (0.600)", "Cookies (0.600)"]
PaymentMethod = Literal["Cash", "Machine", "Benefit", "Mixed"]
OrderStatus = Literal["preparing", "ready", "completed"]
ThermosCategory = Literal["karak", "almohib", "otherTeas"]
TimerType = Literal["karak", "redTea", "almohibTea"]
PlateStr = Annotated[str, Field(pattern=r"^\d{3}$")]


# -------------------------
# Cart entries
# -------------------------

class HotDrinkItem(BaseModel):
    drink_type: Literal["Karak", "Almohib", "Red Tea", "Lemon"]
    cup_type: Optional[CupType] = None
    sugar: Optional[SugarLevel] = None
    tea_type: Optional[TeaType] = None
    quantity: int = 1

    @model_validator(mode="after")
    def drop_tea_type(self):
        if self.drink_type != "Red Tea":
            self.tea_type = None
        return self


class ColdDrinkItem(BaseModel):
    drink_type: Literal["Cold Drink"]
    cold_drink_name: Optional[ColdDrinkName] = None
    quantity: int = 1


class SweetsItem(BaseModel):
    drink_type: Literal["Sweets"]
    sweets_option: Optional[SweetsOption] = None
    custom_price: Optional[float] = Field(default=None, ge=0)
    quantity: int = 1


ItemAttributes = Annotated[
    Union[HotDrinkItem, ColdDrinkItem, SweetsItem],
    Field(discriminator="drink_type"),
]


class CartItem(BaseModel):
    kind: Literal["item"] = "item"
    item: ItemAttributes


class CartSeparator(BaseModel):
    kind: Literal["separator"] = "separator"


CartEntry = Annotated[Union[CartItem, CartSeparator], Field(discriminator="kind")]


class CartSubmit(BaseModel):
    entries: List[CartEntry] = Field(min_length=1)
    license_plate: Optional[PlateStr] = None
    notes: Optional[str] = None

    @field_validator("notes", mode="before")
    @classmethod
    def blank_notes(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PriceQuote(BaseModel):
    unit_price: float
    total_price: float
    total_cost: float


# -------------------------
# Orders
# -------------------------

class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: Literal["item", "separator"]
    batch_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    drink_type: Optional[str] = None
    cup_type: Optional[str] = None
    sugar: Optional[str] = None
    tea_type: Optional[str] = None
    cold_drink_name: Optional[str] = None
    sweets_option: Optional[str] = None
    custom_price: Optional[float] = None
    quantity: Optional[int] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    total_cost: Optional[float] = None
    license_plate: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = None
    auto: bool = False

    @field_validator("created_at", "completed_at")
    @classmethod
    def utc_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_aware(value) if value is not None else None


class OrderUpdate(BaseModel):
    license_plate: Optional[PlateStr] = None
    notes: Optional[str] = None


class CompleteGroupRequest(BaseModel):
    order_ids: List[str] = Field(min_length=1)
    payment_method: PaymentMethod


class LoyaltyVisit(BaseModel):
    plate: str
    count: int
    milestone: Optional[str] = None


class CompletionRead(BaseModel):
    orders: List[OrderRead]
    group_total: float
    loyalty: List[LoyaltyVisit]


class GroupRead(BaseModel):
    id: Optional[str]
    license_plate: Optional[str] = None
    notes: Optional[str] = None
    total: float
    items: List[OrderRead]


class BoardResponse(BaseModel):
    preparing: List[GroupRead]
    ready: List[GroupRead]
    preparing_count: int
    ready_count: int


class ArchiveRequest(BaseModel):
    days: int = Field(default=30, ge=0)


class ArchiveResult(BaseModel):
    archived: int


# -------------------------
# Reports
# -------------------------

class SummaryResponse(BaseModel):
    total: float
    total_cost: float
    count: int
    by_pay: Dict[str, float]
    shift_start: Optional[datetime] = None
    opening_cash: float = 0
    in_drawer: float = 0
    logs: List[OrderRead] = Field(default_factory=list)


class PaymentBreakdown(BaseModel):
    count: int
    amount: float


class DayReport(BaseModel):
    date_key: str
    count: int
    total: float
    by_pay: Dict[str, PaymentBreakdown]


class RushBin(BaseModel):
    label: str
    count: int


class RushResponse(BaseModel):
    reset_at: Optional[datetime] = None
    peak: int
    bins: List[RushBin]


class ConsumablesReport(BaseModel):
    small_glasses: int
    big_glasses: int
    cup_lids: int
    sugar_sachets: int
    seven_up_cans: int
    milk_cans: int


class ProfitResponse(BaseModel):
    revenue: float
    cogs: float
    operational_expenses: float
    net_profit: float


# -------------------------
# Ledger
# -------------------------

class ThermosRead(BaseModel):
    category: ThermosCategory
    current_level_ml: float
    max_capacity_ml: float
    refills: int
    last_reheated_at: Optional[datetime] = None
    percent: float
    stale: bool


class ThermosAdjust(BaseModel):
    delta_ml: float


class InventoryItem(BaseModel):
    key: str
    quantity: float
    low: bool = False


class RestockRequest(BaseModel):
    item: str
    quantity: float = Field(gt=0)
    cost: Optional[float] = Field(default=None, gt=0)
    category: str = "Stock"
    update_unit_cost: bool = False


class LoyaltyRead(BaseModel):
    plate: str
    count: int
    last_visit_shift: Optional[str] = None
    note: Optional[str] = None


# -------------------------
# Back office
# -------------------------

class CostUpdate(BaseModel):
    cost: float = Field(ge=0)


class ExpenseCreate(BaseModel):
    category: str
    name_en: str
    name_ar: Optional[str] = None
    cost: float = Field(gt=0)
    quantity: Optional[float] = Field(default=None, gt=0)
    type: Literal["operational", "inventory"] = "operational"
    notes: Optional[str] = None
    update_unit_cost: bool = False


class ExpenseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    name_en: str
    name_ar: Optional[str] = None
    cost: float
    quantity: Optional[float] = None
    type: str
    notes: Optional[str] = None
    timestamp: datetime


class WasteCreate(BaseModel):
    item: str
    qty: float = Field(gt=0)
    note: Optional[str] = "Manual Waste Log"


class WasteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item: str
    qty: float
    cost: float
    note: Optional[str] = None
    timestamp: datetime


class BreakevenRead(BaseModel):
    target: float
    revenue: float
    remaining: float


class BreakevenUpdate(BaseModel):
    target: float = Field(ge=0)


class ShiftStart(BaseModel):
    opening_cash: float = Field(default=0, ge=0)


class ShiftRead(BaseModel):
    start_at: Optional[datetime] = None
    opening_cash: float = 0


class ShiftImportResult(BaseModel):
    plates: int
    carry_over: float
    target: float


class TimerStart(BaseModel):
    minutes: int


class TimerRead(BaseModel):
    type: TimerType
    name: str
    end_time: Optional[datetime] = None
    duration: int = 0
    remaining_seconds: int = 0


class AlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    message: str
    created_at: datetime


class MenuOption(BaseModel):
    drink_type: str
    prices: Dict[str, float]


class OptionsResponse(BaseModel):
    drinks: List[MenuOption]
    cup_types: List[str]
    sugar_levels: List[str]
    red_tea_types: List[str]
    sweets_options: List[str]
    payment_methods: List[str]
    restock_items: List[str]
