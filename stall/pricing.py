"""Line pricing and cost of goods.

``price_for_item`` is the single place a cart line gets its money values.
The result is persisted on the order and never recomputed, so later edits to
prices or unit costs leave history untouched.
"""

from __future__ import annotations

from typing import Mapping, Optional

from .errors import InvalidInput
from .menu_data import (
    COLD_DRINK_PRICES,
    CUP_PRICES,
    DEFAULT_UNIT_COSTS,
    SWEETS_BASE_PRICES,
)
from .schemas import ColdDrinkItem, HotDrinkItem, ItemAttributes, PriceQuote, SweetsItem


def money(value: float) -> float:
    return round(value, 3)


def price_for_item(item: ItemAttributes, costs: Optional[Mapping[str, float]] = None) -> PriceQuote:
    unit_costs = costs if costs is not None else DEFAULT_UNIT_COSTS
    if item.quantity < 1:
        raise InvalidInput("quantity must be a positive integer")

    if isinstance(item, ColdDrinkItem):
        if not item.cold_drink_name:
            raise InvalidInput("Cold drink name required")
        if item.cold_drink_name not in COLD_DRINK_PRICES:
            raise InvalidInput(f"Unknown cold drink: {item.cold_drink_name}")
        unit = COLD_DRINK_PRICES[item.cold_drink_name]
        cost = unit_costs.get(item.cold_drink_name) or 0
    elif isinstance(item, SweetsItem):
        if not item.sweets_option:
            raise InvalidInput("Sweets option required")
        if item.custom_price is not None:
            unit = item.custom_price
        else:
            unit = SWEETS_BASE_PRICES[item.sweets_option]
        # no explicit cost on file: assume half the selling price
        cost = unit_costs.get(item.sweets_option) or unit * 0.5
    elif isinstance(item, HotDrinkItem):
        if not item.cup_type:
            raise InvalidInput("Cup type required")
        unit = CUP_PRICES[item.drink_type][item.cup_type]
        cost = (unit_costs.get(item.cup_type) or 0) + (unit_costs.get(item.drink_type) or 0)
    else:
        raise InvalidInput(f"Unknown drink type: {getattr(item, 'drink_type', None)}")

    return PriceQuote(
        unit_price=money(unit),
        total_price=money(unit * item.quantity),
        total_cost=money(cost * item.quantity),
    )
