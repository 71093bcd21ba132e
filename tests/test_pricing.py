import pytest

from stall.errors import InvalidInput
from stall.pricing import price_for_item
from stall.schemas import ColdDrinkItem, HotDrinkItem, SweetsItem


def test_hot_drink_price_comes_from_cup_table():
    quote = price_for_item(HotDrinkItem(drink_type="Karak", cup_type="Paper Cup (Regular)", quantity=2))
    assert quote.unit_price == 0.4
    assert quote.total_price == 0.8
    # paper cup 0.015 + karak 0.030 per cup
    assert quote.total_cost == 0.09


def test_glass_cup_prices():
    small = price_for_item(HotDrinkItem(drink_type="Almohib", cup_type="Glass Cup (Small)"))
    large = price_for_item(HotDrinkItem(drink_type="Karak", cup_type="Glass Cup (Large)"))
    assert small.unit_price == 0.4
    assert large.unit_price == 0.6


def test_cold_drink_cost_from_table():
    quote = price_for_item(ColdDrinkItem(drink_type="Cold Drink", cold_drink_name="Passion Fruit Mojito", quantity=3))
    assert quote.unit_price == 0.8
    assert quote.total_price == 2.4
    assert quote.total_cost == 0.75


def test_sweets_custom_price_overrides_base():
    item = SweetsItem(drink_type="Sweets", sweets_option="Biscuit / Other (0.100)", custom_price=0.25, quantity=2)
    quote = price_for_item(item)
    assert quote.unit_price == 0.25
    assert quote.total_price == 0.5
    assert quote.total_cost == 0.2


def test_sweets_cost_falls_back_to_half_price():
    item = SweetsItem(drink_type="Sweets", sweets_option="Castir (0.600)")
    quote = price_for_item(item, costs={})
    assert quote.unit_price == 0.6
    assert quote.total_cost == 0.3


def test_overridden_costs_are_used():
    item = HotDrinkItem(drink_type="Karak", cup_type="Paper Cup (Regular)")
    quote = price_for_item(item, costs={"Paper Cup (Regular)": 0.02, "Karak": 0.1})
    assert quote.total_cost == 0.12


@pytest.mark.parametrize(
    "item",
    [
        HotDrinkItem(drink_type="Karak"),
        ColdDrinkItem(drink_type="Cold Drink"),
        SweetsItem(drink_type="Sweets"),
        HotDrinkItem(drink_type="Karak", cup_type="Paper Cup (Regular)", quantity=0),
    ],
)
def test_missing_attributes_are_rejected(item):
    with pytest.raises(InvalidInput):
        price_for_item(item)


def test_tea_type_only_kept_for_red_tea():
    assert HotDrinkItem(drink_type="Karak", tea_type="Mint Tea").tea_type is None
    assert HotDrinkItem(drink_type="Red Tea", tea_type="Mint Tea").tea_type == "Mint Tea"
