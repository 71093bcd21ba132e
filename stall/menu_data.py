"""Fixed menu prices, default unit costs and consumable catalogs.

Prices are in BHD with three decimals. Unit costs are defaults only; staff
overrides live in the store under ``settings/costs`` and are merged over
``DEFAULT_UNIT_COSTS`` at read time.
"""

from __future__ import annotations

import re

HOT_DRINKS = ("Karak", "Almohib", "Red Tea", "Lemon")
DRINK_TYPES = (*HOT_DRINKS, "Cold Drink", "Sweets")
CUP_TYPES = ("Paper Cup (Regular)", "Glass Cup (Small)", "Glass Cup (Large)")
SUGAR_LEVELS = ("No Sugar", "Light Sugar", "Medium Sugar (Standard)", "Extra Sugar")
RED_TEA_TYPES = ("Standard Red Tea", "Habak with mint Tea", "Habak Tea", "Mint Tea")
COLD_DRINKS = ("Passion Fruit Mojito", "Blue Mojito", "Hibiscus (Karkadeh)", "Drinking Water")
SWEETS_OPTIONS = ("Biscuit / Other (0.100)", "Castir (0.600)", "Cookies (0.600)")
PAYMENT_METHODS = ("Cash", "Machine", "Benefit", "Mixed")

CUP_PRICES: dict[str, dict[str, float]] = {
    "Karak": {
        "Paper Cup (Regular)": 0.400,
        "Glass Cup (Small)": 0.500,
        "Glass Cup (Large)": 0.600,
    },
    "Almohib": {
        "Paper Cup (Regular)": 0.300,
        "Glass Cup (Small)": 0.400,
        "Glass Cup (Large)": 0.500,
    },
    "Red Tea": {
        "Paper Cup (Regular)": 0.300,
        "Glass Cup (Small)": 0.400,
        "Glass Cup (Large)": 0.500,
    },
    "Lemon": {
        "Paper Cup (Regular)": 0.300,
        "Glass Cup (Small)": 0.400,
        "Glass Cup (Large)": 0.500,
    },
}

COLD_DRINK_PRICES: dict[str, float] = {
    "Passion Fruit Mojito": 0.800,
    "Blue Mojito": 0.800,
    "Hibiscus (Karkadeh)": 0.700,
    "Drinking Water": 0.100,
}

SWEETS_BASE_PRICES: dict[str, float] = {
    "Biscuit / Other (0.100)": 0.100,
    "Castir (0.600)": 0.600,
    "Cookies (0.600)": 0.600,
}

CUP_SIZES_ML: dict[str, int] = {
    "Paper Cup (Regular)": 200,
    "Glass Cup (Small)": 175,
    "Glass Cup (Large)": 210,
}

HOT_DEFAULTS = {
    "cup_type": "Paper Cup (Regular)",
    "sugar": "Medium Sugar (Standard)",
}

DEFAULT_UNIT_COSTS: dict[str, float] = {
    # cup + lid + straw/stirrer; glass cups carry washing/breakage
    "Paper Cup (Regular)": 0.015,
    "Glass Cup (Small)": 0.005,
    "Glass Cup (Large)": 0.005,
    # tea, milk, sugar, gas, water
    "Karak": 0.030,
    "Almohib": 0.030,
    "Red Tea": 0.010,
    "Lemon": 0.015,
    # cup, ice, syrup, soda
    "Passion Fruit Mojito": 0.250,
    "Blue Mojito": 0.250,
    "Hibiscus (Karkadeh)": 0.150,
    "Drinking Water": 0.040,
    "Biscuit / Other (0.100)": 0.100,
    "Castir (0.600)": 0.350,
    "Cookies (0.600)": 0.350,
}

# Thermos categories and the drink types that draw from them.
THERMOS_CATEGORIES = ("karak", "almohib", "otherTeas")
THERMOS_BY_DRINK = {
    "Karak": "karak",
    "Almohib": "almohib",
    "Red Tea": "otherTeas",
}

# Business-tuned usage ratios. Not measured; keep as ratios.
PAPER_CUP_DRINKS = ("Karak", "Almohib", "Red Tea")
SYRUP_DRINKS = ("Passion Fruit Mojito", "Blue Mojito", "Hibiscus (Karkadeh)")
SYRUP_BOTTLE_PER_CUP = 0.04  # one bottle serves 25 cups
MILK_CANS_PER_KARAK = 0.35  # a 1L pot (5 cups) takes ~1.75 cans

PAPER_CUPS_KEY = "paperCups"
SYRUPS_ITEM = "Syrups (All Flavors)"

INGREDIENT_TIMERS = {
    "karak": "Karak",
    "redTea": "Red Tea",
    "almohibTea": "Almohib",
}

DAILY_ESSENTIALS = (
    "Generator Fuel",
    "Fresh Mint",
    "Habak",
    "Milk",
    "Water (Tank)",
    "Water (Small)",
    "Karakdia leaves",
    "7up",
)

RESTOCK_CATALOG: dict[str, tuple[str, ...]] = {
    "Tea Essentials & Flavors": (
        "Red Tea (Loose/Bags)",
        "Almohib Tea (Silver/Red)",
        "Karak Tea Powder",
        "Saffron (Za'afran)",
        "Cardamom",
        "Ginger/Cloves/Cinnamon",
        "Rose Water",
        SYRUPS_ITEM,
        "Lemon (Fresh)",
        "Karkadeh (Hibiscus)",
    ),
    "Serving & Packaging": (
        "Paper Cups (All sizes)",
        "Small Glasses",
        "Big Glasses",
        "Lids (Black/White)",
        "Cup Stickers",
        "Biscuits/Cookies",
        "Wooden Stirrers",
        "Tissues",
        "Garbage Bags (Small)",
    ),
    "Operational": (
        "Hygiene (Gloves/Caps)",
        "Cleaning Cloths",
    ),
}


def safe_id(name: str) -> str:
    """Inventory key for a catalog item name: 'Syrups (All Flavors)' -> 'syrups__all_flavors_'."""
    return re.sub(r"[^a-zA-Z0-9]", "_", name).lower()


def restock_items() -> list[str]:
    return [name for names in RESTOCK_CATALOG.values() for name in names]
