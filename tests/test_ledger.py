import logging
from datetime import datetime, timedelta, timezone

from stall import ledger, store
from stall.menu_data import SYRUPS_ITEM, safe_id
from stall.schemas import ColdDrinkItem, HotDrinkItem
from stall.shifts import to_epoch_ms

NOW = datetime(2024, 6, 10, 18, 0, tzinfo=timezone.utc)
SYRUPS = safe_id(SYRUPS_ITEM)


def test_safe_id_matches_inventory_keys():
    assert SYRUPS == "syrups__all_flavors_"


def test_thermos_starts_full(session):
    states = ledger.ensure_thermos(session)
    assert set(states) == {"karak", "almohib", "otherTeas"}
    assert states["karak"] == {"currentLevel_ml": 3000, "maxCapacity_ml": 3000, "refills": 0}


def test_adjust_level_is_clamped(session):
    assert ledger.adjust_level(session, "karak", -5000)["currentLevel_ml"] == 0
    assert ledger.adjust_level(session, "karak", 10000)["currentLevel_ml"] == 3000
    assert ledger.adjust_level(session, "karak", -250)["currentLevel_ml"] == 2750


def test_cup_count_schema_is_reset_to_full(session, caplog):
    store.write(session, "stats/thermos/almohib", {"remaining": 12, "refills": 2})
    with caplog.at_level(logging.WARNING, logger="stall.ledger"):
        states = ledger.ensure_thermos(session)
    assert states["almohib"] == {"currentLevel_ml": 3000, "maxCapacity_ml": 3000, "refills": 2}
    assert "migration skipped" in caplog.text
    assert store.get(session, "stats/thermos/almohib")["currentLevel_ml"] == 3000


def test_refill_and_reheat(session):
    state = ledger.log_refill_and_reheat(session, "otherTeas", now=NOW)
    assert state["refills"] == 1
    assert state["lastReheatedAt"] == to_epoch_ms(NOW)
    later = NOW + timedelta(minutes=5)
    state = ledger.log_reheat_only(session, "otherTeas", now=later)
    assert state["refills"] == 1
    assert state["lastReheatedAt"] == to_epoch_ms(later)
    ledger.reset_refill_counters(session)
    assert store.get(session, "stats/thermos/otherTeas")["refills"] == 0


def test_stale_after_forty_minutes():
    state = {"lastReheatedAt": to_epoch_ms(NOW)}
    assert not ledger.is_stale(state, NOW + timedelta(minutes=39))
    assert ledger.is_stale(state, NOW + timedelta(minutes=41))
    assert not ledger.is_stale({}, NOW)


def test_consumption_for_items():
    items = [
        HotDrinkItem(drink_type="Karak", cup_type="Paper Cup (Regular)", quantity=2),
        HotDrinkItem(drink_type="Red Tea", cup_type="Glass Cup (Large)"),
        HotDrinkItem(drink_type="Lemon", cup_type="Glass Cup (Small)"),
        ColdDrinkItem(drink_type="Cold Drink", cold_drink_name="Blue Mojito"),
        ColdDrinkItem(drink_type="Cold Drink", cold_drink_name="Drinking Water"),
    ]
    ml_used, cups, syrups = ledger.consumption_for_items(items)
    assert ml_used == {"karak": 400, "otherTeas": 210}
    assert cups == 3
    assert syrups == 0.04


def test_record_consumption_updates_every_counter(session):
    ledger.adjust_inventory(session, SYRUPS, 1)
    ledger.record_consumption(
        session,
        [
            HotDrinkItem(drink_type="Karak", cup_type="Paper Cup (Regular)", quantity=3),
            ColdDrinkItem(drink_type="Cold Drink", cold_drink_name="Hibiscus (Karkadeh)"),
        ],
    )
    assert store.get(session, "stats/thermos/karak")["currentLevel_ml"] == 2400
    assert store.get(session, "stats/inventory/syrups__all_flavors_") == 0.96
    # paper cups are allowed to run negative
    assert store.get(session, "stats/inventory/paperCups") == -3


def test_syrups_stop_at_zero(session):
    ledger.record_consumption(session, [ColdDrinkItem(drink_type="Cold Drink", cold_drink_name="Blue Mojito")])
    assert store.get(session, "stats/inventory/syrups__all_flavors_") == 0


def test_low_stock_ignores_paper_cups():
    levels = {SYRUPS: 25, "paperCups": -10}
    low = ledger.low_stock_keys(levels)
    assert SYRUPS not in low
    assert "paperCups" not in low
    assert "cardamom" in low


def test_loyalty_counts_once_per_shift(session):
    assert ledger.record_visit(session, "123", "2024-06-10") == 1
    assert ledger.record_visit(session, "123", "2024-06-10") == 1
    assert ledger.record_visit(session, "123", "2024-06-11") == 2
    assert store.get(session, "loyalty/123") == {"count": 2, "lastVisitShift": "2024-06-11"}


def test_milestones():
    assert ledger.milestone_for(1) is None
    assert ledger.milestone_for(2) == "second visit"
    assert ledger.milestone_for(3) == "third visit"
    assert ledger.milestone_for(4) is None
    assert ledger.milestone_for(7) == "loyal customer"
