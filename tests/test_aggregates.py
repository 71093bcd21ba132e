from datetime import datetime, timedelta, timezone

from stall import aggregates
from stall.models import Order

BAHRAIN = timezone(timedelta(hours=3))
EVENING = datetime(2024, 6, 10, 20, 0, tzinfo=BAHRAIN)


def sold(price, method="Cash", minutes=0, cost=0.1, **fields):
    ts = EVENING + timedelta(minutes=minutes)
    defaults = dict(drink_type="Karak", cup_type="Paper Cup (Regular)", quantity=1)
    defaults.update(fields)
    return Order(
        type="item",
        status="completed",
        created_at=ts,
        completed_at=ts,
        total_price=price,
        total_cost=cost,
        payment_method=method,
        **defaults,
    )


def test_kanban_buckets_skip_separators_and_completed():
    orders = [
        Order(type="item", status="preparing"),
        Order(type="item", status="ready"),
        Order(type="item", status="completed"),
        Order(type="separator"),
    ]
    buckets = aggregates.kanban_buckets(orders)
    assert len(buckets["preparing"]) == 1
    assert len(buckets["ready"]) == 1


def test_financial_summary_totals_and_methods():
    orders = [sold(1.2, "Cash", 0), sold(0.8, "Machine", 5), sold(0.4, None, 10), sold(0.5, "Cash", 15)]
    orders.append(Order(type="item", status="ready", total_price=9))
    summary = aggregates.financial_summary(orders)
    assert summary["total"] == 2.9
    assert summary["total_cost"] == 0.4
    assert summary["count"] == 4
    assert summary["by_pay"] == {"Cash": 1.7, "Machine": 0.8, "Unknown": 0.4}
    assert [o.total_price for o in summary["logs"]] == [0.5, 0.4, 0.8, 1.2]


def test_financial_summary_since_shift_start():
    orders = [sold(1.0, minutes=0), sold(2.0, minutes=30)]
    summary = aggregates.financial_summary(orders, shift_start=EVENING + timedelta(minutes=10))
    assert summary["total"] == 2.0
    assert summary["count"] == 1


def test_shift_filter_falls_back_to_creation_time():
    legacy = sold(0.7, minutes=30)
    legacy.completed_at = None
    summary = aggregates.financial_summary([legacy, sold(1.0, minutes=0)], shift_start=EVENING + timedelta(minutes=10))
    assert summary["total"] == 0.7
    assert summary["count"] == 1


def test_rush_histogram():
    orders = [
        sold(0.4, minutes=0),  # 20:00 -> bin 12
        sold(0.4, minutes=10),
        sold(0.4, minutes=-180),  # 17:00 -> bin 0
        sold(0.4, minutes=300),  # 01:00 -> outside
        Order(type="separator", created_at=EVENING),
    ]
    counts = aggregates.rush_histogram(orders)
    assert len(counts) == 32
    assert counts[12] == 2
    assert counts[0] == 1
    assert sum(counts) == 3


def test_rush_histogram_respects_reset():
    orders = [sold(0.4, minutes=0), sold(0.4, minutes=20)]
    counts = aggregates.rush_histogram(orders, reset_at=EVENING + timedelta(minutes=5))
    assert sum(counts) == 1


def test_consumables():
    orders = [
        sold(2.0, quantity=20),
        sold(0.5, cup_type="Glass Cup (Small)", drink_type="Almohib", quantity=2),
        sold(0.6, cup_type="Glass Cup (Large)", quantity=1),
        sold(1.6, drink_type="Cold Drink", cup_type=None, cold_drink_name="Blue Mojito", quantity=2),
        sold(0.7, drink_type="Cold Drink", cup_type=None, cold_drink_name="Hibiscus (Karkadeh)", quantity=1),
    ]
    report = aggregates.consumables(orders)
    assert report == {
        "small_glasses": 2,
        "big_glasses": 1,
        "cup_lids": 20,
        "sugar_sachets": 24,
        "seven_up_cans": 2,
        "milk_cans": 8,
    }


def test_milk_cans_round_up():
    assert aggregates.consumables([sold(0.4, quantity=1)])["milk_cans"] == 1
    assert aggregates.consumables([sold(0.4, quantity=20)])["milk_cans"] == 7


def test_day_report_uses_logical_day():
    orders = [
        sold(1.0, "Cash", minutes=0),
        # 02:00 next calendar day still counts for the 10th
        sold(0.5, "Benefit", minutes=360),
        # 06:00 belongs to the 11th
        sold(0.7, "Cash", minutes=600),
    ]
    report = aggregates.day_report(orders, "2024-06-10")
    assert report["count"] == 2
    assert report["total"] == 1.5
    assert report["by_pay"] == {"Cash": {"count": 1, "amount": 1.0}, "Benefit": {"count": 1, "amount": 0.5}}


def test_event_time_falls_back_to_creation():
    order = Order(type="item", status="completed", created_at=EVENING)
    assert aggregates.event_time(order) == EVENING


def test_net_profit():
    assert aggregates.net_profit(10.0, 3.25, 2.5) == 4.25
