from fastapi import status

KARAK = {"kind": "item", "item": {"drink_type": "Karak", "cup_type": "Paper Cup (Regular)", "quantity": 3}}
MOJITO = {"kind": "item", "item": {"drink_type": "Cold Drink", "cold_drink_name": "Blue Mojito"}}


def submit(client, *entries, plate=None, notes=None):
    response = client.post("/orders", json={"entries": list(entries), "license_plate": plate, "notes": notes})
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_options_list_the_menu(client):
    data = client.get("/meta/options").json()
    drinks = {d["drink_type"]: d["prices"] for d in data["drinks"]}
    assert drinks["Karak"]["Glass Cup (Large)"] == 0.6
    assert drinks["Cold Drink"]["Drinking Water"] == 0.1
    assert "Cash" in data["payment_methods"]
    assert "Cardamom" in data["restock_items"]


def test_quote(client):
    response = client.post("/orders/quote", json=KARAK)
    assert response.json() == {"unit_price": 0.4, "total_price": 1.2, "total_cost": 0.135}


def test_quote_rejects_missing_cup(client):
    response = client.post("/orders/quote", json={"kind": "item", "item": {"drink_type": "Karak"}})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_unknown_drink_type_is_a_validation_error(client):
    response = client.post("/orders", json={"entries": [{"kind": "item", "item": {"drink_type": "Coffee"}}]})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_plate_must_be_three_digits(client):
    response = client.post("/orders", json={"entries": [KARAK], "license_plate": "12a"})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_full_order_flow(client):
    orders = submit(client, KARAK, {"kind": "separator"}, MOJITO, plate="123", notes="white car")
    assert [o["type"] for o in orders] == ["item", "separator", "item"]
    item_ids = [o["id"] for o in orders if o["type"] == "item"]

    board = client.get("/board").json()
    assert board["preparing_count"] == 2
    assert len(board["preparing"]) == 2
    assert board["preparing"][0]["total"] == 0.8

    for order_id in item_ids:
        assert client.post(f"/orders/{order_id}/ready").json()["status"] == "ready"
    board = client.get("/board").json()
    assert board["ready_count"] == 2 and board["preparing"] == []

    response = client.post("/orders/complete", json={"order_ids": item_ids, "payment_method": "Cash"})
    assert response.status_code == status.HTTP_200_OK, response.text
    result = response.json()
    assert result["group_total"] == 2.0
    assert result["loyalty"] == [{"plate": "123", "count": 1, "milestone": None}]

    summary = client.get("/reports/summary").json()
    assert summary["total"] == 2.0
    assert summary["by_pay"] == {"Cash": 2.0}
    assert summary["in_drawer"] == 2.0
    assert len(summary["logs"]) == 2

    loyalty = client.get("/loyalty/123").json()
    assert loyalty["count"] == 1
    assert loyalty["note"] == "white car"

    csv_text = client.get("/orders/export").text
    assert csv_text.splitlines()[0].startswith("id,completed_at,drink_type")
    assert len(csv_text.strip().splitlines()) == 3


def test_transition_errors(client):
    order_id = submit(client, KARAK)[0]["id"]
    response = client.post("/orders/complete", json={"order_ids": [order_id], "payment_method": "Cash"})
    assert response.status_code == status.HTTP_409_CONFLICT
    client.post(f"/orders/{order_id}/ready")
    assert client.post(f"/orders/{order_id}/ready").status_code == status.HTTP_409_CONFLICT
    assert client.delete(f"/orders/{order_id}").status_code == status.HTTP_409_CONFLICT
    assert client.post("/orders/missing/ready").status_code == status.HTTP_404_NOT_FOUND


def test_delete_preparing_order(client):
    order_id = submit(client, KARAK)[0]["id"]
    assert client.delete(f"/orders/{order_id}").status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/orders").json() == []


def test_edit_plate_and_notes(client):
    orders = submit(client, KARAK, MOJITO)
    response = client.put(f"/orders/{orders[0]['id']}", json={"license_plate": "456", "notes": "honk twice"})
    assert {o["license_plate"] for o in response.json()} == {"456"}


def test_thermos_endpoints(client):
    submit(client, KARAK)
    thermos = {t["category"]: t for t in client.get("/thermos").json()}
    assert thermos["karak"]["current_level_ml"] == 2400
    assert thermos["karak"]["percent"] == 80.0

    adjusted = client.post("/thermos/karak/adjust", json={"delta_ml": 5000}).json()
    assert adjusted["current_level_ml"] == 3000
    refilled = client.post("/thermos/almohib/refill").json()
    assert refilled["refills"] == 1
    assert refilled["last_reheated_at"] is not None
    assert refilled["stale"] is False
    assert client.post("/thermos/coffee/refill").status_code == status.HTTP_404_NOT_FOUND

    reset = client.post("/thermos/reset-refills").json()
    assert all(t["refills"] == 0 for t in reset)


def test_inventory_and_restock(client):
    submit(client, MOJITO)
    response = client.post("/inventory/restock", json={"item": "Syrups (All Flavors)", "quantity": 30})
    assert response.json() == {"key": "syrups__all_flavors_", "quantity": 30.0, "low": False}
    inventory = {i["key"]: i for i in client.get("/inventory").json()}
    assert inventory["cardamom"]["low"] is True
    assert inventory["syrups__all_flavors_"]["quantity"] == 30


def test_costs_and_expenses(client):
    response = client.put("/settings/costs/Karak", json={"cost": 0.0456})
    assert response.json()["Karak"] == 0.046
    created = client.post("/expenses", json={"category": "Daily", "name_en": "Milk", "cost": 1.5})
    assert created.status_code == status.HTTP_201_CREATED
    assert len(client.get("/expenses", params={"today": True}).json()) == 1
    assert client.delete(f"/expenses/{created.json()['id']}").status_code == status.HTTP_204_NO_CONTENT
    assert client.delete("/expenses/999").status_code == status.HTTP_404_NOT_FOUND


def test_invalid_expense_amount(client):
    response = client.post("/expenses", json={"category": "Daily", "name_en": "Milk", "cost": 0})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_waste_endpoint(client):
    response = client.post("/waste", json={"item": "Cookies (0.600)", "qty": 2})
    assert response.json()["cost"] == 0.7


def test_shift_cycle(client):
    shift = client.post("/shift/start", json={"opening_cash": 15}).json()
    assert shift["opening_cash"] == 15
    assert client.get("/shift").json()["start_at"] is not None

    client.put("/breakeven", json={"target": 50})
    exported = client.get("/shift/export").json()
    assert exported["breakeven"]["carryOver"] == 50

    imported = client.post("/shift/import", json=exported).json()
    assert imported == {"plates": 0, "carry_over": 50.0, "target": 100.0}
    assert client.get("/breakeven").json()["target"] == 100.0


def test_rush_chart(client):
    rush = client.get("/reports/rush").json()
    assert len(rush["bins"]) == 32
    assert rush["bins"][0]["label"] == "5:00 PM"
    reset = client.post("/reports/rush/reset").json()
    assert reset["reset_at"] is not None
    assert reset["peak"] == 0


def test_timers_endpoints(client):
    started = client.post("/timers/karak/start", json={"minutes": 10}).json()
    assert started["duration"] == 10
    assert client.post("/timers/karak/start", json={"minutes": 0}).status_code == status.HTTP_400_BAD_REQUEST
    assert client.post("/timers/karak/stop").json()["end_time"] is None
    assert len(client.get("/timers").json()) == 3


def test_alerts_after_order(client):
    submit(client, KARAK, plate="321")
    alerts = client.get("/alerts").json()
    assert alerts[0]["type"] == "placed"


def test_reports_for_empty_day(client):
    assert client.get("/reports/day/2024-06-10").json() == {"date_key": "2024-06-10", "count": 0, "total": 0.0, "by_pay": {}}
    assert client.get("/reports/consumables").json()["milk_cans"] == 0
    assert client.get("/reports/profit").json()["net_profit"] == 0
    assert client.get("/reports/day/not-a-date/text").status_code == status.HTTP_400_BAD_REQUEST


def test_maintenance_endpoints(client):
    assert client.post("/maintenance/backfill-completed-at").json() == {"updated": 0}
    assert client.post("/orders/archive", json={"days": 30}).json() == {"archived": 0}
    assert client.post("/orders/idle-separator").json() is None


def test_cost_edits_do_not_reprice_existing_orders(client):
    order = submit(client, KARAK)[0]
    assert (order["unit_price"], order["total_price"], order["total_cost"]) == (0.4, 1.2, 0.135)

    client.put("/settings/costs/Karak", json={"cost": 0.1})
    stored = client.get("/orders").json()[0]
    assert (stored["unit_price"], stored["total_price"], stored["total_cost"]) == (0.4, 1.2, 0.135)
    # paper cup 0.015 + karak 0.100, three cups
    assert client.post("/orders/quote", json=KARAK).json()["total_cost"] == 0.345


def test_cost_for_item_name_with_slash(client):
    response = client.put("/settings/costs/Biscuit / Other (0.100)", json={"cost": 0.05})
    assert response.status_code == status.HTTP_200_OK, response.text
    assert response.json()["Biscuit / Other (0.100)"] == 0.05
    sweets = {"kind": "item", "item": {"drink_type": "Sweets", "sweets_option": "Biscuit / Other (0.100)", "quantity": 2}}
    assert client.post("/orders/quote", json=sweets).json() == {"unit_price": 0.1, "total_price": 0.2, "total_cost": 0.1}
