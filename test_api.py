# test_api.py
import pytest

from pizzapos.models import PricingRule


def jprint(step, r):
    """Helper to print response and assert on failure."""
    assert 200 <= r.status_code < 300, f"{step} -> {r.status_code}: {r.text}"
    return r.json() if r.headers.get("content-type", "").startswith("application/json") else r.text


def half_half(size, a, b):
    return {"size_name": size, "parts": [{"fraction": "1/2", "flavor_name": a}, {"fraction": "1/2", "flavor_name": b}]}


@pytest.fixture
def headers(tenant):
    return {"X-Tenant-ID": tenant.id, "X-User-ID": "cashier-1"}


@pytest.fixture
def catalog(seed, tenant):
    pizza = seed.pizza(tenant, name="Pizza Grande", rule=PricingRule.PROPORTIONAL, sizes={"G": 2},
                       prices={"Calabresa": {"G": 50}, "Margherita": {"G": 40}, "Portuguesa": {"G": 55}})
    soda = seed.product(tenant, "Soda", price=6)
    return {"pizza": pizza.id, "soda": soda.id}


def test_full_order_flow(client, headers, catalog):
    # ===== 1. Stock and recipe =====
    r = client.post("/inventory/items", headers=headers, json={
        "name": "Flour", "unit": "kg", "quantity": 10, "minimum": 2, "unit_cost": 5,
    })
    flour_id = jprint("POST /inventory/items (flour)", r)["id"]
    r = client.post("/inventory/items", headers=headers, json={
        "name": "Cheese", "unit": "kg", "quantity": 5, "minimum": 1, "unit_cost": 40,
    })
    cheese_id = jprint("POST /inventory/items (cheese)", r)["id"]

    r = client.put(f"/products/{catalog['pizza']}/recipe", headers=headers, json={"lines": [
        {"inventory_item_id": flour_id, "quantity": "0.3"},
        {"inventory_item_id": cheese_id, "quantity": "0.2"},
    ]})
    assert jprint("PUT recipe", r) == {"ok": True, "lines": 2}

    r = client.get(f"/products/{catalog['pizza']}/consumption", headers=headers, params={"quantity": 2})
    usage = {row["inventory_item_id"]: row for row in jprint("GET consumption", r)}
    assert usage[flour_id]["quantity"] == pytest.approx(0.6)
    assert usage[cheese_id]["cost_total"] == pytest.approx(16)

    # ===== 2. Quote =====
    r = client.post(f"/products/{catalog['pizza']}/quote", headers=headers, json={
        "quantity": 1, "pizza": half_half("G", "Calabresa", "Margherita"),
    })
    quote = jprint("POST quote", r)
    assert quote["unit_price"] == 45
    assert quote["label"] == "Pizza Grande (G)"
    assert [m["price"] for m in quote["modifiers"]] == [50, 40]

    # ===== 3. Cart =====
    r = client.post("/orders/", headers=headers, json={"source": "MENU", "delivery_fee": 7})
    order = jprint("POST /orders", r)
    order_id = order["id"]
    assert (order["status"], order["total"]) == ("OPEN", 7)

    r = client.post(f"/orders/{order_id}/items", headers=headers, json={
        "product_id": catalog["pizza"], "quantity": 2, "pizza": half_half("G", "Calabresa", "Margherita"),
    })
    assert jprint("POST item (pizza)", r)["total"] == 97
    r = client.post(f"/orders/{order_id}/items", headers=headers, json={"product_id": catalog["soda"]})
    assert jprint("POST item (soda)", r)["total"] == 103

    # ===== 4. Checkout =====
    r = client.post(f"/orders/{order_id}/checkout", headers=headers, json={"payment_method": "PIX"})
    order = jprint("POST checkout", r)
    assert order["status"] == "CONFIRMED"
    assert order["totals"]["due"] == 0
    assert [(p["method"], p["status"], p["amount"]) for p in order["payments"]] == [("PIX", "PAID", 103)]
    # 2 x (0.3 kg flour * 5 + 0.2 kg cheese * 40)
    assert order["cmv_total"] == 19
    assert order["gross_margin_value"] == 84
    pizza_line = next(i for i in order["items"] if i["product_id"] == catalog["pizza"])
    assert pizza_line["notes"] == "Pizza G (1/2 Calabresa | 1/2 Margherita)"
    assert pizza_line["cmv_unit"] == 9.5
    assert order["events"][0]["payload"]["paymentMethod"] == "PIX"
    assert order["events"][0]["payload"]["actorUserId"] == "cashier-1"

    stock = {i["name"]: i["quantity"] for i in jprint("GET /inventory/items", client.get("/inventory/items", headers=headers))}
    assert stock == {"Cheese": pytest.approx(4.6), "Flour": pytest.approx(9.4)}

    # ===== 5. Kitchen =====
    for status in ("PREPARING", "READY"):
        r = client.patch(f"/orders/{order_id}/status", headers=headers, json={"to_status": status})
        assert jprint(f"PATCH status {status}", r)["status"] == status

    # ===== 6. Cancel =====
    r = client.patch(f"/orders/{order_id}/status", headers=headers, json={
        "to_status": "CANCELED", "reason": "oven broke",
    })
    order = jprint("PATCH status CANCELED", r)
    assert order["status"] == "CANCELED"
    assert order["payments"][0]["status"] == "REFUNDED"
    assert {e["payload"]["to"] for e in order["events"]} == {"CONFIRMED", "PREPARING", "READY", "CANCELED"}
    cancel = next(e for e in order["events"] if e["payload"]["to"] == "CANCELED")
    assert cancel["payload"]["reason"] == "oven broke"

    stock = {i["name"]: i["quantity"] for i in jprint("GET /inventory/items", client.get("/inventory/items", headers=headers))}
    assert stock == {"Cheese": pytest.approx(5), "Flour": pytest.approx(10)}

    r = client.get(f"/inventory/items/{flour_id}/movements", headers=headers)
    moves = jprint("GET movements", r)
    assert sorted(m["type"] for m in moves) == ["IN", "OUT"]
    assert all(m["ref_order_id"] == order_id for m in moves)


def test_manual_movements_and_low_stock(client, headers):
    r = client.post("/inventory/items", headers=headers, json={
        "name": "Basil", "unit": "g", "quantity": 500, "minimum": 100,
    })
    basil_id = jprint("POST /inventory/items", r)["id"]
    assert jprint("GET low_stock", client.get("/inventory/low_stock", headers=headers)) == []

    r = client.post("/inventory/movements", headers=headers, json={
        "item_id": basil_id, "type": "OUT", "quantity": 450, "reason": "wilted",
    })
    mv = jprint("POST movement", r)
    assert (mv["type"], mv["quantity"], mv["reason"]) == ("OUT", 450, "wilted")

    low = jprint("GET low_stock", client.get("/inventory/low_stock", headers=headers))
    assert [(i["name"], i["quantity"]) for i in low] == [("Basil", 50)]

    r = client.post("/inventory/movements", headers=headers, json={
        "item_id": basil_id, "type": "ADJUSTMENT", "quantity": 120,
    })
    assert jprint("POST adjustment", r)["quantity"] == 70
    assert jprint("GET low_stock", client.get("/inventory/low_stock", headers=headers)) == []


# ── error mapping ───────────────────────────────────────────────────────────

def test_invalid_transition_is_409(client, headers):
    order_id = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    r = client.patch(f"/orders/{order_id}/status", headers=headers, json={"to_status": "DELIVERED"})
    assert r.status_code == 409
    assert r.json() == {"detail": "invalid transition: OPEN -> DELIVERED"}


def test_unknown_status_is_rejected(client, headers):
    order_id = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    r = client.patch(f"/orders/{order_id}/status", headers=headers, json={"to_status": "EATEN"})
    assert r.status_code == 422


def test_order_of_another_tenant_is_404(client, seed, headers):
    order_id = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    other = seed.tenant("Pizzaria Norte")
    r = client.get(f"/orders/{order_id}", headers={"X-Tenant-ID": other.id})
    assert r.status_code == 404
    r = client.patch(f"/orders/{order_id}/status", headers={"X-Tenant-ID": other.id}, json={"to_status": "CANCELED"})
    assert r.status_code == 404
    assert jprint("GET order", client.get(f"/orders/{order_id}", headers=headers))["status"] == "OPEN"


def test_pizza_rule_violation_is_400(client, headers, catalog):
    order_id = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    r = client.post(f"/orders/{order_id}/items", headers=headers, json={
        "product_id": catalog["pizza"],
        "pizza": {"size_name": "G", "parts": [
            {"fraction": "1/3", "flavor_name": "Calabresa"},
            {"fraction": "1/3", "flavor_name": "Margherita"},
            {"fraction": "1/3", "flavor_name": "Portuguesa"},
        ]},
    })
    assert r.status_code == 400
    assert "exceed" in r.json()["detail"]
    assert jprint("GET order", client.get(f"/orders/{order_id}", headers=headers))["items"] == []


def test_recipe_cycle_is_a_server_error(client, seed, tenant, headers):
    a = seed.product(tenant, "Combo A", price=20)
    b = seed.product(tenant, "Combo B", price=20)
    seed.recipe(a, (b, 1))
    seed.recipe(b, (a, 1))
    order_id = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    jprint("POST item", client.post(f"/orders/{order_id}/items", headers=headers, json={"product_id": a.id}))

    r = client.patch(f"/orders/{order_id}/status", headers=headers, json={"to_status": "CONFIRMED"})

    assert r.status_code == 500
    assert r.json() == {"detail": "internal error"}
    order = jprint("GET order", client.get(f"/orders/{order_id}", headers=headers))
    assert order["status"] == "OPEN"
    assert order["events"] == []


def test_tenant_header_is_required(client, tenant):
    assert client.get("/inventory/items").status_code == 400
    assert client.get("/inventory/items", headers={"X-Tenant-ID": "ghost"}).status_code == 404


def test_healthz_and_request_id(client):
    r = client.get("/healthz", headers={"X-Request-ID": "req-42"})
    assert r.json() == {"ok": True}
    assert r.headers["X-Request-ID"] == "req-42"


# ── listings ────────────────────────────────────────────────────────────────

def test_order_list_filters(client, headers, catalog):
    first = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    second = jprint("POST /orders", client.post("/orders/", headers=headers, json={"source": "MENU"}))["id"]
    jprint("POST item", client.post(f"/orders/{second}/items", headers=headers, json={"product_id": catalog["soda"]}))
    jprint("PATCH status", client.patch(f"/orders/{first}/status", headers=headers, json={"to_status": "CANCELED"}))

    rows = jprint("GET /orders", client.get("/orders/", headers=headers))
    assert {r["id"] for r in rows} == {first, second}

    rows = jprint("GET /orders?status", client.get("/orders/", headers=headers, params={"status": "OPEN"}))
    assert [(r["id"], r["source"], r["total"]) for r in rows] == [(second, "MENU", 6)]

    rows = jprint("GET /orders?dateTo", client.get("/orders/", headers=headers, params={"dateTo": "2000-01-01"}))
    assert rows == []


def test_order_list_rejects_bad_date(client, headers):
    r = client.get("/orders/", headers=headers, params={"dateFrom": "yesterday"})
    assert r.status_code == 400
    assert "dateFrom" in r.json()["detail"]


def test_kitchen_queue(client, headers, catalog):
    cart = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    cooking = jprint("POST /orders", client.post("/orders/", headers=headers, json={}))["id"]
    jprint("POST item", client.post(f"/orders/{cooking}/items", headers=headers, json={
        "product_id": catalog["pizza"], "pizza": half_half("G", "Calabresa", "Margherita"),
    }))
    jprint("POST item", client.post(f"/orders/{cooking}/items", headers=headers, json={
        "product_id": catalog["soda"], "quantity": 2,
    }))
    jprint("POST checkout", client.post(f"/orders/{cooking}/checkout", headers=headers, json={"payment_method": "CASH"}))

    queue = jprint("GET /kitchen/orders", client.get("/kitchen/orders", headers=headers))
    assert [o["id"] for o in queue] == [cooking]
    items = queue[0]["items"]
    assert [i["name"] for i in items] == ["Pizza Grande (G)", "Soda"]
    assert sorted(m["name"] for m in items[0]["modifiers"]) == ["1/2 Calabresa", "1/2 Margherita"]

    r = client.patch(f"/kitchen/orders/{cooking}/status", headers=headers, json={"to_status": "PREPARING"})
    order = jprint("PATCH /kitchen status", r)
    assert order["status"] == "PREPARING"
    moved = next(e for e in order["events"] if e["payload"]["to"] == "PREPARING")
    assert moved["payload"]["reason"] == "kitchen_update"

    rows = jprint("GET /kitchen/orders?statuses", client.get("/kitchen/orders", headers=headers,
                                                             params={"statuses": "OPEN,nonsense"}))
    assert [o["id"] for o in rows] == [cart]


def test_menu_checkout_leaves_payment_pending(client, headers, catalog):
    order_id = jprint("POST /orders", client.post("/orders/", headers=headers, json={"source": "MENU"}))["id"]
    jprint("POST item", client.post(f"/orders/{order_id}/items", headers=headers, json={"product_id": catalog["soda"]}))

    r = client.post(f"/orders/{order_id}/checkout", headers=headers,
                    json={"payment_method": "PIX", "payment_status": "PENDING"})
    order = jprint("POST checkout (pending)", r)

    assert order["status"] == "OPEN"
    assert [(p["status"], p["amount"]) for p in order["payments"]] == [("PENDING", 6)]
    assert order["totals"]["due"] == 6
