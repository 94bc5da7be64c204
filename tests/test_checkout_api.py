import json
from types import SimpleNamespace

from storefront.models.order import Order
from storefront.models.sale import Sale
from storefront.services import order_service


def _logs(client, headers, product_id, reason):
    resp = client.get(
        "/api/v1/admin/inventory/logs", params={"product_id": product_id, "reason": reason}, headers=headers
    )
    assert resp.status_code == 200
    return resp.json()


def _stock(client, product_id):
    return client.get(f"/api/v1/products/{product_id}").json()["in_stock"]


def test_end_to_end_place_deliver_return(client, db, admin_headers, email, checkout_payload):
    resp = client.post(
        "/api/v1/admin/products",
        data={"name": "Oak Bowl", "price": "20", "inStock": "10", "minStock": "2"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    product = resp.json()

    payload = checkout_payload(SimpleNamespace(id=product["id"], name="Oak Bowl", price=20.0), quantity=3)
    resp = client.post("/api/v1/checkout/cod", json=payload)
    assert resp.status_code == 201
    order_id = resp.json()["orderId"]
    assert resp.json()["orderCode"].startswith("AC-")

    assert _stock(client, product["id"]) == 7
    placed = _logs(client, admin_headers, product["id"], "order-placed")
    assert [(l["change"], l["reference_id"]) for l in placed] == [(-3, order_id)]
    assert len(email.sent) == 1

    resp = client.put(f"/api/v1/admin/orders/{order_id}", json={"status": "delivered"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["sale_created"] is True
    assert db.query(Sale).filter(Sale.order_id == order_id).count() == 1
    assert _stock(client, product["id"]) == 7

    resp = client.put(f"/api/v1/admin/orders/{order_id}", json={"status": "Returned"}, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["previous_status"] == "delivered"
    assert body["stock_changes"][0]["change"] == 3
    assert _stock(client, product["id"]) == 10
    returned = _logs(client, admin_headers, product["id"], "order-returned")
    assert [l["change"] for l in returned] == [3]
    assert db.query(Sale).count() == 1


def test_checkout_over_stock_returns_400_and_creates_nothing(client, db, make_product, email, checkout_payload):
    product = make_product(in_stock=2)

    resp = client.post("/api/v1/checkout/cod", json=checkout_payload(product, quantity=3))

    assert resp.status_code == 400
    assert "out of stock or insufficient quantity" in resp.json()["detail"]
    assert db.query(Order).count() == 0
    assert email.sent == []
    assert _stock(client, product.id) == 2


def test_checkout_validation_errors(client, make_product, checkout_payload):
    product = make_product()
    payload = checkout_payload(product)
    payload["cart"] = []
    assert client.post("/api/v1/checkout/cod", json=payload).status_code == 422

    payload = checkout_payload(product, quantity=0)
    assert client.post("/api/v1/checkout/cod", json=payload).status_code == 422


def test_get_order_by_code_and_my_orders(client, make_product, customer_headers, checkout_payload):
    product = make_product()
    code = client.post("/api/v1/checkout/cod", json=checkout_payload(product)).json()["orderCode"]

    resp = client.get(f"/api/v1/checkout/order/{code}")
    assert resp.status_code == 200
    assert resp.json()["items"][0]["unit_price"] == 25.0
    assert client.get("/api/v1/checkout/order/unknown").status_code == 404

    mine = client.get("/api/v1/checkout/orders", headers=customer_headers)
    assert mine.status_code == 200
    assert [o["order_code"] for o in mine.json()] == [code]
    assert client.get("/api/v1/checkout/orders").status_code == 401


def test_stripe_session_validates_stock_first(client, make_product, payments, checkout_payload):
    product = make_product(in_stock=1)
    payload = checkout_payload(product, quantity=2)
    payload.update(successUrl="https://shop.test/ok", cancelUrl="https://shop.test/cancel")

    assert client.post("/api/v1/checkout/stripe-session", json=payload).status_code == 400
    assert payments.sessions == []

    payload["cart"][0]["quantity"] = 1
    resp = client.post("/api/v1/checkout/stripe-session", json=payload)
    assert resp.status_code == 200
    assert resp.json()["url"].startswith("https://pay.test/")
    assert payments.sessions[0]["shipping_fee"] == 500


def _completed_event(product, session_id="cs_test_1", quantity=2):
    return {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "amount_total": 5500,
                "metadata": {
                    "customerData": json.dumps({"full_name": "Ana Lima", "email": "ana@example.com"}),
                    "cartData": json.dumps([{"p": product.id, "t": product.name, "u": 2500, "q": quantity, "v": ""}]),
                    "shippingFee": "500",
                },
            }
        },
    }


def test_webhook_creates_online_order_once(client, db, make_product):
    product = make_product(in_stock=10)
    body = json.dumps(_completed_event(product))
    headers = {"stripe-signature": "valid-signature"}

    first = client.post("/api/v1/checkout/webhook", content=body, headers=headers)
    second = client.post("/api/v1/checkout/webhook", content=body, headers=headers)

    assert first.status_code == 200 and second.status_code == 200
    orders = db.query(Order).all()
    assert len(orders) == 1
    assert orders[0].status.value == "processing"
    assert orders[0].payment_method.value == "online"
    assert orders[0].total_amount == 55.0
    assert _stock(client, product.id) == 8


def test_webhook_rejects_bad_signature(client, db, make_product):
    body = json.dumps(_completed_event(make_product()))
    resp = client.post("/api/v1/checkout/webhook", content=body, headers={"stripe-signature": "forged"})
    assert resp.status_code == 400
    assert db.query(Order).count() == 0


def test_webhook_race_creates_one_order(client, db, make_product, monkeypatch):
    product = make_product(in_stock=10)
    body = json.dumps(_completed_event(product, session_id="cs_race"))
    headers = {"stripe-signature": "valid-signature"}

    # Both deliveries miss the lookup, as when they arrive before either commits
    real_lookup = order_service.get_order_by_payment_reference
    calls = []

    def stale_lookup(db, reference):
        calls.append(reference)
        return None if len(calls) <= 2 else real_lookup(db, reference)

    monkeypatch.setattr(order_service, "get_order_by_payment_reference", stale_lookup)
    first = client.post("/api/v1/checkout/webhook", content=body, headers=headers)
    second = client.post("/api/v1/checkout/webhook", content=body, headers=headers)

    assert first.json()["orderId"]
    assert second.status_code == 200
    assert second.json() == {"received": True}
    assert db.query(Order).filter(Order.payment_reference == "cs_race").count() == 1
    assert _stock(client, product.id) == 8
