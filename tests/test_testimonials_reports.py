from storefront.models.order import OrderStatus
from storefront.services import order_service


def _testimonial_form(**overrides):
    form = {"customer_name": "Rita", "content": "Lovely glaze", "rating": "5", "tag": "Verified"}
    form.update(overrides)
    return form


def test_testimonial_avatar_lifecycle(client, admin_headers, media):
    resp = client.post(
        "/api/v1/testimonials",
        data=_testimonial_form(),
        files={"avatar": ("rita.jpg", b"jpeg", "image/jpeg")},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    t = resp.json()
    assert t["avatar_url"].startswith("https://cdn.test/testimonials/avatar-1")

    resp = client.put(
        f"/api/v1/testimonials/{t['id']}",
        data={"status": "hidden"},
        files={"avatar": ("rita2.jpg", b"jpeg", "image/jpeg")},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "hidden"
    assert media.deleted == ["file-1"]

    assert client.get("/api/v1/testimonials").json() == []
    assert len(client.get("/api/v1/testimonials/all", headers=admin_headers).json()) == 1

    assert client.delete(f"/api/v1/testimonials/{t['id']}", headers=admin_headers).status_code == 204
    assert media.deleted == ["file-1", "file-2"]


def test_testimonial_rating_out_of_range(client, admin_headers):
    resp = client.post("/api/v1/testimonials", data=_testimonial_form(rating="9"), headers=admin_headers)
    assert resp.status_code == 400


def test_testimonial_writes_require_admin(client, customer_headers):
    resp = client.post("/api/v1/testimonials", data=_testimonial_form(), headers=customer_headers)
    assert resp.status_code == 403


def test_sales_report_counts_delivered_orders_once(client, admin_headers, db, make_product, place_order):
    product = make_product(price=10.0)
    order = place_order(product, quantity=3)
    order_service.update_status(db, order.id, OrderStatus.DELIVERED)
    order_service.update_status(db, order.id, OrderStatus.SHIPPED)
    order_service.update_status(db, order.id, OrderStatus.DELIVERED)
    place_order(product, quantity=1)

    report = client.get("/api/v1/admin/reports/sales", headers=admin_headers).json()
    assert report["sale_count"] == 1
    assert report["revenue"] == 35.0
    assert report["sales"][0]["order_code"] == order.order_code


def test_inventory_movement_lists_order_decrements(client, admin_headers, make_product, place_order):
    product = make_product(in_stock=5)
    order = place_order(product, quantity=2)

    rows = client.get(
        "/api/v1/admin/inventory/movement", params={"product_id": product.id}, headers=admin_headers
    ).json()
    assert len(rows) == 1
    assert rows[0]["change"] == -2
    assert rows[0]["reason"] == "order-placed"
    assert rows[0]["reference_id"] == order.id
