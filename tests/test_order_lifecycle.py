import json

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from storefront.models.inventory_log import InventoryLog, InventoryReason
from storefront.models.order import Order, OrderStatus, PaymentMethod
from storefront.models.sale import Sale
from storefront.models.user import User
from storefront.schemas.order import CheckoutRequest
from storefront.services import inventory_service, order_service
from storefront.services.order_service import InsufficientStockError


def test_create_order_sets_code_totals_and_takes_stock(db, make_product, place_order):
    product = make_product(price=25.0, in_stock=10)

    order = place_order(product, quantity=3)

    assert order.status == OrderStatus.PENDING
    assert order.order_code == f"AC-{order.id.upper()}"
    assert order.subtotal == 75.0
    assert order.shipping_fee == 5.0
    assert order.total_amount == 80.0
    db.refresh(product)
    assert product.in_stock == 7


def test_online_orders_start_processing(db, make_product, place_order):
    order = place_order(make_product(), payment_method=PaymentMethod.ONLINE)
    assert order.status == OrderStatus.PROCESSING


def test_insufficient_stock_rejects_whole_order(db, make_product, checkout_payload):
    plenty = make_product(name="Mug", in_stock=10)
    scarce = make_product(name="Teapot", in_stock=1)
    payload = checkout_payload(plenty, quantity=1)
    payload["cart"] += checkout_payload(scarce, quantity=2)["cart"]

    with pytest.raises(InsufficientStockError, match="Teapot is out of stock"):
        order_service.create_order(db, CheckoutRequest.model_validate(payload))
    db.rollback()

    assert db.query(Order).count() == 0
    assert db.query(InventoryLog).count() == 0
    db.refresh(plenty)
    assert plenty.in_stock == 10


def test_checkout_creates_guest_profile_and_links_order(db, make_product, place_order):
    order = place_order(make_product(), email="Guest@Example.com")

    user = db.query(User).filter(User.email == "guest@example.com").one()
    assert user.password_hash is None
    assert user.city == "Porto"
    assert order.user_id == user.id


def test_checkout_does_not_overwrite_admin_profile(db, admin, make_product, place_order):
    place_order(make_product(), email=admin.email)
    db.refresh(admin)
    assert admin.full_name == "Shop Admin"
    assert admin.city == ""


def test_delivered_twice_creates_one_sale(db, make_product, place_order):
    product = make_product(in_stock=10)
    order = place_order(product, quantity=3)

    first = order_service.update_status(db, order.id, OrderStatus.DELIVERED)
    second = order_service.update_status(db, order.id, OrderStatus.DELIVERED)

    assert first.sale_created
    assert not second.sale_created
    assert db.query(Sale).filter(Sale.order_id == order.id).count() == 1
    db.refresh(product)
    assert product.in_stock == 7


@pytest.mark.parametrize(
    "status, reason",
    [
        (OrderStatus.CANCELLED, InventoryReason.ORDER_CANCELLED),
        (OrderStatus.RETURNED, InventoryReason.ORDER_RETURNED),
    ],
)
def test_restock_fires_once(db, make_product, place_order, status, reason):
    product = make_product(in_stock=10, variants=[("Large", 5)])
    order = place_order(product, quantity=2, variant_name="Large")

    result = order_service.update_status(db, order.id, status)
    order_service.update_status(db, order.id, status)

    assert [c.change for c in result.stock_changes] == [2]
    db.refresh(product)
    assert product.variant_named("Large").in_stock == 5
    restocks = db.query(InventoryLog).filter(InventoryLog.reason == reason).all()
    assert len(restocks) == 1
    assert restocks[0].change == 2


def test_cancel_then_return_restores_only_once(db, make_product, place_order):
    product = make_product(in_stock=10)
    order = place_order(product, quantity=4)

    order_service.update_status(db, order.id, OrderStatus.CANCELLED)
    result = order_service.update_status(db, order.id, OrderStatus.RETURNED)

    assert result.stock_changes == []
    db.refresh(product)
    assert product.in_stock == 10


def test_ledger_failure_keeps_new_status(db, make_product, place_order, monkeypatch):
    product = make_product(in_stock=10)
    order = place_order(product, quantity=4)

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE products", {}, Exception("database is locked"))

    monkeypatch.setattr(inventory_service, "increment_stock", broken)
    result = order_service.update_status(db, order.id, OrderStatus.CANCELLED)

    assert "database is locked" in result.stock_error
    assert result.order.status == OrderStatus.CANCELLED
    assert db.get(Order, order.id).stock_restored_at is not None
    db.refresh(product)
    assert product.in_stock == 6


def test_status_history_records_transitions(db, make_product, place_order):
    order = place_order(make_product())
    order_service.update_status(db, order.id, OrderStatus.SHIPPED, note="Courier picked up")

    history = [h["status"] for h in json.loads(db.get(Order, order.id).status_history)]
    assert history == ["pending", "shipped"]


def test_update_status_unknown_order(db):
    assert order_service.update_status(db, "nope", OrderStatus.DELIVERED) is None


def test_get_order_accepts_code(db, make_product, place_order):
    order = place_order(make_product())
    assert order_service.get_order(db, order.order_code.lower()).id == order.id


def test_delete_order_purges_sale(db, delivered_order):
    order, _ = delivered_order
    assert order_service.delete_order(db, order.id)
    assert db.query(Sale).count() == 0
    assert db.query(Order).count() == 0


def test_split_lines_of_one_product_are_summed(db, make_product, checkout_payload):
    product = make_product(name="Jug", in_stock=5)
    payload = checkout_payload(product, quantity=3)
    payload["cart"] += checkout_payload(product, quantity=3)["cart"]

    with pytest.raises(InsufficientStockError, match="Jug is out of stock"):
        order_service.create_order(db, CheckoutRequest.model_validate(payload))
    db.rollback()

    assert db.query(Order).count() == 0
    db.refresh(product)
    assert product.in_stock == 5


def test_split_lines_of_one_variant_are_summed(db, make_product, checkout_payload):
    product = make_product(name="Jug", in_stock=10, variants=[("Tall", 4), ("Short", 4)])
    payload = checkout_payload(product, quantity=2, variant_name="Tall")
    payload["cart"] += checkout_payload(product, quantity=3, variant_name="Tall")["cart"]

    with pytest.raises(InsufficientStockError, match=r"Jug \(Tall\)"):
        order_service.create_order(db, CheckoutRequest.model_validate(payload))
    db.rollback()

    payload["cart"][1]["variantName"] = "Short"
    order = order_service.create_order(db, CheckoutRequest.model_validate(payload))
    assert len(order.items) == 2
    db.refresh(product)
    assert product.variant_named("Tall").in_stock == 2
    assert product.variant_named("Short").in_stock == 1


def test_payment_reference_is_unique(db, make_product, checkout_payload):
    product = make_product(in_stock=10)
    data = CheckoutRequest.model_validate(checkout_payload(product, quantity=2))

    order_service.create_order(db, data, PaymentMethod.ONLINE, enforce_stock=False, payment_reference="cs_1")
    with pytest.raises(IntegrityError):
        order_service.create_order(db, data, PaymentMethod.ONLINE, enforce_stock=False, payment_reference="cs_1")
    db.rollback()

    assert db.query(Order).count() == 1
    db.refresh(product)
    assert product.in_stock == 8
    # Cash orders all carry an empty reference
    place_cod = CheckoutRequest.model_validate(checkout_payload(product))
    order_service.create_order(db, place_cod)
    order_service.create_order(db, place_cod)
    assert db.query(Order).count() == 3


def test_repeated_sale_conflict_is_raised(db, delivered_order, monkeypatch):
    order, _ = delivered_order
    order_service.update_status(db, order.id, OrderStatus.SHIPPED)

    def duplicate_sale(db, order):
        db.add(Sale(order_id=order.id, order_code=order.order_code))
        return True

    monkeypatch.setattr(order_service, "_ensure_sale", duplicate_sale)
    with pytest.raises(IntegrityError):
        order_service.update_status(db, order.id, OrderStatus.DELIVERED)
    db.rollback()
    assert db.query(Sale).filter(Sale.order_id == order.id).count() == 1
