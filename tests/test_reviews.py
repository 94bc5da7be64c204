from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.config import settings
from storefront.models.review import Review, ReviewSource, ReviewStatus
from storefront.models.throttle import ThrottleEvent
from storefront.services import review_service, throttle_service
from storefront.services.review_service import Eligibility, ReviewEligibilityError, ReviewRejection


def _body(order, product, contact="ana@example.com", **extra):
    body = {"orderId": order.order_code, "contact": contact, "productId": product.id}
    body.update(extra)
    return body


def test_eligible_by_email_or_phone(client, delivered_order):
    order, product = delivered_order

    resp = client.post("/api/v1/reviews/verify-eligibility", json=_body(order, product, "ANA@example.com"))
    assert resp.status_code == 200
    assert resp.json() == {"eligible": True, "customer_name": "Ana Lima"}

    resp = client.post("/api/v1/reviews/verify-eligibility", json=_body(order, product, "+15550101"))
    assert resp.status_code == 200


@pytest.mark.parametrize(
    "mutate, status, reason",
    [
        (lambda b: b.update(orderId="AC-NOPE"), 404, "order_not_found"),
        (lambda b: b.update(contact="someone@else.com"), 403, "contact_mismatch"),
        (lambda b: b.update(productId="other-product"), 403, "product_not_in_order"),
    ],
)
def test_eligibility_rejections(client, delivered_order, mutate, status, reason):
    order, product = delivered_order
    body = _body(order, product)
    mutate(body)

    resp = client.post("/api/v1/reviews/verify-eligibility", json=body)

    assert resp.status_code == status
    assert resp.json()["detail"]["reason"] == reason


def test_submit_for_undelivered_order_creates_nothing(client, db, make_product, place_order):
    product = make_product()
    order = place_order(product)

    resp = client.post(
        "/api/v1/reviews/submit", json=_body(order, product, rating=5, reviewText="Lovely glaze")
    )

    assert resp.status_code == 403
    assert resp.json()["detail"]["reason"] == "not_delivered"
    assert db.query(Review).count() == 0


def test_submit_creates_pending_verified_review_then_rejects_duplicate(client, db, delivered_order):
    order, product = delivered_order
    body = _body(order, product, rating=4, reviewText="Sturdy and pretty", headline="Nice")

    first = client.post("/api/v1/reviews/submit", json=body)
    second = client.post("/api/v1/reviews/submit", json=body)

    assert first.status_code == 201
    assert "customer_email" not in first.json()
    assert second.status_code == 409
    assert second.json()["detail"]["reason"] == "already_reviewed"
    review = db.query(Review).one()
    assert review.status == ReviewStatus.PENDING
    assert review.source == ReviewSource.CUSTOMER
    assert review.is_verified_purchase
    assert review.ip_address == "testclient"


def test_unique_index_rejects_concurrent_duplicate(db, delivered_order, monkeypatch):
    order, product = delivered_order
    review_service.submit_review(db, order.id, "ana@example.com", product.id, 5, "First")

    # Simulate a second request that passed its eligibility check before the first committed
    monkeypatch.setattr(
        review_service, "check_eligibility", lambda *a: Eligibility(order=order, customer_name="Ana Lima")
    )
    with pytest.raises(ReviewEligibilityError) as exc:
        review_service.submit_review(db, order.id, "ana@example.com", product.id, 3, "Second")

    assert exc.value.reason == ReviewRejection.ALREADY_REVIEWED
    assert db.query(Review).count() == 1


def test_admin_reviews_without_order_are_not_unique_constrained(db, make_product):
    product = make_product()
    for text in ("Great", "Also great"):
        db.add(Review(product_id=product.id, customer_name="Staff", rating=5, review_text=text))
    db.commit()
    assert db.query(Review).count() == 2

    db.add(Review(product_id=product.id, order_id="o-1", customer_name="A", rating=5, review_text="x"))
    db.add(Review(product_id=product.id, order_id="o-1", customer_name="B", rating=4, review_text="y"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_public_listing_and_rating_only_count_approved(client, admin_headers, db, delivered_order):
    order, product = delivered_order
    client.post("/api/v1/reviews/submit", json=_body(order, product, rating=1, reviewText="Cracked"))
    for rating in (5, 4):
        resp = client.post(
            "/api/v1/reviews",
            json={"productId": product.id, "customerName": "Staff", "rating": rating, "reviewText": "Good"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "approved"

    reviews = client.get(f"/api/v1/reviews/product/{product.id}").json()
    assert len(reviews) == 2
    assert all("ip_address" not in r for r in reviews)
    rating = client.get(f"/api/v1/reviews/product/{product.id}/rating").json()
    assert rating == {"average_rating": 4.5, "review_count": 2}


def test_rating_is_zero_without_reviews(client, make_product):
    product = make_product()
    assert client.get(f"/api/v1/reviews/product/{product.id}/rating").json() == {
        "average_rating": 0.0,
        "review_count": 0,
    }


def test_admin_moderation(client, admin_headers, customer_headers, db, delivered_order):
    order, product = delivered_order
    review_id = client.post(
        "/api/v1/reviews/submit", json=_body(order, product, rating=5, reviewText="Perfect")
    ).json()["id"]

    assert client.get("/api/v1/reviews", headers=customer_headers).status_code == 403
    pending = client.get("/api/v1/reviews", params={"status": "pending"}, headers=admin_headers).json()
    assert [r["id"] for r in pending] == [review_id]

    resp = client.put(f"/api/v1/reviews/{review_id}", json={"status": "approved"}, headers=admin_headers)
    assert resp.json()["status"] == "approved"
    assert client.delete(f"/api/v1/reviews/{review_id}", headers=admin_headers).status_code == 204
    assert client.delete(f"/api/v1/reviews/{review_id}", headers=admin_headers).status_code == 404


def test_review_endpoints_share_rate_limit(client, delivered_order, monkeypatch):
    monkeypatch.setattr(settings, "REVIEW_RATE_LIMIT", 2)
    order, product = delivered_order

    assert client.post("/api/v1/reviews/verify-eligibility", json=_body(order, product)).status_code == 200
    assert client.post("/api/v1/reviews/submit", json=_body(order, product, rating=5, reviewText="ok")).status_code == 201
    resp = client.post("/api/v1/reviews/verify-eligibility", json=_body(order, product))

    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) > 0


def test_throttle_prunes_expired_rows_of_other_callers(db, monkeypatch):
    now = datetime(2026, 1, 1, 12, 0)
    monkeypatch.setattr(throttle_service, "_now", lambda: now - timedelta(hours=2))
    throttle_service.hit(db, "reviews", "10.0.0.1", limit=5, window_seconds=3600)
    throttle_service.hit(db, "other", "10.0.0.1", limit=5, window_seconds=3600)

    monkeypatch.setattr(throttle_service, "_now", lambda: now)
    result = throttle_service.hit(db, "reviews", "10.0.0.2", limit=5, window_seconds=3600)

    assert result.allowed and result.remaining == 4
    remaining = {(e.bucket, e.identifier) for e in db.query(ThrottleEvent).all()}
    assert remaining == {("reviews", "10.0.0.2"), ("other", "10.0.0.1")}
