"""Review gate: only customers holding a delivered order may review its products, once each."""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.order import Order, OrderStatus
from storefront.models.product import Product
from storefront.models.review import Review, ReviewSource, ReviewStatus
from storefront.services import order_service

logger = logging.getLogger(__name__)


class ReviewRejection(str, Enum):
    ORDER_NOT_FOUND = "order_not_found"
    CONTACT_MISMATCH = "contact_mismatch"
    NOT_DELIVERED = "not_delivered"
    PRODUCT_NOT_IN_ORDER = "product_not_in_order"
    ALREADY_REVIEWED = "already_reviewed"


REJECTION_MESSAGES = {
    ReviewRejection.ORDER_NOT_FOUND: "Order not found",
    ReviewRejection.CONTACT_MISMATCH: "Email or phone does not match this order",
    ReviewRejection.NOT_DELIVERED: "You can review products only after your order is delivered",
    ReviewRejection.PRODUCT_NOT_IN_ORDER: "This product is not part of the order",
    ReviewRejection.ALREADY_REVIEWED: "You have already reviewed this product for this order",
}


class ReviewEligibilityError(ValueError):
    def __init__(self, reason: ReviewRejection):
        self.reason = reason
        super().__init__(REJECTION_MESSAGES[reason])


@dataclass
class Eligibility:
    order: Order
    customer_name: str
    eligible: bool = True


def _contact_matches(order: Order, contact: str) -> bool:
    contact = contact.strip()
    if not contact:
        return False
    if order.customer_email and contact.lower() == order.customer_email.lower():
        return True
    return bool(order.customer_phone) and contact == order.customer_phone.strip()


def check_eligibility(db: Session, order_ref: str, contact: str, product_id: str) -> Eligibility:
    order = order_service.get_order(db, order_ref.strip())
    if not order:
        raise ReviewEligibilityError(ReviewRejection.ORDER_NOT_FOUND)
    if not _contact_matches(order, contact):
        raise ReviewEligibilityError(ReviewRejection.CONTACT_MISMATCH)
    if order.status != OrderStatus.DELIVERED:
        raise ReviewEligibilityError(ReviewRejection.NOT_DELIVERED)
    if not any(item.product_id == product_id for item in order.items):
        raise ReviewEligibilityError(ReviewRejection.PRODUCT_NOT_IN_ORDER)
    exists = db.query(Review.id).filter(Review.order_id == order.id, Review.product_id == product_id).first()
    if exists:
        raise ReviewEligibilityError(ReviewRejection.ALREADY_REVIEWED)
    return Eligibility(order=order, customer_name=order.customer_full_name)


def submit_review(
    db: Session,
    order_ref: str,
    contact: str,
    product_id: str,
    rating: int,
    review_text: str,
    headline: str = "",
    customer_name: str = "",
    ip_address: str = "",
) -> Review:
    """Re-check eligibility and store a pending, verified-purchase review."""
    eligibility = check_eligibility(db, order_ref, contact, product_id)
    order = eligibility.order
    review = Review(
        product_id=product_id,
        order_id=order.id,
        customer_name=customer_name.strip() or eligibility.customer_name,
        customer_email=order.customer_email,
        headline=headline.strip(),
        rating=rating,
        review_text=review_text.strip(),
        status=ReviewStatus.PENDING,
        source=ReviewSource.CUSTOMER,
        ip_address=ip_address,
        is_verified_purchase=True,
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent submission for the same order and product won the unique index
        db.rollback()
        raise ReviewEligibilityError(ReviewRejection.ALREADY_REVIEWED)
    db.refresh(review)
    logger.info("Review %s submitted for product %s (order %s)", review.id, product_id, order.order_code)
    return review


def add_admin_review(db: Session, data) -> Review:
    if not db.query(Product.id).filter(Product.id == data.product_id).first():
        raise ValueError("Product not found")
    review = Review(
        product_id=data.product_id,
        order_id=None,
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        headline=data.headline,
        rating=data.rating,
        review_text=data.review_text,
        status=ReviewStatus.APPROVED,
        source=ReviewSource.ADMIN,
        is_verified_purchase=False,
    )
    db.add(review)
    db.commit()
    db.refresh(review)
    return review


def get_review(db: Session, review_id: str) -> Review | None:
    return db.query(Review).filter(Review.id == review_id).first()


def update_review(db: Session, review_id: str, data) -> Review | None:
    review = get_review(db, review_id)
    if not review:
        return None
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(review, key, value)
    db.commit()
    db.refresh(review)
    return review


def delete_review(db: Session, review_id: str) -> bool:
    review = get_review(db, review_id)
    if not review:
        return False
    db.delete(review)
    db.commit()
    return True


def list_reviews(db: Session, status: ReviewStatus | None = None, product_id: str | None = None) -> list[Review]:
    q = db.query(Review)
    if status:
        q = q.filter(Review.status == status)
    if product_id:
        q = q.filter(Review.product_id == product_id)
    return q.order_by(Review.created_at.desc()).all()


def approved_reviews(db: Session, product_id: str) -> list[Review]:
    return list_reviews(db, ReviewStatus.APPROVED, product_id)


def product_rating(db: Session, product_id: str) -> tuple[float, int]:
    avg, count = (
        db.query(func.avg(Review.rating), func.count(Review.id))
        .filter(Review.product_id == product_id, Review.status == ReviewStatus.APPROVED)
        .one()
    )
    if not count:
        return 0.0, 0
    return round(float(avg), 1), count
