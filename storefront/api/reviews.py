from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.api.auth import require_admin
from storefront.database import get_db
from storefront.dependencies import client_ip, review_rate_limit
from storefront.models.review import ReviewStatus
from storefront.models.user import User
from storefront.schemas.review import (
    AdminReviewCreate,
    EligibilityOut,
    EligibilityRequest,
    PublicReviewOut,
    RatingOut,
    ReviewOut,
    ReviewSubmit,
    ReviewUpdate,
)
from storefront.services import review_service
from storefront.services.review_service import ReviewEligibilityError, ReviewRejection

router = APIRouter(prefix="/reviews", tags=["Reviews"])

REJECTION_STATUS = {
    ReviewRejection.ORDER_NOT_FOUND: 404,
    ReviewRejection.CONTACT_MISMATCH: 403,
    ReviewRejection.NOT_DELIVERED: 403,
    ReviewRejection.PRODUCT_NOT_IN_ORDER: 403,
    ReviewRejection.ALREADY_REVIEWED: 409,
}


def _rejected(e: ReviewEligibilityError) -> HTTPException:
    return HTTPException(REJECTION_STATUS[e.reason], {"message": str(e), "reason": e.reason.value})


@router.post("/verify-eligibility", response_model=EligibilityOut, dependencies=[Depends(review_rate_limit)])
def verify_eligibility(data: EligibilityRequest, db: Session = Depends(get_db)):
    try:
        result = review_service.check_eligibility(db, data.order_id, data.contact, data.product_id)
    except ReviewEligibilityError as e:
        raise _rejected(e)
    return EligibilityOut(eligible=True, customer_name=result.customer_name)


@router.post("/submit", response_model=PublicReviewOut, status_code=201, dependencies=[Depends(review_rate_limit)])
def submit_review(data: ReviewSubmit, request: Request, db: Session = Depends(get_db)):
    try:
        return review_service.submit_review(
            db,
            data.order_id,
            data.contact,
            data.product_id,
            rating=data.rating,
            review_text=data.review_text,
            headline=data.headline,
            customer_name=data.customer_name,
            ip_address=client_ip(request),
        )
    except ReviewEligibilityError as e:
        raise _rejected(e)


@router.get("/product/{product_id}", response_model=list[PublicReviewOut])
def product_reviews(product_id: str, db: Session = Depends(get_db)):
    return review_service.approved_reviews(db, product_id)


@router.get("/product/{product_id}/rating", response_model=RatingOut)
def product_rating(product_id: str, db: Session = Depends(get_db)):
    average, count = review_service.product_rating(db, product_id)
    return RatingOut(average_rating=average, review_count=count)


# --- Admin ---

@router.get("", response_model=list[ReviewOut])
def list_reviews(
    status: ReviewStatus | None = None,
    product_id: str | None = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return review_service.list_reviews(db, status, product_id)


@router.post("", response_model=ReviewOut, status_code=201)
def add_review(data: AdminReviewCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return review_service.add_admin_review(db, data)
    except ValueError as e:
        raise HTTPException(404, str(e))


@router.put("/{review_id}", response_model=ReviewOut)
def update_review(
    review_id: str, data: ReviewUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    review = review_service.update_review(db, review_id, data)
    if not review:
        raise HTTPException(404, "Review not found")
    return review


@router.delete("/{review_id}", status_code=204)
def delete_review(review_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if not review_service.delete_review(db, review_id):
        raise HTTPException(404, "Review not found")
