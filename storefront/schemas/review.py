from datetime import datetime

from pydantic import BaseModel, Field

from storefront.models.review import ReviewStatus
from storefront.models.testimonial import TestimonialStatus
from storefront.schemas.common import CamelModel


class EligibilityRequest(CamelModel):
    order_id: str = Field(min_length=1)
    contact: str = Field(min_length=1)
    product_id: str = Field(min_length=1)


class ReviewSubmit(EligibilityRequest):
    rating: int = Field(ge=1, le=5)
    review_text: str = Field(min_length=1)
    headline: str = ""
    customer_name: str = ""


class EligibilityOut(BaseModel):
    eligible: bool = True
    customer_name: str


class AdminReviewCreate(CamelModel):
    product_id: str
    customer_name: str
    customer_email: str = ""
    headline: str = ""
    rating: int = Field(ge=1, le=5)
    review_text: str = Field(min_length=1)


class ReviewUpdate(CamelModel):
    status: ReviewStatus | None = None
    review_text: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    headline: str | None = None


class PublicReviewOut(BaseModel):
    id: str
    product_id: str
    customer_name: str
    headline: str
    rating: int
    review_text: str
    is_verified_purchase: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewOut(PublicReviewOut):
    order_id: str | None = None
    customer_email: str
    status: ReviewStatus
    source: str
    ip_address: str
    updated_at: datetime


class RatingOut(BaseModel):
    average_rating: float
    review_count: int


class TestimonialOut(BaseModel):
    id: str
    customer_name: str
    tag: str
    avatar_url: str
    product: str
    rating: int
    content: str
    status: TestimonialStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
